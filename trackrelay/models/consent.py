"""Consent models — categories, state, and the pattern → category mapping."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ConsentCategory(str, Enum):
    """The well-known consent categories.

    Categories are plain strings at runtime; any other name may be used in
    mappings and state as well.
    """

    NECESSARY = "necessary"
    ANALYTICS = "analytics"
    MARKETING = "marketing"
    FUNCTIONAL = "functional"


# category name -> granted
ConsentState = dict[str, bool]


def default_consent_state() -> ConsentState:
    """Everything denied except ``necessary``."""
    return {
        ConsentCategory.NECESSARY.value: True,
        ConsentCategory.ANALYTICS.value: False,
        ConsentCategory.MARKETING.value: False,
        ConsentCategory.FUNCTIONAL.value: False,
    }


class ConsentConfig(BaseModel):
    """Initial consent state plus the rules that map events to categories.

    ``mapping`` keys are matched against an event in this order: the exact
    event key (``"auth::login"``), the area (``"auth"``), then the area
    wildcard (``"auth::*"``).  Events matching nothing fall back to
    ``default_category``.
    """

    model_config = ConfigDict(frozen=True)

    default_state: ConsentState = {}
    mapping: dict[str, str] = {}
    default_category: str = ConsentCategory.ANALYTICS.value
