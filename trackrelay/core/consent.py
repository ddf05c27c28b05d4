"""ConsentGate — decides, per event, whether delivery is permitted.

Each event resolves to exactly one consent category.  Resolution order is
exact key, then area, then ``area::*`` wildcard, then the configured
default.  A category that is absent from the state counts as denied.
"""

from __future__ import annotations

import logging

from trackrelay.models.consent import (
    ConsentConfig,
    ConsentState,
    default_consent_state,
)
from trackrelay.models.events import DispatchedEvent, make_key

logger = logging.getLogger(__name__)


class ConsentGate:
    """Maps events to consent categories and checks the current grant.

    Parameters
    ----------
    config:
        Initial state, pattern mapping and default category.  When omitted,
        only ``necessary`` events are allowed and unmapped events require
        ``analytics``.
    """

    def __init__(self, config: ConsentConfig | None = None) -> None:
        config = config or ConsentConfig()
        self._state: ConsentState = default_consent_state()
        self._state.update(config.default_state)
        self._mapping: dict[str, str] = dict(config.mapping)
        self._default_category = config.default_category

    def category_for(self, event: DispatchedEvent) -> str:
        """Return the consent category governing *event*."""
        if event.key in self._mapping:
            return self._mapping[event.key]
        if event.area in self._mapping:
            return self._mapping[event.area]
        wildcard = make_key(event.area, "*")
        if wildcard in self._mapping:
            return self._mapping[wildcard]
        return self._default_category

    def is_allowed(self, event: DispatchedEvent) -> bool:
        """Return True if the event's category is currently granted."""
        category = self.category_for(event)
        allowed = self._state.get(category) is True
        if not allowed:
            logger.debug(
                "Consent denied for %s (category=%s)", event.key, category
            )
        return allowed

    def update(self, partial: ConsentState) -> None:
        """Merge *partial* into the state; other categories are untouched."""
        self._state.update(partial)
        logger.info("Consent updated: %s", partial)

    def get_state(self) -> ConsentState:
        """Return a copy of the current consent state."""
        return dict(self._state)
