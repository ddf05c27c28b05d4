"""Event models — the record that flows through the dispatch pipeline."""

from __future__ import annotations

import time
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator

KEY_SEPARATOR = "::"


def make_key(area: str, name: str) -> str:
    """Return the stable event key ``"{area}::{name}"``."""
    return f"{area}{KEY_SEPARATOR}{name}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class DispatchedEvent(BaseModel):
    """One tracked occurrence, ready for consent, middleware and delivery.

    The model is frozen: middleware that wants a different payload builds a
    copy with ``model_copy(update=...)``.  ``metadata`` is the exception:
    its contents may be annotated in place as the event travels through the
    chain.  ``timestamp`` is stamped once, here, and copies carry it along.

    ``model_copy`` does not re-run the key validator; the middleware
    pipeline checks ``key`` against ``area``/``name`` on every forwarded
    event instead.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    area: str
    name: str
    payload: dict[str, Any] = {}
    timestamp: int = Field(default_factory=_now_ms)
    metadata: dict[str, Any] = {}

    @model_validator(mode="after")
    def _key_matches_area_and_name(self) -> "DispatchedEvent":
        expected = make_key(self.area, self.name)
        if self.key != expected:
            raise ValueError(
                f"Event key {self.key!r} does not match area/name ({expected!r})"
            )
        return self

    @classmethod
    def create(
        cls,
        area: str,
        name: str,
        payload: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "DispatchedEvent":
        """Build an event, deriving ``key`` from *area* and *name*."""
        return cls(
            key=make_key(area, name),
            area=area,
            name=name,
            payload=dict(payload or {}),
            metadata=dict(metadata or {}),
        )


class EventDefinition(BaseModel):
    """A catalog entry describing one trackable event.

    ``constants`` are fixed payload fields (for example ``event_name``).
    When ``build_payload`` is set it receives the caller's params (or
    nothing, for parameterless events) and returns the full payload;
    otherwise the payload is ``constants`` overlaid with the params.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    constants: dict[str, str | int | float | bool] = {}
    build_payload: Callable[..., dict[str, Any]] | None = None

    def payload(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build the payload for one emission of this event."""
        if self.build_payload is not None:
            if params is None:
                return dict(self.build_payload())
            return dict(self.build_payload(params))
        merged: dict[str, Any] = dict(self.constants)
        if params:
            merged.update(params)
        return merged


# area -> event name -> definition
EventCatalog = dict[str, dict[str, EventDefinition]]
