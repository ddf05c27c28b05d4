"""Tracker and queue configuration models."""

from __future__ import annotations

from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt

from trackrelay.models.consent import ConsentConfig
from trackrelay.models.events import EventDefinition


class QueueConfig(BaseModel):
    """Batching configuration.

    ``flush_interval`` is in milliseconds; ``0`` disables the periodic
    timer so only size-triggered and explicit flushes release events.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    max_size: PositiveInt = 10
    flush_interval: NonNegativeInt = 5000


class TrackerConfig(BaseModel):
    """Everything a ``Tracker`` is built from.

    ``destinations`` and ``middleware`` hold live objects and callables, so
    they are not validated beyond being lists.  ``on_error`` defaults to
    ``trackrelay.core.tracker.log_error`` when left unset.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    events: dict[str, dict[str, EventDefinition]] = {}
    destinations: list[Any] = Field(default_factory=list)
    middleware: list[Callable[..., Any]] = Field(default_factory=list)
    consent: ConsentConfig = ConsentConfig()
    queue: QueueConfig = QueueConfig()
    global_metadata: dict[str, Any] = {}
    on_error: Callable[..., Any] | None = None
