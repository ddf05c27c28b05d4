"""trackrelay data models — all Pydantic v2."""

from trackrelay.models.config import QueueConfig, TrackerConfig
from trackrelay.models.consent import (
    ConsentCategory,
    ConsentConfig,
    ConsentState,
    default_consent_state,
)
from trackrelay.models.events import (
    DispatchedEvent,
    EventCatalog,
    EventDefinition,
    make_key,
)

__all__ = [
    # events
    "DispatchedEvent",
    "EventDefinition",
    "EventCatalog",
    "make_key",
    # consent
    "ConsentCategory",
    "ConsentConfig",
    "ConsentState",
    "default_consent_state",
    # config
    "QueueConfig",
    "TrackerConfig",
]
