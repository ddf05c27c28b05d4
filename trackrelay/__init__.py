"""trackrelay: consent-aware, best-effort event dispatch.

Routes application tracking events to any number of destinations:
  - Consent gate with exact-key / area / wildcard category mapping
  - Ordered middleware chain with explicit drop semantics
  - Optional size- and time-triggered batching
  - Concurrent fan-out with per-destination failure isolation
"""

__version__ = "0.1.0"
__description__ = "Consent-aware event dispatch pipeline with batching and fan-out"

from trackrelay.core.tracker import Tracker, create_tracker, log_error
from trackrelay.models import (
    ConsentConfig,
    DispatchedEvent,
    EventDefinition,
    QueueConfig,
    TrackerConfig,
)

__all__ = [
    "Tracker",
    "create_tracker",
    "log_error",
    "DispatchedEvent",
    "EventDefinition",
    "ConsentConfig",
    "QueueConfig",
    "TrackerConfig",
    "__version__",
]
