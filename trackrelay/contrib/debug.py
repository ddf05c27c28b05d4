"""Debug middleware — logs every event passing through the chain.

Drop it at the front of the middleware list while wiring up a new
destination to see exactly what the pipeline is about to deliver.  It never
modifies or drops events.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from trackrelay.core.middleware import Middleware, Proceed
from trackrelay.models.events import DispatchedEvent

logger = logging.getLogger(__name__)

DebugLogger = Callable[[str, DispatchedEvent], None]


def debug_middleware(
    areas: Iterable[str] | None = None,
    *,
    show_payload: bool = True,
    log: DebugLogger | None = None,
) -> Middleware:
    """Build a middleware that logs events and always proceeds.

    Parameters
    ----------
    areas:
        Only log events from these areas.  Others pass through silently.
    show_payload:
        Include the payload in the default log line.
    log:
        Custom sink receiving ``(message, event)``.  Defaults to this
        module's logger at INFO level.
    """
    area_filter = set(areas) if areas is not None else None

    def _default_log(message: str, event: DispatchedEvent) -> None:
        if show_payload:
            logger.info("%s %s", message, event.payload)
        else:
            logger.info("%s", message)

    sink = log or _default_log

    def debug(event: DispatchedEvent, proceed: Proceed) -> None:
        if area_filter is None or event.area in area_filter:
            sink(f"[trackrelay] {event.key}", event)
        proceed(event)

    return debug
