"""In-memory destination — keeps delivered events for later retrieval.

Nothing leaves the process.  Useful for tests, dry runs, and as a buffer
that a transport layer drains on its own schedule.
"""

from __future__ import annotations

import logging

from trackrelay.models.events import DispatchedEvent

logger = logging.getLogger(__name__)


class MemoryDestination:
    """Buffers events in memory.

    ``received`` holds every event in delivery order.  ``batches`` records
    the events of each ``send_batch`` call separately.  Set
    ``batch_capable=False`` to make the dispatcher use per-event ``send``.
    """

    def __init__(self, name: str = "memory", *, batch_capable: bool = True) -> None:
        self.name = name
        self.received: list[DispatchedEvent] = []
        self.batches: list[list[DispatchedEvent]] = []
        if not batch_capable:
            # Instance attribute shadows the method; the dispatcher sees no
            # batch capability.
            self.send_batch = None  # type: ignore[assignment]

    def send(self, event: DispatchedEvent) -> None:
        self.received.append(event)
        logger.debug("MemoryDestination %s: received %s", self.name, event.key)

    def send_batch(self, events: list[DispatchedEvent]) -> None:
        self.batches.append(list(events))
        self.received.extend(events)
        logger.debug("MemoryDestination %s: received batch of %d", self.name, len(events))

    def drain(self) -> list[DispatchedEvent]:
        """Return and clear all received events."""
        events = list(self.received)
        self.received.clear()
        self.batches.clear()
        return events

    @property
    def pending_count(self) -> int:
        """Return the number of events held."""
        return len(self.received)
