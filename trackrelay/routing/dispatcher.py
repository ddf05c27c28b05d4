"""FanOutDispatcher — routes events to ALL registered destinations.

Every event that survives the middleware chain is handed to every
registered destination concurrently.  A failure in one destination is
wrapped in a ``DestinationError`` and collected; it never blocks, delays or
hides the outcome of any other destination.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from trackrelay.core.middleware import MiddlewarePipeline
from trackrelay.errors import DestinationError, RelayError
from trackrelay.models.events import DispatchedEvent

if TYPE_CHECKING:
    from trackrelay.routing.destinations import Destination

logger = logging.getLogger(__name__)


async def resolve(result: Any) -> Any:
    """Await *result* if it is awaitable; destinations may be sync or async."""
    if inspect.isawaitable(result):
        return await result
    return result


class DispatchOutcome(BaseModel):
    """Aggregate result of one ``dispatch`` or ``dispatch_batch`` call.

    Mutable while the dispatcher fills it in; callers treat it as read-only.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    delivered: list[str] = Field(default_factory=list)
    errors: list[RelayError] = Field(default_factory=list)
    sent: int = 0
    dropped: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def destination_errors(self) -> list[DestinationError]:
        return [e for e in self.errors if isinstance(e, DestinationError)]


class FanOutDispatcher:
    """Runs events through middleware and fans them out to destinations.

    Usage
    -----
    >>> dispatcher = FanOutDispatcher(pipeline)
    >>> dispatcher.register_destination(local_file)
    >>> dispatcher.register_destination(console)
    >>> outcome = await dispatcher.dispatch(event)
    """

    def __init__(
        self,
        pipeline: MiddlewarePipeline | None = None,
        destinations: list[Destination] | None = None,
    ) -> None:
        self._pipeline = pipeline or MiddlewarePipeline()
        self._destinations: list[Destination] = []
        for destination in destinations or []:
            self.register_destination(destination)

    # ------------------------------------------------------------------
    # Destination management
    # ------------------------------------------------------------------

    def register_destination(self, destination: Destination) -> None:
        """Register a destination to receive dispatched events.

        Duplicate registration of the same instance is silently ignored.
        """
        if destination not in self._destinations:
            self._destinations.append(destination)
            logger.info("Registered destination: %s", destination.name)

    def unregister_destination(self, destination: Destination) -> None:
        """Remove a previously registered destination."""
        try:
            self._destinations.remove(destination)
            logger.info("Unregistered destination: %s", destination.name)
        except ValueError:
            pass

    @property
    def registered_destinations(self) -> list[Destination]:
        """Return a copy of the registered destination list."""
        return list(self._destinations)

    @property
    def pipeline(self) -> MiddlewarePipeline:
        return self._pipeline

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, event: DispatchedEvent) -> DispatchOutcome:
        """Send one event to ALL registered destinations.

        Middleware runs first; a dropped event contacts no destination.
        Resolves once every destination has finished, successfully or not.
        """
        outcome = DispatchOutcome()
        final = await self._apply_middleware(event, outcome)
        if final is None:
            return outcome

        destinations = list(self._destinations)
        if not destinations:
            logger.warning("No destinations registered, event %s dropped", final.key)
            return outcome

        outcome.sent = 1
        results = await asyncio.gather(
            *(self._deliver(d, "send", d.send, final) for d in destinations)
        )
        self._collect(destinations, results, outcome, final.key)
        return outcome

    async def dispatch_batch(self, events: list[DispatchedEvent]) -> DispatchOutcome:
        """Send a batch of events to ALL registered destinations.

        Each event runs through middleware on its own; survivors keep their
        relative order.  Destinations with ``send_batch`` get one call;
        the rest get one ``send`` per event, in order.
        """
        outcome = DispatchOutcome()
        survivors: list[DispatchedEvent] = []
        for event in events:
            final = await self._apply_middleware(event, outcome)
            if final is not None:
                survivors.append(final)

        if not survivors:
            return outcome

        destinations = list(self._destinations)
        if not destinations:
            logger.warning(
                "No destinations registered, batch of %d dropped", len(survivors)
            )
            return outcome

        outcome.sent = len(survivors)
        results = await asyncio.gather(
            *(self._deliver_batch(d, survivors) for d in destinations)
        )
        self._collect(destinations, results, outcome, f"batch[{len(survivors)}]")
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _apply_middleware(
        self, event: DispatchedEvent, outcome: DispatchOutcome
    ) -> DispatchedEvent | None:
        try:
            final = await self._pipeline.run(event)
        except RelayError as exc:
            logger.debug("Middleware failed for event %s: %s", event.key, exc)
            outcome.errors.append(exc)
            return None
        if final is None:
            outcome.dropped += 1
        return final

    async def _deliver_batch(
        self, destination: Destination, events: list[DispatchedEvent]
    ) -> DestinationError | None:
        # Capability is checked per call, never cached at registration.
        send_batch = getattr(destination, "send_batch", None)
        if callable(send_batch):
            return await self._deliver(destination, "send_batch", send_batch, events)
        for event in events:
            error = await self._deliver(destination, "send", destination.send, event)
            if error is not None:
                return error
        return None

    @staticmethod
    async def _deliver(
        destination: Destination, action: str, method: Any, arg: Any
    ) -> DestinationError | None:
        try:
            await resolve(method(arg))
        except Exception as exc:  # noqa: BLE001
            error = DestinationError(destination.name, exc, action=action)
            error.__cause__ = exc
            return error
        return None

    @staticmethod
    def _collect(
        destinations: list[Destination],
        results: list[DestinationError | None],
        outcome: DispatchOutcome,
        label: str,
    ) -> None:
        for destination, error in zip(destinations, results):
            if error is None:
                outcome.delivered.append(destination.name)
            else:
                logger.debug(
                    "Destination %s failed for %s: %s",
                    error.destination_name,
                    label,
                    error.cause,
                )
                outcome.errors.append(error)

        if outcome.errors and outcome.delivered:
            logger.warning(
                "%s: %d/%d destinations succeeded, %d failed",
                label,
                len(outcome.delivered),
                len(destinations),
                len(outcome.destination_errors),
            )
