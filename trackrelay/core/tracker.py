"""Tracker — wires consent, middleware, batching and fan-out together.

The tracker is the only object applications talk to.  It owns one
ConsentGate, one MiddlewarePipeline, one FanOutDispatcher and, when
batching is enabled, one BatchQueue.

Flow
----
``emit`` builds a ``DispatchedEvent`` → the consent gate silently drops
events whose category is not granted → the event is either pushed into the
batch queue or dispatched straight away as a background task.  Every
recoverable failure ends up in the single ``on_error`` callback; nothing is
raised back into ``emit``.

The event catalog is turned into an explicit dispatch table at
construction: ``tracker.track("auth", "login", {...})`` or
``tracker.events.auth.login({...})``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from types import SimpleNamespace
from typing import Any, Callable, Coroutine

from trackrelay.core.consent import ConsentGate
from trackrelay.core.middleware import MiddlewarePipeline
from trackrelay.core.queue import BatchQueue
from trackrelay.errors import DestinationError, RelayError
from trackrelay.models.config import TrackerConfig
from trackrelay.models.consent import ConsentState
from trackrelay.models.events import DispatchedEvent, EventDefinition, make_key
from trackrelay.routing.dispatcher import FanOutDispatcher, resolve

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException, "DispatchedEvent | None"], None]


def log_error(error: BaseException, event: DispatchedEvent | None = None) -> None:
    """Default error callback: log the failure with enough context to find it."""
    context: list[str] = []
    if isinstance(error, DestinationError):
        context.append(f"destination={error.destination_name}")
        context.append(f"action={error.action}")
    if event is not None:
        context.append(f"event={event.key}")
    logger.error(
        "[trackrelay] %s%s",
        error,
        f" ({', '.join(context)})" if context else "",
    )


class Tracker:
    """Best-effort, in-memory event dispatch to many destinations.

    Parameters
    ----------
    config:
        Destinations, middleware, consent, queue and catalog settings.
        Defaults to an empty ``TrackerConfig``.

    Notes
    -----
    ``emit`` schedules work on the running asyncio loop, so it must be
    called from within one.  Await ``flush()`` to wait for everything
    emitted so far, and ``destroy()`` once on shutdown.
    """

    def __init__(self, config: TrackerConfig | None = None) -> None:
        self._config = config or TrackerConfig()
        self._on_error: ErrorHandler = self._config.on_error or log_error
        self._global_metadata: dict[str, Any] = dict(self._config.global_metadata)
        self._inflight: set[asyncio.Task[Any]] = set()
        self._destroyed = False

        self._consent = ConsentGate(self._config.consent)
        self._pipeline = MiddlewarePipeline(self._config.middleware)
        self._dispatcher = FanOutDispatcher(self._pipeline, self._config.destinations)
        self._queue: BatchQueue | None = None
        if self._config.queue.enabled:
            self._queue = BatchQueue(
                self._config.queue,
                self._release_batch,
                on_error=lambda exc: self._report(exc, None),
            )

        self._table: dict[tuple[str, str], Callable[..., None]] = {}
        self.events = self._build_dispatch_table(self._config.events)
        self._init_destinations()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def dispatcher(self) -> FanOutDispatcher:
        return self._dispatcher

    @property
    def queue(self) -> BatchQueue | None:
        return self._queue

    @property
    def consent(self) -> ConsentGate:
        return self._consent

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(
        self,
        key: str,
        area: str,
        name: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Emit one event.  Never raises; failures go to ``on_error``."""
        event: DispatchedEvent | None = None
        try:
            if self._destroyed:
                raise RelayError(f"Cannot emit {key}: tracker has been destroyed")
            event = DispatchedEvent(
                key=key,
                area=area,
                name=name,
                payload=dict(payload or {}),
                metadata=dict(self._global_metadata),
            )
            if not self._consent.is_allowed(event):
                return
            if self._queue is not None:
                self._queue.push(event)
            else:
                self._spawn(self._dispatch_one(event))
        except Exception as exc:  # noqa: BLE001
            self._report(exc, event)

    def track(self, area: str, name: str, params: dict[str, Any] | None = None) -> None:
        """Emit the catalog event ``area::name``, building its payload.

        Raises
        ------
        KeyError
            If the catalog has no such event.
        """
        try:
            emitter = self._table[(area, name)]
        except KeyError:
            raise KeyError(f"Unknown event: {make_key(area, name)}") from None
        emitter(params)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def set_consent(self, partial: ConsentState) -> None:
        self._consent.update(partial)

    def get_consent(self) -> ConsentState:
        return self._consent.get_state()

    def set_global_metadata(self, metadata: dict[str, Any]) -> None:
        """Merge *metadata* into the metadata of every future event."""
        self._global_metadata = {**self._global_metadata, **metadata}

    async def flush(self) -> None:
        """Release queued events and wait for in-flight dispatches."""
        if self._queue is not None:
            await self._queue.flush()
        await self._drain()

    async def destroy(self) -> None:
        """Flush, then tear down every destination.

        A destination whose ``destroy`` fails is reported and the remaining
        destinations are still torn down.  Calling this twice is a no-op.
        """
        if self._destroyed:
            return
        self._destroyed = True
        if self._queue is not None:
            await self._queue.destroy()
        await self._drain()

        for destination in self._dispatcher.registered_destinations:
            teardown = getattr(destination, "destroy", None)
            if not callable(teardown):
                continue
            try:
                await resolve(teardown())
            except Exception as exc:  # noqa: BLE001
                self._report(DestinationError(destination.name, exc, action="destroy"), None)
        logger.info("Tracker destroyed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_dispatch_table(
        self, catalog: dict[str, dict[str, EventDefinition]]
    ) -> SimpleNamespace:
        areas: dict[str, SimpleNamespace] = {}
        for area, definitions in catalog.items():
            methods: dict[str, Callable[..., None]] = {}
            for name, definition in definitions.items():
                expected = make_key(area, name)
                if definition.key != expected:
                    raise ValueError(
                        f"Catalog entry {area}.{name} has key {definition.key!r}, "
                        f"expected {expected!r}"
                    )
                emitter = self._make_emitter(area, name, definition)
                self._table[(area, name)] = emitter
                methods[name] = emitter
            areas[area] = SimpleNamespace(**methods)
        return SimpleNamespace(**areas)

    def _make_emitter(
        self, area: str, name: str, definition: EventDefinition
    ) -> Callable[..., None]:
        def emit_event(params: dict[str, Any] | None = None) -> None:
            try:
                payload = definition.payload(params)
            except Exception as exc:  # noqa: BLE001
                self._report(exc, None)
                return
            self.emit(definition.key, area, name, payload)

        emit_event.__name__ = f"{area}_{name}"
        return emit_event

    def _init_destinations(self) -> None:
        for destination in self._dispatcher.registered_destinations:
            init = getattr(destination, "init", None)
            if not callable(init):
                continue
            try:
                result = init()
            except Exception as exc:  # noqa: BLE001
                self._report(DestinationError(destination.name, exc, action="init"), None)
                continue
            if inspect.isawaitable(result):
                self._schedule_init(destination, result)

    def _schedule_init(self, destination: Any, pending: Any) -> None:
        async def _await_init() -> None:
            try:
                await pending
            except Exception as exc:  # noqa: BLE001
                self._report(DestinationError(destination.name, exc, action="init"), None)

        try:
            self._spawn(_await_init())
        except RuntimeError as exc:
            if asyncio.iscoroutine(pending):
                pending.close()
            self._report(DestinationError(destination.name, exc, action="init"), None)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise
        task = loop.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _drain(self) -> None:
        while True:
            pending = [task for task in self._inflight if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _dispatch_one(self, event: DispatchedEvent) -> None:
        outcome = await self._dispatcher.dispatch(event)
        for error in outcome.errors:
            self._report(error, event)

    async def _release_batch(self, events: list[DispatchedEvent]) -> None:
        outcome = await self._dispatcher.dispatch_batch(events)
        for error in outcome.errors:
            self._report(error, None)

    def _report(self, error: BaseException, event: DispatchedEvent | None) -> None:
        try:
            self._on_error(error, event)
        except Exception:  # noqa: BLE001
            logger.exception("Error callback raised while reporting %r", error)


def create_tracker(**options: Any) -> Tracker:
    """Build a ``Tracker`` from keyword options (see ``TrackerConfig``)."""
    return Tracker(TrackerConfig(**options))
