"""BatchQueue — buffers approved events and releases them in batches.

A batch is released when the buffer reaches ``max_size`` (synchronously,
inside the ``push`` that crossed the threshold), when the periodic timer
fires, on an explicit ``flush()``, and once more on ``destroy()``.

The buffer is swapped for a fresh list before a release starts, so pushes
that happen while a release is awaiting land in the next batch.  No event
can be released twice or lost between ``push`` and ``flush``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable

from trackrelay.errors import QueueClosedError
from trackrelay.models.config import QueueConfig
from trackrelay.models.events import DispatchedEvent

logger = logging.getLogger(__name__)

ReleaseCallback = Callable[[list[DispatchedEvent]], Awaitable[object]]
ErrorCallback = Callable[[BaseException], None]


class BatchQueue:
    """Size- and time-triggered event batching on the running event loop.

    Parameters
    ----------
    config:
        ``max_size`` and ``flush_interval`` (milliseconds, ``0`` disables
        the timer).  ``enabled`` is ignored here; the tracker decides
        whether to build a queue at all.
    on_release:
        Coroutine function receiving each non-empty batch.
    on_error:
        Receives exceptions raised by ``on_release``.  Defaults to logging
        them.
    """

    def __init__(
        self,
        config: QueueConfig,
        on_release: ReleaseCallback,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._max_size = config.max_size
        self._interval = config.flush_interval / 1000.0
        self._on_release = on_release
        self._on_error = on_error or self._log_release_error
        self._buffer: list[DispatchedEvent] = []
        self._releases: set[asyncio.Task[None]] = set()
        self._timer: asyncio.Task[None] | None = None
        self._destroyed = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        """Number of buffered events not yet handed to a release."""
        return len(self._buffer)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic flush timer if enabled and not yet running.

        Must be called with a running event loop.  ``push`` calls this
        implicitly.
        """
        if self._destroyed or self._interval <= 0 or self.timer_running:
            return
        self._timer = asyncio.get_running_loop().create_task(
            self._run_timer(), name="trackrelay-batch-timer"
        )
        logger.debug("Batch timer started (interval=%.3fs)", self._interval)

    def push(self, event: DispatchedEvent) -> None:
        """Buffer *event*, releasing the buffer once it reaches ``max_size``.

        Raises
        ------
        QueueClosedError
            If the queue has been destroyed.
        RuntimeError
            If a release is due and no event loop is running.  The buffered
            events, *event* included, remain queued for the next flush.
        """
        if self._destroyed:
            raise QueueClosedError(
                f"Cannot push {event.key}: batch queue has been destroyed"
            )
        self.start()
        self._buffer.append(event)
        if len(self._buffer) >= self._max_size:
            # Resolve the loop before the swap; without one the buffer stays put.
            loop = asyncio.get_running_loop()
            batch = self._take()
            logger.debug("Batch queue full, releasing %d events", len(batch))
            self._spawn_release(batch, loop)

    async def flush(self) -> None:
        """Release everything buffered and wait for in-flight releases.

        Releases already in flight finish first, so batches reach the
        callback in push order.  Never calls the release callback when the
        buffer is empty.
        """
        await self._wait_for_releases()
        batch = self._take()
        if batch:
            # Tracked like any other release so a concurrent flush or
            # destroy waits for it.
            self._spawn_release(batch)
        await self._wait_for_releases()

    async def destroy(self) -> None:
        """Stop the timer for good, then drain the buffer one last time.

        A release already in flight is not cancelled; it is awaited.
        """
        self._destroyed = True
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        await self.flush()
        logger.debug("Batch queue destroyed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _take(self) -> list[DispatchedEvent]:
        batch, self._buffer = self._buffer, []
        return batch

    async def _wait_for_releases(self) -> None:
        while True:
            pending = [task for task in self._releases if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn_release(
        self,
        batch: list[DispatchedEvent],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Task[None]:
        loop = loop or asyncio.get_running_loop()
        task = loop.create_task(self._release(batch))
        self._releases.add(task)
        task.add_done_callback(self._releases.discard)
        return task

    async def _release(self, batch: list[DispatchedEvent]) -> None:
        try:
            await self._on_release(batch)
        except Exception as exc:  # noqa: BLE001
            self._on_error(exc)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            batch = self._take()
            if not batch:
                continue
            logger.debug("Batch timer releasing %d events", len(batch))
            # Shielded: cancelling the timer must not cancel this release.
            await asyncio.shield(self._spawn_release(batch))

    @staticmethod
    def _log_release_error(exc: BaseException) -> None:
        logger.error("Batch release failed: %s", exc)
