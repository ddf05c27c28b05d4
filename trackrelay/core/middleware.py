"""MiddlewarePipeline — ordered transform/filter steps for one event.

A middleware is any callable ``(event, proceed)``.  Calling
``proceed(event)`` hands a (possibly modified) event to the next step;
returning without calling it drops the event.  A middleware that needs to
decide asynchronously returns an awaitable and the pipeline waits for it
before looking at whether ``proceed`` was called.  There is no timer
involved in drop detection.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Union

from trackrelay.errors import ChainMisuseError, MiddlewareError
from trackrelay.models.events import DispatchedEvent, make_key

logger = logging.getLogger(__name__)

Proceed = Callable[[DispatchedEvent], None]
Middleware = Callable[[DispatchedEvent, Proceed], Union[Awaitable[Any], None]]


def middleware_name(middleware: Middleware) -> str:
    """Best-effort human-readable name for log and error messages."""
    return getattr(middleware, "__name__", None) or repr(middleware)


class _Continuation:
    """The ``proceed`` callable handed to one middleware step.

    Accepts exactly one call while its step is running.
    """

    def __init__(self, step: int, name: str) -> None:
        self._step = step
        self._name = name
        self._closed = False
        self.called = False
        self.misused = False
        self.forwarded: DispatchedEvent | None = None

    def __call__(self, event: DispatchedEvent) -> None:
        if self._closed:
            raise ChainMisuseError(
                f"Continuation of middleware #{self._step} ({self._name}) "
                "called after the step completed"
            )
        if self.called:
            self.misused = True
            raise ChainMisuseError(
                f"Middleware #{self._step} ({self._name}) called its "
                "continuation more than once"
            )
        self.called = True
        self.forwarded = event

    def close(self) -> None:
        self._closed = True


class MiddlewarePipeline:
    """Runs events through an ordered list of middleware.

    Usage
    -----
    >>> pipeline = MiddlewarePipeline([add_user_id, drop_internal])
    >>> final = await pipeline.run(event)   # None when dropped
    """

    def __init__(self, middleware: Iterable[Middleware] | None = None) -> None:
        self._middleware: list[Middleware] = list(middleware or [])

    def use(self, middleware: Middleware) -> None:
        """Append a middleware to the end of the chain."""
        self._middleware.append(middleware)

    def __len__(self) -> int:
        return len(self._middleware)

    async def run(self, event: DispatchedEvent) -> DispatchedEvent | None:
        """Apply every middleware in order.

        Returns the final event, or ``None`` if a middleware declined to
        proceed.

        Raises
        ------
        ChainMisuseError
            If a middleware called its continuation more than once.
        MiddlewareError
            If a middleware raised, or forwarded an event whose ``key`` no
            longer matches its ``area`` and ``name``.
        """
        current = event
        for index, middleware in enumerate(self._middleware):
            name = middleware_name(middleware)
            proceed = _Continuation(index, name)
            try:
                result = middleware(current, proceed)
                if inspect.isawaitable(result):
                    await result
            except ChainMisuseError:
                raise
            except Exception as exc:
                raise MiddlewareError(name, exc) from exc
            finally:
                proceed.close()

            if proceed.misused:
                # The middleware swallowed the error; the event still dies.
                raise ChainMisuseError(
                    f"Middleware #{index} ({name}) called its continuation "
                    "more than once"
                )
            if not proceed.called or proceed.forwarded is None:
                logger.debug("Event %s dropped by middleware %s", event.key, name)
                return None
            current = proceed.forwarded
            # model_copy(update=...) skips validation.
            expected = make_key(current.area, current.name)
            if current.key != expected:
                raise MiddlewareError(
                    name,
                    ValueError(
                        f"Forwarded event key {current.key!r} does not match "
                        f"area/name ({expected!r})"
                    ),
                )
        return current
