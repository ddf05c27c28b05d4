"""Exception taxonomy for the trackrelay dispatch pipeline.

Consent denials and middleware drops are not errors and never appear here;
they are silent, intentional outcomes.  Everything below is either a
programming error (``ChainMisuseError``, ``QueueClosedError``) or a failure
that is isolated and reported through the tracker's error callback.
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for every error raised by trackrelay."""


class ChainMisuseError(RelayError):
    """Raised when a middleware continuation is invoked more than once.

    Also raised when a step's continuation is called after that step has
    already completed.  Fatal to the event being processed, never to the
    pipeline.
    """


class MiddlewareError(RelayError):
    """Raised when a middleware function itself raises."""

    def __init__(self, middleware_name: str, cause: BaseException) -> None:
        self.middleware_name = middleware_name
        self.cause = cause
        super().__init__(f"Middleware {middleware_name!r} failed: {cause}")


class DestinationError(RelayError):
    """One destination failed during ``init``/``send``/``send_batch``/``destroy``.

    Always isolated from sibling destinations.
    """

    def __init__(
        self,
        destination_name: str,
        cause: BaseException,
        action: str = "send",
    ) -> None:
        self.destination_name = destination_name
        self.action = action
        self.cause = cause
        super().__init__(
            f"Destination {destination_name!r} {action} error: {cause}"
        )


class CollectorUnavailableError(RelayError):
    """Raised by a destination whose transport or collector is missing."""


class QueueClosedError(RelayError):
    """Raised when an event is pushed into a destroyed BatchQueue."""
