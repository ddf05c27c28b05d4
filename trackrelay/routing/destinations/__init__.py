"""Destination protocol for trackrelay event routing.

Every destination has a ``name`` and a ``send(event)`` method.  Three
further methods are optional and looked up with ``getattr`` when needed:

``init()``
    Called once when the tracker is built.
``send_batch(events)``
    Receives a whole batch; without it the dispatcher calls ``send`` once
    per event, in order.
``destroy()``
    Called once on tracker teardown.

Any of these may be a plain function or a coroutine function.
"""

from __future__ import annotations

from typing import Any, Awaitable, Protocol, Union, runtime_checkable

from trackrelay.models.events import DispatchedEvent


@runtime_checkable
class Destination(Protocol):
    """Protocol that every trackrelay destination must implement.

    Attributes
    ----------
    name : str
        A stable identifier used in logs and ``DestinationError`` messages
        (e.g. ``"local_file"``, ``"console"``).
    """

    name: str

    def send(self, event: DispatchedEvent) -> Union[Awaitable[Any], None]:
        """Deliver a single event.

        Raise to signal failure; the dispatcher wraps the exception in a
        ``DestinationError`` and carries on with the other destinations.
        """
        ...
