"""Console destination — prints one line per event through Rich."""

from __future__ import annotations

from datetime import datetime, timezone

from rich.console import Console
from rich.markup import escape

from trackrelay.models.events import DispatchedEvent


class ConsoleDestination:
    """Renders events to the terminal.

    Parameters
    ----------
    console:
        Rich console to print to.  A fresh one is created when omitted.
    show_payload:
        Include the payload after the key.
    """

    name = "console"

    def __init__(self, console: Console | None = None, show_payload: bool = True) -> None:
        self._console = console or Console()
        self._show_payload = show_payload

    def send(self, event: DispatchedEvent) -> None:
        self._console.print(self.format_event(event, show_payload=self._show_payload))

    @staticmethod
    def format_event(event: DispatchedEvent, show_payload: bool = True) -> str:
        """Format an event into a single line of Rich markup."""
        when = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
        line = f"[dim]{when:%H:%M:%S}[/dim] [bold cyan]{escape(event.key)}[/bold cyan]"
        if show_payload and event.payload:
            fields = " ".join(f"{k}={v!r}" for k, v in event.payload.items())
            line += f" {escape(fields)}"
        return line
