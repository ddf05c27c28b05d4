"""``trackrelay replay`` — push a JSON-lines file of events through a tracker.

Each input line is an object with ``area``, ``name`` and an optional
``payload``.  Events go through consent and (optionally) batching into a
LocalFileDestination, and optionally the console as well.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from trackrelay.config import config
from trackrelay.core.tracker import Tracker
from trackrelay.models.config import QueueConfig, TrackerConfig
from trackrelay.models.consent import ConsentCategory
from trackrelay.models.events import DispatchedEvent, make_key
from trackrelay.routing.destinations.console import ConsoleDestination
from trackrelay.routing.destinations.local_file import LocalFileDestination

console = Console()


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read one JSON object per non-blank line."""
    records: list[dict[str, Any]] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"{path}:{lineno}: invalid JSON ({exc})") from exc
        if not isinstance(record, dict) or "area" not in record or "name" not in record:
            raise typer.BadParameter(f"{path}:{lineno}: expected an object with 'area' and 'name'")
        records.append(record)
    return records


async def replay_records(
    records: list[dict[str, Any]],
    tracker_config: TrackerConfig,
) -> list[BaseException]:
    """Emit every record through a tracker and return the reported errors."""
    errors: list[BaseException] = []

    def collect(error: BaseException, event: DispatchedEvent | None = None) -> None:
        errors.append(error)

    tracker = Tracker(tracker_config.model_copy(update={"on_error": collect}))
    for record in records:
        area, name = str(record["area"]), str(record["name"])
        tracker.emit(make_key(area, name), area, name, record.get("payload") or {})
    await tracker.flush()
    await tracker.destroy()
    return errors


def replay_cmd(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON-lines event file."),
    out_dir: Path = typer.Option(
        config.events_path,
        "--out",
        "-o",
        help="Directory for the local file destination.",
    ),
    batch: bool = typer.Option(
        config.queue_enabled,
        "--batch/--no-batch",
        help="Route events through the batch queue.",
    ),
    max_size: int = typer.Option(
        config.queue_max_size,
        "--max-size",
        min=1,
        help="Batch size that triggers a release.",
    ),
    grant: Optional[List[str]] = typer.Option(
        None,
        "--grant",
        "-g",
        help="Consent categories to grant (repeatable). Default: all.",
    ),
    echo: bool = typer.Option(False, "--console", help="Also print each event."),
) -> None:
    """Replay recorded events into the local file destination."""
    records = load_records(source)
    granted = grant or [category.value for category in ConsentCategory]

    local_file = LocalFileDestination(out_dir)
    destinations: list[Any] = [local_file]
    if echo:
        destinations.append(ConsoleDestination(console=console))

    tracker_config = TrackerConfig(
        destinations=destinations,
        consent=config.consent_config(default_state={c: True for c in granted}),
        queue=QueueConfig(
            enabled=batch,
            max_size=max_size,
            flush_interval=config.queue_flush_interval_ms,
        ),
    )
    errors = asyncio.run(replay_records(records, tracker_config))

    table = Table(title="Replay Summary")
    table.add_column("File", style="cyan")
    table.add_column("Events", justify="right", style="green")
    for path in local_file.list_files():
        table.add_row(str(path), str(len(local_file.read_events(path))))
    console.print(table)
    console.print(f"[bold]Read:[/bold] {len(records)}  [bold]Errors:[/bold] {len(errors)}")
    for error in errors:
        console.print(f"[red]{error}[/red]")

    if errors:
        raise typer.Exit(code=1)
