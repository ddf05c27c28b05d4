"""Local file destination — appends events to JSON-lines files.

Layout: {base_path}/{area}/{YYYY-MM-DD}.jsonl

One line per event, serialized with ``model_dump_json``.  Files are opened
in append mode, so a process restart keeps earlier lines.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from trackrelay.errors import CollectorUnavailableError
from trackrelay.models.events import DispatchedEvent

logger = logging.getLogger(__name__)


class LocalFileDestination:
    """Writes events to local JSON-lines files.

    Parameters
    ----------
    base_path:
        Root directory for event files.  Defaults to ``.trackrelay/events``.
    """

    name = "local_file"

    def __init__(self, base_path: Path | str | None = None) -> None:
        self._base = Path(base_path) if base_path else Path(".trackrelay/events")

    def init(self) -> None:
        """Create the base directory."""
        try:
            self._base.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CollectorUnavailableError(
                f"Cannot create event directory {self._base}: {exc}"
            ) from exc

    def send(self, event: DispatchedEvent) -> None:
        """Append a single event to its area file."""
        self.send_batch([event])

    def send_batch(self, events: list[DispatchedEvent]) -> None:
        """Append every event in one pass, grouped by target file."""
        grouped: dict[Path, list[str]] = {}
        for event in events:
            grouped.setdefault(self._path_for(event), []).append(
                event.model_dump_json()
            )

        for target, lines in grouped.items():
            if not self._base.is_dir():
                raise CollectorUnavailableError(
                    f"Event directory {self._base} does not exist"
                )
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as fh:
                for line in lines:
                    fh.write(line + "\n")
            logger.debug("LocalFileDestination: wrote %d events to %s", len(lines), target)

    def _path_for(self, event: DispatchedEvent) -> Path:
        day = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
        return self._base / event.area / f"{day:%Y-%m-%d}.jsonl"

    def list_files(self, area: str | None = None) -> list[Path]:
        """List all event files, optionally for one area only."""
        if area:
            area_dir = self._base / area
            if not area_dir.exists():
                return []
            return sorted(area_dir.glob("*.jsonl"))
        if not self._base.exists():
            return []
        return sorted(self._base.rglob("*.jsonl"))

    def read_events(self, path: Path) -> list[DispatchedEvent]:
        """Read and validate every event stored in *path*."""
        events: list[DispatchedEvent] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if line.strip():
                events.append(DispatchedEvent.model_validate(json.loads(line)))
        return events
