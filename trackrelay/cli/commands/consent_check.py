"""``trackrelay consent-check`` — show how an event key resolves to consent.

Builds a ConsentGate from the given grants and mapping rules and reports
which category governs the event and whether it would be delivered.
"""

from __future__ import annotations

from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from trackrelay.config import config
from trackrelay.core.consent import ConsentGate
from trackrelay.models.events import KEY_SEPARATOR, DispatchedEvent

console = Console()


def parse_key(key: str) -> tuple[str, str]:
    """Split ``"area::name"`` into its parts."""
    area, sep, name = key.partition(KEY_SEPARATOR)
    if not sep or not area or not name:
        raise typer.BadParameter(f"Event key must look like 'area::name', got {key!r}")
    return area, name


def parse_mapping(rules: list[str]) -> dict[str, str]:
    """Parse ``PATTERN=CATEGORY`` rules into a mapping."""
    mapping: dict[str, str] = {}
    for rule in rules:
        pattern, sep, category = rule.partition("=")
        if not sep or not pattern or not category:
            raise typer.BadParameter(f"Mapping must look like 'PATTERN=CATEGORY', got {rule!r}")
        mapping[pattern.strip()] = category.strip()
    return mapping


def consent_check_cmd(
    key: str = typer.Argument(..., help="Event key, e.g. 'auth::login'."),
    grant: Optional[List[str]] = typer.Option(
        None,
        "--grant",
        "-g",
        help="Consent category to grant (repeatable).",
    ),
    mapping: Optional[List[str]] = typer.Option(
        None,
        "--map",
        "-m",
        help="Mapping rule PATTERN=CATEGORY (repeatable).",
    ),
    default_category: str = typer.Option(
        config.default_consent_category,
        "--default-category",
        help="Category for events no rule matches.",
    ),
) -> None:
    """Resolve an event key to its consent category and check the grant."""
    area, name = parse_key(key)
    gate = ConsentGate(
        config.consent_config(
            default_state={category: True for category in grant or []},
            mapping=parse_mapping(mapping or []),
            default_category=default_category,
        )
    )
    event = DispatchedEvent.create(area, name)
    category = gate.category_for(event)
    allowed = gate.is_allowed(event)

    table = Table(title=f"Consent for {key}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Category", category)
    table.add_row("Allowed", "[green]yes[/green]" if allowed else "[red]no[/red]")
    granted = sorted(c for c, ok in gate.get_state().items() if ok)
    table.add_row("Granted", ", ".join(granted) or "[dim]none[/dim]")
    console.print(table)

    if not allowed:
        raise typer.Exit(code=1)
