"""Main Typer application — imports and registers all CLI commands.

Entry point: ``trackrelay`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer

from trackrelay.cli.commands.consent_check import consent_check_cmd
from trackrelay.cli.commands.replay import replay_cmd
from trackrelay.config import config

app = typer.Typer(
    name="trackrelay",
    help="trackrelay: consent-aware event dispatch to many destinations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _configure(
    log_level: str = typer.Option(config.log_level, "--log-level", help="Logging level."),
) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
app.command(name="consent-check", help="Resolve an event key's consent category.")(consent_check_cmd)
app.command(name="replay", help="Replay a JSON-lines event file through a tracker.")(replay_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
