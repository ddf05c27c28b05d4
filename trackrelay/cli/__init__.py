"""trackrelay CLI — Typer-based command-line interface.

Provides the ``trackrelay`` command with subcommands for checking consent
resolution and replaying recorded events.  All output uses Rich.
"""
