"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from sandgate.cli_commands.sandbox import sandbox
    from sandgate.cli_commands.security import security

    cli.add_command(sandbox)
    cli.add_command(security)
