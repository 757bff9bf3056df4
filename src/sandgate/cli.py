"""Sandgate CLI entrypoint."""

from __future__ import annotations

import logging

import click

from sandgate import __version__


@click.group()
@click.version_option(version=__version__, prog_name="sandgate")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--project",
    "-p",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Project root the sandbox mirrors.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, project: str) -> None:
    """Sandgate — confidence-gated sandbox."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["project"] = project


# Register subcommands
from sandgate.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
