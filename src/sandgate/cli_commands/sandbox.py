"""``sandgate sandbox`` — write, score, gate, and deploy candidate changes."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from sandgate.cli_commands._output import (
    console,
    print_confidence,
    print_decision,
    print_deploy,
    print_execution,
    print_status,
)
from sandgate.cli_commands._session import run_with_manager
from sandgate.errors import ExitCode, exit_code_for

if TYPE_CHECKING:
    from sandgate.manager import SandboxManager
    from sandgate.sandbox.models import SandboxStatus


@click.group()
def sandbox() -> None:
    """Work with the isolated project mirror."""


@sandbox.command("execute")
@click.argument("file")
@click.option(
    "--content-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Read the candidate content from this file instead of stdin.",
)
@click.option("--intent", "-i", default=None, help="What the change is meant to do.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def execute_cmd(
    obj: dict[str, Any] | None,
    file: str,
    content_file: str | None,
    intent: str | None,
    as_json: bool,
) -> None:
    """Write FILE into the sandbox and score it.

    FILE is relative to the project root.  Content is read from stdin unless
    --content-file is given.
    """
    if content_file is not None:
        content = Path(content_file).read_text(encoding="utf-8")
    else:
        content = click.get_text_stream("stdin").read()

    result = run_with_manager(obj, lambda manager: manager.execute(file, content, intent))
    print_execution(result, as_json=as_json)
    if not result.success:
        sys.exit(int(exit_code_for(result.code)))


@sandbox.command("test")
@click.argument("files", nargs=-1)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def test_cmd(obj: dict[str, Any] | None, files: tuple[str, ...], as_json: bool) -> None:
    """Run tests for FILES (every sandbox file when omitted) and re-score them."""
    result = run_with_manager(obj, lambda manager: manager.run_tests(list(files)))
    print_execution(result, as_json=as_json)
    if not result.success:
        code = exit_code_for(result.code) if result.code is not None else ExitCode.VALIDATION_FAILURE
        sys.exit(int(code))


@sandbox.command("confidence")
@click.argument("file", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def confidence_cmd(obj: dict[str, Any] | None, file: str | None, as_json: bool) -> None:
    """Show the confidence breakdown for FILE, or the sandbox mean."""
    report = run_with_manager(obj, lambda manager: manager.get_confidence(file))
    print_confidence(report, as_json=as_json)


@sandbox.command("check")
@click.argument("file")
@click.option("--confidence", type=click.IntRange(0, 100), default=None, help="Gate at this score instead.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def check_cmd(obj: dict[str, Any] | None, file: str, confidence: int | None, as_json: bool) -> None:
    """Ask the gate whether FILE may be deployed."""
    decision = run_with_manager(obj, lambda manager: manager.check_deployment_permission(file, confidence))
    print_decision(decision, as_json=as_json)
    if not decision.allowed:
        sys.exit(int(exit_code_for(decision.code)))


@sandbox.command("deploy")
@click.argument("file")
@click.option("--force", is_flag=True, help="Skip the confidence gate (the access policy still applies).")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def deploy_cmd(obj: dict[str, Any] | None, file: str, force: bool, as_json: bool) -> None:
    """Promote the sandbox version of FILE into the project."""
    result = run_with_manager(obj, lambda manager: manager.deploy(file, force=force))
    print_deploy(result, as_json=as_json)
    if not result.deployed:
        sys.exit(int(exit_code_for(result.code)))


@sandbox.command("clean")
@click.option("--all", "remove_all", is_flag=True, help="Remove the whole mirror, not just temp artifacts.")
@click.pass_obj
def clean_cmd(obj: dict[str, Any] | None, remove_all: bool) -> None:
    """Remove temporary artifacts from the mirror."""
    removed = run_with_manager(obj, lambda manager: manager.clean(all=remove_all))
    console.print(f"Removed {removed} item(s) from the sandbox.")


@sandbox.command("reset")
@click.pass_obj
def reset_cmd(obj: dict[str, Any] | None) -> None:
    """Rebuild the mirror from scratch."""
    run_with_manager(obj, lambda manager: manager.reset())
    console.print("[green]Sandbox reset.[/green]")


@sandbox.command("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def status_cmd(obj: dict[str, Any] | None, as_json: bool) -> None:
    """Show the sandbox session and its operation log summary."""

    async def _status(manager: SandboxManager) -> SandboxStatus:
        return manager.status()

    print_status(run_with_manager(obj, _status), as_json=as_json)
