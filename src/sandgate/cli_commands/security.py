"""``sandgate security`` — scan project files, show status, and self-test the pipeline."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

import click

from sandgate.cli_commands._output import print_scan, print_security_status, print_selftest
from sandgate.cli_commands._session import run_with_manager
from sandgate.errors import ExitCode

if TYPE_CHECKING:
    from sandgate.manager import SandboxManager
    from sandgate.security.models import ProcessedFile, SecurityStatus, SelfTestReport


@click.group()
def security() -> None:
    """Inspect content with the security pipeline."""


@security.command("scan")
@click.argument("file")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def scan_cmd(obj: dict[str, Any] | None, file: str, as_json: bool) -> None:
    """Scan an existing project FILE for secrets and malicious constructs."""

    async def _scan(manager: SandboxManager) -> ProcessedFile:
        return manager.pipeline.process_file(file)

    processed = run_with_manager(obj, _scan)
    print_scan(processed, as_json=as_json)
    if not processed.success:
        denied = "file_access_denied" in processed.security_issues
        sys.exit(int(ExitCode.ACCESS_DENIED if denied else ExitCode.VALIDATION_FAILURE))
    if processed.sanitization is not None and processed.sanitization.malicious_patterns:
        sys.exit(int(ExitCode.VALIDATION_FAILURE))


@security.command("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def status_cmd(obj: dict[str, Any] | None, as_json: bool) -> None:
    """Show the vault state, detector table version, and security settings."""

    async def _status(manager: SandboxManager) -> SecurityStatus:
        return manager.pipeline.status()

    print_security_status(run_with_manager(obj, _status), as_json=as_json)


@security.command("selftest")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def selftest_cmd(obj: dict[str, Any] | None, as_json: bool) -> None:
    """Check encryption, sanitisation, and traversal blocking."""

    async def _selftest(manager: SandboxManager) -> SelfTestReport:
        return manager.pipeline.self_test()

    report = run_with_manager(obj, _selftest)
    print_selftest(report, as_json=as_json)
    if not report.passed:
        sys.exit(int(ExitCode.VALIDATION_FAILURE))
