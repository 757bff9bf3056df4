"""Shared CLI output formatters."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sandgate.errors import SandgateError  # noqa: TC001
from sandgate.gate.models import DeploymentAction, DeploymentDecision
from sandgate.manager import ConfidenceReport, DeployResult, ExecutionResult  # noqa: TC001
from sandgate.sandbox.models import SandboxStatus  # noqa: TC001
from sandgate.scoring.models import ConfidenceMetrics  # noqa: TC001
from sandgate.security.models import ProcessedFile, SecurityStatus, SelfTestReport  # noqa: TC001

console = Console()

_ACTION_STYLE = {
    DeploymentAction.BLOCKED: "red",
    DeploymentAction.SANDBOX_ONLY: "yellow",
    DeploymentAction.REVIEW_REQUIRED: "cyan",
    DeploymentAction.AUTO_DEPLOY: "green",
}


def print_error(exc: SandgateError) -> None:
    console.print(f"[red]Error ({exc.code.value}):[/red] {escape(str(exc))}")
    if exc.hint:
        console.print(f"  Hint: {escape(exc.hint)}")


def print_metrics(metrics: ConfidenceMetrics, *, title: str = "Confidence Breakdown") -> None:
    """Pretty-print the six sub-scores and their total as a table."""
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Max", justify="right")

    for row in metrics.breakdown():
        table.add_row(row.name, str(row.score), str(row.maximum))
    table.add_row("[bold]total[/bold]", f"[bold]{metrics.total}[/bold]", "100")

    console.print(table)


def print_decision(decision: DeploymentDecision, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(decision.model_dump_json())
        return

    style = _ACTION_STYLE[decision.action]
    console.print(f"[{style}]{decision.action.value}[/{style}] at {decision.confidence}%: {escape(decision.reason)}")
    if decision.capped_by_security:
        console.print("[red]Capped at review: malicious patterns detected.[/red]")
    for step in decision.next_steps:
        console.print(f"  - {escape(step)}")

    review = decision.review
    if review is not None:
        if review.risks:
            console.print("\n[bold]Risks:[/bold]")
            for risk in review.risks:
                console.print(f"  {escape(_truncate(risk))}")
        if review.security_findings:
            console.print("\n[bold]Security findings:[/bold]")
            for finding in review.security_findings:
                console.print(f"  {escape(finding)}")
        if review.similar_entries:
            console.print("\n[bold]Similar changes:[/bold]")
            for entry in review.similar_entries:
                console.print(f"  [{entry.confidence}%] {escape(_truncate(entry.intent))}: {escape(_truncate(entry.outcome, 40))}")


def print_execution(result: ExecutionResult, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(result.model_dump_json())
        return

    if not result.success and result.code is not None and not result.scores:
        console.print(f"[red]Rejected ({result.code.value}):[/red] {escape(result.error or result.output)}")
        if result.hint:
            console.print(f"  Hint: {escape(result.hint)}")
        return

    console.print(escape(result.output))
    if result.sensitive_data_found:
        console.print(f"[yellow]Sensitive data redacted ({result.redaction_count} finding(s)).[/yellow]")
    if result.malicious_patterns:
        console.print("[red]Potentially malicious patterns detected.[/red]")
    for risk in result.safety_risks:
        console.print(f"[yellow]Safety:[/yellow] {escape(risk)}")
    print_metrics(result.metrics)
    if result.decision is not None:
        print_decision(result.decision)


def print_confidence(report: ConfidenceReport, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(report.model_dump_json())
        return

    title = f"Confidence: {report.file}" if report.file else "Sandbox Confidence"
    print_metrics(report.metrics, title=title)
    if report.scores:
        table = Table(title="Per-file Confidence")
        table.add_column("File", style="cyan")
        table.add_column("Confidence", justify="right")
        for name, score in sorted(report.scores.items()):
            table.add_row(name, f"{score}%")
        console.print(table)
    elif report.file is None:
        console.print("[yellow]No files in sandbox.[/yellow]")


def print_deploy(result: DeployResult, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(result.model_dump_json())
        return

    if result.deployed:
        console.print(f"[green]Deployed[/green] {escape(result.file)} -> {escape(str(result.target))}")
        if result.forced:
            console.print("[yellow]Confidence gate bypassed with --force.[/yellow]")
        return

    code = result.code.value if result.code is not None else "denied"
    console.print(f"[red]Not deployed ({code}):[/red] {escape(result.reason)}")
    if result.hint:
        console.print(f"  Hint: {escape(result.hint)}")


def print_status(status: SandboxStatus, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(status.model_dump_json())
        return

    console.print("\n[bold]Sandbox Status[/bold]")
    console.print(f"  Session: {status.id}")
    console.print(f"  Project: {escape(status.project_root)}")
    console.print(f"  Mirror: {escape(status.mirror_path)}")
    console.print(f"  Active: {'yes' if status.is_active else 'no'}")
    console.print(f"  Files in mirror: {status.files_in_mirror}")
    console.print(f"  Operations: {status.operations}")
    last = status.last_operation
    if last is not None:
        outcome = "ok" if last.success else f"failed: {last.error}"
        console.print(f"  Last operation: {last.operation.value} {escape(last.path)} ({escape(outcome)})")


def print_scan(processed: ProcessedFile, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(processed.model_dump_json(exclude={"content"}))
        return

    if not processed.success:
        console.print(f"[red]Scan failed for {escape(processed.path)}:[/red] {escape(processed.reason)}")
        for rec in processed.recommendations:
            console.print(f"  - {escape(rec)}")
        return

    result = processed.sanitization
    console.print(f"[bold]{escape(processed.path)}[/bold]")
    if result is not None:
        console.print(f"  Redactions: {result.redaction_count}")
        console.print(f"  Sensitive data: {'yes' if result.sensitive_data_found else 'no'}")
        console.print(f"  Malicious patterns: {'yes' if result.malicious_patterns else 'no'}")
    console.print(f"  Sealed: {'yes' if processed.is_encrypted else 'no'}")
    for issue in processed.security_issues:
        console.print(f"  [yellow]{escape(issue)}[/yellow]")


def print_selftest(report: SelfTestReport, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(report.model_dump_json())
        return

    table = Table(title="Security Self-Test")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Error")
    for case in report.tests:
        table.add_row(case.name, "[green]pass[/green]" if case.passed else "[red]fail[/red]", escape(case.error))
    console.print(table)


def print_security_status(status: SecurityStatus, *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(status.model_dump_json())
        return

    table = Table(title="Security Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Pattern table", f"v{escape(status.pattern_table_version)}")
    table.add_row("Secret detectors", str(status.secret_rules))
    table.add_row("Malicious detectors", str(status.malicious_rules))
    cfg = status.config
    table.add_row("Sanitization", "on" if cfg.enable_sanitization else "off")
    table.add_row("Malicious detection", "on" if cfg.enable_malicious_detection else "off")
    table.add_row("Seal sensitive content", "on" if cfg.encrypt_sensitive else "off")
    table.add_row("Always seal", escape(", ".join(cfg.always_seal)) or "-")
    vault = status.vault
    if vault is None:
        table.add_row("Vault", "[yellow]not configured[/yellow]")
    else:
        table.add_row("Vault", "[green]ready[/green]" if vault.initialized else "[yellow]not initialized[/yellow]")
        table.add_row("Algorithm", f"{vault.algorithm} ({vault.kdf}, {vault.iterations} iterations)")
        table.add_row("Key file", escape(vault.key_file))
    console.print(table)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
