"""Run one manager-backed CLI command and translate errors to exit codes."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Any, TypeVar

from sandgate.cli_commands._output import print_error
from sandgate.config import ConfigLoader
from sandgate.errors import SandgateError, exit_code_for
from sandgate.manager import SandboxManager
from sandgate.utils.telemetry import configure_telemetry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


def project_from(obj: dict[str, Any] | None) -> str:
    return (obj or {}).get("project", ".")


def run_with_manager(obj: dict[str, Any] | None, operation: Callable[[SandboxManager], Awaitable[T]]) -> T:
    """Load config, initialise a manager for the project, and run *operation*.

    Any :class:`SandgateError` is printed with its hint and ends the process
    with the exit code mapped from its reason code.
    """
    project = project_from(obj)

    async def _run() -> T:
        config = ConfigLoader.for_project(project).load()
        if config.telemetry.enabled:
            configure_telemetry(
                export_to_console=config.telemetry.export_to_console,
                otlp_endpoint=config.telemetry.otlp_endpoint,
            )
        manager = SandboxManager(project, config)
        try:
            await manager.initialize()
            return await operation(manager)
        finally:
            await manager.close()

    try:
        return asyncio.run(_run())
    except SandgateError as exc:
        print_error(exc)
        sys.exit(int(exit_code_for(exc.code)))
