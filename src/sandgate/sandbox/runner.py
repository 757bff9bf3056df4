"""Command runners used to execute validation and test commands.

:class:`CommandRunner` is the protocol; :class:`LocalRunner` runs commands
on the host inside the sandbox mirror.  The isolation contract is "no direct
writes to the real project tree", not OS-level containment, so commands run
with the caller's privileges.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sandgate.errors import ExecutionFailureError, ExecutionTimeoutError
from sandgate.sandbox.models import CommandResult, ExecutionRequest, SandboxConfig

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@runtime_checkable
class CommandRunner(Protocol):
    """Executes commands for the scorer.

    Implementations must provide ``execute()`` for running commands and
    ``cleanup()`` for releasing resources (e.g. killing stray processes).
    """

    async def execute(self, request: ExecutionRequest) -> CommandResult:
        """Run a command and return the result."""
        ...

    async def cleanup(self) -> None:
        """Release any resources held by this runner."""
        ...


class LocalRunner:
    """Host-local command runner rooted at the sandbox mirror.

    Satisfies the :class:`CommandRunner` protocol.  Every command is wrapped
    in ``asyncio.wait_for``; on timeout the process is killed and reaped
    before :class:`ExecutionTimeoutError` is raised.
    """

    def __init__(self, config: SandboxConfig | None = None, *, cwd: Path | None = None) -> None:
        self._config = config or SandboxConfig()
        self._cwd = cwd
        self._active: set[asyncio.subprocess.Process] = set()

    async def execute(self, request: ExecutionRequest) -> CommandResult:
        """Run a command on the host inside the mirror directory."""
        timeout = request.timeout or self._config.timeout
        env = {**self._config.env, **request.env} or None
        cwd = request.cwd or self._cwd
        logger.debug("LocalRunner: executing %s in %s", request.command, cwd)

        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *request.command,
                stdin=asyncio.subprocess.PIPE if request.stdin else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=_merged_env(env),
            )
        except OSError as exc:
            raise ExecutionFailureError(f"Failed to launch {request.command[0]!r}: {exc}") from exc

        self._active.add(proc)
        try:
            stdin_bytes = request.stdin.encode() if request.stdin else None
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(input=stdin_bytes),
                timeout=timeout,
            )
        except TimeoutError:
            await _kill(proc)
            raise ExecutionTimeoutError(timeout)
        finally:
            self._active.discard(proc)

        return CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else 1,
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
            duration=time.monotonic() - started,
        )

    async def cleanup(self) -> None:
        """Kill any process still running."""
        for proc in list(self._active):
            await _kill(proc)
        self._active.clear()


def _merged_env(extra: dict[str, str] | None) -> dict[str, str] | None:
    if not extra:
        return None
    return {**os.environ, **extra}


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
