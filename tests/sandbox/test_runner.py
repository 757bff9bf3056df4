"""Tests for LocalRunner."""

from __future__ import annotations

from pathlib import Path

import pytest

from sandgate.errors import ExecutionFailureError, ExecutionTimeoutError
from sandgate.sandbox.models import CommandResult, ExecutionRequest, SandboxConfig
from sandgate.sandbox.runner import CommandRunner, LocalRunner


class TestLocalRunner:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(LocalRunner(), CommandRunner)

    async def test_execute_echo(self) -> None:
        result = await LocalRunner().execute(ExecutionRequest(command=["echo", "hello"]))
        assert result.exit_code == 0
        assert result.succeeded
        assert result.stdout.strip() == "hello"

    async def test_nonzero_exit(self) -> None:
        result = await LocalRunner().execute(ExecutionRequest(command=["sh", "-c", "exit 3"]))
        assert result.exit_code == 3
        assert not result.succeeded

    async def test_stdin(self) -> None:
        result = await LocalRunner().execute(ExecutionRequest(command=["cat"], stdin="piped"))
        assert result.stdout == "piped"

    async def test_runs_in_configured_cwd(self, tmp_path: Path) -> None:
        result = await LocalRunner(cwd=tmp_path).execute(ExecutionRequest(command=["pwd"]))
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    async def test_env_is_merged(self) -> None:
        runner = LocalRunner(SandboxConfig(env={"SANDGATE_A": "1"}))
        request = ExecutionRequest(command=["sh", "-c", 'echo "$SANDGATE_A$SANDGATE_B"'], env={"SANDGATE_B": "2"})
        result = await runner.execute(request)
        assert result.stdout.strip() == "12"

    async def test_timeout(self) -> None:
        runner = LocalRunner(SandboxConfig(timeout=0.2))
        with pytest.raises(ExecutionTimeoutError) as exc_info:
            await runner.execute(ExecutionRequest(command=["sleep", "10"]))
        assert exc_info.value.timeout == 0.2

    async def test_missing_binary(self) -> None:
        with pytest.raises(ExecutionFailureError):
            await LocalRunner().execute(ExecutionRequest(command=["sandgate-definitely-missing-binary"]))

    async def test_cleanup_without_processes(self) -> None:
        await LocalRunner().cleanup()

    def test_command_result_defaults(self) -> None:
        result = CommandResult(exit_code=0)
        assert result.stdout == ""
        assert result.duration == 0.0
