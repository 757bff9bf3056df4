"""Tests for SandboxManager."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest

from sandgate.config import SandgateConfig
from sandgate.errors import IsolationError, ReasonCode, SandboxBusyError
from sandgate.gate.models import DeploymentAction
from sandgate.manager import SandboxManager
from sandgate.memory.backend import InMemoryProjectMemory
from sandgate.memory.models import MemoryEntry
from sandgate.sandbox.models import CommandResult
from sandgate.scoring.patterns import extract_signals
from sandgate.security.models import SecurityConfig

if TYPE_CHECKING:
    from pathlib import Path

CLEAN = "def add_numbers(a, b):\n    return a + b\n"
TEST_CALC = "from calc import add_numbers\n\n\ndef test_add_numbers():\n    assert add_numbers(1, 2) == 3\n"
REPETITIVE = CLEAN + "# x\n" * 200
MALICIOUS = 'eval("danger"); fs.unlink("x")\n'


def _runner(stdout: str = "1 passed in 0.01s\n", exit_code: int = 0) -> AsyncMock:
    runner = AsyncMock()
    runner.execute.return_value = CommandResult(exit_code=exit_code, stdout=stdout)
    return runner


def _trusted_memory() -> InMemoryProjectMemory:
    entries = [MemoryEntry(intent="add helper", outcome="merged", confidence=50) for _ in range(2)]
    return InMemoryProjectMemory(entries, extract_signals(CLEAN, "python"))


def _manager(
    root: Path,
    *,
    runner: AsyncMock | None = None,
    memory: InMemoryProjectMemory | None = None,
) -> SandboxManager:
    config = SandgateConfig(security=SecurityConfig(kdf_iterations=1000))
    return SandboxManager(root, config, memory=memory or InMemoryProjectMemory(), runner=runner or _runner())


class TestInitialize:
    async def test_creates_mirror_and_key(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        check = await manager.initialize()

        assert check.is_valid
        assert manager.isolation.mirror_root.is_dir()
        assert manager.vault.key_file.is_file()

    async def test_missing_project_directory(self, tmp_path: Path) -> None:
        with pytest.raises(IsolationError, match="does not exist"):
            await _manager(tmp_path / "missing").initialize()

    async def test_close_cleans_up_runner(self, tmp_path: Path) -> None:
        runner = _runner()
        await _manager(tmp_path, runner=runner).close()
        runner.cleanup.assert_awaited_once()


class TestExecute:
    async def test_writes_only_to_mirror(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        result = await manager.execute("src/calc.py", CLEAN)

        assert result.success
        assert result.file == "src/calc.py"
        assert result.confidence == 79
        assert result.decision is not None
        assert result.decision.action is DeploymentAction.REVIEW_REQUIRED
        assert (manager.isolation.mirror_root / "src" / "calc.py").read_text() == CLEAN
        assert not (tmp_path / "src").exists()

    async def test_traversal_is_rejected(self, tmp_path: Path) -> None:
        project = tmp_path / "project"
        project.mkdir()
        result = await _manager(project).execute("../escape.py", CLEAN)

        assert not result.success
        assert result.code is ReasonCode.PATH_VIOLATION
        assert result.hint
        assert not (tmp_path / "escape.py").exists()

    async def test_blocked_path_is_rejected(self, tmp_path: Path) -> None:
        result = await _manager(tmp_path).execute(".env.local", "TOKEN=abc\n")
        assert not result.success
        assert result.code is ReasonCode.POLICY_VIOLATION

    async def test_disallowed_extension_is_rejected(self, tmp_path: Path) -> None:
        result = await _manager(tmp_path).execute("tool.exe", "MZ")
        assert result.code is ReasonCode.POLICY_VIOLATION

    async def test_reports_security_findings(self, tmp_path: Path) -> None:
        content = 'API = "sk-1234567890abcdef1234567890abcdef"\n'
        result = await _manager(tmp_path).execute("src/settings.py", content)

        assert result.success
        assert result.sensitive_data_found
        assert result.redaction_count == 1
        assert not result.malicious_patterns
        assert result.metrics.risk == 7

    async def test_records_evidence(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN, "add helper")

        records = manager.evidence.records()
        assert len(records) == 1
        assert records[0].file == "src/calc.py"
        assert records[0].intent == "add helper"
        assert records[0].action is DeploymentAction.REVIEW_REQUIRED

    async def test_unsafe_content_is_rejected(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        result = await manager.execute("src/calc.py", REPETITIVE)

        assert not result.success
        assert result.code is ReasonCode.POLICY_VIOLATION
        assert result.safety_risks == ["Excessive repetition detected"]
        assert result.hint == "Content looks generated or corrupt; regenerate it"
        assert not manager.isolation.exists_in_mirror("src/calc.py")
        assert manager.evidence.records() == []

    async def test_intent_is_stored_with_the_mirror_file(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN, "add helper")
        assert manager.isolation.intent_for("src/calc.py") == "add helper"

        await manager.execute("src/calc.py", CLEAN)
        assert manager.isolation.intent_for("src/calc.py") == ""

    async def test_concurrent_executes_are_serialised(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        first, second = await asyncio.gather(
            manager.execute("src/a.py", CLEAN),
            manager.execute("src/b.py", CLEAN),
        )
        assert first.success
        assert second.success
        assert manager.isolation.list_files() == ["src/a.py", "src/b.py"]


class TestDeploy:
    async def test_auto_deploy_promotes_to_real_tree(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path, memory=_trusted_memory())
        await manager.initialize()
        manager.isolation.write_file("src/test_calc.py", TEST_CALC)

        result = await manager.execute("src/calc.py", CLEAN, "add helper")
        assert result.confidence == 100
        assert result.decision is not None
        assert result.decision.allowed

        deployed = await manager.deploy("src/calc.py")
        assert deployed.deployed
        assert not deployed.forced
        assert (tmp_path / "src" / "calc.py").read_text() == CLEAN

    async def test_later_session_scores_with_the_recorded_intent(self, tmp_path: Path) -> None:
        memory = InMemoryProjectMemory(
            [MemoryEntry(intent="add widget", outcome="failed", confidence=50)],
            extract_signals(CLEAN, "python"),
        )
        first = _manager(tmp_path, memory=memory)
        await first.initialize()
        first.isolation.write_file("src/test_calc.py", TEST_CALC)
        executed = await first.execute("src/calc.py", CLEAN, "add widget")
        assert executed.metrics.memory == 8
        assert executed.confidence == 93

        second = _manager(tmp_path, memory=memory)
        result = await second.deploy("src/calc.py")

        assert not result.deployed
        assert result.code is ReasonCode.REVIEW_REQUIRED
        assert result.decision is not None
        assert result.decision.confidence == 93
        assert not (tmp_path / "src" / "calc.py").exists()

    async def test_unsafe_mirror_content_is_not_deployed(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path, memory=_trusted_memory())
        await manager.initialize()
        manager.isolation.write_file("src/test_calc.py", TEST_CALC)
        manager.isolation.write_file("src/calc.py", REPETITIVE)

        decision = await manager.check_deployment_permission("src/calc.py", confidence=99)
        assert decision.action is DeploymentAction.REVIEW_REQUIRED
        assert decision.code is ReasonCode.SECURITY_FINDING
        assert decision.capped_by_security

        result = await manager.deploy("src/calc.py")
        assert not result.deployed
        assert not (tmp_path / "src" / "calc.py").exists()

    async def test_review_required_is_not_deployed(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)

        result = await manager.deploy("src/calc.py")

        assert not result.deployed
        assert result.code is ReasonCode.REVIEW_REQUIRED
        assert result.decision is not None
        assert result.decision.review is not None
        assert not (tmp_path / "src" / "calc.py").exists()

    async def test_force_bypasses_confidence_gate(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", "def broken(:\n")

        result = await manager.deploy("src/calc.py", force=True)

        assert result.deployed
        assert result.forced
        assert result.decision is None
        assert (tmp_path / "src" / "calc.py").exists()

    async def test_force_never_bypasses_access_policy(self, tmp_path: Path) -> None:
        project = tmp_path / "project"
        project.mkdir()
        result = await _manager(project).deploy("../outside.py", force=True)
        assert not result.deployed
        assert result.code is ReasonCode.PATH_VIOLATION

    async def test_missing_mirror_file(self, tmp_path: Path) -> None:
        result = await _manager(tmp_path).deploy("src/nothing.py")
        assert not result.deployed
        assert result.code is ReasonCode.NOT_FOUND


class TestCheckDeploymentPermission:
    async def test_explicit_confidence_of_eighty_needs_review(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)

        decision = await manager.check_deployment_permission("src/calc.py", confidence=80)

        assert decision.action is DeploymentAction.REVIEW_REQUIRED
        assert not decision.allowed
        assert decision.confidence == 80

    async def test_malicious_content_is_capped_at_review(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        result = await manager.execute("src/danger.js", MALICIOUS)
        assert result.malicious_patterns

        decision = await manager.check_deployment_permission("src/danger.js", confidence=96)

        assert decision.action is DeploymentAction.REVIEW_REQUIRED
        assert decision.code is ReasonCode.SECURITY_FINDING
        assert decision.capped_by_security

    async def test_uses_current_score(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)
        decision = await manager.check_deployment_permission("src/calc.py")
        assert decision.confidence == 79


class TestRunTests:
    async def test_no_files(self, tmp_path: Path) -> None:
        result = await _manager(tmp_path).run_tests()
        assert result.success
        assert result.output == "No files in sandbox to test"

    async def test_passing_counterpart(self, tmp_path: Path) -> None:
        runner = _runner("3 passed in 0.10s\n")
        manager = _manager(tmp_path, runner=runner)
        await manager.execute("src/calc.py", CLEAN)
        manager.isolation.write_file("src/test_calc.py", TEST_CALC)

        result = await manager.run_tests(["src/calc.py"])

        assert result.success
        assert result.scores == {"src/calc.py": 89}
        assert "3 passed, 0 failed" in result.output

    async def test_failing_counterpart(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path, runner=_runner("1 passed, 1 failed in 0.10s\n", exit_code=1))
        await manager.execute("src/calc.py", CLEAN)
        manager.isolation.write_file("src/test_calc.py", TEST_CALC)

        result = await manager.run_tests(["src/calc.py"])

        assert not result.success
        assert result.metrics.tests == 12

    async def test_rejected_path(self, tmp_path: Path) -> None:
        result = await _manager(tmp_path).run_tests(["node_modules/x.js"])
        assert not result.success
        assert result.code is ReasonCode.POLICY_VIOLATION


class TestConfidence:
    async def test_empty_mirror_is_zero(self, tmp_path: Path) -> None:
        report = await _manager(tmp_path).get_confidence()
        assert report.confidence == 0
        assert report.scores == {}

    async def test_single_file(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)
        report = await manager.get_confidence("src/calc.py")
        assert report.file == "src/calc.py"
        assert report.confidence == 79

    async def test_mean_over_mirror(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/a.py", CLEAN)
        await manager.execute("src/b.py", "def broken(:\n")

        report = await manager.get_confidence()

        assert report.scores == {"src/a.py": 79, "src/b.py": 59}
        assert report.metrics.syntax == 10
        assert report.confidence == 69

    async def test_queries_do_not_persist_evidence(self, tmp_path: Path) -> None:
        await _manager(tmp_path).execute("src/calc.py", CLEAN, "add helper")

        reader = _manager(tmp_path)
        report = await reader.get_confidence("src/calc.py")
        decision = await reader.check_deployment_permission("src/calc.py")

        assert report.confidence == decision.confidence == 79
        assert len(reader.evidence.records()) == 1
        assert reader._evaluations == {}

    async def test_rescan(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)
        report = await manager.rescan()
        assert report.scores == {"src/calc.py": 79}


class TestMaintenance:
    async def test_clean_all_empties_mirror(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)
        assert await manager.clean(all=True) == 1
        assert manager.isolation.list_files() == []

    async def test_reset_drops_candidates(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)
        await manager.reset()
        assert manager.status().files_in_mirror == 0

    async def test_clean_refuses_while_busy(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        async with manager._lock:
            with pytest.raises(SandboxBusyError):
                await manager.clean()
            with pytest.raises(SandboxBusyError):
                await manager.reset()

    async def test_status(self, tmp_path: Path) -> None:
        manager = _manager(tmp_path)
        await manager.execute("src/calc.py", CLEAN)
        status = manager.status()
        assert status.is_active
        assert status.files_in_mirror == 1
        assert status.last_operation is not None
