"""Locate a candidate's test counterpart, run it, and parse the summary."""

from __future__ import annotations

import logging
import math
import os
import re
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from sandgate.errors import ExecutionFailureError, ExecutionTimeoutError
from sandgate.sandbox.models import ExecutionRequest
from sandgate.scoring.models import METRIC_MAXIMA, ScoringConfig, TestOutcome

if TYPE_CHECKING:
    from sandgate.sandbox.runner import CommandRunner

logger = logging.getLogger(__name__)

_JS_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")
_TEST_NAME = re.compile(r"(^test_.+\.py$)|(.+_test\.py$)|(.+\.(?:test|spec)\.[cm]?[jt]sx?$)")
_COUNT = re.compile(r"(\d+)\s+(passed|failed|errors?|skipped)\b")
_JEST_TESTS_LINE = re.compile(r"^Tests:\s+(.*)$", re.MULTILINE)

# pytest exit code for "no tests collected".
_PYTEST_NO_TESTS = 5


def is_test_file(path: str) -> bool:
    name = PurePosixPath(path).name
    return bool(_TEST_NAME.match(name)) or "__tests__" in PurePosixPath(path).parts


def counterpart_candidates(path: str) -> list[str]:
    """Conventional test locations for *path*, most specific first."""
    pure = PurePosixPath(path)
    if is_test_file(path):
        return [path]
    stem, suffix, parent = pure.stem, pure.suffix.lower(), pure.parent
    inner = PurePosixPath(*parent.parts[1:]) if parent.parts[:1] in (("src",), ("lib",)) else parent

    def join(*parts: str | PurePosixPath) -> str:
        return PurePosixPath(*parts).as_posix()

    if suffix == ".py":
        return _unique([
            join(parent, f"test_{stem}.py"),
            join(parent, f"{stem}_test.py"),
            join(parent, "tests", f"test_{stem}.py"),
            join("tests", inner, f"test_{stem}.py"),
            join("tests", f"test_{stem}.py"),
            join("test", f"test_{stem}.py"),
        ])
    if suffix in _JS_EXTENSIONS:
        names: list[str] = []
        for ext in _unique([suffix, ".ts", ".js"]):
            names.extend([
                join(parent, f"{stem}.test{ext}"),
                join(parent, f"{stem}.spec{ext}"),
                join(parent, "__tests__", f"{stem}.test{ext}"),
                join(parent, "__tests__", f"{stem}{ext}"),
                join("tests", inner, f"{stem}.test{ext}"),
                join("test", inner, f"{stem}.test{ext}"),
                join("__tests__", f"{stem}.test{ext}"),
            ])
        return _unique(names)
    return []


def find_test_counterpart(path: str, mirror_root: Path, project_root: Path) -> Path | None:
    """Return the first existing counterpart, preferring the mirror."""
    for candidate in counterpart_candidates(path):
        for base in (mirror_root, project_root):
            located = base / candidate
            if located.is_file():
                return located
    return None


def parse_outcome(output: str, exit_code: int, test_file: str) -> TestOutcome:
    """Parse pytest- or jest-style summary lines into counts."""
    jest = _JEST_TESTS_LINE.findall(output)
    summary = jest[-1] if jest else _last_summary_line(output)
    counts = {"passed": 0, "failed": 0, "errors": 0}
    for number, label in _COUNT.findall(summary):
        if label == "skipped":
            continue
        key = "errors" if label.startswith("error") else label
        counts[key] += int(number)

    collected = sum(counts.values())
    runner_failed = collected == 0 and exit_code not in (0, _PYTEST_NO_TESTS)
    return TestOutcome(
        test_file=test_file,
        ran=True,
        runner_failed=runner_failed,
        output=output[-4000:],
        **counts,
    )


def score_tests(outcome: TestOutcome, config: ScoringConfig) -> int:
    maximum = METRIC_MAXIMA["tests"]
    if outcome.timed_out or outcome.runner_failed:
        return 0
    if not outcome.ran or outcome.collected == 0:
        return config.neutral_tests
    if outcome.failed == 0 and outcome.errors == 0:
        return maximum
    return math.floor(maximum * outcome.passed / outcome.collected)


async def run_tests(
    runner: CommandRunner,
    language: str,
    test_file: Path,
    *,
    mirror_root: Path,
    project_root: Path,
    config: ScoringConfig,
) -> TestOutcome:
    """Run *test_file* with the configured command for *language*.

    Timeouts and launch failures are folded into the outcome instead of
    propagating, so one broken runner only zeroes the tests metric.
    """
    template = config.test_commands.get(language)
    if template is None:
        logger.debug("No test command configured for %s", language)
        return TestOutcome(test_file=str(test_file))

    target = test_file.relative_to(mirror_root).as_posix() if test_file.is_relative_to(mirror_root) else str(test_file)
    command = [part.replace("{test}", target) for part in template]
    env: dict[str, str] = {}
    if language == "python":
        env["PYTHONPATH"] = os.pathsep.join(
            str(p) for p in (mirror_root, mirror_root / "src", project_root, project_root / "src")
        )

    request = ExecutionRequest(command=command, cwd=mirror_root, timeout=config.test_timeout, env=env)
    try:
        result = await runner.execute(request)
    except ExecutionTimeoutError:
        logger.warning("Test run for %s timed out after %ss", target, config.test_timeout)
        return TestOutcome(test_file=target, ran=True, timed_out=True)
    except ExecutionFailureError as exc:
        logger.warning("Test runner failed for %s: %s", target, exc)
        return TestOutcome(test_file=target, ran=True, runner_failed=True, output=str(exc))

    return parse_outcome(result.stdout + "\n" + result.stderr, result.exit_code, target)


def _last_summary_line(output: str) -> str:
    for line in reversed(output.splitlines()):
        if _COUNT.search(line) or "no tests ran" in line:
            return line
    return ""


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))
