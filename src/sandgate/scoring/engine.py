"""ConfidenceScorer — gathers evidence, then scores it with a pure function.

Evaluation happens in two phases.  :meth:`ConfidenceScorer.gather_evidence`
does all the I/O: parsing under a timeout, running the test counterpart,
reading the real-tree original, and capturing one memory snapshot.
:func:`compute_metrics` then turns that evidence into
:class:`ConfidenceMetrics` with no I/O, no clock, and no randomness.

A failure in any one input degrades only its own sub-score; the scorer
always returns a complete set of metrics.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sandgate.memory.backend import capture_snapshot
from sandgate.scoring.consistency import projected_confidence, score_memory
from sandgate.scoring.models import (
    Assessment,
    ConfidenceMetrics,
    Evaluation,
    Evidence,
    ScoringConfig,
    TestOutcome,
)
from sandgate.scoring.patterns import extract_signals, score_patterns
from sandgate.scoring.performance import assess_performance
from sandgate.scoring.risk import assess_risk, discover_known_modules
from sandgate.scoring.syntax import check_syntax_async, detect_language, score_syntax
from sandgate.scoring.testing import find_test_counterpart, run_tests, score_tests
from sandgate.utils.telemetry import (
    ATTR_CONFIDENCE,
    ATTR_FILE,
    ATTR_LANGUAGE,
    ATTR_TESTS_FAILED,
    ATTR_TESTS_PASSED,
    get_tracer,
)

if TYPE_CHECKING:
    from sandgate.memory.backend import ProjectMemory
    from sandgate.sandbox.isolation import SandboxIsolation
    from sandgate.sandbox.runner import CommandRunner
    from sandgate.security.pipeline import SecurityPipeline

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


def compute_assessment(evidence: Evidence, config: ScoringConfig) -> Assessment:
    """Score *evidence*; identical evidence always yields an identical result."""
    syntax = score_syntax(evidence.syntax, config)
    tests = score_tests(evidence.tests, config)
    patterns = score_patterns(
        extract_signals(evidence.content, evidence.language),
        evidence.memory.patterns,
        config,
    )
    memory = score_memory(
        evidence.memory.similar_entries,
        projected_confidence(syntax, tests, patterns),
        config,
    )
    performance = assess_performance(evidence.content, evidence.language)
    risk = assess_risk(evidence, performance.score)
    metrics = ConfidenceMetrics(
        syntax=syntax,
        tests=tests,
        patterns=patterns,
        memory=memory,
        risk=risk.score,
        performance=performance.score,
    )
    return Assessment(metrics=metrics, risk=risk, performance=performance)


def compute_metrics(evidence: Evidence, config: ScoringConfig) -> ConfidenceMetrics:
    return compute_assessment(evidence, config).metrics


class ConfidenceScorer:
    """Multi-factor scorer bound to one sandbox session."""

    def __init__(
        self,
        isolation: SandboxIsolation,
        runner: CommandRunner,
        memory: ProjectMemory,
        pipeline: SecurityPipeline,
        config: ScoringConfig | None = None,
    ) -> None:
        self._isolation = isolation
        self._runner = runner
        self._memory = memory
        self._pipeline = pipeline
        self._config = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    async def gather_evidence(self, path: str, content: str, intent: str = "") -> Evidence:
        """Collect every input :func:`compute_metrics` needs for *path*."""
        isolation = self._isolation
        relative = isolation.relative_path(path)
        language = detect_language(relative)

        syntax = await check_syntax_async(content, language, self._config.parse_timeout)
        scan = self._pipeline.scan(content, relative)
        original = isolation.read_original(relative)

        test_file = find_test_counterpart(relative, isolation.mirror_root, isolation.project_root)
        if test_file is None:
            tests = TestOutcome()
        else:
            tests = await run_tests(
                self._runner,
                language,
                test_file,
                mirror_root=isolation.mirror_root,
                project_root=isolation.project_root,
                config=self._config,
            )

        snapshot = await capture_snapshot(self._memory, intent, self._config.memory_limit)
        return Evidence(
            path=relative,
            content=content,
            language=language,
            intent=intent,
            syntax=syntax,
            tests=tests,
            sanitization=scan.sanitization,
            safety=scan.safety,
            original_content=original,
            memory=snapshot,
            known_modules=discover_known_modules(isolation.project_root),
        )

    async def evaluate(self, path: str, content: str, intent: str = "") -> Evaluation:
        with _tracer.start_as_current_span("sandgate.score") as span:
            evidence = await self.gather_evidence(path, content, intent)
            assessment = compute_assessment(evidence, self._config)
            span.set_attribute(ATTR_FILE, evidence.path)
            span.set_attribute(ATTR_LANGUAGE, evidence.language)
            span.set_attribute(ATTR_TESTS_PASSED, evidence.tests.passed)
            span.set_attribute(ATTR_TESTS_FAILED, evidence.tests.failed + evidence.tests.errors)
            span.set_attribute(ATTR_CONFIDENCE, assessment.metrics.total)
        logger.debug("Scored %s: %s", evidence.path, assessment.metrics.model_dump())
        return Evaluation(evidence=evidence, assessment=assessment)
