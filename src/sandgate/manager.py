"""SandboxManager — one session's command surface.

Wires the access policy, isolation layer, security pipeline, scorer, and
gate together for a single project root.  Mutating commands (``execute``,
``deploy``) are serialised by an :class:`asyncio.Lock`; ``reset`` and
``clean`` refuse to run while one is in flight.

Policy violations and content that fails the safety checks never raise out
of ``execute`` or ``deploy``: they come back as a failed result carrying the
reason code and a remediation hint, with nothing written.

The intent given to ``execute`` is stored beside the mirror file, so a later
session scores the candidate against the same memory entries.  Read-only
queries (``get_confidence``, ``check_deployment_permission``) neither cache
nor persist evidence.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sandgate.config import SandgateConfig
from sandgate.errors import (
    IsolationError,
    PathViolationError,
    PolicyViolationError,
    ReasonCode,
    SandboxBusyError,
)
from sandgate.evidence import EvidenceStore
from sandgate.gate.decision import decide
from sandgate.gate.models import DeploymentAction, DeploymentDecision
from sandgate.memory.backend import JsonFileProjectMemory
from sandgate.policy.access import AccessPolicyEngine
from sandgate.policy.models import ProjectCheck  # noqa: TC001
from sandgate.sandbox.isolation import SandboxIsolation
from sandgate.sandbox.models import SandboxStatus  # noqa: TC001
from sandgate.sandbox.runner import LocalRunner
from sandgate.scoring.engine import ConfidenceScorer
from sandgate.scoring.models import METRIC_MAXIMA, ConfidenceMetrics
from sandgate.security.pipeline import SecurityPipeline
from sandgate.security.vault import ContentVault
from sandgate.utils.telemetry import (
    ATTR_ACTION,
    ATTR_ALLOWED,
    ATTR_CAPPED,
    ATTR_CONFIDENCE,
    ATTR_FILE,
    ATTR_FORCE,
    ATTR_MALICIOUS,
    ATTR_REASON_CODE,
    ATTR_SENSITIVE,
    get_tracer,
)

if TYPE_CHECKING:
    from sandgate.memory.backend import ProjectMemory
    from sandgate.sandbox.runner import CommandRunner
    from sandgate.scoring.models import Evaluation

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

EVIDENCE_DIR_NAME = "evidence"


class ExecutionResult(BaseModel):
    """Outcome of ``execute`` or ``run_tests``."""

    success: bool
    file: str | None = None
    output: str = ""
    confidence: int = 0
    metrics: ConfidenceMetrics = Field(default_factory=ConfidenceMetrics)
    decision: DeploymentDecision | None = None
    sensitive_data_found: bool = False
    malicious_patterns: bool = False
    redaction_count: int = 0
    safety_risks: list[str] = Field(default_factory=list)
    scores: dict[str, int] = Field(default_factory=dict, description="Per-file confidence for multi-file runs.")
    code: ReasonCode | None = None
    error: str = ""
    hint: str = ""


class ConfidenceReport(BaseModel):
    """Metrics and total for one file, or averaged over the mirror."""

    file: str | None = None
    confidence: int = 0
    metrics: ConfidenceMetrics = Field(default_factory=ConfidenceMetrics)
    scores: dict[str, int] = Field(default_factory=dict)


class DeployResult(BaseModel):
    """Outcome of ``deploy``."""

    file: str
    deployed: bool
    forced: bool = False
    target: str | None = None
    decision: DeploymentDecision | None = None
    code: ReasonCode | None = None
    reason: str = ""
    hint: str = ""


class SandboxManager:
    """Confidence-gated sandbox for one project root."""

    def __init__(
        self,
        project_root: str | Path,
        config: SandgateConfig | None = None,
        *,
        memory: ProjectMemory | None = None,
        runner: CommandRunner | None = None,
        vault: ContentVault | None = None,
    ) -> None:
        self._config = config or SandgateConfig()
        self._engine = AccessPolicyEngine(self._config.access, Path(project_root))
        self._isolation = SandboxIsolation(self._engine, self._config.sandbox)
        state_dir = self._isolation.state_dir
        self._vault = vault or ContentVault(state_dir, iterations=self._config.security.kdf_iterations)
        self._pipeline = SecurityPipeline(self._engine, config=self._config.security, vault=self._vault)
        self._memory = memory or JsonFileProjectMemory(state_dir / self._config.memory_file)
        self._runner = runner or LocalRunner(self._config.sandbox, cwd=self._isolation.mirror_root)
        self._scorer = ConfidenceScorer(
            self._isolation,
            self._runner,
            self._memory,
            self._pipeline,
            self._config.scoring,
        )
        self._evidence = EvidenceStore(state_dir / EVIDENCE_DIR_NAME, self._pipeline)
        self._lock = asyncio.Lock()
        self._evaluations: dict[str, Evaluation] = {}
        self._initialized = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> SandgateConfig:
        return self._config

    @property
    def project_root(self) -> Path:
        return self._engine.project_root

    @property
    def engine(self) -> AccessPolicyEngine:
        return self._engine

    @property
    def isolation(self) -> SandboxIsolation:
        return self._isolation

    @property
    def pipeline(self) -> SecurityPipeline:
        return self._pipeline

    @property
    def vault(self) -> ContentVault:
        return self._vault

    @property
    def scorer(self) -> ConfidenceScorer:
        return self._scorer

    @property
    def evidence(self) -> EvidenceStore:
        return self._evidence

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> ProjectCheck:
        """Validate the project, create the mirror, and set up key material.

        Raises:
            IsolationError: If the project directory is unusable.
        """
        check = self._engine.validate_project_directory()
        if not check.is_valid:
            raise IsolationError(check.reason, hint="Point --project at an existing directory.")
        for warning in check.warnings:
            logger.warning("Project check: %s", warning)
        self._isolation.initialize()
        self._vault.initialize()
        self._initialized = True
        return check

    async def close(self) -> None:
        await self._runner.cleanup()

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def execute(self, file: str, content: str, intent: str | None = None) -> ExecutionResult:
        """Write *content* into the mirror, score it, and gate it."""
        async with self._lock:
            await self._ensure_initialized()
            with _tracer.start_as_current_span("sandgate.execute") as span:
                span.set_attribute(ATTR_FILE, str(file))
                safety = self._pipeline.validate_safety(content)
                try:
                    if not safety.is_safe:
                        raise PolicyViolationError(
                            self._isolation.relative_path(file),
                            "content safety validation failed (" + ", ".join(safety.risks) + ")",
                            hint="; ".join(safety.recommendations) or None,
                        )
                    self._isolation.write_file(file, content, intent=intent or "")
                    rel = self._isolation.relative_path(file)
                except (PathViolationError, PolicyViolationError) as exc:
                    logger.warning("Rejected write to %s: %s", file, exc)
                    span.set_attribute(ATTR_REASON_CODE, exc.code.value)
                    return ExecutionResult(
                        success=False,
                        file=str(file),
                        output=str(exc),
                        safety_risks=safety.risks,
                        code=exc.code,
                        error=str(exc),
                        hint=exc.hint,
                    )

                evaluation = await self._scorer.evaluate(rel, content, intent or "")
                decision = self._decide(evaluation)
                self._remember(evaluation, decision)

                sanitization = evaluation.evidence.sanitization
                span.set_attribute(ATTR_CONFIDENCE, evaluation.confidence)
                span.set_attribute(ATTR_ACTION, decision.action.value)
                span.set_attribute(ATTR_SENSITIVE, sanitization.sensitive_data_found)
                span.set_attribute(ATTR_MALICIOUS, sanitization.malicious_patterns)

                return ExecutionResult(
                    success=True,
                    file=rel,
                    output=f"Sandbox updated: {rel} (confidence {evaluation.confidence}%, {decision.action.value})",
                    confidence=evaluation.confidence,
                    metrics=evaluation.metrics,
                    decision=decision,
                    sensitive_data_found=sanitization.sensitive_data_found,
                    malicious_patterns=sanitization.malicious_patterns,
                    redaction_count=sanitization.redaction_count,
                    safety_risks=evaluation.evidence.safety.risks,
                )

    async def run_tests(self, files: list[str] | None = None) -> ExecutionResult:
        """Re-score *files* (every mirror candidate when empty) including their tests."""
        await self._ensure_initialized()
        targets = list(files) if files else self._candidate_files()
        if not targets:
            return ExecutionResult(success=True, output="No files in sandbox to test")

        scores: dict[str, int] = {}
        evaluations: list[Evaluation] = []
        lines: list[str] = []
        for target in targets:
            try:
                evaluation = await self._evaluate_current(target)
            except (PathViolationError, PolicyViolationError) as exc:
                return ExecutionResult(success=False, file=target, output=str(exc), code=exc.code, error=str(exc), hint=exc.hint)
            evaluations.append(evaluation)
            rel = evaluation.evidence.path
            scores[rel] = evaluation.confidence
            tests = evaluation.evidence.tests
            if tests.test_file is None:
                lines.append(f"{rel}: no tests found (confidence {evaluation.confidence}%)")
            elif tests.timed_out:
                lines.append(f"{rel}: tests timed out (confidence {evaluation.confidence}%)")
            else:
                lines.append(
                    f"{rel}: {tests.passed} passed, {tests.failed} failed, {tests.errors} errors "
                    f"(confidence {evaluation.confidence}%)"
                )

        metrics = _mean_metrics([e.metrics for e in evaluations])
        success = all(_tests_ok(e) for e in evaluations)
        return ExecutionResult(
            success=success,
            file=targets[0] if len(targets) == 1 else None,
            output="\n".join(lines),
            confidence=metrics.total,
            metrics=metrics,
            scores=scores,
            sensitive_data_found=any(e.evidence.sanitization.sensitive_data_found for e in evaluations),
            malicious_patterns=any(e.evidence.sanitization.malicious_patterns for e in evaluations),
        )

    async def get_confidence(self, file: str | None = None) -> ConfidenceReport:
        """Metrics for *file*, or the mean over mirror candidates (zero when empty)."""
        await self._ensure_initialized()
        if file is not None:
            evaluation = await self._evaluation_for(file, remember=False)
            return ConfidenceReport(
                file=evaluation.evidence.path,
                confidence=evaluation.confidence,
                metrics=evaluation.metrics,
            )

        evaluations = [await self._evaluation_for(target, remember=False) for target in self._candidate_files()]
        metrics = _mean_metrics([e.metrics for e in evaluations])
        return ConfidenceReport(
            confidence=metrics.total,
            metrics=metrics,
            scores={e.evidence.path: e.confidence for e in evaluations},
        )

    async def check_deployment_permission(self, file: str, confidence: int | None = None) -> DeploymentDecision:
        """Gate *file* at its current score, or at an explicit *confidence*."""
        await self._ensure_initialized()
        evaluation = await self._evaluation_for(file, remember=False)
        return self._decide(evaluation, confidence=confidence)

    async def deploy(self, file: str, force: bool = False) -> DeployResult:
        """Promote a mirror file into the real tree.

        Without *force* only an AutoDeploy decision writes.  *force* skips the
        confidence gate but never the access policy.
        """
        async with self._lock:
            await self._ensure_initialized()
            with _tracer.start_as_current_span("sandgate.deploy") as span:
                span.set_attribute(ATTR_FILE, str(file))
                span.set_attribute(ATTR_FORCE, force)
                result = await self._deploy(file, force)
                span.set_attribute(ATTR_ALLOWED, result.deployed)
                if result.code is not None:
                    span.set_attribute(ATTR_REASON_CODE, result.code.value)
                return result

    async def clean(self, all: bool = False) -> int:  # noqa: A002
        if self._lock.locked():
            raise SandboxBusyError("Cannot clean while a sandbox operation is in flight")
        removed = self._isolation.clean(all=all)
        if all:
            self._evaluations.clear()
        return removed

    async def reset(self) -> None:
        if self._lock.locked():
            raise SandboxBusyError("Cannot reset while a sandbox operation is in flight")
        self._isolation.reset()
        self._evaluations.clear()
        self._initialized = True

    def status(self) -> SandboxStatus:
        return self._isolation.status()

    async def rescan(self) -> ConfidenceReport:
        """Re-score every mirror candidate from scratch.

        Meant to be driven by a caller-owned
        :class:`~sandgate.utils.scheduling.PeriodicTask`.
        """
        await self._ensure_initialized()
        self._evaluations.clear()
        report = await self.get_confidence()
        logger.info("Rescan: %d files, mean confidence %d%%", len(report.scores), report.confidence)
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _deploy(self, file: str, force: bool) -> DeployResult:
        try:
            rel = self._isolation.relative_path(file)
        except (PathViolationError, PolicyViolationError) as exc:
            logger.warning("Rejected deployment of %s: %s", file, exc)
            return DeployResult(file=str(file), deployed=False, forced=force, code=exc.code, reason=str(exc), hint=exc.hint)

        if not self._isolation.exists_in_mirror(rel):
            return DeployResult(
                file=rel,
                deployed=False,
                forced=force,
                code=ReasonCode.NOT_FOUND,
                reason=f"No sandbox version of {rel}",
                hint="Write the file into the sandbox first with 'sandgate sandbox execute'.",
            )

        decision: DeploymentDecision | None = None
        if force:
            logger.warning("Forced deployment of %s bypasses the confidence gate", rel)
        else:
            evaluation = await self._evaluation_for(rel)
            decision = self._decide(evaluation)
            if decision.action is not DeploymentAction.AUTO_DEPLOY:
                return DeployResult(
                    file=rel,
                    deployed=False,
                    decision=decision,
                    code=decision.code,
                    reason=decision.reason,
                    hint="; ".join(decision.next_steps),
                )

        try:
            target = self._isolation.promote(rel)
        except (PathViolationError, PolicyViolationError) as exc:
            logger.warning("Rejected deployment of %s: %s", rel, exc)
            return DeployResult(
                file=rel,
                deployed=False,
                forced=force,
                decision=decision,
                code=exc.code,
                reason=str(exc),
                hint=exc.hint,
            )
        self._evaluations.pop(rel, None)
        return DeployResult(
            file=rel,
            deployed=True,
            forced=force,
            target=str(target),
            decision=decision,
            reason="Deployed to project" + (" (forced)" if force else ""),
        )

    def _decide(self, evaluation: Evaluation, *, confidence: int | None = None) -> DeploymentDecision:
        gate = self._config.gate
        with _tracer.start_as_current_span("sandgate.gate") as span:
            decision = decide(
                evaluation.metrics,
                evaluation.evidence.sanitization,
                evaluation.assessment.risk.describe(),
                evaluation.evidence.memory.similar_entries,
                gate.thresholds,
                review_limit=gate.review_limit,
                confidence=confidence,
                safety=evaluation.evidence.safety,
            )
            span.set_attribute(ATTR_FILE, evaluation.evidence.path)
            span.set_attribute(ATTR_CONFIDENCE, decision.confidence)
            span.set_attribute(ATTR_ACTION, decision.action.value)
            span.set_attribute(ATTR_CAPPED, decision.capped_by_security)
        if decision.capped_by_security:
            logger.warning("Deployment of %s capped at review: security findings", evaluation.evidence.path)
        return decision

    def _remember(self, evaluation: Evaluation, decision: DeploymentDecision) -> None:
        self._evaluations[evaluation.evidence.path] = evaluation
        self._evidence.record(evaluation, decision)

    async def _evaluation_for(self, file: str, *, remember: bool = True) -> Evaluation:
        """Cached evaluation when the mirror content is unchanged, else a fresh one."""
        rel = self._isolation.relative_path(file)
        content = self._isolation.read_file(rel)
        cached = self._evaluations.get(rel)
        if cached is not None and cached.evidence.content == content:
            return cached
        return await self._evaluate_current(rel, content, remember=remember)

    async def _evaluate_current(self, file: str, content: str | None = None, *, remember: bool = True) -> Evaluation:
        rel = self._isolation.relative_path(file)
        if content is None:
            content = self._isolation.read_file(rel)
        previous = self._evaluations.get(rel)
        intent = previous.evidence.intent if previous is not None else self._isolation.intent_for(rel)
        evaluation = await self._scorer.evaluate(rel, content, intent)
        if remember:
            self._remember(evaluation, self._decide(evaluation))
        return evaluation

    def _candidate_files(self) -> list[str]:
        context = set(self._config.sandbox.context_files)
        return [f for f in self._isolation.list_files() if f not in context]


def _mean_metrics(items: list[ConfidenceMetrics]) -> ConfidenceMetrics:
    if not items:
        return ConfidenceMetrics.zero()
    return ConfidenceMetrics(**{name: sum(getattr(m, name) for m in items) // len(items) for name in METRIC_MAXIMA})


def _tests_ok(evaluation: Evaluation) -> bool:
    tests = evaluation.evidence.tests
    return not (tests.timed_out or tests.runner_failed or tests.failed or tests.errors)
