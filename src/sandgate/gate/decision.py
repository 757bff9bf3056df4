"""Deployment gate — maps confidence and security findings to an action.

Pure logic, no I/O.  Tiers are inclusive lower bounds over ``[0, 100]``:
Blocked below ``sandbox_only``, SandboxOnly below ``review``,
ReviewRequired below ``auto_deploy``, AutoDeploy above.  Malicious findings
cap the outcome at ReviewRequired whatever the score, and so does content
that failed the size, binary, or repetition safety checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sandgate.errors import ReasonCode
from sandgate.gate.models import (
    DeploymentAction,
    DeploymentDecision,
    GateThresholds,
    ReviewPackage,
    Suggestion,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sandgate.memory.models import MemoryEntry
    from sandgate.scoring.models import ConfidenceMetrics
    from sandgate.security.models import SafetyReport, SanitizationResult

REMEDIATIONS: dict[str, str] = {
    "syntax": "Fix the syntax errors reported for this file.",
    "tests": "Add tests for this file or fix the failing ones.",
    "patterns": "Follow the project's established naming, style, and architecture conventions.",
    "memory": "Review similar past changes that failed before retrying this one.",
    "risk": "Reduce risk: keep public APIs, avoid new dependencies, and split manifest changes out.",
    "performance": "Remove blocking calls, unbounded loops, and deeply nested loops.",
}

REVIEW_STEPS = [
    "Review the change and its risk summary.",
    "Approve with 'sandgate sandbox deploy FILE --force' or keep iterating in the sandbox.",
]


def classify(confidence: int, thresholds: GateThresholds) -> DeploymentAction:
    if confidence >= thresholds.auto_deploy:
        return DeploymentAction.AUTO_DEPLOY
    if confidence >= thresholds.review:
        return DeploymentAction.REVIEW_REQUIRED
    if confidence >= thresholds.sandbox_only:
        return DeploymentAction.SANDBOX_ONLY
    return DeploymentAction.BLOCKED


def rank_suggestions(
    metrics: ConfidenceMetrics,
    sanitization: SanitizationResult | None = None,
    safety: SafetyReport | None = None,
) -> list[Suggestion]:
    """Security remediations first, then weakest metrics by score ratio."""
    suggestions: list[Suggestion] = []
    if sanitization is not None:
        if sanitization.malicious_patterns:
            suggestions.append(
                Suggestion(
                    metric="security",
                    remediation="Remove the potentially malicious constructs: "
                    + ", ".join(sanitization.malicious_categories),
                )
            )
        if sanitization.sensitive_data_found:
            suggestions.append(
                Suggestion(
                    metric="security",
                    remediation="Remove the detected secrets ("
                    + ", ".join(sanitization.secret_kinds)
                    + ") and load them from configuration instead.",
                )
            )
    if safety is not None and not safety.is_safe:
        suggestions.extend(Suggestion(metric="security", remediation=text) for text in safety.recommendations)

    weak = [row for row in metrics.breakdown() if row.score < row.maximum]
    weak.sort(key=lambda row: row.ratio)
    suggestions.extend(
        Suggestion(metric=row.name, score=row.score, maximum=row.maximum, remediation=REMEDIATIONS[row.name])
        for row in weak
    )
    return suggestions


def decide(
    metrics: ConfidenceMetrics,
    sanitization: SanitizationResult | None = None,
    risks: Sequence[str] = (),
    similar: Sequence[MemoryEntry] = (),
    thresholds: GateThresholds | None = None,
    *,
    review_limit: int = 5,
    confidence: int | None = None,
    safety: SafetyReport | None = None,
) -> DeploymentDecision:
    """Return the deployment decision for *metrics*; same inputs, same decision.

    *confidence* overrides ``metrics.total`` for tier selection, for callers
    that re-check a previously reported score.
    """
    thresholds = thresholds or GateThresholds()
    confidence = metrics.total if confidence is None else max(0, min(100, confidence))
    action = classify(confidence, thresholds)
    malicious = sanitization is not None and sanitization.malicious_patterns
    unsafe = safety is not None and not safety.is_safe
    capped = (malicious or unsafe) and action is DeploymentAction.AUTO_DEPLOY
    if capped:
        action = DeploymentAction.REVIEW_REQUIRED

    if action is DeploymentAction.AUTO_DEPLOY:
        return DeploymentDecision(
            action=action,
            allowed=True,
            confidence=confidence,
            reason=f"High confidence ({confidence}%): safe to deploy.",
        )

    suggestions = rank_suggestions(metrics, sanitization, safety)

    if action is DeploymentAction.REVIEW_REQUIRED:
        findings: list[str] = []
        if sanitization is not None:
            findings = [f"malicious:{c}" for c in sanitization.malicious_categories]
            findings += [f"secret:{k}" for k in sanitization.secret_kinds]
        if safety is not None and unsafe:
            findings += [f"unsafe:{risk}" for risk in safety.risks]
        review = ReviewPackage(
            confidence=confidence,
            breakdown=metrics.breakdown(),
            risks=list(risks),
            improvements=[s.remediation for s in suggestions],
            security_findings=findings,
            similar_entries=list(similar)[:review_limit],
        )
        if capped:
            finding = "potentially malicious code was detected" if malicious else "the content failed safety checks"
            reason = f"Confidence {confidence}% would auto-deploy, but {finding}: human review required."
            code = ReasonCode.SECURITY_FINDING
        else:
            reason = f"Medium-high confidence ({confidence}%): human review required."
            code = ReasonCode.REVIEW_REQUIRED
        return DeploymentDecision(
            action=action,
            allowed=False,
            confidence=confidence,
            reason=reason,
            code=code,
            next_steps=list(REVIEW_STEPS),
            review=review,
            capped_by_security=capped,
        )

    if action is DeploymentAction.SANDBOX_ONLY:
        reason = f"Medium confidence ({confidence}%): keep testing in the sandbox."
    else:
        reason = f"Low confidence ({confidence}%): deployment blocked."
    return DeploymentDecision(
        action=action,
        allowed=False,
        confidence=confidence,
        reason=reason,
        code=ReasonCode.LOW_CONFIDENCE,
        next_steps=[s.remediation for s in suggestions[:3]],
        suggestions=suggestions,
    )
