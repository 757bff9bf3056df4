"""Tests for the deployment gate."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sandgate.errors import ReasonCode
from sandgate.gate.decision import REMEDIATIONS, REVIEW_STEPS, classify, decide, rank_suggestions
from sandgate.gate.models import DeploymentAction, GateThresholds
from sandgate.memory.models import MemoryEntry
from sandgate.scoring.models import METRIC_MAXIMA, ConfidenceMetrics
from sandgate.security.models import SafetyReport
from sandgate.security.sanitizer import sanitize

MALICIOUS = sanitize('eval("danger"); fs.unlink("x")')
SECRET = sanitize('key = "sk-1234567890abcdef1234567890abcdef"')
CLEAN = sanitize("x = 1\n")
UNSAFE = SafetyReport(
    is_safe=False,
    risks=["Excessive repetition detected"],
    recommendations=["Content looks generated or corrupt; regenerate it"],
)


def _metrics(total: int) -> ConfidenceMetrics:
    """Fill sub-scores in order until they sum to *total*."""
    values: dict[str, int] = {}
    remaining = total
    for name, maximum in METRIC_MAXIMA.items():
        values[name] = min(maximum, remaining)
        remaining -= values[name]
    return ConfidenceMetrics(**values)


def _expected(confidence: int) -> DeploymentAction:
    if confidence >= 95:
        return DeploymentAction.AUTO_DEPLOY
    if confidence >= 70:
        return DeploymentAction.REVIEW_REQUIRED
    if confidence >= 50:
        return DeploymentAction.SANDBOX_ONLY
    return DeploymentAction.BLOCKED


class TestClassify:
    @pytest.mark.parametrize("confidence", range(101))
    def test_every_score_maps_to_its_tier(self, confidence: int) -> None:
        decision = decide(_metrics(confidence), CLEAN)
        assert decision.confidence == confidence
        assert decision.action is _expected(confidence)
        assert decision.allowed is (confidence >= 95)

    @pytest.mark.parametrize(
        ("confidence", "action"),
        [
            (49, DeploymentAction.BLOCKED),
            (50, DeploymentAction.SANDBOX_ONLY),
            (69, DeploymentAction.SANDBOX_ONLY),
            (70, DeploymentAction.REVIEW_REQUIRED),
            (94, DeploymentAction.REVIEW_REQUIRED),
            (95, DeploymentAction.AUTO_DEPLOY),
        ],
    )
    def test_boundaries(self, confidence: int, action: DeploymentAction) -> None:
        assert classify(confidence, GateThresholds()) is action

    def test_custom_thresholds(self) -> None:
        thresholds = GateThresholds(sandbox_only=10, review=20, auto_deploy=30)
        assert classify(30, thresholds) is DeploymentAction.AUTO_DEPLOY
        assert classify(9, thresholds) is DeploymentAction.BLOCKED

    @pytest.mark.parametrize(
        "values",
        [
            {"sandbox_only": 70, "review": 50},
            {"review": 95, "auto_deploy": 95},
            {"auto_deploy": 101},
            {"sandbox_only": 0},
        ],
    )
    def test_thresholds_must_be_ordered(self, values: dict[str, int]) -> None:
        with pytest.raises(ValidationError):
            GateThresholds(**values)


class TestDecide:
    def test_auto_deploy(self) -> None:
        decision = decide(_metrics(97), CLEAN)
        assert decision.allowed
        assert decision.code is None
        assert decision.reason == "High confidence (97%): safe to deploy."
        assert decision.review is None

    def test_malicious_content_caps_auto_deploy(self) -> None:
        decision = decide(_metrics(96), MALICIOUS)
        assert decision.action is DeploymentAction.REVIEW_REQUIRED
        assert not decision.allowed
        assert decision.code is ReasonCode.SECURITY_FINDING
        assert decision.capped_by_security
        assert decision.review is not None
        assert decision.review.security_findings == ["malicious:destructive_fs", "malicious:dynamic_eval"]
        assert decision.next_steps == REVIEW_STEPS

    def test_unsafe_content_caps_auto_deploy(self) -> None:
        decision = decide(_metrics(99), CLEAN, safety=UNSAFE)
        assert decision.action is DeploymentAction.REVIEW_REQUIRED
        assert decision.code is ReasonCode.SECURITY_FINDING
        assert decision.capped_by_security
        assert "failed safety checks" in decision.reason
        assert decision.review is not None
        assert decision.review.security_findings == ["unsafe:Excessive repetition detected"]
        assert decision.review.improvements[0] == "Content looks generated or corrupt; regenerate it"

    def test_safe_report_does_not_cap(self) -> None:
        decision = decide(_metrics(99), CLEAN, safety=SafetyReport(is_safe=True))
        assert decision.action is DeploymentAction.AUTO_DEPLOY

    def test_malicious_content_does_not_raise_lower_tiers(self) -> None:
        decision = decide(_metrics(40), MALICIOUS)
        assert decision.action is DeploymentAction.BLOCKED
        assert not decision.capped_by_security

    def test_review_package(self) -> None:
        similar = [MemoryEntry(intent=f"change {i}", outcome="merged") for i in range(8)]
        decision = decide(_metrics(80), SECRET, risks=["Adds third-party imports: requests"], similar=similar)

        assert decision.code is ReasonCode.REVIEW_REQUIRED
        review = decision.review
        assert review is not None
        assert review.confidence == 80
        assert [row.name for row in review.breakdown] == list(METRIC_MAXIMA)
        assert review.risks == ["Adds third-party imports: requests"]
        assert review.security_findings == ["secret:api_key"]
        assert len(review.similar_entries) == 5
        assert review.improvements

    def test_review_limit(self) -> None:
        similar = [MemoryEntry(intent="a"), MemoryEntry(intent="b")]
        decision = decide(_metrics(80), CLEAN, similar=similar, review_limit=1)
        assert decision.review is not None
        assert len(decision.review.similar_entries) == 1

    def test_blocked_has_ranked_next_steps(self) -> None:
        metrics = ConfidenceMetrics(syntax=0, tests=25, patterns=10, memory=15, risk=5, performance=9)
        decision = decide(metrics)
        assert decision.action is DeploymentAction.SANDBOX_ONLY
        assert decision.code is ReasonCode.LOW_CONFIDENCE
        assert decision.next_steps == [REMEDIATIONS["syntax"], REMEDIATIONS["patterns"], REMEDIATIONS["risk"]]

    def test_confidence_override(self) -> None:
        decision = decide(_metrics(97), CLEAN, confidence=80)
        assert decision.action is DeploymentAction.REVIEW_REQUIRED
        assert decision.confidence == 80

    def test_confidence_override_is_clamped(self) -> None:
        assert decide(_metrics(0), confidence=250).confidence == 100

    def test_idempotent(self) -> None:
        metrics = _metrics(63)
        assert decide(metrics, SECRET) == decide(metrics, SECRET)


class TestRankSuggestions:
    def test_security_first(self) -> None:
        suggestions = rank_suggestions(_metrics(60), MALICIOUS)
        assert suggestions[0].metric == "security"
        assert "dynamic_eval" in suggestions[0].remediation

    def test_secret_suggestion(self) -> None:
        suggestions = rank_suggestions(_metrics(100), SECRET)
        assert [s.metric for s in suggestions] == ["security"]
        assert "api_key" in suggestions[0].remediation

    def test_weakest_ratio_first(self) -> None:
        metrics = ConfidenceMetrics(syntax=20, tests=20, patterns=5, memory=15, risk=2, performance=10)
        assert [s.metric for s in rank_suggestions(metrics)] == ["risk", "patterns", "tests"]

    def test_perfect_metrics_have_no_suggestions(self) -> None:
        assert rank_suggestions(_metrics(100)) == []
