"""Multi-factor confidence scoring for candidate changes."""

from sandgate.scoring.engine import ConfidenceScorer, compute_assessment, compute_metrics
from sandgate.scoring.models import (
    METRIC_MAXIMA,
    Assessment,
    ConfidenceMetrics,
    Evaluation,
    Evidence,
    MetricScore,
    PerformanceReport,
    RiskReport,
    ScoringConfig,
    SyntaxReport,
    TestOutcome,
)

__all__ = [
    "METRIC_MAXIMA",
    "Assessment",
    "ConfidenceMetrics",
    "ConfidenceScorer",
    "Evaluation",
    "Evidence",
    "MetricScore",
    "PerformanceReport",
    "RiskReport",
    "ScoringConfig",
    "SyntaxReport",
    "TestOutcome",
    "compute_assessment",
    "compute_metrics",
]
