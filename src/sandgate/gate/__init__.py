"""Deployment decision gate."""

from sandgate.gate.decision import classify, decide, rank_suggestions
from sandgate.gate.models import (
    DeploymentAction,
    DeploymentDecision,
    GateConfig,
    GateThresholds,
    ReviewPackage,
    Suggestion,
)

__all__ = [
    "DeploymentAction",
    "DeploymentDecision",
    "GateConfig",
    "GateThresholds",
    "ReviewPackage",
    "Suggestion",
    "classify",
    "decide",
    "rank_suggestions",
]
