"""Data models for the deployment decision gate."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sandgate.errors import ReasonCode
from sandgate.memory.models import MemoryEntry
from sandgate.scoring.models import MetricScore


class DeploymentAction(str, Enum):
    """What the gate allows for a candidate."""

    BLOCKED = "blocked"
    SANDBOX_ONLY = "sandbox_only"
    REVIEW_REQUIRED = "review_required"
    AUTO_DEPLOY = "auto_deploy"


class GateThresholds(BaseModel):
    """Lower bounds (inclusive) of each tier above Blocked."""

    model_config = ConfigDict(frozen=True)

    sandbox_only: int = Field(default=50, description="Scores below this are blocked.")
    review: int = Field(default=70, description="Scores from here need human review.")
    auto_deploy: int = Field(default=95, description="Scores from here deploy automatically.")

    @model_validator(mode="after")
    def _check_order(self) -> GateThresholds:
        if not 0 < self.sandbox_only < self.review < self.auto_deploy <= 100:
            raise ValueError("thresholds must satisfy 0 < sandbox_only < review < auto_deploy <= 100")
        return self


class GateConfig(BaseModel):
    """Configuration for the deployment gate."""

    thresholds: GateThresholds = Field(default_factory=GateThresholds)
    review_limit: int = Field(default=5, ge=0, description="Similar entries included in a review package.")


class Suggestion(BaseModel):
    """One actionable remediation, attached to Blocked and SandboxOnly decisions."""

    metric: str
    remediation: str
    score: int | None = None
    maximum: int | None = None


class ReviewPackage(BaseModel):
    """What a human reviewer needs to approve or reject a candidate."""

    confidence: int
    breakdown: list[MetricScore] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    security_findings: list[str] = Field(default_factory=list)
    similar_entries: list[MemoryEntry] = Field(default_factory=list)


class DeploymentDecision(BaseModel):
    """The gate's verdict for one candidate."""

    action: DeploymentAction
    allowed: bool
    confidence: int
    reason: str
    code: ReasonCode | None = None
    next_steps: list[str] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    review: ReviewPackage | None = None
    capped_by_security: bool = False
