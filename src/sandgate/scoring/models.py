"""Data models for the multi-factor confidence scorer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sandgate.memory.models import MemorySnapshot
from sandgate.security.models import SafetyReport, SanitizationResult

METRIC_MAXIMA: dict[str, int] = {
    "syntax": 20,
    "tests": 25,
    "patterns": 20,
    "memory": 15,
    "risk": 10,
    "performance": 10,
}

MAX_TOTAL = 100


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class MetricScore(BaseModel):
    """One row of a metric breakdown."""

    model_config = ConfigDict(frozen=True)

    name: str
    score: int
    maximum: int

    @property
    def ratio(self) -> float:
        return self.score / self.maximum if self.maximum else 0.0


class ConfidenceMetrics(BaseModel):
    """Six bounded sub-scores; out-of-range inputs are clamped, never rejected."""

    model_config = ConfigDict(frozen=True)

    syntax: int = Field(default=0, description="Parse validity, 0-20.")
    tests: int = Field(default=0, description="Test results, 0-25.")
    patterns: int = Field(default=0, description="Consistency with established conventions, 0-20.")
    memory: int = Field(default=0, description="Consistency with similar prior outcomes, 0-15.")
    risk: int = Field(default=0, description="Inverse risk assessment, 0-10.")
    performance: int = Field(default=0, description="Absence of performance anti-patterns, 0-10.")

    @model_validator(mode="before")
    @classmethod
    def _clamp_scores(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for name, maximum in METRIC_MAXIMA.items():
                if name in data:
                    data[name] = _clamp(int(data[name]), 0, maximum)
        return data

    @classmethod
    def zero(cls) -> ConfidenceMetrics:
        return cls()

    @property
    def total(self) -> int:
        return _clamp(sum(getattr(self, name) for name in METRIC_MAXIMA), 0, MAX_TOTAL)

    def breakdown(self) -> list[MetricScore]:
        return [
            MetricScore(name=name, score=getattr(self, name), maximum=maximum)
            for name, maximum in METRIC_MAXIMA.items()
        ]


class SyntaxReport(BaseModel):
    """Outcome of parsing candidate content for its language."""

    model_config = ConfigDict(frozen=True)

    language: str
    supported: bool = True
    diagnostics: tuple[str, ...] = ()
    fatal: bool = False
    timed_out: bool = False
    empty: bool = False


class TestOutcome(BaseModel):
    """Counts parsed from one test-runner invocation."""

    model_config = ConfigDict(frozen=True)
    __test__ = False  # not a pytest class

    test_file: str | None = None
    ran: bool = False
    passed: int = 0
    failed: int = 0
    errors: int = 0
    timed_out: bool = False
    runner_failed: bool = False
    output: str = ""

    @property
    def collected(self) -> int:
        return self.passed + self.failed + self.errors


class RiskPenalty(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    points: int
    detail: str = ""


class RiskReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    penalties: tuple[RiskPenalty, ...] = ()

    @property
    def score(self) -> int:
        return max(0, METRIC_MAXIMA["risk"] - sum(p.points for p in self.penalties))

    def describe(self) -> list[str]:
        return [p.detail or p.kind for p in self.penalties]


class PerformanceHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: str
    penalty: int
    line: int
    description: str = ""


class PerformanceReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    hits: tuple[PerformanceHit, ...] = ()

    @property
    def score(self) -> int:
        return max(0, METRIC_MAXIMA["performance"] - sum(h.penalty for h in self.hits))


class Evidence(BaseModel):
    """Everything :func:`compute_metrics` needs, gathered ahead of time.

    Scoring is a pure function of this object, so identical evidence always
    yields identical metrics.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    language: str
    intent: str = ""
    syntax: SyntaxReport
    tests: TestOutcome = Field(default_factory=TestOutcome)
    sanitization: SanitizationResult
    safety: SafetyReport = Field(default_factory=lambda: SafetyReport(is_safe=True))
    original_content: str | None = None
    memory: MemorySnapshot = Field(default_factory=MemorySnapshot)
    known_modules: frozenset[str] = frozenset()


class Assessment(BaseModel):
    """Metrics plus the reports they were derived from."""

    model_config = ConfigDict(frozen=True)

    metrics: ConfidenceMetrics
    risk: RiskReport
    performance: PerformanceReport

    @property
    def confidence(self) -> int:
        return self.metrics.total


class ScoringConfig(BaseModel):
    """Tunable constants for the scorer."""

    diagnostic_penalty: int = Field(default=3, ge=0, description="Syntax points lost per recoverable diagnostic.")
    unsupported_syntax_score: int = Field(
        default=15, ge=0, le=20, description="Syntax score for non-empty content in an unparsed language."
    )
    neutral_tests: int = Field(default=15, ge=0, le=25, description="Tests score when no tests exist or ran.")
    neutral_patterns: int = Field(default=12, ge=0, le=20, description="Patterns score with no established patterns.")
    pattern_weights: dict[str, int] = Field(
        default_factory=lambda: {"architecture": 8, "naming": 6, "style": 6},
        description="Points per pattern category; must sum to 20.",
    )
    neutral_memory: int = Field(default=12, ge=0, le=15, description="Memory score with no similar entries.")
    contradiction_penalty: int = Field(default=4, ge=0)
    improvement_bonus: int = Field(default=2, ge=0)
    memory_limit: int = Field(default=5, ge=1, description="Similar entries read per evaluation.")
    parse_timeout: float = Field(default=5.0, gt=0, description="Seconds allowed for parsing.")
    test_timeout: float = Field(default=60.0, gt=0, description="Seconds allowed for one test run.")
    test_commands: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "python": ["python", "-m", "pytest", "-q", "{test}"],
            "javascript": ["npx", "--no-install", "jest", "{test}"],
            "typescript": ["npx", "--no-install", "jest", "{test}"],
        },
        description="Test command per language; '{test}' is replaced by the test file path.",
    )

    @model_validator(mode="after")
    def _check_weights(self) -> ScoringConfig:
        if sum(self.pattern_weights.values()) != METRIC_MAXIMA["patterns"]:
            raise ValueError("pattern_weights must sum to 20")
        return self


class Evaluation(BaseModel):
    """Evidence and the assessment computed from it."""

    model_config = ConfigDict(frozen=True)

    evidence: Evidence
    assessment: Assessment

    @property
    def metrics(self) -> ConfidenceMetrics:
        return self.assessment.metrics

    @property
    def confidence(self) -> int:
        return self.assessment.metrics.total
