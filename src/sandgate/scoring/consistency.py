"""Memory-consistency sub-score: agreement with similar prior outcomes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sandgate.scoring.models import METRIC_MAXIMA, ScoringConfig

if TYPE_CHECKING:
    from sandgate.memory.models import MemoryEntry

# syntax + tests + patterns maxima
PROJECTION_BASE = METRIC_MAXIMA["syntax"] + METRIC_MAXIMA["tests"] + METRIC_MAXIMA["patterns"]


def projected_confidence(syntax: int, tests: int, patterns: int) -> float:
    """Candidate confidence on a 0-100 scale, projected from the content metrics."""
    return (syntax + tests + patterns) / PROJECTION_BASE * 100


def score_memory(entries: tuple[MemoryEntry, ...], projected: float, config: ScoringConfig) -> int:
    """Start neutral, subtract per contradiction, add per improvement.

    A contradiction is a similar entry whose outcome was negative.  An
    improvement is a positive entry recorded with lower confidence than the
    candidate's projection.
    """
    if not entries:
        return config.neutral_memory
    contradictions = sum(1 for entry in entries if entry.is_negative)
    improvements = sum(1 for entry in entries if not entry.is_negative and entry.confidence < projected)
    score = (
        config.neutral_memory
        - config.contradiction_penalty * contradictions
        + config.improvement_bonus * improvements
    )
    return max(0, min(METRIC_MAXIMA["memory"], score))
