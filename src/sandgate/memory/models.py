"""Data models for the project-memory collaborator."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

NEGATIVE_OUTCOMES: frozenset[str] = frozenset(
    {"failed", "failure", "rejected", "reverted", "rolled back", "rollback", "blocked", "broken"}
)

_WORD = re.compile(r"[a-z0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatternSummary(BaseModel):
    """Established project conventions, keyed by signal name.

    Each mapping holds ``signal -> established value``, e.g.
    ``naming["function_case"] == "snake"`` or ``style["quotes"] == "double"``.
    """

    model_config = ConfigDict(frozen=True)

    architecture: dict[str, str] = Field(default_factory=dict)
    naming: dict[str, str] = Field(default_factory=dict)
    style: dict[str, str] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.architecture or self.naming or self.style)


class MemoryEntry(BaseModel):
    """One recorded (intent, outcome, confidence) triple from a prior change."""

    model_config = ConfigDict(frozen=True)

    intent: str
    outcome: str = ""
    confidence: float = Field(default=0.0, ge=0, le=100)
    timestamp: datetime = Field(default_factory=_utcnow)
    tags: tuple[str, ...] = ()
    file_path: str | None = None

    @property
    def is_negative(self) -> bool:
        """Whether the recorded outcome describes a failed or undone change."""
        outcome = self.outcome.lower()
        return any(word in outcome for word in NEGATIVE_OUTCOMES)


class MemorySnapshot(BaseModel):
    """Immutable view of memory captured once per evaluation."""

    model_config = ConfigDict(frozen=True)

    patterns: PatternSummary = Field(default_factory=PatternSummary)
    similar_entries: tuple[MemoryEntry, ...] = ()


def tokenize(text: str) -> set[str]:
    return set(_WORD.findall(text.lower()))


def similarity(query: str, entry: MemoryEntry) -> float:
    """Rank an entry against an intent query.

    A case-insensitive substring hit on the intent scores 3, on the outcome 2;
    otherwise the score is the token-overlap ratio in ``[0, 1]``.
    """
    needle = query.strip().lower()
    if not needle:
        return 0.0
    intent = entry.intent.lower()
    if needle in intent or (intent and intent in needle):
        return 3.0
    if needle in entry.outcome.lower():
        return 2.0
    query_tokens = tokenize(needle)
    entry_tokens = tokenize(intent)
    if not query_tokens or not entry_tokens:
        return 0.0
    return len(query_tokens & entry_tokens) / len(query_tokens | entry_tokens)


def rank_similar(query: str, entries: list[MemoryEntry], limit: int) -> list[MemoryEntry]:
    """Entries with a positive similarity, ordered by score, confidence, recency."""
    scored = [(similarity(query, entry), entry) for entry in entries]
    scored = [pair for pair in scored if pair[0] > 0]
    scored.sort(key=lambda pair: (pair[0], pair[1].confidence, pair[1].timestamp), reverse=True)
    return [entry for _, entry in scored[: max(limit, 0)]]
