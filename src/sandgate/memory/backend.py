"""Project-memory backends.

:class:`ProjectMemory` defines the async, read-only protocol the scorer
consumes.  :class:`InMemoryProjectMemory` is a lightweight implementation
suitable for testing and single-process use; :class:`JsonFileProjectMemory`
reads ``<state>/memory.json`` maintained by an external recorder.

This package never writes memory entries.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import ValidationError

from sandgate.memory.models import MemoryEntry, MemorySnapshot, PatternSummary, rank_similar

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

MEMORY_FILE_NAME = "memory.json"


@runtime_checkable
class ProjectMemory(Protocol):
    """Async read-only protocol for prior intents, outcomes, and patterns."""

    async def get_established_patterns(self) -> PatternSummary:
        """Return the project's established conventions."""
        ...

    async def find_similar_entries(self, intent: str, limit: int = 5) -> list[MemoryEntry]:
        """Return up to *limit* entries similar to *intent*, best first."""
        ...


async def capture_snapshot(memory: ProjectMemory, intent: str, limit: int = 5) -> MemorySnapshot:
    """Read patterns and similar entries once; scoring only sees the result."""
    patterns = await memory.get_established_patterns()
    similar = await memory.find_similar_entries(intent, limit) if intent else []
    return MemorySnapshot(patterns=patterns, similar_entries=tuple(similar))


class InMemoryProjectMemory:
    """List-backed :class:`ProjectMemory` implementation."""

    def __init__(
        self,
        entries: list[MemoryEntry] | None = None,
        patterns: PatternSummary | None = None,
    ) -> None:
        self._entries = list(entries or [])
        self._patterns = patterns or PatternSummary()

    async def get_established_patterns(self) -> PatternSummary:
        return self._patterns

    async def find_similar_entries(self, intent: str, limit: int = 5) -> list[MemoryEntry]:
        return rank_similar(intent, self._entries, limit)


class JsonFileProjectMemory:
    """Reads ``{"patterns": {...}, "entries": [...]}`` from a JSON file.

    The file is re-read whenever its modification time changes, so entries
    recorded by another process become visible on the next evaluation.  A
    missing file is treated as empty memory; a malformed one is logged and
    treated as empty rather than failing the evaluation.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._mtime: float | None = None
        self._entries: list[MemoryEntry] = []
        self._patterns = PatternSummary()

    @property
    def path(self) -> Path:
        return self._path

    async def get_established_patterns(self) -> PatternSummary:
        self._refresh()
        return self._patterns

    async def find_similar_entries(self, intent: str, limit: int = 5) -> list[MemoryEntry]:
        self._refresh()
        return rank_similar(intent, self._entries, limit)

    def _refresh(self) -> None:
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            self._mtime = None
            self._entries = []
            self._patterns = PatternSummary()
            return
        if mtime == self._mtime:
            return
        self._mtime = mtime
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._patterns = PatternSummary.model_validate(raw.get("patterns") or {})
            self._entries = [MemoryEntry.model_validate(item) for item in raw.get("entries") or []]
        except (OSError, ValueError, AttributeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable project memory %s: %s", self._path, exc)
            self._patterns = PatternSummary()
            self._entries = []
        else:
            logger.debug("Loaded %d memory entries from %s", len(self._entries), self._path)
