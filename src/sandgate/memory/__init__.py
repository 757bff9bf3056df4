"""Project memory — read-only view of prior intents, outcomes, and patterns."""

from sandgate.memory.backend import (
    MEMORY_FILE_NAME,
    InMemoryProjectMemory,
    JsonFileProjectMemory,
    ProjectMemory,
    capture_snapshot,
)
from sandgate.memory.models import MemoryEntry, MemorySnapshot, PatternSummary

__all__ = [
    "MEMORY_FILE_NAME",
    "InMemoryProjectMemory",
    "JsonFileProjectMemory",
    "MemoryEntry",
    "MemorySnapshot",
    "PatternSummary",
    "ProjectMemory",
    "capture_snapshot",
]
