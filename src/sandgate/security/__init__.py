"""Content security — redaction, malicious-pattern detection, safety, sealing."""

from sandgate.security.models import (
    ContentScan,
    EncryptedPayload,
    Finding,
    FindingCategory,
    ProcessedFile,
    SafetyReport,
    SanitizationResult,
    SecurityConfig,
    SecurityStatus,
)
from sandgate.security.patterns import (
    DEFAULT_PATTERN_TABLE,
    PatternRule,
    PatternTable,
    load_pattern_table,
)
from sandgate.security.pipeline import SecurityPipeline
from sandgate.security.safety import validate_safety
from sandgate.security.sanitizer import sanitize
from sandgate.security.vault import ContentVault, is_sealed

__all__ = [
    "DEFAULT_PATTERN_TABLE",
    "ContentScan",
    "ContentVault",
    "EncryptedPayload",
    "Finding",
    "FindingCategory",
    "PatternRule",
    "PatternTable",
    "ProcessedFile",
    "SafetyReport",
    "SanitizationResult",
    "SecurityConfig",
    "SecurityPipeline",
    "SecurityStatus",
    "is_sealed",
    "load_pattern_table",
    "sanitize",
    "validate_safety",
]
