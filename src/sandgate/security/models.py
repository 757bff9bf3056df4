"""Data models for the content security pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class FindingCategory(str, Enum):
    """Which detector set produced a finding."""

    SECRET = "secret"
    MALICIOUS = "malicious"


class SecurityLevel(str, Enum):
    """Severity attached to audit events."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityConfig(BaseModel):
    """Configuration for sanitisation, safety checks, and encryption at rest."""

    enable_sanitization: bool = Field(default=True, description="Run the sensitive-data detectors.")
    enable_malicious_detection: bool = Field(
        default=True, description="Run the malicious-pattern detectors."
    )
    encrypt_sensitive: bool = Field(
        default=True, description="Seal persisted content whenever sensitive data was found."
    )
    always_seal: list[str] = Field(
        default_factory=list,
        description="Glob patterns of paths whose persisted content is always sealed.",
    )
    max_content_size: int = Field(
        default=1_000_000, gt=0, description="Content size ceiling (characters) for safety checks."
    )
    binary_ratio: float = Field(
        default=0.3, gt=0, le=1, description="Non-printable ratio above which content is binary."
    )
    min_unique_line_ratio: float = Field(
        default=0.1, ge=0, le=1, description="Unique-line ratio below which content is repetitive."
    )
    repetition_min_lines: int = Field(
        default=10, ge=1, description="Minimum line count before the repetition check applies."
    )
    kdf_iterations: int = Field(
        default=200_000, ge=1_000, description="PBKDF2 iterations for deriving the sealing key."
    )
    pattern_table: str | None = Field(
        default=None, description="Optional YAML file replacing the built-in pattern table."
    )
    audit_logging: bool = Field(default=True, description="Emit security audit log records.")


class Finding(BaseModel):
    """A single detector hit, with offsets into the original content."""

    category: FindingCategory
    kind: str = Field(..., description="Secret type or malicious category.")
    rule: str = Field(..., description="Name of the pattern rule that matched.")
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)


class SanitizationResult(BaseModel):
    """Outcome of sanitising one content unit.  Never persisted unredacted."""

    sanitized_content: str
    sensitive_data_found: bool = False
    malicious_patterns: bool = False
    redaction_count: int = 0
    findings: list[Finding] = Field(default_factory=list)
    label: str = ""
    table_version: str = ""

    @property
    def secret_kinds(self) -> list[str]:
        return sorted({f.kind for f in self.findings if f.category == FindingCategory.SECRET})

    @property
    def malicious_categories(self) -> list[str]:
        return sorted({f.kind for f in self.findings if f.category == FindingCategory.MALICIOUS})


class SafetyReport(BaseModel):
    """Outcome of the size / binary / repetition heuristics."""

    is_safe: bool
    risks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ContentScan(BaseModel):
    """Sanitisation and safety results for one content unit."""

    sanitization: SanitizationResult
    safety: SafetyReport


class EncryptedPayload(BaseModel):
    """Sealed blob plus the metadata needed to open it."""

    version: int = 1
    algorithm: str = "AES-256-GCM"
    created_at: datetime
    nonce: str = Field(..., description="Base64 nonce.")
    ciphertext: str = Field(..., description="Base64 ciphertext including the GCM tag.")


class VaultStatus(BaseModel):
    """Introspection data for the encryption subsystem."""

    initialized: bool
    key_file: str
    algorithm: str
    kdf: str
    iterations: int
    created_at: datetime | None = None


class SecurityStatus(BaseModel):
    """Active security configuration, detector table, and vault state."""

    vault: VaultStatus | None = None
    pattern_table_version: str
    secret_rules: int
    malicious_rules: int
    config: SecurityConfig


class ProcessedFile(BaseModel):
    """Result of scanning an existing project file."""

    success: bool
    path: str
    content: str | None = None
    is_encrypted: bool = False
    sanitization: SanitizationResult | None = None
    reason: str = ""
    security_issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class SelfTestCase(BaseModel):
    name: str
    passed: bool
    error: str = ""


class SelfTestReport(BaseModel):
    passed: bool
    tests: list[SelfTestCase] = Field(default_factory=list)
