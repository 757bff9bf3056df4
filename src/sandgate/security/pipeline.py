"""SecurityPipeline — coordinates path checks, safety, sanitisation, and sealing.

Same wrapper pattern as the sandbox layer: the pipeline owns no policy of its
own, it composes an :class:`AccessPolicyEngine`, a :class:`PatternTable`, and
an optional :class:`ContentVault` handed in by the caller.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sandgate.errors import EncryptionFailureError
from sandgate.security.models import (
    ContentScan,
    ProcessedFile,
    SafetyReport,
    SanitizationResult,
    SecurityConfig,
    SecurityLevel,
    SecurityStatus,
    SelfTestCase,
    SelfTestReport,
)
from sandgate.security.patterns import DEFAULT_PATTERN_TABLE, PatternTable, load_pattern_table
from sandgate.security.safety import validate_safety
from sandgate.security.sanitizer import sanitize

if TYPE_CHECKING:
    from sandgate.policy.access import AccessPolicyEngine
    from sandgate.policy.models import PathCheck
    from sandgate.security.vault import ContentVault

logger = logging.getLogger(__name__)

_SELF_TEST_SECRET = 'const apiKey = "sk-1234567890abcdef1234567890abcdef";'


class SecurityPipeline:
    """Screen candidate content for secrets, malicious constructs, and corruption."""

    def __init__(
        self,
        engine: AccessPolicyEngine,
        *,
        config: SecurityConfig | None = None,
        vault: ContentVault | None = None,
        table: PatternTable | None = None,
    ) -> None:
        self._engine = engine
        self._config = config or SecurityConfig()
        self._vault = vault
        if table is None:
            table = (
                load_pattern_table(Path(self._config.pattern_table))
                if self._config.pattern_table
                else DEFAULT_PATTERN_TABLE
            )
        self._table = table

    @property
    def config(self) -> SecurityConfig:
        return self._config

    @property
    def table(self) -> PatternTable:
        return self._table

    @property
    def vault(self) -> ContentVault | None:
        return self._vault

    # ------------------------------------------------------------------
    # Content checks
    # ------------------------------------------------------------------

    def sanitize(self, content: str, label: str = "") -> SanitizationResult:
        return sanitize(
            content,
            label,
            self._table,
            detect_secrets=self._config.enable_sanitization,
            detect_malicious=self._config.enable_malicious_detection,
        )

    def validate_safety(self, content: str) -> SafetyReport:
        cfg = self._config
        return validate_safety(
            content,
            max_size=cfg.max_content_size,
            binary_ratio=cfg.binary_ratio,
            min_unique_ratio=cfg.min_unique_line_ratio,
            min_lines=cfg.repetition_min_lines,
        )

    def scan(self, content: str, label: str = "") -> ContentScan:
        """Sanitise and safety-check *content* in one call."""
        return ContentScan(
            sanitization=self.sanitize(content, label),
            safety=self.validate_safety(content),
        )

    def validate_file_path(self, path: str | Path) -> PathCheck:
        """Validate an already-materialised file for scanning."""
        return self._engine.check_existing(path)

    # ------------------------------------------------------------------
    # Sealing
    # ------------------------------------------------------------------

    def should_seal(self, path: str, result: SanitizationResult) -> bool:
        if self._config.encrypt_sensitive and result.sensitive_data_found:
            return True
        return any(fnmatch.fnmatchcase(path, pattern) for pattern in self._config.always_seal)

    def prepare_for_storage(self, path: str, result: SanitizationResult) -> tuple[str, bool]:
        """Return ``(content, is_encrypted)`` ready to persist.

        Raises:
            EncryptionFailureError: When sealing is required but fails.  The
                caller must then skip persistence; plaintext is never a fallback.
        """
        if not self.should_seal(path, result):
            return result.sanitized_content, False
        if self._vault is None:
            raise EncryptionFailureError(f"Sealing required for {path} but no vault is configured")
        return self._vault.encrypt(result.sanitized_content), True

    def retrieve_content(self, stored: str, is_encrypted: bool) -> str:
        if not is_encrypted:
            return stored
        if self._vault is None:
            raise EncryptionFailureError("Content is encrypted but no vault is configured")
        return self._vault.decrypt(stored)

    # ------------------------------------------------------------------
    # File processing
    # ------------------------------------------------------------------

    def process_file(self, path: str | Path) -> ProcessedFile:
        """Validate, read, safety-check, sanitise, and (if needed) seal a file."""
        display = str(path)
        check = self.validate_file_path(path)
        if not check.is_valid:
            return ProcessedFile(
                success=False,
                path=display,
                reason=check.reason or "File access denied",
                security_issues=["file_access_denied"],
                recommendations=[check.hint] if check.hint else [],
            )
        assert check.sanitized_path is not None
        relative = check.relative_path or display

        try:
            content = check.sanitized_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.error("File processing failed for %s: %s", relative, exc)
            return ProcessedFile(
                success=False,
                path=relative,
                reason="File processing error",
                security_issues=["processing_error"],
            )

        safety = self.validate_safety(content)
        if not safety.is_safe:
            return ProcessedFile(
                success=False,
                path=relative,
                reason="Content safety validation failed",
                security_issues=safety.risks,
                recommendations=safety.recommendations,
            )

        result = self.sanitize(content, relative)
        try:
            stored, is_encrypted = self.prepare_for_storage(relative, result)
        except EncryptionFailureError as exc:
            logger.error("Sealing failed for %s: %s", relative, exc)
            return ProcessedFile(
                success=False,
                path=relative,
                sanitization=result,
                reason=str(exc),
                security_issues=["encryption_failure"],
            )

        self.audit(
            "file_processed",
            {
                "path": relative,
                "sensitive_data_found": result.sensitive_data_found,
                "malicious_patterns": result.malicious_patterns,
                "redaction_count": result.redaction_count,
                "is_encrypted": is_encrypted,
            },
        )
        issues = [f"secret:{k}" for k in result.secret_kinds]
        issues += [f"malicious:{c}" for c in result.malicious_categories]
        return ProcessedFile(
            success=True,
            path=relative,
            content=stored,
            is_encrypted=is_encrypted,
            sanitization=result,
            security_issues=issues,
        )

    # ------------------------------------------------------------------
    # Audit / self-test
    # ------------------------------------------------------------------

    def audit(self, event: str, data: dict[str, Any]) -> None:
        if not self._config.audit_logging:
            return
        level = security_level(data)
        logger.info("Security audit: %s level=%s %s", event, level.value, data)

    def status(self) -> SecurityStatus:
        return SecurityStatus(
            vault=self._vault.status() if self._vault is not None else None,
            pattern_table_version=self._table.version,
            secret_rules=len(self._table.secrets),
            malicious_rules=len(self._table.malicious),
            config=self._config,
        )

    def self_test(self) -> SelfTestReport:
        """Exercise encryption, sanitisation, and traversal blocking."""
        cases: list[SelfTestCase] = []

        if self._vault is not None:
            try:
                sample = "sandgate-self-test"
                ok = self._vault.decrypt(self._vault.encrypt(sample)) == sample
                cases.append(SelfTestCase(name="encryption", passed=ok, error="" if ok else "Decryption mismatch"))
            except EncryptionFailureError as exc:
                cases.append(SelfTestCase(name="encryption", passed=False, error=str(exc)))

        sanitized = self.sanitize(_SELF_TEST_SECRET, "self-test")
        ok = sanitized.sensitive_data_found and "[REDACTED_" in sanitized.sanitized_content
        cases.append(
            SelfTestCase(name="content_sanitization", passed=ok, error="" if ok else "Sanitization failed")
        )

        traversal = self._engine.check_path("../../../etc/passwd")
        ok = not traversal.is_valid
        cases.append(
            SelfTestCase(name="file_access_control", passed=ok, error="" if ok else "Path traversal not blocked")
        )

        return SelfTestReport(passed=all(c.passed for c in cases), tests=cases)


def security_level(data: dict[str, Any]) -> SecurityLevel:
    """Severity of an audit event from its payload."""
    if data.get("malicious_patterns"):
        return SecurityLevel.CRITICAL
    if data.get("sensitive_data_found"):
        return SecurityLevel.HIGH
    if data.get("security_issues"):
        return SecurityLevel.MEDIUM
    return SecurityLevel.LOW
