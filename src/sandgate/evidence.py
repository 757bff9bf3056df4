"""Evidence store — one JSON record per evaluation under ``<state>/evidence``.

Records hold the sanitized candidate content, never the raw text.  When the
security pipeline says a record must be sealed, the content is encrypted
with the project's :class:`~sandgate.security.vault.ContentVault`; if that
fails the record is skipped rather than written in plaintext.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from sandgate.errors import EncryptionFailureError, IsolationError
from sandgate.gate.models import DeploymentAction  # noqa: TC001
from sandgate.scoring.models import ConfidenceMetrics  # noqa: TC001

if TYPE_CHECKING:
    from pathlib import Path

    from sandgate.gate.models import DeploymentDecision
    from sandgate.scoring.models import Evaluation
    from sandgate.security.pipeline import SecurityPipeline

logger = logging.getLogger(__name__)

_SLUG = re.compile(r"[^A-Za-z0-9._-]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceRecord(BaseModel):
    """Persisted summary of one evaluation."""

    id: str
    file: str
    intent: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    confidence: int
    metrics: ConfidenceMetrics
    action: DeploymentAction
    risks: list[str] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)
    sensitive_data_found: bool = False
    malicious_patterns: bool = False
    content: str
    is_encrypted: bool = False


class EvidenceStore:
    """Writes and reads :class:`EvidenceRecord` files."""

    def __init__(self, directory: Path, pipeline: SecurityPipeline) -> None:
        self._directory = directory
        self._pipeline = pipeline

    @property
    def directory(self) -> Path:
        return self._directory

    def record(self, evaluation: Evaluation, decision: DeploymentDecision) -> Path | None:
        """Persist *evaluation*; returns the record path, or ``None`` if skipped."""
        evidence = evaluation.evidence
        sanitization = evidence.sanitization
        try:
            content, is_encrypted = self._pipeline.prepare_for_storage(evidence.path, sanitization)
        except EncryptionFailureError as exc:
            logger.error("Skipping evidence record for %s: %s", evidence.path, exc)
            return None

        record = EvidenceRecord(
            id=uuid.uuid4().hex[:12],
            file=evidence.path,
            intent=evidence.intent,
            confidence=evaluation.confidence,
            metrics=evaluation.metrics,
            action=decision.action,
            risks=evaluation.assessment.risk.describe(),
            findings=[f"secret:{k}" for k in sanitization.secret_kinds]
            + [f"malicious:{c}" for c in sanitization.malicious_categories],
            sensitive_data_found=sanitization.sensitive_data_found,
            malicious_patterns=sanitization.malicious_patterns,
            content=content,
            is_encrypted=is_encrypted,
        )
        stamp = record.created_at.strftime("%Y%m%dT%H%M%S")
        target = self._directory / f"{stamp}-{_SLUG.sub('_', evidence.path)}-{record.id}.json"
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(record.model_dump_json(indent=2))
        except OSError as exc:
            raise IsolationError(f"Cannot write evidence record {target.name}: {exc}") from exc
        logger.debug("Recorded evidence %s (encrypted=%s)", target.name, is_encrypted)
        return target

    def records(self) -> list[EvidenceRecord]:
        """All readable records, oldest first."""
        if not self._directory.is_dir():
            return []
        loaded: list[EvidenceRecord] = []
        for path in sorted(self._directory.glob("*.json")):
            try:
                loaded.append(EvidenceRecord.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError) as exc:
                logger.warning("Ignoring unreadable evidence record %s: %s", path.name, exc)
        return loaded

    def content_of(self, record: EvidenceRecord) -> str:
        """Return the stored (sanitized) content, unsealing it if needed."""
        return self._pipeline.retrieve_content(record.content, record.is_encrypted)
