"""SandboxIsolation — path-mapping proxy between a project and its mirror.

Every read and write is mediated here.  Writes land only in the mirror
(``<project>/.sandgate/sandbox``); the sole real-tree write is
:meth:`SandboxIsolation.promote`, which the deploy path calls after a fresh
policy re-check.

Concurrency: one writer per session.  ``write_file`` and ``promote`` take
the session write lock; ``reset`` and ``clean`` refuse to run while it is
held (:class:`SandboxBusyError`) and rebuild the mirror in a staging
directory so a half-reset mirror is never visible.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import os
import shutil
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from sandgate.errors import (
    IsolationError,
    PathViolationError,
    PolicyViolationError,
    SandboxBusyError,
    SandboxFileNotFoundError,
)
from sandgate.sandbox.models import (
    OperationKind,
    OperationRecord,
    SandboxConfig,
    SandboxSession,
    SandboxStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sandgate.policy.access import AccessPolicyEngine

logger = logging.getLogger(__name__)

OPERATION_LOG_NAME = "operations.log"
INTENT_FILE_NAME = "intents.json"


class SandboxIsolation:
    """Isolated on-disk mirror of a project with an append-only operation log."""

    def __init__(
        self,
        engine: AccessPolicyEngine,
        config: SandboxConfig | None = None,
    ) -> None:
        self._engine = engine
        self._config = config or SandboxConfig()
        root = engine.project_root
        self._state_dir = root / self._config.state_dir
        self._session = SandboxSession(
            id=uuid.uuid4().hex[:12],
            project_root=root,
            mirror_path=self._state_dir / self._config.mirror_dir,
        )
        self._operations: list[OperationRecord] = []
        self._write_lock = threading.Lock()
        self._log_lock = threading.Lock()

    @property
    def session(self) -> SandboxSession:
        return self._session

    @property
    def project_root(self) -> Path:
        return self._session.project_root

    @property
    def mirror_root(self) -> Path:
        return self._session.mirror_path

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    @property
    def operation_log_path(self) -> Path:
        return self._state_dir / OPERATION_LOG_NAME

    @property
    def intent_path(self) -> Path:
        return self._state_dir / INTENT_FILE_NAME

    @property
    def engine(self) -> AccessPolicyEngine:
        return self._engine

    def operations(self) -> list[OperationRecord]:
        """Return a copy of the in-memory operation log."""
        with self._log_lock:
            return list(self._operations)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create (or reuse) the mirror and copy context files.  Idempotent."""
        try:
            self.mirror_root.mkdir(parents=True, exist_ok=True)
            self._sync_context_files(self.mirror_root)
        except OSError as exc:
            raise IsolationError(f"Sandbox initialization failed: {exc}") from exc
        self._session.is_active = True
        logger.debug("Sandbox initialized at %s", self.mirror_root)

    def reset(self) -> None:
        """Discard the mirror and resynchronise it from the real tree."""
        with self._exclusive("reset"):
            staging = self._state_dir / f"{self._config.mirror_dir}.staging"
            retired = self._state_dir / f"{self._config.mirror_dir}.old"
            try:
                _remove_tree(staging)
                _remove_tree(retired)
                staging.mkdir(parents=True)
                self._sync_context_files(staging)
                if self.mirror_root.exists():
                    self.mirror_root.rename(retired)
                staging.rename(self.mirror_root)
                _remove_tree(retired)
                _remove_tree(self.intent_path)
            except OSError as exc:
                self._record(OperationKind.RESET, ".", success=False, error=str(exc))
                raise IsolationError(f"Sandbox reset failed: {exc}") from exc
            self._session.is_active = True
            self._record(OperationKind.RESET, ".", success=True)
        logger.debug("Sandbox reset to project state")

    def clean(self, all: bool = False) -> int:  # noqa: A002
        """Remove temporary artifacts, or the whole mirror when *all* is set.

        Returns the number of removed entries.
        """
        with self._exclusive("clean"):
            try:
                if all:
                    removed = 1 if self.mirror_root.exists() else 0
                    _remove_tree(self.mirror_root)
                    _remove_tree(self.intent_path)
                    self.mirror_root.mkdir(parents=True, exist_ok=True)
                else:
                    removed = self._remove_temp_artifacts()
            except OSError as exc:
                self._record(OperationKind.CLEAN, ".", success=False, error=str(exc))
                raise IsolationError(f"Sandbox cleanup failed: {exc}") from exc
            self._record(OperationKind.CLEAN, "*" if all else ".", success=True)
        logger.debug("Sandbox cleaned (all=%s, removed=%d)", all, removed)
        return removed

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def write_file(self, path: str | Path, content: str, *, intent: str | None = None) -> Path:
        """Write candidate *content* into the mirror.

        When *intent* is given it is stored next to the mirror file, replacing
        whatever intent the previous write of the same path carried.

        Raises:
            PathViolationError: If *path* resolves outside the project root.
            PolicyViolationError: If the extension, location, or size is disallowed.
            IsolationError: On any other I/O failure.
        """
        try:
            check = self._engine.enforce_content(path, content)
        except (PathViolationError, PolicyViolationError) as exc:
            self._record(OperationKind.WRITE, str(path), success=False, error=exc.code.value)
            raise
        relative = check.relative_path
        assert relative is not None

        with self._write_lock:
            target = self.mirror_root / relative
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as exc:
                self._record(OperationKind.WRITE, relative, success=False, error=str(exc))
                raise IsolationError(f"Sandbox write failed for {relative}: {exc}") from exc
            if intent is not None:
                self._store_intent(relative, intent)
            self._record(OperationKind.WRITE, relative, success=True)
        logger.debug("Sandbox write: %s", relative)
        return target

    def read_file(self, path: str | Path) -> str:
        """Read from the mirror, falling back to the real tree (read-only)."""
        relative = self.relative_path(path)
        for base in (self.mirror_root, self.project_root):
            candidate = base / relative
            if candidate.is_file():
                try:
                    content = candidate.read_text(encoding="utf-8", errors="replace")
                except OSError as exc:
                    self._record(OperationKind.READ, relative, success=False, error=str(exc))
                    raise IsolationError(f"Sandbox read failed for {relative}: {exc}") from exc
                self._record(OperationKind.READ, relative, success=True)
                return content

        self._record(OperationKind.READ, relative, success=False, error="not found")
        raise SandboxFileNotFoundError(relative)

    def read_original(self, path: str | Path) -> str | None:
        """Return the real-tree version of *path*, or ``None`` if absent."""
        relative = self.relative_path(path)
        original = self.project_root / relative
        if not original.is_file():
            return None
        try:
            return original.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def intent_for(self, path: str | Path) -> str:
        """Intent recorded with the last write of *path*, or an empty string."""
        return self._load_intents().get(self.relative_path(path), "")

    def exists_in_mirror(self, path: str | Path) -> bool:
        return (self.mirror_root / self.relative_path(path)).is_file()

    def mirror_path_for(self, path: str | Path) -> Path:
        return self.mirror_root / self.relative_path(path)

    def relative_path(self, path: str | Path) -> str:
        """Canonical project-relative path; raises on path or policy violations."""
        check = self._engine.enforce_path(path)
        assert check.relative_path is not None
        return check.relative_path

    def list_files(self) -> list[str]:
        """Mirror files (project-relative, sorted), excluding temp artifacts."""
        if not self.mirror_root.exists():
            return []
        files: list[str] = []
        for entry in self.mirror_root.rglob("*"):
            if not entry.is_file():
                continue
            relative = entry.relative_to(self.mirror_root)
            if any(self._is_temp(part) for part in relative.parts):
                continue
            files.append(relative.as_posix())
        return sorted(files)

    def promote(self, path: str | Path) -> Path:
        """Copy a mirror file into the real project tree.

        The policy is re-checked against the current mirror content
        immediately before writing.
        """
        relative = self.relative_path(path)
        source = self.mirror_root / relative
        if not source.is_file():
            raise SandboxFileNotFoundError(relative, hint="Nothing to deploy for this path.")

        with self._write_lock:
            try:
                content = source.read_text(encoding="utf-8")
            except OSError as exc:
                raise IsolationError(f"Cannot read mirror file {relative}: {exc}") from exc
            try:
                check = self._engine.enforce_content(relative, content)
            except (PathViolationError, PolicyViolationError) as exc:
                self._record(OperationKind.DEPLOY, relative, success=False, error=exc.code.value)
                raise
            assert check.sanitized_path is not None
            target = check.sanitized_path
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as exc:
                self._record(OperationKind.DEPLOY, relative, success=False, error=str(exc))
                raise IsolationError(f"Deployment write failed for {relative}: {exc}") from exc
            self._record(OperationKind.DEPLOY, relative, success=True)
        logger.info("Deployed to real files: %s", relative)
        return target

    def status(self) -> SandboxStatus:
        ops = self.operations()
        return SandboxStatus(
            id=self._session.id,
            project_root=str(self.project_root),
            mirror_path=str(self.mirror_root),
            is_active=self._session.is_active,
            created_at=self._session.created_at,
            files_in_mirror=len(self.list_files()),
            operations=len(ops),
            last_operation=ops[-1] if ops else None,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if not self._write_lock.acquire(blocking=False):
            raise SandboxBusyError(f"Cannot {operation} while a write is in flight")
        try:
            yield
        finally:
            self._write_lock.release()

    def _sync_context_files(self, destination: Path) -> None:
        for name in self._config.context_files:
            source = self.project_root / name
            if not source.is_file():
                continue
            target = destination / name
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)

    def _is_temp(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self._config.temp_patterns)

    def _remove_temp_artifacts(self) -> int:
        if not self.mirror_root.exists():
            return 0
        removed = 0
        # Deepest first so directories are handled after their contents.
        for entry in sorted(self.mirror_root.rglob("*"), key=lambda p: len(p.parts), reverse=True):
            if not self._is_temp(entry.name) or not entry.exists():
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        return removed

    def _load_intents(self) -> dict[str, str]:
        try:
            data = json.loads(self.intent_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable intent file: %s", exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _store_intent(self, relative: str, intent: str) -> None:
        intents = self._load_intents()
        intents[relative] = intent
        staging = self.intent_path.with_suffix(".tmp")
        try:
            fd = os.open(staging, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(intents, fh, indent=2, sort_keys=True)
            os.replace(staging, self.intent_path)
        except OSError as exc:
            raise IsolationError(f"Cannot record intent for {relative}: {exc}") from exc

    def _record(self, operation: OperationKind, path: str, *, success: bool, error: str = "") -> None:
        record = OperationRecord(operation=operation, path=path, success=success, error=error)
        with self._log_lock:
            self._operations.append(record)
            try:
                self._state_dir.mkdir(parents=True, exist_ok=True)
                with self.operation_log_path.open("a", encoding="utf-8") as fh:
                    fh.write(record.model_dump_json() + "\n")
            except OSError as exc:
                logger.warning("Cannot append to operation log: %s", exc)


def _remove_tree(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()
