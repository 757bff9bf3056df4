"""AccessPolicyEngine — evaluates paths and content against an :class:`AccessPolicy`.

Pure logic apart from the existence checks in :meth:`check_existing` and
:meth:`validate_project_directory`.  Resolution order for every path:

1. Canonicalise relative to the project root; anything resolving outside the
   root is a ``PATH_VIOLATION`` regardless of extension or content.
2. Blocked patterns (exact, directory prefix, or glob), first match wins.
3. Extension allow-list.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path, PurePosixPath

from sandgate.errors import PathViolationError, PolicyViolationError, ReasonCode
from sandgate.policy.models import (
    PROJECT_MANIFESTS,
    SENSITIVE_ROOT_FILES,
    AccessPolicy,
    PathCheck,
    ProjectCheck,
)

logger = logging.getLogger(__name__)


class AccessPolicyEngine:
    """Validate paths and content for a single project root."""

    def __init__(self, policy: AccessPolicy, project_root: str | Path) -> None:
        self._policy = policy
        self._root = Path(project_root).expanduser().resolve()

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    @property
    def project_root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_path(self, path: str | Path) -> PathCheck:
        """Validate *path* for access without touching the filesystem."""
        raw = str(path)
        if not raw or "\x00" in raw:
            return _deny(ReasonCode.PATH_VIOLATION, "Empty or malformed path")

        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = self._root / candidate
        resolved = candidate.resolve()

        if not resolved.is_relative_to(self._root):
            logger.warning("Path outside project root rejected: %s", raw)
            return _deny(
                ReasonCode.PATH_VIOLATION,
                "Directory traversal or path outside project root",
                hint="Use a path relative to the project root without '..' segments.",
            )

        relative = resolved.relative_to(self._root).as_posix()
        if relative in ("", "."):
            return _deny(ReasonCode.PATH_VIOLATION, "Path refers to the project root itself")

        blocked = self._matching_block(relative)
        if blocked is not None:
            logger.warning("Blocked path rejected: %s (pattern %s)", relative, blocked)
            return _deny(
                ReasonCode.POLICY_VIOLATION,
                f"Path is in blocked list ({blocked})",
                hint="Blocked locations hold build output, VCS data, or secrets and cannot be used.",
                relative=relative,
            )

        if not self.is_allowed_name(resolved.name):
            ext = resolved.suffix.lower()
            return _deny(
                ReasonCode.POLICY_VIOLATION,
                f"File extension '{ext}' not allowed",
                hint="Use one of the allowed source, config, or documentation extensions.",
                relative=relative,
            )

        return PathCheck(is_valid=True, sanitized_path=resolved, relative_path=relative)

    def check_content(self, path: str | Path, content: str) -> PathCheck:
        """Validate *path* plus the size of candidate *content*."""
        result = self.check_path(path)
        if not result.is_valid:
            return result

        size = len(content.encode("utf-8"))
        if size > self._policy.max_file_size:
            return _deny(
                ReasonCode.POLICY_VIOLATION,
                f"Content too large ({size} bytes > {self._policy.max_file_size} bytes)",
                hint="Reduce file size or split the change into smaller files.",
                relative=result.relative_path,
            )
        return result

    def check_existing(self, path: str | Path) -> PathCheck:
        """Validate an already-materialised file (existence, type, and size)."""
        result = self.check_path(path)
        if not result.is_valid:
            return result
        assert result.sanitized_path is not None

        target = result.sanitized_path
        if not target.exists():
            return _deny(
                ReasonCode.NOT_FOUND,
                "File does not exist",
                relative=result.relative_path,
            )
        if not target.is_file():
            return _deny(
                ReasonCode.POLICY_VIOLATION,
                "Path is not a regular file",
                relative=result.relative_path,
            )
        size = target.stat().st_size
        if size > self._policy.max_file_size:
            return _deny(
                ReasonCode.POLICY_VIOLATION,
                f"File too large ({size} bytes > {self._policy.max_file_size} bytes)",
                hint="Reduce file size or exclude the file.",
                relative=result.relative_path,
            )
        return result

    # ------------------------------------------------------------------
    # Raising variants
    # ------------------------------------------------------------------

    def enforce_path(self, path: str | Path) -> PathCheck:
        """Like :meth:`check_path` but raise on rejection."""
        return _raise_if_invalid(str(path), self.check_path(path))

    def enforce_content(self, path: str | Path, content: str) -> PathCheck:
        """Like :meth:`check_content` but raise on rejection."""
        return _raise_if_invalid(str(path), self.check_content(path, content))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def is_allowed_name(self, name: str) -> bool:
        """Return ``True`` if *name* passes the extension/file-name allow-list."""
        if name in self._policy.allowed_filenames:
            return True
        return PurePosixPath(name).suffix.lower() in self._policy.allowed_extensions

    def is_blocked(self, relative: str) -> bool:
        return self._matching_block(relative) is not None

    def _matching_block(self, relative: str) -> str | None:
        """Return the first blocked pattern matching *relative*, if any.

        Plain patterns match the whole path or a directory prefix.  Glob
        patterns match the whole path or any single path segment, so
        ``*.pem`` blocks ``certs/server.pem`` too.
        """
        segments = relative.split("/")
        for pattern in sorted(self._policy.blocked_patterns):
            if relative == pattern or relative.startswith(pattern + "/"):
                return pattern
            if not _is_glob(pattern):
                continue
            if fnmatch.fnmatchcase(relative, pattern):
                return pattern
            if "/" not in pattern and any(fnmatch.fnmatchcase(seg, pattern) for seg in segments):
                return pattern
        return None

    def watch_patterns(self) -> list[str]:
        """Include/exclude globs for callers that run a file watcher."""
        exts = ",".join(sorted(e.lstrip(".") for e in self._policy.allowed_extensions))
        patterns = [f"**/*.{{{exts}}}"]
        for blocked in sorted(self._policy.blocked_patterns):
            if _is_glob(blocked):
                patterns.append(f"!**/{blocked}")
            else:
                patterns.append(f"!{blocked}/**")
        return patterns

    def validate_project_directory(self) -> ProjectCheck:
        """Check that the project root is usable and report soft warnings."""
        if not self._root.exists():
            return ProjectCheck(is_valid=False, reason="Project directory does not exist")
        if not self._root.is_dir():
            return ProjectCheck(is_valid=False, reason="Path is not a directory")

        warnings: list[str] = []
        if not any((self._root / name).exists() for name in PROJECT_MANIFESTS):
            warnings.append(
                "No common project files detected (package.json, pyproject.toml, etc.)"
            )

        sensitive = [name for name in SENSITIVE_ROOT_FILES if (self._root / name).exists()]
        if sensitive:
            warnings.append(
                f"Sensitive files detected: {', '.join(sensitive)} (excluded from the sandbox)"
            )

        return ProjectCheck(is_valid=True, warnings=warnings)


def _is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?[")


def _deny(
    code: ReasonCode,
    reason: str,
    *,
    hint: str = "",
    relative: str | None = None,
) -> PathCheck:
    return PathCheck(is_valid=False, code=code, reason=reason, hint=hint, relative_path=relative)


def _raise_if_invalid(path: str, result: PathCheck) -> PathCheck:
    if result.is_valid:
        return result
    if result.code == ReasonCode.PATH_VIOLATION:
        raise PathViolationError(path, result.reason, hint=result.hint or None)
    raise PolicyViolationError(path, result.reason, hint=result.hint or None)
