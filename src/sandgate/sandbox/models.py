"""Data models for the sandbox subsystem."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path  # noqa: TC003
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SandboxConfig(BaseModel):
    """Configuration for the sandbox mirror and command execution."""

    state_dir: str = Field(default=".sandgate", description="Hidden per-project state directory.")
    mirror_dir: str = Field(default="sandbox", description="Mirror directory inside the state dir.")
    context_files: list[str] = Field(
        default_factory=lambda: [
            "package.json",
            "tsconfig.json",
            "jest.config.js",
            "jest.config.ts",
            ".eslintrc.js",
            ".eslintrc.json",
            "pyproject.toml",
            "setup.cfg",
            "requirements.txt",
            "pytest.ini",
            "tox.ini",
            "conftest.py",
            "Cargo.toml",
            "go.mod",
            "README.md",
        ],
        description="Build/config manifests copied into the mirror on initialise.",
    )
    temp_patterns: list[str] = Field(
        default_factory=lambda: [
            "*.tmp",
            "*.pyc",
            "__pycache__",
            ".pytest_cache",
            ".mypy_cache",
            "*.orig",
            "*.rej",
        ],
        description="File or directory name globs removed by a non-full clean.",
    )
    timeout: float = Field(default=30.0, gt=0, description="Default command timeout in seconds.")
    env: dict[str, str] = Field(default_factory=dict, description="Environment variables to inject.")


class OperationKind(str, Enum):
    WRITE = "write"
    READ = "read"
    DEPLOY = "deploy"
    RESET = "reset"
    CLEAN = "clean"


class OperationRecord(BaseModel):
    """One append-only operation-log entry."""

    operation: OperationKind
    path: str
    timestamp: datetime = Field(default_factory=_utcnow)
    success: bool
    error: str = ""


class SandboxSession(BaseModel):
    """Identifies a project root and its isolated mirror."""

    id: str
    project_root: Path
    mirror_path: Path
    created_at: datetime = Field(default_factory=_utcnow)
    is_active: bool = False


class SandboxStatus(BaseModel):
    """Snapshot of a session for status reporting."""

    id: str
    project_root: str
    mirror_path: str
    is_active: bool
    created_at: datetime
    files_in_mirror: int
    operations: int
    last_operation: OperationRecord | None = None


class ExecutionRequest(BaseModel):
    """A request to run a command inside the sandbox mirror."""

    command: list[str] = Field(..., description="Command and arguments to execute.")
    cwd: Path | None = Field(default=None, description="Working directory (defaults to the mirror).")
    stdin: str | None = Field(default=None, description="Optional stdin input.")
    timeout: float | None = Field(default=None, description="Per-request timeout override.")
    env: dict[str, str] = Field(default_factory=dict, description="Extra env vars for this request.")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Arbitrary metadata.")


class CommandResult(BaseModel):
    """Result of a command run in the sandbox."""

    exit_code: int = Field(..., description="Process exit code.")
    stdout: str = Field(default="", description="Captured stdout.")
    stderr: str = Field(default="", description="Captured stderr.")
    duration: float = Field(default=0.0, description="Wall-clock seconds.")

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0
