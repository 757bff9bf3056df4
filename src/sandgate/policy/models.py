"""Data models for the access policy."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sandgate.errors import ReasonCode

DEFAULT_ALLOWED_EXTENSIONS: frozenset[str] = frozenset(
    {
        # Source
        ".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs",
        ".py", ".go", ".rs", ".java", ".c", ".cpp", ".h", ".hpp",
        ".php", ".rb", ".swift", ".kt", ".dart", ".cs", ".scala",
        # Docs / data
        ".md", ".txt", ".json", ".yaml", ".yml", ".toml",
        # Web
        ".html", ".css", ".scss", ".sass", ".less", ".vue", ".svelte",
        # Query / schema
        ".sql", ".graphql", ".proto",
        # Shell
        ".sh", ".bash", ".zsh", ".fish",
    }
)

DEFAULT_ALLOWED_FILENAMES: frozenset[str] = frozenset(
    {"Dockerfile", "Makefile", ".gitignore", ".gitattributes"}
)

DEFAULT_BLOCKED_PATTERNS: frozenset[str] = frozenset(
    {
        # Tooling / VCS / build output
        "node_modules", ".git", ".svn", ".hg",
        "dist", "build", "out", "target", "bin", "obj",
        ".next", ".nuxt", "coverage", ".nyc_output",
        "tmp", "temp", ".cache", ".idea", ".venv", "venv",
        ".vscode/settings.json",
        ".sandgate",
        # Logs
        "logs", "*.log",
        # Secrets and key material
        ".env*", "secrets", "credentials", "keys",
        "*.key", "*.pem", "*.p12", "*.pfx", "*.crt", "*.cert", "*.cer",
        "id_rsa*", "id_dsa*", "id_ecdsa*", "id_ed25519*",
    }
)

PROJECT_MANIFESTS: tuple[str, ...] = (
    "package.json",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "composer.json",
    "Gemfile",
    "setup.py",
    "pyproject.toml",
)

SENSITIVE_ROOT_FILES: tuple[str, ...] = (
    ".env",
    ".env.local",
    "secrets.json",
    "credentials.json",
    "id_rsa",
    "id_dsa",
)


class AccessPolicy(BaseModel):
    """Allow-listed extensions, blocked path patterns, and a size ceiling.

    Immutable for the lifetime of a sandbox session.
    """

    model_config = ConfigDict(frozen=True)

    allowed_extensions: frozenset[str] = Field(
        default=DEFAULT_ALLOWED_EXTENSIONS,
        description="Lower-case file extensions (with leading dot) that may be read or written.",
    )
    allowed_filenames: frozenset[str] = Field(
        default=DEFAULT_ALLOWED_FILENAMES,
        description="Extension-less file names that are allowed by exact name.",
    )
    blocked_patterns: frozenset[str] = Field(
        default=DEFAULT_BLOCKED_PATTERNS,
        description="Paths, directory prefixes, or glob patterns that are never accessible.",
    )
    max_file_size: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum file or content size in bytes.",
    )

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def _normalise_extensions(cls, value: object) -> object:
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(
                (ext if ext.startswith(".") else f".{ext}").lower() for ext in value
            )
        return value

    def with_updates(
        self,
        *,
        add_extensions: set[str] | None = None,
        remove_extensions: set[str] | None = None,
        add_blocked: set[str] | None = None,
        remove_blocked: set[str] | None = None,
    ) -> AccessPolicy:
        """Return a new policy with the given additions and removals applied."""
        extensions = set(self.allowed_extensions)
        extensions |= {e.lower() for e in add_extensions or set()}
        extensions -= {e.lower() for e in remove_extensions or set()}
        blocked = (set(self.blocked_patterns) | (add_blocked or set())) - (remove_blocked or set())
        return self.model_copy(
            update={
                "allowed_extensions": frozenset(extensions),
                "blocked_patterns": frozenset(blocked),
            }
        )


class PathCheck(BaseModel):
    """Outcome of validating a path against the access policy."""

    is_valid: bool
    code: ReasonCode | None = None
    reason: str = ""
    hint: str = ""
    sanitized_path: Path | None = Field(
        default=None, description="Canonical absolute path when the check passes."
    )
    relative_path: str | None = Field(
        default=None, description="POSIX path relative to the project root."
    )


class ProjectCheck(BaseModel):
    """Outcome of validating a project directory before initialisation."""

    is_valid: bool
    reason: str = ""
    warnings: list[str] = Field(default_factory=list)
