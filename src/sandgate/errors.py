"""Shared error types for the confidence-gated sandbox.

Every error carries a machine-checkable :class:`ReasonCode` and a
human-readable remediation ``hint``.  The command layer maps errors to
process exit codes with :func:`exit_code_for`.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class ReasonCode(str, Enum):
    """Machine-checkable reason attached to every rejection."""

    PATH_VIOLATION = "path_violation"
    POLICY_VIOLATION = "policy_violation"
    PARSE_FAILURE = "parse_failure"
    EXECUTION_TIMEOUT = "execution_timeout"
    EXECUTION_FAILURE = "execution_failure"
    SECURITY_FINDING = "security_finding"
    ENCRYPTION_FAILURE = "encryption_failure"
    ISOLATION_FAILURE = "isolation_failure"
    SANDBOX_BUSY = "sandbox_busy"
    CONFIG_INVALID = "config_invalid"
    NOT_FOUND = "not_found"
    LOW_CONFIDENCE = "low_confidence"
    REVIEW_REQUIRED = "review_required"


class ExitCode(IntEnum):
    """Process exit codes surfaced by the command layer."""

    SUCCESS = 0
    VALIDATION_FAILURE = 1
    ACCESS_DENIED = 2
    POLICY_VIOLATION = 3
    EXECUTION_FAILURE = 4


class SandgateError(Exception):
    """Base error for all sandbox, security, and gating failures."""

    code: ReasonCode = ReasonCode.ISOLATION_FAILURE
    default_hint: str = ""

    def __init__(self, detail: str = "", *, hint: str | None = None) -> None:
        self.detail = detail
        self.hint = hint if hint is not None else self.default_hint
        super().__init__(detail or self.code.value)


class PathViolationError(SandgateError):
    """A path escapes the project root or attempts traversal."""

    code = ReasonCode.PATH_VIOLATION
    default_hint = "Use a path relative to the project root without '..' segments."

    def __init__(self, path: str, detail: str = "", *, hint: str | None = None) -> None:
        self.path = path
        super().__init__(
            f"Path violation for {path!r}" + (f": {detail}" if detail else ""),
            hint=hint,
        )


class PolicyViolationError(SandgateError):
    """The access policy rejects the extension, location, or size."""

    code = ReasonCode.POLICY_VIOLATION
    default_hint = "Check the allowed extensions, blocked paths, and size limit in the access policy."

    def __init__(self, path: str, detail: str = "", *, hint: str | None = None) -> None:
        self.path = path
        super().__init__(
            f"Policy violation for {path!r}" + (f": {detail}" if detail else ""),
            hint=hint,
        )


class ParseFailureError(SandgateError):
    """Content could not be parsed for its language."""

    code = ReasonCode.PARSE_FAILURE
    default_hint = "Fix the reported syntax errors."


class ExecutionTimeoutError(SandgateError):
    """A command or check exceeded its wall-clock timeout."""

    code = ReasonCode.EXECUTION_TIMEOUT
    default_hint = "Reduce the work done by the check or raise the configured timeout."

    def __init__(self, timeout: float, *, hint: str | None = None) -> None:
        self.timeout = timeout
        super().__init__(f"Execution timed out after {timeout}s", hint=hint)


class ExecutionFailureError(SandgateError):
    """A command could not be launched or failed unexpectedly."""

    code = ReasonCode.EXECUTION_FAILURE
    default_hint = "Make sure the configured test runner is installed."


class SecurityFindingError(SandgateError):
    """Malicious patterns were found in candidate content."""

    code = ReasonCode.SECURITY_FINDING
    default_hint = "Remove the flagged constructs or request a human review."

    def __init__(self, categories: list[str], *, hint: str | None = None) -> None:
        self.categories = categories
        super().__init__(
            "Security findings: " + ", ".join(categories),
            hint=hint,
        )


class EncryptionFailureError(SandgateError):
    """Sealing or unsealing a payload failed."""

    code = ReasonCode.ENCRYPTION_FAILURE
    default_hint = "Check the key-material file under the state directory."


class IsolationError(SandgateError):
    """A sandbox mirror I/O operation failed."""

    code = ReasonCode.ISOLATION_FAILURE
    default_hint = "Run 'sandgate sandbox reset' to rebuild the mirror."


class SandboxFileNotFoundError(IsolationError):
    """A file exists neither in the mirror nor in the real tree."""

    code = ReasonCode.NOT_FOUND
    default_hint = "Write the file into the sandbox first with 'sandgate sandbox execute'."

    def __init__(self, path: str, *, hint: str | None = None) -> None:
        self.path = path
        super().__init__(f"File not found: {path}", hint=hint)


class SandboxBusyError(IsolationError):
    """A mutating operation is already in flight for this session."""

    code = ReasonCode.SANDBOX_BUSY
    default_hint = "Wait for the in-flight write to finish and retry."


class ConfigError(SandgateError):
    """The configuration file could not be read or validated."""

    code = ReasonCode.CONFIG_INVALID
    default_hint = "Fix .sandgate/config.yaml or remove it to use defaults."


_EXIT_CODES: dict[ReasonCode, ExitCode] = {
    ReasonCode.PATH_VIOLATION: ExitCode.ACCESS_DENIED,
    ReasonCode.POLICY_VIOLATION: ExitCode.POLICY_VIOLATION,
    ReasonCode.PARSE_FAILURE: ExitCode.VALIDATION_FAILURE,
    ReasonCode.SECURITY_FINDING: ExitCode.VALIDATION_FAILURE,
    ReasonCode.CONFIG_INVALID: ExitCode.VALIDATION_FAILURE,
    ReasonCode.LOW_CONFIDENCE: ExitCode.VALIDATION_FAILURE,
    ReasonCode.REVIEW_REQUIRED: ExitCode.VALIDATION_FAILURE,
    ReasonCode.NOT_FOUND: ExitCode.VALIDATION_FAILURE,
}


def exit_code_for(code: ReasonCode | None) -> ExitCode:
    """Map a reason code to the exit code the command layer reports."""
    if code is None:
        return ExitCode.SUCCESS
    return _EXIT_CODES.get(code, ExitCode.EXECUTION_FAILURE)
