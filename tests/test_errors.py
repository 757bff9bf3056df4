"""Tests for the error hierarchy and exit-code mapping."""

from __future__ import annotations

import pytest

from sandgate.errors import (
    ConfigError,
    EncryptionFailureError,
    ExecutionFailureError,
    ExecutionTimeoutError,
    ExitCode,
    IsolationError,
    ParseFailureError,
    PathViolationError,
    PolicyViolationError,
    ReasonCode,
    SandboxBusyError,
    SandboxFileNotFoundError,
    SandgateError,
    SecurityFindingError,
    exit_code_for,
)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            PathViolationError,
            PolicyViolationError,
            ParseFailureError,
            ExecutionTimeoutError,
            ExecutionFailureError,
            SecurityFindingError,
            EncryptionFailureError,
            IsolationError,
            ConfigError,
        ],
    )
    def test_all_derive_from_base(self, cls: type[Exception]) -> None:
        assert issubclass(cls, SandgateError)

    def test_busy_and_not_found_are_isolation_errors(self) -> None:
        assert issubclass(SandboxBusyError, IsolationError)
        assert issubclass(SandboxFileNotFoundError, IsolationError)


class TestErrorAttributes:
    def test_path_violation(self) -> None:
        err = PathViolationError("../x.py", "outside root")
        assert err.path == "../x.py"
        assert err.code == ReasonCode.PATH_VIOLATION
        assert "outside root" in str(err)
        assert err.hint

    def test_explicit_hint_overrides_default(self) -> None:
        err = PolicyViolationError("a.exe", hint="rename it")
        assert err.hint == "rename it"

    def test_timeout(self) -> None:
        err = ExecutionTimeoutError(2.5)
        assert err.timeout == 2.5
        assert "2.5s" in str(err)

    def test_security_finding(self) -> None:
        err = SecurityFindingError(["dynamic_eval", "destructive_fs"])
        assert err.categories == ["dynamic_eval", "destructive_fs"]
        assert "dynamic_eval" in str(err)

    def test_not_found(self) -> None:
        err = SandboxFileNotFoundError("src/a.py")
        assert err.code == ReasonCode.NOT_FOUND
        assert str(err) == "File not found: src/a.py"

    def test_message_without_detail(self) -> None:
        assert str(IsolationError()) == ReasonCode.ISOLATION_FAILURE.value


class TestExitCodes:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (None, ExitCode.SUCCESS),
            (ReasonCode.PATH_VIOLATION, ExitCode.ACCESS_DENIED),
            (ReasonCode.POLICY_VIOLATION, ExitCode.POLICY_VIOLATION),
            (ReasonCode.PARSE_FAILURE, ExitCode.VALIDATION_FAILURE),
            (ReasonCode.REVIEW_REQUIRED, ExitCode.VALIDATION_FAILURE),
            (ReasonCode.LOW_CONFIDENCE, ExitCode.VALIDATION_FAILURE),
            (ReasonCode.EXECUTION_TIMEOUT, ExitCode.EXECUTION_FAILURE),
            (ReasonCode.ENCRYPTION_FAILURE, ExitCode.EXECUTION_FAILURE),
            (ReasonCode.SANDBOX_BUSY, ExitCode.EXECUTION_FAILURE),
        ],
    )
    def test_mapping(self, code: ReasonCode | None, expected: ExitCode) -> None:
        assert exit_code_for(code) == expected
