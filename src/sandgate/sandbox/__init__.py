"""Sandbox isolation — mirror directory, operation log, and command runners."""

from sandgate.sandbox.isolation import SandboxIsolation
from sandgate.sandbox.models import (
    CommandResult,
    ExecutionRequest,
    OperationKind,
    OperationRecord,
    SandboxConfig,
    SandboxSession,
    SandboxStatus,
)
from sandgate.sandbox.runner import CommandRunner, LocalRunner

__all__ = [
    "CommandResult",
    "CommandRunner",
    "ExecutionRequest",
    "LocalRunner",
    "OperationKind",
    "OperationRecord",
    "SandboxConfig",
    "SandboxIsolation",
    "SandboxSession",
    "SandboxStatus",
]
