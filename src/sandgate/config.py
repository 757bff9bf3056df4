"""Project configuration loading.

Settings live in ``<project>/.sandgate/config.yaml``.  Every section is
optional; anything omitted takes the model default::

    access:
      max_file_size: 5242880
    scoring:
      test_timeout: 120
    gate:
      thresholds: {sandbox_only: 50, review: 70, auto_deploy: 95}
    security:
      always_seal: ["config/*.json"]
    telemetry:
      enabled: true
      otlp_endpoint: http://localhost:4317
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from sandgate.errors import ConfigError
from sandgate.gate.models import GateConfig
from sandgate.policy.models import AccessPolicy
from sandgate.sandbox.models import SandboxConfig
from sandgate.scoring.models import ScoringConfig
from sandgate.security.models import SecurityConfig

DEFAULT_STATE_DIR = ".sandgate"
CONFIG_FILE_NAME = "config.yaml"


class TelemetrySettings(BaseModel):
    """Optional tracing configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None
    export_to_console: bool = False


class SandgateConfig(BaseModel):
    """Root configuration, passed explicitly into each component."""

    access: AccessPolicy = Field(default_factory=AccessPolicy)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    gate: GateConfig = Field(default_factory=GateConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    memory_file: str = Field(
        default="memory.json",
        description="Project-memory file inside the state directory.",
    )


class ConfigLoader:
    """Load and validate a YAML config file into a :class:`SandgateConfig`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @classmethod
    def for_project(cls, project_root: str | Path) -> ConfigLoader:
        return cls(Path(project_root) / DEFAULT_STATE_DIR / CONFIG_FILE_NAME)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SandgateConfig:
        """Read YAML, interpolate env vars, and validate.

        A missing file yields the defaults.  Environment variables in the form
        ``${VAR}`` or ``$VAR`` are expanded before parsing.

        Raises:
            ConfigError: On read errors, YAML parse errors, or schema violations.
        """
        if not self._path.exists():
            return SandgateConfig()
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            return SandgateConfig()
        if not isinstance(data, dict):
            raise ConfigError("Config YAML must be a mapping")

        try:
            return SandgateConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
