"""Tests for configuration loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from sandgate.config import ConfigLoader, SandgateConfig
from sandgate.errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(root: Path, text: str) -> ConfigLoader:
    state = root / ".sandgate"
    state.mkdir(exist_ok=True)
    (state / "config.yaml").write_text(text)
    return ConfigLoader.for_project(root)


class TestConfigLoader:
    def test_missing_file_yields_defaults(self, tmp_path: Path) -> None:
        assert ConfigLoader.for_project(tmp_path).load() == SandgateConfig()

    def test_empty_file_yields_defaults(self, tmp_path: Path) -> None:
        assert _write_config(tmp_path, "").load() == SandgateConfig()

    def test_sections_override_defaults(self, tmp_path: Path) -> None:
        loader = _write_config(
            tmp_path,
            "gate:\n"
            "  thresholds: {sandbox_only: 40, review: 60, auto_deploy: 90}\n"
            "scoring:\n"
            "  test_timeout: 5\n"
            "security:\n"
            "  always_seal: ['config/*.json']\n",
        )
        config = loader.load()

        assert config.gate.thresholds.auto_deploy == 90
        assert config.scoring.test_timeout == 5
        assert config.security.always_seal == ["config/*.json"]
        assert config.access == SandgateConfig().access

    def test_environment_variables_are_expanded(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SANDGATE_TEST_TIMEOUT", "12")
        config = _write_config(tmp_path, "scoring:\n  test_timeout: ${SANDGATE_TEST_TIMEOUT}\n").load()
        assert config.scoring.test_timeout == 12

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="YAML parse error"):
            _write_config(tmp_path, "gate: [unclosed\n").load()

    def test_non_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            _write_config(tmp_path, "- a\n- b\n").load()

    def test_schema_violation(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="thresholds"):
            _write_config(tmp_path, "gate:\n  thresholds: {review: 99, auto_deploy: 90}\n").load()

    def test_path(self, tmp_path: Path) -> None:
        assert ConfigLoader.for_project(tmp_path).path == tmp_path / ".sandgate" / "config.yaml"

    def test_telemetry_section(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path, "telemetry:\n  enabled: true\n  otlp_endpoint: http://collector:4317\n").load()
        assert config.telemetry.enabled
        assert config.telemetry.otlp_endpoint == "http://collector:4317"
        assert not SandgateConfig().telemetry.enabled
