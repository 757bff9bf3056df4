"""Tests for ``sandgate security`` CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner, Result

from sandgate.cli import main

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\n')
    state = tmp_path / ".sandgate"
    state.mkdir()
    (state / "config.yaml").write_text("security:\n  kdf_iterations: 1000\n")
    return tmp_path


def _invoke(project: Path, *args: str) -> Result:
    return CliRunner().invoke(main, ["--project", str(project), "security", *args])


class TestScan:
    def test_clean_file(self, project: Path) -> None:
        (project / "app.py").write_text("x = 1\n")
        result = _invoke(project, "scan", "app.py")

        assert result.exit_code == 0
        assert "Malicious patterns: no" in result.output

    def test_secret_is_reported_and_sealed(self, project: Path) -> None:
        (project / "settings.py").write_text('API = "sk-1234567890abcdef1234567890abcdef"\n')
        result = _invoke(project, "scan", "settings.py", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["is_encrypted"] is True
        assert data["security_issues"] == ["secret:api_key"]
        assert "content" not in data
        assert "sk-1234567890abcdef" not in result.output

    def test_malicious_file_fails(self, project: Path) -> None:
        (project / "danger.js").write_text('eval("danger"); fs.unlink("x")\n')
        result = _invoke(project, "scan", "danger.js")

        assert result.exit_code == 1
        assert "malicious:dynamic_eval" in result.output

    def test_traversal_is_denied(self, project: Path) -> None:
        result = _invoke(project, "scan", "../outside.py")
        assert result.exit_code == 2
        assert "Scan failed" in result.output


class TestSelfTest:
    def test_selftest_passes(self, project: Path) -> None:
        result = _invoke(project, "selftest", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["passed"] is True
        assert {case["name"] for case in data["tests"]} == {
            "encryption",
            "content_sanitization",
            "file_access_control",
        }

    def test_selftest_table(self, project: Path) -> None:
        result = _invoke(project, "selftest")
        assert result.exit_code == 0
        assert "Security Self-Test" in result.output


class TestStatus:
    def test_status_json(self, project: Path) -> None:
        result = _invoke(project, "status", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["pattern_table_version"] == "2024.1"
        assert data["secret_rules"] > 0
        assert data["malicious_rules"] > 0
        assert data["vault"]["initialized"] is True
        assert data["vault"]["iterations"] == 1000
        assert data["config"]["kdf_iterations"] == 1000

    def test_status_table(self, project: Path) -> None:
        result = _invoke(project, "status")

        assert result.exit_code == 0
        assert "Security Status" in result.output
        assert "v2024.1" in result.output
