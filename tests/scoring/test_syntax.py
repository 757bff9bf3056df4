"""Tests for language detection and syntax scoring."""

from __future__ import annotations

import asyncio
import time

import pytest

from sandgate.scoring import syntax
from sandgate.scoring.models import ScoringConfig, SyntaxReport
from sandgate.scoring.syntax import (
    check_syntax,
    check_syntax_async,
    detect_language,
    is_supported,
    score_syntax,
)

CONFIG = ScoringConfig()


class TestDetectLanguage:
    @pytest.mark.parametrize(
        ("path", "language"),
        [
            ("src/app.py", "python"),
            ("web/App.TSX", "typescript"),
            ("index.mjs", "javascript"),
            ("config/settings.yml", "yaml"),
            ("Cargo.toml", "toml"),
            ("Makefile", "unknown"),
        ],
    )
    def test_detect(self, path: str, language: str) -> None:
        assert detect_language(path) == language

    def test_supported(self) -> None:
        assert is_supported("python")
        assert is_supported("typescript")
        assert not is_supported("markdown")


class TestCheckSyntax:
    def test_valid_python(self) -> None:
        report = check_syntax("def f(x):\n    return x\n", "python")
        assert report.supported
        assert not report.fatal
        assert report.diagnostics == ()

    def test_python_syntax_error_is_fatal(self) -> None:
        report = check_syntax("def broken(:\n", "python")
        assert report.fatal
        assert report.diagnostics[0].startswith("line 1:")

    def test_null_byte_is_fatal(self) -> None:
        assert check_syntax("x = 1\x00\n", "python").fatal

    def test_invalid_escape_is_a_diagnostic(self) -> None:
        report = check_syntax('pattern = "\\d+"\n', "python")
        assert not report.fatal
        assert len(report.diagnostics) == 1
        assert report.diagnostics[0].startswith("line 1:")

    async def test_concurrent_parses_keep_their_own_warnings(self) -> None:
        noisy = 'pattern = "\\d+"\n'
        clean = "def f(x):\n    return x\n"
        reports = await asyncio.gather(
            *(check_syntax_async(noisy if i % 2 else clean, "python", 5.0) for i in range(20))
        )
        assert [len(r.diagnostics) for r in reports] == [1 if i % 2 else 0 for i in range(20)]

    @pytest.mark.parametrize(
        ("content", "language"),
        [('{"a": 1,}', "json"), ("a: [1, 2\n", "yaml"), ("a = \n", "toml")],
    )
    def test_data_format_errors_are_fatal(self, content: str, language: str) -> None:
        assert check_syntax(content, language).fatal

    @pytest.mark.parametrize(
        ("content", "language"),
        [('{"a": [1, 2]}', "json"), ("a: 1\n---\nb: 2\n", "yaml"), ('a = "b"\n', "toml")],
    )
    def test_valid_data_formats(self, content: str, language: str) -> None:
        report = check_syntax(content, language)
        assert not report.fatal
        assert report.diagnostics == ()

    def test_brace_language_balanced(self) -> None:
        content = "function f(a) {\n  // comment with ( paren\n  return [a, `x\n${a}`];\n}\n"
        assert check_syntax(content, "javascript").diagnostics == ()

    def test_brace_language_unclosed(self) -> None:
        report = check_syntax("const a = (1 + 2;\n", "javascript")
        assert report.diagnostics == ("line 1: unclosed '('",)
        assert not report.fatal

    def test_brace_language_unterminated_string(self) -> None:
        report = check_syntax("const s = 'abc;\n", "typescript")
        assert report.diagnostics == ("line 1: unterminated string literal",)

    def test_brace_language_unmatched_closer(self) -> None:
        report = check_syntax("func main() {\n}\n}\n", "go")
        assert report.diagnostics == ("line 3: unmatched '}'",)

    def test_unsupported_language(self) -> None:
        report = check_syntax("# Title\n", "markdown")
        assert not report.supported

    def test_empty_content(self) -> None:
        report = check_syntax("   \n", "markdown")
        assert report.empty
        assert not report.supported


class TestCheckSyntaxAsync:
    async def test_runs_check(self) -> None:
        report = await check_syntax_async("x = 1\n", "python", timeout=5.0)
        assert report.diagnostics == ()

    async def test_timeout_is_reported_not_raised(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def slow(content: str, language: str) -> SyntaxReport:
            time.sleep(0.5)
            return SyntaxReport(language=language)

        monkeypatch.setattr(syntax, "check_syntax", slow)
        report = await check_syntax_async("x = 1\n", "python", timeout=0.05)
        assert report.timed_out
        assert score_syntax(report, CONFIG) == 0


class TestScoreSyntax:
    def test_clean(self) -> None:
        assert score_syntax(SyntaxReport(language="python"), CONFIG) == 20

    @pytest.mark.parametrize(("count", "expected"), [(1, 17), (2, 14), (6, 2), (7, 0), (20, 0)])
    def test_diagnostic_penalty(self, count: int, expected: int) -> None:
        report = SyntaxReport(language="javascript", diagnostics=tuple(f"d{i}" for i in range(count)))
        assert score_syntax(report, CONFIG) == expected

    def test_fatal(self) -> None:
        assert score_syntax(SyntaxReport(language="python", fatal=True, diagnostics=("x",)), CONFIG) == 0

    def test_unsupported(self) -> None:
        assert score_syntax(SyntaxReport(language="markdown", supported=False), CONFIG) == 15

    def test_unsupported_empty(self) -> None:
        assert score_syntax(SyntaxReport(language="markdown", supported=False, empty=True), CONFIG) == 0
