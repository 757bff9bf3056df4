"""Tests for pattern-signal extraction and the patterns sub-score."""

from __future__ import annotations

import pytest

from sandgate.memory.models import PatternSummary
from sandgate.scoring.models import ScoringConfig
from sandgate.scoring.patterns import classify_case, extract_signals, score_patterns

CONFIG = ScoringConfig()

PY_MODULE = """\
from .models import Item


def load_items(path):
    return [Item(x) for x in path]


def save_items(items):
    pass
"""

JS_MODULE = """\
import { readFile } from 'fs';

export async function loadConfig(path) {
  const rawText = await readFile(path);
  return rawText;
}
"""


class TestClassifyCase:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("snake_case", "snake"),
            ("_private_name", "snake"),
            ("camelCase", "camel"),
            ("PascalCase", "pascal"),
            ("MAX_SIZE", "upper_snake"),
            ("word", None),
            ("_", None),
        ],
    )
    def test_classify(self, name: str, expected: str | None) -> None:
        assert classify_case(name) == expected


class TestExtractSignals:
    def test_python_module(self) -> None:
        summary = extract_signals(PY_MODULE, "python")
        assert summary.architecture == {"imports": "relative", "paradigm": "functional"}
        assert summary.naming == {"function_case": "snake"}
        assert summary.style["indent"] == "4"
        assert summary.style["line_length"] == "80"

    def test_script_module(self) -> None:
        summary = extract_signals(JS_MODULE, "javascript")
        assert summary.architecture["module_system"] == "esm"
        assert summary.architecture["async_style"] == "async_await"
        assert summary.naming["function_case"] == "camel"
        assert summary.naming["variable_case"] == "camel"
        assert summary.style["indent"] == "2"
        assert summary.style["quotes"] == "single"
        assert summary.style["semicolons"] == "always"

    def test_unparsed_language_only_has_style(self) -> None:
        summary = extract_signals("key value\n  nested\n", "unknown")
        assert summary.architecture == {}
        assert summary.naming == {}
        assert summary.style["indent"] == "2"

    def test_long_lines(self) -> None:
        summary = extract_signals("x = 1  # " + "a" * 130 + "\n", "python")
        assert summary.style["line_length"] == "long"


class TestScorePatterns:
    def test_no_established_patterns_is_neutral(self) -> None:
        assert score_patterns(extract_signals(PY_MODULE, "python"), PatternSummary(), CONFIG) == 12

    def test_full_agreement(self) -> None:
        summary = extract_signals(PY_MODULE, "python")
        assert score_patterns(summary, summary, CONFIG) == 20

    def test_mismatch_in_one_category(self) -> None:
        candidate = extract_signals(PY_MODULE, "python")
        established = PatternSummary(naming={"function_case": "camel"})
        # architecture 8 * 0.6 + naming 0 + style 6 * 0.6 = 8.4
        assert score_patterns(candidate, established, CONFIG) == 8

    def test_missing_signal_counts_half(self) -> None:
        candidate = PatternSummary(naming={"function_case": "snake"})
        established = PatternSummary(naming={"function_case": "snake", "class_case": "pascal"})
        # 4.8 + 6 * 0.75 + 3.6 = 12.9
        assert score_patterns(candidate, established, CONFIG) == 13

    def test_shorter_lines_satisfy_line_length(self) -> None:
        established = PatternSummary(style={"line_length": "100"})
        assert score_patterns(PatternSummary(style={"line_length": "80"}), established, CONFIG) == 14
        assert score_patterns(PatternSummary(style={"line_length": "120"}), established, CONFIG) == 8

    def test_result_is_bounded(self) -> None:
        established = PatternSummary(
            architecture={"imports": "absolute"},
            naming={"function_case": "pascal"},
            style={"indent": "tabs"},
        )
        assert 0 <= score_patterns(extract_signals(PY_MODULE, "python"), established, CONFIG) <= 20
