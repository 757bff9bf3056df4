"""Tests for ConfidenceMetrics and the scoring config."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sandgate.scoring.models import METRIC_MAXIMA, ConfidenceMetrics, ScoringConfig


class TestConfidenceMetrics:
    def test_maxima_sum_to_one_hundred(self) -> None:
        assert sum(METRIC_MAXIMA.values()) == 100

    def test_zero(self) -> None:
        assert ConfidenceMetrics.zero().total == 0

    def test_total_is_sum_of_sub_scores(self) -> None:
        metrics = ConfidenceMetrics(syntax=20, tests=15, patterns=12, memory=12, risk=10, performance=10)
        assert metrics.total == 79

    def test_out_of_range_values_are_clamped(self) -> None:
        metrics = ConfidenceMetrics(syntax=50, tests=-4, patterns=21, memory=99, risk=-1, performance=11)
        assert metrics.model_dump() == {
            "syntax": 20,
            "tests": 0,
            "patterns": 20,
            "memory": 15,
            "risk": 0,
            "performance": 10,
        }

    @pytest.mark.parametrize(
        "values",
        [
            {},
            {"syntax": 1000, "tests": 1000, "patterns": 1000, "memory": 1000, "risk": 1000, "performance": 1000},
            {"syntax": -1000, "tests": -1000},
            {"syntax": 7, "tests": 13, "patterns": 3, "memory": 15, "risk": 2, "performance": 9},
        ],
    )
    def test_total_is_bounded(self, values: dict[str, int]) -> None:
        metrics = ConfidenceMetrics(**values)
        assert 0 <= metrics.total <= 100
        assert metrics.total == sum(row.score for row in metrics.breakdown())

    def test_breakdown_order_and_maxima(self) -> None:
        rows = ConfidenceMetrics(tests=10).breakdown()
        assert [r.name for r in rows] == list(METRIC_MAXIMA)
        assert rows[1].score == 10
        assert rows[1].ratio == 10 / 25

    def test_frozen(self) -> None:
        metrics = ConfidenceMetrics()
        with pytest.raises(ValidationError):
            metrics.syntax = 5  # type: ignore[misc]


class TestScoringConfig:
    def test_defaults(self) -> None:
        config = ScoringConfig()
        assert config.pattern_weights == {"architecture": 8, "naming": 6, "style": 6}
        assert "{test}" in config.test_commands["python"]

    def test_pattern_weights_must_sum_to_twenty(self) -> None:
        with pytest.raises(ValidationError, match="sum to 20"):
            ScoringConfig(pattern_weights={"architecture": 10, "naming": 6, "style": 6})
