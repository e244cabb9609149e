"""Tests for behavior and performance scoring."""

import pytest

from ukraine_reader.assessment.scorer import (
    score_behavior,
    score_diagnostic_passage,
    score_performance,
)
from ukraine_reader.models.summary import Summary


class TestScoreBehavior:
    def test_clean_reading_caps_at_one(self):
        assert score_behavior(Summary()) == pytest.approx(1.0)

    def test_maximum_struggle(self):
        summary = Summary(
            help_taps_per_100_words=12,
            repeat_rate=1,
            pause_density=1,
            abandon_rate=1,
            pace_wpm_proxy=0,
        )
        assert score_behavior(summary) == pytest.approx(0.0)

    def test_help_taps_are_capped(self):
        a = score_behavior(Summary(help_taps_per_100_words=12, pace_wpm_proxy=0))
        b = score_behavior(Summary(help_taps_per_100_words=40, pace_wpm_proxy=0))
        assert a == pytest.approx(b) == pytest.approx(0.65)

    def test_weighted_mix(self):
        # 1 - 0.35*0.5 + 0.2*0.5
        assert score_behavior(Summary(help_taps_per_100_words=6, pace_wpm_proxy=60)) == pytest.approx(0.925)

    def test_missing_pace_scored_as_sixty(self):
        assert score_behavior(Summary(help_taps_per_100_words=6)) == pytest.approx(0.925)


class TestScorePerformance:
    def test_with_quiz(self):
        summary = Summary(duration_sec=120, quiz_count=2, quiz_accuracy=0.5, help_taps_per_100_words=6)
        assert score_performance(summary) == pytest.approx(0.6 * 0.5 + 0.4 * 0.925)

    def test_without_quiz(self):
        summary = Summary(duration_sec=120, help_taps_per_100_words=6)
        assert score_performance(summary) == pytest.approx(0.85 * 0.925)

    def test_short_session_penalty(self):
        summary = Summary(duration_sec=30, quiz_count=2, quiz_accuracy=0.5, help_taps_per_100_words=6)
        assert score_performance(summary) == pytest.approx((0.3 + 0.37) * 0.35)

    def test_short_session_cannot_earn_full_credit(self):
        summary = Summary(duration_sec=20, quiz_count=3, quiz_accuracy=1.0)
        assert score_performance(summary) == pytest.approx(0.35)

    def test_unknown_duration_is_not_penalized(self):
        summary = Summary(duration_sec=0, quiz_count=1, quiz_accuracy=1.0)
        assert score_performance(summary) == pytest.approx(1.0)


class TestDiagnosticPassage:
    def test_comprehension_weighted(self):
        summary = Summary(quiz_accuracy=0.5, help_taps_per_100_words=6)
        assert score_diagnostic_passage(summary) == pytest.approx(0.35 + 0.3 * 0.925)

    def test_no_short_duration_penalty(self):
        summary = Summary(duration_sec=10, quiz_accuracy=1.0)
        assert score_diagnostic_passage(summary) == pytest.approx(1.0)
