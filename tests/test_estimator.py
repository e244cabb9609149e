"""Tests for the session and diagnostic skill estimators."""

import math
from datetime import UTC, datetime, timedelta

import pytest

from ukraine_reader.assessment import estimator
from ukraine_reader.assessment.estimator import (
    compute_trend,
    diagnostic_applied,
    estimate_diagnostic_skill,
    ewma,
    informativeness,
    summarize_diagnostic,
    update_profile_from_diagnostic,
    update_profile_from_summary,
)
from ukraine_reader.models.diagnostic import DiagnosticPassageResult
from ukraine_reader.models.profile import (
    Bottleneck,
    HistoryEntry,
    Language,
    Profile,
    default_profile,
    ensure_profile_shape,
)
from ukraine_reader.models.summary import Summary

END = datetime(2026, 4, 10, 18, 0, 0, tzinfo=UTC)

# Full quiz credit, fluent reading, long enough to avoid the short-session penalty
STRONG_SESSION = {
    "duration_sec": 300,
    "word_count": 400,
    "quiz_count": 2,
    "quiz_accuracy": 1.0,
    "pace_wpm_proxy": 100,
    "text_difficulty": 25,
}


@pytest.fixture
def profile():
    return default_profile(Language.UK)


def _entry(days_before: float, skill: float, source: str = "session") -> HistoryEntry:
    return HistoryEntry(
        ts=END - timedelta(days=days_before),
        skill_level=skill,
        performance=0.75,
        difficulty=skill,
        source=source,
    )


class TestHelpers:
    def test_ewma(self):
        assert ewma(0.0, 10.0, 0.3) == pytest.approx(3.0)
        assert ewma(70.0, 100.0, 0.25) == pytest.approx(77.5)

    def test_informativeness(self):
        assert informativeness(25, 25) == pytest.approx(1.0)
        assert informativeness(70, 25) == pytest.approx(math.exp(-2.5))
        assert informativeness(10, 25) == informativeness(40, 25)

    def test_trend_needs_two_points(self):
        assert compute_trend([_entry(1, 30)], END, 7) == 0.0
        assert compute_trend([], END, 7) == 0.0

    def test_trend_window(self):
        history = [_entry(20, 15), _entry(5, 20), _entry(0, 25)]
        assert compute_trend(history, END, 7) == 5.0
        assert compute_trend(history, END, 30) == 10.0


class TestUpdateFromSummary:
    def test_performance_at_pivot_keeps_skill(self, profile, monkeypatch):
        monkeypatch.setattr(estimator, "score_performance", lambda summary: 0.75)
        updated = update_profile_from_summary(profile, {"text_difficulty": 25}, END)
        assert updated.skill_level == 25.0

    def test_far_text_moves_skill_little(self, profile, monkeypatch):
        monkeypatch.setattr(estimator, "score_performance", lambda summary: 1.0)
        updated = update_profile_from_summary(profile, {"text_difficulty": 70}, END)
        # candidate = 25 + 8 * 0.25 * exp(-45/18); smoothed 0.7 / 0.3
        expected = 0.7 * 25 + 0.3 * (25 + 2 * math.exp(-2.5))
        assert updated.skill_level == pytest.approx(expected, abs=0.01)
        assert updated.skill_level == pytest.approx(25.05, abs=0.01)

    def test_strong_session_raises_skill(self, profile):
        updated = update_profile_from_summary(profile, STRONG_SESSION, END)
        assert updated.skill_level == pytest.approx(25.6)
        assert updated.confidence == pytest.approx(0.304)

    def test_repeating_the_same_session_diminishes(self, profile):
        once = update_profile_from_summary(profile, STRONG_SESSION, END)
        twice = update_profile_from_summary(once, STRONG_SESSION, END + timedelta(hours=1))
        first_step = once.skill_level - profile.skill_level
        second_step = twice.skill_level - once.skill_level
        assert 0 < second_step < first_step

    def test_missing_difficulty_uses_current_skill(self, profile, monkeypatch):
        monkeypatch.setattr(estimator, "score_performance", lambda summary: 1.0)
        updated = update_profile_from_summary(profile, {}, END)
        assert updated.skill_level == pytest.approx(25.6)
        assert updated.history[-1].difficulty == 25.0

    @pytest.mark.parametrize("skill, raw", [
        (100.0, STRONG_SESSION | {"text_difficulty": 100}),
        (0.0, {"abandon_rate": 1, "help_taps_per_100_words": 50, "pace_wpm_proxy": 1}),
        (50.0, {"garbage": True, "quiz_accuracy": "??"}),
    ])
    def test_outputs_stay_in_range(self, skill, raw):
        start = Profile(language=Language.RU, skill_level=skill, confidence=0.99)
        updated = update_profile_from_summary(start, raw, END)
        assert 0.0 <= updated.skill_level <= 100.0
        assert 0.1 <= updated.confidence <= 0.99
        low, high = updated.comfort_band
        assert 0.0 <= low <= high <= 100.0

    def test_short_tts_only_session_hits_confidence_floor(self, profile):
        updated = update_profile_from_summary(
            profile, {"duration_sec": 30, "tts_only_ratio": 1}, END
        )
        assert updated.confidence == pytest.approx(0.1)

    def test_signals_are_smoothed(self, profile):
        updated = update_profile_from_summary(
            profile,
            {"help_taps_per_100_words": 10, "quiz_accuracy": 1, "pace_wpm_proxy": 100},
            END,
        )
        assert updated.signals.help_taps_per_100_words == pytest.approx(3.0)
        assert updated.signals.quiz_accuracy == pytest.approx(0.35)
        assert updated.signals.abandon_rate == 0.0
        assert updated.signals.pace_wpm_proxy == pytest.approx(77.5)

    def test_missing_pace_keeps_pace_signal(self, profile):
        updated = update_profile_from_summary(profile, {"duration_sec": 120}, END)
        assert updated.signals.pace_wpm_proxy == pytest.approx(70.0)

    def test_bottleneck_and_recommendations_follow_signals(self, profile):
        updated = update_profile_from_summary(profile, {"help_taps_per_100_words": 30}, END)
        assert updated.signals.help_taps_per_100_words == pytest.approx(9.0)
        assert updated.bottleneck == Bottleneck.DECODING_LIMITED
        assert "tap and replay hard words" in updated.recommended.activities

    def test_history_is_appended_and_pruned(self, profile):
        start = profile.model_copy(update={"history": [_entry(50, 20), _entry(10, 24)]})
        updated = update_profile_from_summary(start, STRONG_SESSION, END)
        assert [e.ts for e in updated.history] == [END - timedelta(days=10), END]
        assert updated.history[-1].source == "session"
        assert updated.history[-1].skill_level == updated.skill_level

    def test_trends_are_recomputed(self, profile, monkeypatch):
        monkeypatch.setattr(estimator, "score_performance", lambda summary: 0.75)
        start = profile.model_copy(update={"history": [_entry(20, 15), _entry(5, 20)]})
        updated = update_profile_from_summary(start, {"text_difficulty": 25}, END)
        assert updated.trend_7d == 5.0
        assert updated.trend_30d == 10.0

    def test_input_profile_is_not_modified(self, profile):
        before = profile.model_dump()
        update_profile_from_summary(profile, STRONG_SESSION, END)
        assert profile.model_dump() == before

    def test_updated_ts_is_end_ts(self, profile):
        updated = update_profile_from_summary(profile, STRONG_SESSION, "2026-04-10T18:00:00Z")
        assert updated.updated_ts == END

    def test_invalid_end_ts_raises(self, profile):
        with pytest.raises(ValueError):
            update_profile_from_summary(profile, STRONG_SESSION, "not a date")


def _passage(difficulty: float, performance: float | None = 0.75, **summary) -> DiagnosticPassageResult:
    return DiagnosticPassageResult(
        text_id=f"t-{difficulty}",
        difficulty_score=difficulty,
        summary=Summary(**summary),
        passage_performance=performance,
    )


class TestUpdateFromDiagnostic:
    def test_empty_passages_leave_profile_unchanged(self):
        start = Profile(language=Language.RU, skill_level=40, confidence=0.4)
        for empty in ([], None, {"passages": []}):
            updated = update_profile_from_diagnostic(start, "ru", empty, END)
            assert updated == ensure_profile_shape(start, "ru")

    def test_blends_diagnostic_estimate(self, profile):
        passages = [_passage(30), _passage(30), _passage(30)]
        updated = update_profile_from_diagnostic(profile, "uk", passages, END)
        assert estimate_diagnostic_skill(passages) == pytest.approx(30.0)
        assert updated.skill_level == pytest.approx(0.55 * 25 + 0.45 * 30)

    def test_confidence_floor(self, profile):
        updated = update_profile_from_diagnostic(profile, "uk", [_passage(25)], END)
        assert updated.confidence == pytest.approx(0.55)

    def test_confidence_grows_with_completion_and_quality(self):
        start = Profile(language=Language.UK, confidence=0.6)
        passages = [_passage(25, word_count=500) for _ in range(3)]
        updated = update_profile_from_diagnostic(start, "uk", passages, END)
        assert updated.confidence == pytest.approx(0.75)

    def test_missing_performance_is_scored_from_summary(self, profile):
        passage = _passage(40, performance=None, quiz_accuracy=1.0)
        # 0.7 * 1.0 + 0.3 * behavior(1.0) = 1.0
        assert estimate_diagnostic_skill([passage]) == pytest.approx(40 + 12 * 0.25)

    def test_accepts_raw_payload(self, profile):
        raw = {"passages": [
            {"text_id": "a", "difficulty_score": 30, "passage_performance": 0.75, "summary": {}},
            {"text_id": "b", "difficulty_score": "oops", "summary": "junk"},
            "not a passage",
        ]}
        updated = update_profile_from_diagnostic(profile, "uk", raw, END)
        assert updated.history[-1].source == "diagnostic"
        assert 0.0 <= updated.skill_level <= 100.0

    def test_history_entry(self, profile):
        updated = update_profile_from_diagnostic(profile, "uk", [_passage(30), _passage(20)], END)
        entry = updated.history[-1]
        assert entry.source == "diagnostic"
        assert entry.difficulty == 25.0
        assert entry.performance == 0.75
        assert entry.ts == END

    def test_summary_block(self, profile):
        passages = [_passage(30)]
        after = update_profile_from_diagnostic(profile, "uk", passages, END)
        block = summarize_diagnostic(profile, after, passages)
        assert block.old_skill == 25.0
        assert block.diagnostic_skill == 30.0
        assert block.delta_skill == pytest.approx(2.25)
        assert block.bottleneck == after.bottleneck

    def test_history_entry_records_run(self, profile):
        updated = update_profile_from_diagnostic(
            profile, "uk", [_passage(30)], END, run_id="run-7"
        )
        assert updated.history[-1].run_id == "run-7"
        assert diagnostic_applied(updated, "run-7")
        assert not diagnostic_applied(updated, "run-8")
        assert not diagnostic_applied(profile, "run-7")
