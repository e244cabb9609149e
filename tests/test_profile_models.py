"""Tests for profile models and the profile shape normalizer."""

from datetime import UTC, datetime

import pytest

from ukraine_reader.models.profile import (
    Bottleneck,
    Language,
    Profile,
    UnsupportedLanguageError,
    compute_bands,
    default_profile,
    ensure_profile_shape,
)


class TestLanguage:
    def test_parse(self):
        assert Language.parse("RU") == Language.RU
        assert Language.parse(" uk ") == Language.UK

    @pytest.mark.parametrize("value", ["en", "", None, 3])
    def test_unsupported(self, value):
        with pytest.raises(UnsupportedLanguageError):
            Language.parse(value)


class TestBands:
    def test_mid_range(self):
        bands = compute_bands(50)
        assert bands.comfort == (44, 54)
        assert bands.instructional == (54, 62)
        assert bands.frustration == (62, 100)

    def test_clamped_low(self):
        assert compute_bands(2).comfort == (0, 6)

    def test_clamped_high(self):
        bands = compute_bands(95)
        assert bands.instructional == (99, 100)
        assert bands.frustration == (100, 100)

    def test_bands_follow_skill_level(self):
        profile = default_profile("ru")
        assert profile.comfort_band == (19, 29)
        moved = profile.model_copy(update={"skill_level": 60})
        assert moved.comfort_band == (54, 64)
        assert moved.instructional_band == (64, 72)


class TestDefaultProfile:
    def test_defaults(self):
        profile = default_profile("uk")
        assert profile.language == Language.UK
        assert profile.skill_level == 25.0
        assert profile.confidence == 0.2
        assert profile.bottleneck == Bottleneck.BALANCED
        assert profile.signals.pace_wpm_proxy == 70.0
        assert profile.recommended.daily_plan.challenges_per_day == 4
        assert profile.recommended.daily_plan.mix.instructional == 0.3
        assert profile.history == []

    def test_to_public_omits_history(self):
        public = default_profile("ru").to_public()
        assert "history" not in public
        assert public["comfort_band"] == [19.0, 29.0]
        assert public["language"] == "ru"


class TestEnsureProfileShape:
    def test_none_gives_default(self):
        assert ensure_profile_shape(None, "uk") == default_profile("uk")

    def test_repairs_corrupt_values(self):
        raw = {
            "skill_level": 250,
            "confidence": 5,
            "bottleneck": "bored",
            "signals": {"quiz_accuracy": "abc", "abandon_rate": 3, "help_taps_per_100_words": -4},
            "history": [
                {"ts": "garbage", "skill_level": 20, "performance": 0.5, "difficulty": 20},
                {"ts": "2026-03-01T10:00:00+00:00", "skill_level": 30, "performance": 0.8, "difficulty": 28},
                "nope",
            ],
            "comfort_band": [1, 2],
            "recommended": {"text_types": [1, 2], "daily_plan": {"mix": {"challenge": 0}}},
        }
        profile = ensure_profile_shape(raw, "ru")
        assert profile.skill_level == 100.0
        assert profile.confidence == 0.99
        assert profile.bottleneck == Bottleneck.BALANCED
        assert profile.signals.quiz_accuracy == 0.0
        assert profile.signals.abandon_rate == 1.0
        assert profile.signals.help_taps_per_100_words == 0.0
        assert len(profile.history) == 1
        assert profile.history[0].ts == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
        assert profile.comfort_band == (94, 100)
        assert profile.recommended.text_types == default_profile("ru").recommended.text_types
        assert profile.recommended.daily_plan.mix.challenge == 0.0

    def test_language_argument_wins(self):
        assert ensure_profile_shape({"language": "ru"}, "uk").language == Language.UK

    def test_keeps_valid_profile(self):
        profile = Profile(language=Language.RU, skill_level=42.5, confidence=0.6)
        assert ensure_profile_shape(profile, "ru") == profile

    def test_confidence_floor(self):
        assert ensure_profile_shape({"confidence": 0.01}, "ru").confidence == 0.1
