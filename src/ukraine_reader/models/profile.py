"""Per-language reading profile models."""

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, ValidationError, computed_field, field_validator

from ukraine_reader.utils import as_utc, clamp, coerce_float, parse_timestamp

DEFAULT_CHILD_ID = "single-child"
DEFAULT_SKILL_LEVEL = 25.0
DEFAULT_CONFIDENCE = 0.2
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.99
DEFAULT_PACE_WPM = 70.0


class UnsupportedLanguageError(ValueError):
    """Raised for a language code the reader does not support."""


class Language(StrEnum):
    """Reading languages."""

    RU = "ru"
    UK = "uk"

    @classmethod
    def parse(cls, value: Any) -> "Language":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedLanguageError(f"Unsupported language: {value!r}") from None


class Bottleneck(StrEnum):
    """Primary limiting factor in the learner's current reading."""

    DECODING_LIMITED = "decoding_limited"
    COMPREHENSION_LIMITED = "comprehension_limited"
    STAMINA_LIMITED = "stamina_limited"
    BALANCED = "balanced"


class Bands(NamedTuple):
    comfort: tuple[float, float]
    instructional: tuple[float, float]
    frustration: tuple[float, float]


def compute_bands(skill_level: float) -> Bands:
    """Difficulty bands relative to a skill level, clamped to [0, 100]."""
    skill = clamp(skill_level, 0.0, 100.0)
    return Bands(
        comfort=(clamp(skill - 6, 0.0, 100.0), clamp(skill + 4, 0.0, 100.0)),
        instructional=(clamp(skill + 4, 0.0, 100.0), clamp(skill + 12, 0.0, 100.0)),
        frustration=(clamp(skill + 12, 0.0, 100.0), 100.0),
    )


class Signals(BaseModel):
    """EWMA-smoothed behavioral signals."""

    help_taps_per_100_words: float = 0.0
    quiz_accuracy: float = 0.0
    abandon_rate: float = 0.0
    pace_wpm_proxy: float = DEFAULT_PACE_WPM


class DifficultyMix(BaseModel):
    """Share of comfort / instructional / challenge texts in a day."""

    comfort: float = 0.7
    instructional: float = 0.3
    challenge: float = 0.0


class DailyPlan(BaseModel):
    challenges_per_day: int = 4
    mix: DifficultyMix = Field(default_factory=DifficultyMix)


class Recommendations(BaseModel):
    """Content strategy derived from bottleneck and confidence."""

    text_types: list[str] = Field(
        default_factory=lambda: ["short dialogue-heavy stories", "gentle everyday stories"]
    )
    activities: list[str] = Field(
        default_factory=lambda: ["read passage (3 min)", "2 quick comprehension questions"]
    )
    daily_plan: DailyPlan = Field(default_factory=DailyPlan)


class HistoryEntry(BaseModel):
    """Skill snapshot appended after each session or diagnostic."""

    ts: datetime
    skill_level: float
    performance: float
    difficulty: float
    source: str | None = None
    run_id: str | None = None

    @field_validator("ts")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Profile(BaseModel):
    """Reading profile for one language.

    Bands are computed from ``skill_level`` on every access and are never
    stored, so they cannot go stale.
    """

    child_id: str = DEFAULT_CHILD_ID
    language: Language
    skill_level: float = DEFAULT_SKILL_LEVEL
    confidence: float = DEFAULT_CONFIDENCE
    trend_7d: float = 0.0
    trend_30d: float = 0.0
    bottleneck: Bottleneck = Bottleneck.BALANCED
    signals: Signals = Field(default_factory=Signals)
    recommended: Recommendations = Field(default_factory=Recommendations)
    history: list[HistoryEntry] = Field(default_factory=list)
    updated_ts: datetime | None = None

    @computed_field
    @property
    def comfort_band(self) -> tuple[float, float]:
        return compute_bands(self.skill_level).comfort

    @computed_field
    @property
    def instructional_band(self) -> tuple[float, float]:
        return compute_bands(self.skill_level).instructional

    @computed_field
    @property
    def frustration_band(self) -> tuple[float, float]:
        return compute_bands(self.skill_level).frustration

    def to_public(self) -> dict[str, Any]:
        """JSON-ready profile without history."""
        return self.model_dump(mode="json", exclude={"history"})


class ProfileSnapshot(BaseModel):
    """Dual-language export document."""

    ru: dict[str, Any]
    uk: dict[str, Any]
    updated_ts: datetime


def default_profile(language: Language | str) -> Profile:
    return Profile(language=Language.parse(language))


def _as_mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _string_list(value: Any, default: list[str]) -> list[str]:
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    return list(default)


def ensure_profile_shape(raw: Profile | Mapping | None, language: Language | str) -> Profile:
    """Build a fully-populated, range-safe profile from partial or corrupt input.

    Every field has a named default. Numeric fields fall back to their default
    when missing or unreadable and are re-clamped, so a corrupted stored
    profile heals on the next read. Never raises for bad field values.
    """
    lang = Language.parse(language)
    if isinstance(raw, Profile):
        data: Mapping = raw.model_dump()
    else:
        data = _as_mapping(raw)

    base_signals = Signals()
    signals_raw = _as_mapping(data.get("signals"))
    signals = Signals(
        help_taps_per_100_words=max(0.0, coerce_float(
            signals_raw.get("help_taps_per_100_words"), base_signals.help_taps_per_100_words
        )),
        quiz_accuracy=clamp(coerce_float(
            signals_raw.get("quiz_accuracy"), base_signals.quiz_accuracy
        )),
        abandon_rate=clamp(coerce_float(
            signals_raw.get("abandon_rate"), base_signals.abandon_rate
        )),
        pace_wpm_proxy=max(0.0, coerce_float(
            signals_raw.get("pace_wpm_proxy"), base_signals.pace_wpm_proxy
        )),
    )

    base_recommended = Recommendations()
    recommended_raw = _as_mapping(data.get("recommended"))
    plan_raw = _as_mapping(recommended_raw.get("daily_plan"))
    mix_raw = _as_mapping(plan_raw.get("mix"))
    base_mix = base_recommended.daily_plan.mix
    recommended = Recommendations(
        text_types=_string_list(recommended_raw.get("text_types"), base_recommended.text_types),
        activities=_string_list(recommended_raw.get("activities"), base_recommended.activities),
        daily_plan=DailyPlan(
            challenges_per_day=max(1, int(coerce_float(
                plan_raw.get("challenges_per_day"), base_recommended.daily_plan.challenges_per_day
            ))),
            mix=DifficultyMix(
                comfort=clamp(coerce_float(
                    mix_raw.get("comfort"), base_mix.comfort, allow_zero=True
                )),
                instructional=clamp(coerce_float(
                    mix_raw.get("instructional"), base_mix.instructional, allow_zero=True
                )),
                challenge=clamp(coerce_float(
                    mix_raw.get("challenge"), base_mix.challenge, allow_zero=True
                )),
            ),
        ),
    )

    history = []
    raw_history = data.get("history")
    for entry in raw_history if isinstance(raw_history, list) else []:
        if isinstance(entry, HistoryEntry):
            history.append(entry)
            continue
        try:
            history.append(HistoryEntry.model_validate(entry))
        except ValidationError:
            continue

    try:
        bottleneck = Bottleneck(data.get("bottleneck"))
    except ValueError:
        bottleneck = Bottleneck.BALANCED

    child_id = data.get("child_id")
    return Profile(
        child_id=child_id if isinstance(child_id, str) and child_id else DEFAULT_CHILD_ID,
        language=lang,
        skill_level=clamp(coerce_float(data.get("skill_level"), DEFAULT_SKILL_LEVEL), 0.0, 100.0),
        confidence=clamp(
            coerce_float(data.get("confidence"), DEFAULT_CONFIDENCE), MIN_CONFIDENCE, MAX_CONFIDENCE
        ),
        trend_7d=coerce_float(data.get("trend_7d"), 0.0, allow_zero=True),
        trend_30d=coerce_float(data.get("trend_30d"), 0.0, allow_zero=True),
        bottleneck=bottleneck,
        signals=signals,
        recommended=recommended,
        history=history,
        updated_ts=parse_timestamp(data.get("updated_ts")),
    )
