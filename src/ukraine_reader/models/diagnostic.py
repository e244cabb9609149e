"""Diagnostic run models."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ukraine_reader.assessment.signals import normalize_summary
from ukraine_reader.models.profile import Bottleneck
from ukraine_reader.models.summary import Summary
from ukraine_reader.utils import coerce_float

DIAGNOSTIC_PASSAGES_PER_LANGUAGE = 3
DIAGNOSTIC_QUESTIONS_PER_PASSAGE = 2


class DiagnosticStatus(StrEnum):
    """Diagnostic run lifecycle states."""

    IDLE = "idle"
    LOADING = "loading"
    INTRO = "intro"
    READER = "reader"
    QUIZ = "quiz"
    OBSERVATION = "observation"
    FINISHING = "finishing"
    COMPLETE = "complete"
    INVALID = "invalid"


class ObservationTag(StrEnum):
    HESITATION = "hesitation"
    DECODING_SUPPORT = "decoding_support"
    CONFIDENCE = "confidence"
    ATTENTION = "attention"


class AdultObservation(BaseModel):
    """Qualitative notes from the supervising adult.

    Stored with the passage for the operator; not used in scoring.
    """

    tags: list[ObservationTag] = Field(default_factory=list)
    note: str | None = None


class DiagnosticConfig(BaseModel):
    passages_per_language: int = DIAGNOSTIC_PASSAGES_PER_LANGUAGE
    questions_per_passage: int = DIAGNOSTIC_QUESTIONS_PER_PASSAGE


class DiagnosticPassageResult(BaseModel):
    """Outcome of one diagnostic passage."""

    text_id: str
    difficulty_score: float = 0.0
    summary: Summary = Field(default_factory=Summary)
    quiz_accuracy: float = 0.0
    passage_performance: float | None = None
    completed_ts: datetime | None = None
    observation: AdultObservation | None = None

    @field_validator("summary", mode="before")
    @classmethod
    def _normalize_summary(cls, value: Any) -> Summary:
        if isinstance(value, Summary):
            return value
        return normalize_summary(value)

    @field_validator("difficulty_score", mode="before")
    @classmethod
    def _coerce_difficulty(cls, value: Any) -> float:
        return coerce_float(value, 0.0, allow_zero=True)


class LanguagePassages(BaseModel):
    passages: list[DiagnosticPassageResult] = Field(default_factory=list)


class LanguageDiagnosticSummary(BaseModel):
    old_skill: float
    diagnostic_skill: float
    delta_skill: float
    bottleneck: Bottleneck


class DiagnosticRunRecord(BaseModel):
    """Server-side record of a diagnostic run."""

    run_id: str
    token: str
    languages: list[str]
    config: DiagnosticConfig = Field(default_factory=DiagnosticConfig)
    starting_skill_by_language: dict[str, float] = Field(default_factory=dict)
    status: DiagnosticStatus = DiagnosticStatus.INTRO
    created_ts: datetime
    completed_ts: datetime | None = None
    observations: list[dict[str, Any]] = Field(default_factory=list)
    # Languages whose profile already holds this run's results
    applied_languages: list[str] = Field(default_factory=list)
    results: dict[str, LanguagePassages] = Field(default_factory=dict)
    diagnostic_summary: dict[str, LanguageDiagnosticSummary] = Field(default_factory=dict)
