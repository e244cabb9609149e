"""Skill estimation from reading sessions and diagnostic runs.

Both updates are pure functions of their inputs: the prior profile, the new
evidence and the end timestamp. Retention and trend windows are measured back
from the end timestamp, never from the wall clock.
"""

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError

from ukraine_reader.assessment.bottleneck import classify_bottleneck
from ukraine_reader.assessment.recommendations import build_recommendations
from ukraine_reader.assessment.scorer import score_diagnostic_passage, score_performance
from ukraine_reader.assessment.signals import normalize_summary
from ukraine_reader.models.diagnostic import (
    DIAGNOSTIC_PASSAGES_PER_LANGUAGE,
    DiagnosticPassageResult,
    LanguageDiagnosticSummary,
    LanguagePassages,
)
from ukraine_reader.models.profile import (
    DEFAULT_PACE_WPM,
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    HistoryEntry,
    Language,
    Profile,
    Signals,
    ensure_profile_shape,
)
from ukraine_reader.models.summary import Summary
from ukraine_reader.utils import clamp, parse_timestamp

logger = structlog.get_logger()

HISTORY_RETENTION_DAYS = 45
TREND_SHORT_DAYS = 7
TREND_LONG_DAYS = 30

PERFORMANCE_PIVOT = 0.75
INFORMATIVENESS_SCALE = 18.0
SESSION_STEP = 8.0
SESSION_EVIDENCE_WEIGHT = 0.3

DIAGNOSTIC_STEP = 12.0
DIAGNOSTIC_EVIDENCE_WEIGHT = 0.45
DIAGNOSTIC_CONFIDENCE_FLOOR = 0.55
DIAGNOSTIC_COMPLETION_BOOST = 0.10
DIAGNOSTIC_QUALITY_BOOST = 0.05

# EWMA alpha per signal
SIGNAL_ALPHAS: dict[str, float] = {
    "help_taps_per_100_words": 0.30,
    "quiz_accuracy": 0.35,
    "abandon_rate": 0.30,
    "pace_wpm_proxy": 0.25,
}


def ewma(previous: float, new: float, alpha: float = 0.25) -> float:
    """Exponentially weighted moving average step."""
    return previous * (1 - alpha) + new * alpha


def fold_signals(signals: Signals, summary: Summary) -> Signals:
    """Fold one session's raw signals into the smoothed profile signals."""
    return Signals(
        help_taps_per_100_words=round(ewma(
            signals.help_taps_per_100_words,
            summary.help_taps_per_100_words,
            SIGNAL_ALPHAS["help_taps_per_100_words"],
        ), 2),
        quiz_accuracy=round(ewma(
            signals.quiz_accuracy, summary.quiz_accuracy, SIGNAL_ALPHAS["quiz_accuracy"]
        ), 3),
        abandon_rate=round(ewma(
            signals.abandon_rate, summary.abandon_rate, SIGNAL_ALPHAS["abandon_rate"]
        ), 3),
        pace_wpm_proxy=round(ewma(
            signals.pace_wpm_proxy or DEFAULT_PACE_WPM,
            summary.pace_wpm_proxy or DEFAULT_PACE_WPM,
            SIGNAL_ALPHAS["pace_wpm_proxy"],
        ), 1),
    )


def informativeness(difficulty: float, skill_level: float) -> float:
    """Weight of evidence from a text; decays as it moves away from the skill level."""
    return math.exp(-abs(difficulty - skill_level) / INFORMATIVENESS_SCALE)


def prune_history(
    history: Iterable[HistoryEntry],
    end_ts: datetime,
    retention_days: int = HISTORY_RETENTION_DAYS,
) -> list[HistoryEntry]:
    cutoff = end_ts - timedelta(days=retention_days)
    return [entry for entry in history if entry.ts >= cutoff]


def compute_trend(history: list[HistoryEntry], end_ts: datetime, days: int) -> float:
    """Skill change between the first and last snapshot inside the window.

    Returns 0 unless the window holds at least two snapshots.
    """
    cutoff = end_ts - timedelta(days=days)
    window = [entry for entry in history if entry.ts >= cutoff]
    if len(window) < 2:
        return 0.0
    return round(window[-1].skill_level - window[0].skill_level, 2)


def _resolve_end_ts(end_ts: datetime | str) -> datetime:
    resolved = parse_timestamp(end_ts)
    if resolved is None:
        raise ValueError(f"Invalid end timestamp: {end_ts!r}")
    return resolved


def _finalize(
    current: Profile,
    *,
    skill_level: float,
    confidence: float,
    signals: Signals,
    entry: HistoryEntry,
    end_ts: datetime,
    retention_days: int,
) -> Profile:
    """Append history, recompute trends, bottleneck and recommendations."""
    history = prune_history([*current.history, entry], end_ts, retention_days)
    bottleneck = classify_bottleneck(signals)
    updated = current.model_copy(update={
        "skill_level": skill_level,
        "confidence": confidence,
        "signals": signals,
        "history": history,
        "trend_7d": compute_trend(history, end_ts, TREND_SHORT_DAYS),
        "trend_30d": compute_trend(history, end_ts, TREND_LONG_DAYS),
        "bottleneck": bottleneck,
        "updated_ts": end_ts,
    })
    return updated.model_copy(update={"recommended": build_recommendations(updated, bottleneck)})


def update_profile_from_summary(
    profile: Profile,
    summary: Summary | Mapping[str, Any],
    end_ts: datetime | str,
    retention_days: int = HISTORY_RETENTION_DAYS,
) -> Profile:
    """Update a profile with one completed reading session.

    Args:
        profile: Prior profile (re-shaped before use).
        summary: Session summary; raw telemetry is normalized first.
        end_ts: Session end time.
        retention_days: History retention window.

    Returns:
        New profile; the input is not modified.
    """
    current = ensure_profile_shape(profile, profile.language)
    if not isinstance(summary, Summary):
        summary = normalize_summary(summary)
    end = _resolve_end_ts(end_ts)

    old_skill = current.skill_level
    difficulty = summary.text_difficulty or old_skill
    performance = score_performance(summary)

    weight = informativeness(difficulty, old_skill)
    candidate_skill = old_skill + SESSION_STEP * (performance - PERFORMANCE_PIVOT) * weight
    smoothed_skill = clamp(
        (1 - SESSION_EVIDENCE_WEIGHT) * old_skill + SESSION_EVIDENCE_WEIGHT * candidate_skill,
        0.0,
        100.0,
    )

    confidence_boost = (
        clamp(summary.word_count / 500) * 0.08 + (0.04 if summary.quiz_count > 0 else 0.0)
    )
    confidence_penalty = (
        (0.06 if summary.duration_sec < 60 else 0.0) + summary.tts_only_ratio * 0.04
    )
    confidence = clamp(
        current.confidence + confidence_boost - confidence_penalty, MIN_CONFIDENCE, MAX_CONFIDENCE
    )

    skill_level = round(smoothed_skill, 2)
    updated = _finalize(
        current,
        skill_level=skill_level,
        confidence=round(confidence, 3),
        signals=fold_signals(current.signals, summary),
        entry=HistoryEntry(
            ts=end,
            skill_level=skill_level,
            performance=round(performance, 3),
            difficulty=difficulty,
            source="session",
        ),
        end_ts=end,
        retention_days=retention_days,
    )

    logger.debug(
        "profile_updated_from_summary",
        language=updated.language.value,
        old_skill=old_skill,
        new_skill=updated.skill_level,
        performance=round(performance, 3),
        informativeness=round(weight, 3),
        bottleneck=updated.bottleneck.value,
    )
    return updated


def coerce_passages(passages: Any) -> list[DiagnosticPassageResult]:
    """Accept a LanguagePassages, a ``{"passages": [...]}`` mapping or a list.

    Entries that cannot be read are skipped.
    """
    if isinstance(passages, LanguagePassages):
        items: Any = passages.passages
    elif isinstance(passages, Mapping):
        items = passages.get("passages") or []
    else:
        items = passages or []

    results = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, DiagnosticPassageResult):
            results.append(item)
            continue
        try:
            results.append(DiagnosticPassageResult.model_validate(item))
        except ValidationError as e:
            logger.warning("diagnostic_passage_skipped", error=str(e))
    return results


def _passage_performance(passage: DiagnosticPassageResult) -> float:
    if passage.passage_performance is None:
        return score_diagnostic_passage(passage.summary)
    return clamp(passage.passage_performance)


def estimate_diagnostic_skill(passages: list[DiagnosticPassageResult]) -> float | None:
    """Mean of per-passage skill points; None without passages."""
    if not passages:
        return None
    points = [
        clamp(p.difficulty_score, 0.0, 100.0)
        + DIAGNOSTIC_STEP * (_passage_performance(p) - PERFORMANCE_PIVOT)
        for p in passages
    ]
    return sum(points) / len(points)


def update_profile_from_diagnostic(
    profile: Profile | Mapping | None,
    language: Language | str,
    passages: Any,
    end_ts: datetime | str,
    passages_per_language: int = DIAGNOSTIC_PASSAGES_PER_LANGUAGE,
    retention_days: int = HISTORY_RETENTION_DAYS,
    run_id: str | None = None,
) -> Profile:
    """Apply a completed diagnostic for one language.

    Diagnostic evidence gets 45% weight (sessions get 30%) and confidence is
    floored at 0.55. An empty passage list returns the re-shaped profile
    unchanged.

    Args:
        profile: Prior profile.
        language: Language the passages were read in.
        passages: Passage results (see ``coerce_passages``).
        end_ts: Completion time of the run.
        passages_per_language: Configured passages, for the completion factor.
        retention_days: History retention window.
        run_id: Diagnostic run, recorded on the history entry.

    Returns:
        New profile.
    """
    current = ensure_profile_shape(profile, language)
    results = coerce_passages(passages)
    diagnostic_skill = estimate_diagnostic_skill(results)
    if diagnostic_skill is None:
        return current
    end = _resolve_end_ts(end_ts)

    old_skill = current.skill_level
    blended_skill = clamp(
        (1 - DIAGNOSTIC_EVIDENCE_WEIGHT) * old_skill
        + DIAGNOSTIC_EVIDENCE_WEIGHT * diagnostic_skill,
        0.0,
        100.0,
    )

    completion = min(1.0, len(results) / max(1, passages_per_language))
    quality = sum(
        clamp(p.summary.word_count / 500) * (1 - p.summary.tts_only_ratio) for p in results
    ) / len(results)
    confidence = clamp(
        max(
            DIAGNOSTIC_CONFIDENCE_FLOOR,
            current.confidence
            + DIAGNOSTIC_COMPLETION_BOOST * completion
            + DIAGNOSTIC_QUALITY_BOOST * quality,
        ),
        MIN_CONFIDENCE,
        MAX_CONFIDENCE,
    )

    signals = current.signals
    for passage in results:
        signals = fold_signals(signals, passage.summary)

    mean_performance = sum(_passage_performance(p) for p in results) / len(results)
    mean_difficulty = sum(p.difficulty_score for p in results) / len(results)
    skill_level = round(blended_skill, 2)
    updated = _finalize(
        current,
        skill_level=skill_level,
        confidence=round(confidence, 3),
        signals=signals,
        entry=HistoryEntry(
            ts=end,
            skill_level=skill_level,
            performance=round(mean_performance, 3),
            difficulty=round(mean_difficulty, 2),
            source="diagnostic",
            run_id=run_id,
        ),
        end_ts=end,
        retention_days=retention_days,
    )

    logger.info(
        "profile_updated_from_diagnostic",
        language=updated.language.value,
        passages=len(results),
        old_skill=old_skill,
        diagnostic_skill=round(diagnostic_skill, 2),
        new_skill=updated.skill_level,
        confidence=updated.confidence,
    )
    return updated


def diagnostic_applied(profile: Profile, run_id: str) -> bool:
    """Whether the profile history already holds this diagnostic run."""
    return any(entry.run_id == run_id for entry in profile.history)


def summarize_diagnostic(
    before: Profile,
    after: Profile,
    passages: Any,
) -> LanguageDiagnosticSummary:
    """Per-language result block returned when a diagnostic completes."""
    diagnostic_skill = estimate_diagnostic_skill(coerce_passages(passages))
    if diagnostic_skill is None:
        diagnostic_skill = before.skill_level
    return LanguageDiagnosticSummary(
        old_skill=before.skill_level,
        diagnostic_skill=round(diagnostic_skill, 2),
        delta_skill=round(after.skill_level - before.skill_level, 2),
        bottleneck=after.bottleneck,
    )
