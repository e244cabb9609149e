"""Performance scoring from comprehension and behavioral signals."""

from ukraine_reader.models.summary import Summary
from ukraine_reader.utils import clamp

# Struggle penalty weights
HELP_WEIGHT = 0.35
REPEAT_WEIGHT = 0.20
PAUSE_WEIGHT = 0.20
ABANDON_WEIGHT = 0.25
PACE_WEIGHT = 0.20

HELP_TAPS_CEILING = 12.0
PACE_CEILING_WPM = 120.0
# Pace assumed when a summary reports none
DEFAULT_PACE_WPM = 60.0

SHORT_SESSION_SECONDS = 60.0
SHORT_SESSION_FACTOR = 0.35


def score_behavior(summary: Summary) -> float:
    """Score reading behavior in [0, 1] (1 = fluent, unassisted reading)."""
    help_norm = clamp(summary.help_taps_per_100_words / HELP_TAPS_CEILING)
    struggle_penalty = (
        HELP_WEIGHT * help_norm
        + REPEAT_WEIGHT * clamp(summary.repeat_rate)
        + PAUSE_WEIGHT * clamp(summary.pause_density)
        + ABANDON_WEIGHT * clamp(summary.abandon_rate)
    )
    pace = DEFAULT_PACE_WPM if summary.pace_wpm_proxy is None else summary.pace_wpm_proxy
    pace_contribution = PACE_WEIGHT * clamp(pace / PACE_CEILING_WPM)
    return clamp(1 - struggle_penalty + pace_contribution)


def score_performance(summary: Summary) -> float:
    """Combine quiz accuracy and behavior into a session performance in [0, 1].

    Sessions shorter than a minute keep only 35% of their score, whatever
    accuracy they report.
    """
    behavior = score_behavior(summary)
    if summary.quiz_count > 0:
        performance = clamp(0.6 * summary.quiz_accuracy + 0.4 * behavior)
    else:
        performance = clamp(0.85 * behavior)

    if 0 < summary.duration_sec < SHORT_SESSION_SECONDS:
        performance *= SHORT_SESSION_FACTOR
    return performance


def score_diagnostic_passage(summary: Summary) -> float:
    """Diagnostic passage performance, weighted towards comprehension."""
    comprehension = clamp(summary.quiz_accuracy)
    return clamp(0.7 * comprehension + 0.3 * score_behavior(summary))
