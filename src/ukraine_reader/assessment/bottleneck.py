"""Rule-based bottleneck classification."""

from ukraine_reader.models.profile import Bottleneck, Signals

DECODING_HELP_TAPS = 7.0
DECODING_PACE_WPM = 55.0
COMPREHENSION_ACCURACY = 0.55
STAMINA_ABANDON_RATE = 0.2


def classify_bottleneck(signals: Signals) -> Bottleneck:
    """Classify the limiting factor from smoothed signals (first rule wins)."""
    if (
        signals.help_taps_per_100_words > DECODING_HELP_TAPS
        or signals.pace_wpm_proxy < DECODING_PACE_WPM
    ):
        return Bottleneck.DECODING_LIMITED
    if signals.quiz_accuracy < COMPREHENSION_ACCURACY:
        return Bottleneck.COMPREHENSION_LIMITED
    if signals.abandon_rate > STAMINA_ABANDON_RATE:
        return Bottleneck.STAMINA_LIMITED
    return Bottleneck.BALANCED
