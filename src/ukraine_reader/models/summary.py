"""Per-session behavioral summary."""

from pydantic import BaseModel


class Summary(BaseModel):
    """Range-safe behavioral summary of one reading session or passage.

    Build from untrusted telemetry with
    ``ukraine_reader.assessment.signals.normalize_summary``.
    """

    duration_sec: float = 0.0
    word_count: int = 0
    quiz_accuracy: float = 0.0
    quiz_count: int = 0
    help_taps_per_100_words: float = 0.0
    repeat_rate: float = 0.0
    pause_density: float = 0.0
    abandon_rate: float = 0.0
    pace_wpm_proxy: float | None = None
    tts_only_ratio: float = 0.0
    text_difficulty: float | None = None
