"""Behavioral signal normalization and reader interaction tracking."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ukraine_reader.models.summary import Summary
from ukraine_reader.models.text import Text
from ukraine_reader.utils import clamp, coerce_float, count_words

IDLE_GAP_SECONDS = 15.0


def normalize_summary(raw: Any) -> Summary:
    """Coerce raw session telemetry into a complete, range-safe Summary.

    Accepts any subset of fields with arbitrary junk in them (or something
    that is not a mapping at all). Never raises.
    """
    data = raw if isinstance(raw, Mapping) else {}

    difficulty = coerce_float(data.get("text_difficulty"), -1.0)
    pace = coerce_float(data.get("pace_wpm_proxy"), -1.0)
    return Summary(
        duration_sec=max(0.0, coerce_float(data.get("duration_sec"), 0.0)),
        word_count=max(0, int(coerce_float(data.get("word_count"), 0.0))),
        quiz_accuracy=clamp(coerce_float(data.get("quiz_accuracy"), 0.0)),
        quiz_count=max(0, int(coerce_float(data.get("quiz_count"), 0.0))),
        help_taps_per_100_words=max(0.0, coerce_float(data.get("help_taps_per_100_words"), 0.0)),
        repeat_rate=clamp(coerce_float(data.get("repeat_rate"), 0.0)),
        pause_density=clamp(coerce_float(data.get("pause_density"), 0.0)),
        abandon_rate=clamp(coerce_float(data.get("abandon_rate"), 0.0)),
        pace_wpm_proxy=pace if pace > 0 else None,
        tts_only_ratio=clamp(coerce_float(data.get("tts_only_ratio"), 0.0)),
        text_difficulty=clamp(difficulty, 0.0, 100.0) if difficulty >= 0 else None,
    )


class InteractionMetrics(BaseModel):
    """Accumulates reader interactions for one passage.

    Args:
        started_at: When the passage was opened.
    """

    started_at: datetime
    last_interaction_at: datetime | None = None
    idle_gap_count: int = 0
    word_tap_count: int = 0
    replay_count: int = 0
    sentence_play_count: int = 0
    tap_counts_by_word: dict[str, int] = Field(default_factory=dict)
    quiz_correct_count: int = 0

    def _touch(self, at: datetime) -> None:
        last = self.last_interaction_at or self.started_at
        if (at - last).total_seconds() > IDLE_GAP_SECONDS:
            self.idle_gap_count += 1
        self.last_interaction_at = at

    def record_word_tap(self, word: str, at: datetime) -> None:
        """Count a tap on a word; tapping the same word again is a replay."""
        if not word:
            return
        self._touch(at)
        key = word.lower()
        self.word_tap_count += 1
        self.tap_counts_by_word[key] = self.tap_counts_by_word.get(key, 0) + 1
        if self.tap_counts_by_word[key] > 1:
            self.replay_count += 1

    def record_sentence_play(self, at: datetime) -> None:
        self._touch(at)
        self.sentence_play_count += 1

    def record_quiz_answer(self, correct: bool) -> None:
        if correct:
            self.quiz_correct_count += 1

    def to_summary(
        self,
        text: Text,
        ended_at: datetime,
        completed: bool = True,
        quiz_total: int | None = None,
    ) -> Summary:
        """Derive the behavioral summary for the passage.

        Args:
            text: The passage that was read.
            ended_at: When reading (and the quiz) finished.
            completed: False when the reader abandoned the passage.
            quiz_total: Number of questions asked; defaults to the full quiz.

        Returns:
            Normalized Summary.
        """
        duration_sec = max(1, round((ended_at - self.started_at).total_seconds()))
        word_count = count_words(text.paragraphs)
        if quiz_total is None:
            quiz_total = len(text.quiz)
        quiz_accuracy = self.quiz_correct_count / quiz_total if quiz_total > 0 else 0.0

        help_taps = (
            round(self.word_tap_count / word_count * 100, 2) if word_count > 0 else 0.0
        )
        repeat_rate = (
            round(self.replay_count / self.word_tap_count, 3) if self.word_tap_count > 0 else 0.0
        )
        pause_density = round(min(1.0, self.idle_gap_count / max(1.0, duration_sec / 60)), 3)
        pace_wpm = round(word_count / (duration_sec / 60), 1) if word_count > 0 else 0.0
        tts_only_ratio = round(min(
            1.0,
            self.sentence_play_count / max(1, self.word_tap_count + round(word_count / 10)),
        ), 3)

        return normalize_summary({
            "duration_sec": duration_sec,
            "word_count": word_count,
            "quiz_accuracy": round(quiz_accuracy, 3),
            "quiz_count": quiz_total,
            "help_taps_per_100_words": help_taps,
            "repeat_rate": repeat_rate,
            "pause_density": pause_density,
            "abandon_rate": 0 if completed else 1,
            "pace_wpm_proxy": pace_wpm,
            "tts_only_ratio": tts_only_ratio,
            "text_difficulty": text.difficulty_score or None,
        })
