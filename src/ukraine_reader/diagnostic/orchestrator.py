"""Multi-language adaptive diagnostic run."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel

from ukraine_reader.assessment.estimator import (
    HISTORY_RETENTION_DAYS,
    diagnostic_applied,
    summarize_diagnostic,
    update_profile_from_diagnostic,
)
from ukraine_reader.assessment.scorer import score_diagnostic_passage
from ukraine_reader.assessment.signals import InteractionMetrics
from ukraine_reader.diagnostic.staircase import (
    DEFAULT_START_DIFFICULTY,
    get_next_diagnostic_difficulty,
)
from ukraine_reader.models.diagnostic import (
    AdultObservation,
    DiagnosticConfig,
    DiagnosticPassageResult,
    DiagnosticStatus,
    LanguageDiagnosticSummary,
    LanguagePassages,
)
from ukraine_reader.models.profile import Language, Profile, ensure_profile_shape
from ukraine_reader.models.text import QuizQuestion, Text
from ukraine_reader.selection.text_selector import choose_diagnostic_text
from ukraine_reader.utils import coerce_float

logger = structlog.get_logger()

DEFAULT_LANGUAGES: tuple[Language, ...] = (Language.RU, Language.UK)


class DiagnosticRunError(RuntimeError):
    """Raised for an action the run cannot take in its current state."""


class DiagnosticOutcome(BaseModel):
    """Profiles and per-language summary produced by a completed run."""

    updated_profiles: dict[str, Profile]
    diagnostic_summary: dict[str, LanguageDiagnosticSummary]

    def to_response(self) -> dict[str, Any]:
        return {
            "updated_profiles": {
                lang: profile.to_public() for lang, profile in self.updated_profiles.items()
            },
            "diagnostic_summary": {
                lang: summary.model_dump(mode="json")
                for lang, summary in self.diagnostic_summary.items()
            },
        }


def apply_diagnostic_results(
    profiles: Mapping[str, Profile | Mapping | None],
    per_language_results: Mapping[str, Any],
    end_ts: datetime,
    languages: Sequence[Language | str] = DEFAULT_LANGUAGES,
    config: DiagnosticConfig | None = None,
    retention_days: int = HISTORY_RETENTION_DAYS,
    run_id: str | None = None,
) -> DiagnosticOutcome:
    """Run one diagnostic profile update per language.

    With a ``run_id``, a language whose history already holds that run is
    left out of the outcome, so the run is applied at most once per profile.

    Args:
        profiles: Prior profile per language (missing ones start from defaults).
        per_language_results: ``{lang: {"passages": [...]}}`` per language.
        end_ts: Completion time.
        languages: Languages covered by the run.
        config: Run configuration.
        retention_days: History retention window.
        run_id: Run being applied.

    Returns:
        DiagnosticOutcome with updated profiles and summaries.
    """
    config = config or DiagnosticConfig()
    updated: dict[str, Profile] = {}
    summaries: dict[str, LanguageDiagnosticSummary] = {}
    for language in (Language.parse(lang) for lang in languages):
        before = ensure_profile_shape(profiles.get(language.value), language)
        if run_id is not None and diagnostic_applied(before, run_id):
            logger.warning("diagnostic_already_applied", run_id=run_id, language=language.value)
            continue
        passages = per_language_results.get(language.value) or []
        after = update_profile_from_diagnostic(
            before,
            language,
            passages,
            end_ts,
            passages_per_language=config.passages_per_language,
            retention_days=retention_days,
            run_id=run_id,
        )
        updated[language.value] = after
        summaries[language.value] = summarize_diagnostic(before, after, passages)
    return DiagnosticOutcome(updated_profiles=updated, diagnostic_summary=summaries)


class DiagnosticRun:
    """Adaptive multi-passage, multi-language reading diagnostic.

    The caller drives the run (reader UI events), the run owns the state
    transitions and the difficulty walk:

    ``idle -> loading -> intro -> reader -> quiz -> observation -> ... ->
    finishing -> complete``, or ``invalid`` on failure / abandonment.

    Each language starts at its own prior skill level and walks a staircase
    from there. Profiles are only touched by ``finalize``; an abandoned run
    leaves them as they were.

    Args:
        run_id: Identifier of the run.
        languages: Languages in the order they are assessed.
        config: Passages per language and questions per passage.
    """

    def __init__(
        self,
        run_id: str,
        languages: Sequence[Language | str] = DEFAULT_LANGUAGES,
        config: DiagnosticConfig | None = None,
    ) -> None:
        self.run_id = run_id
        self.languages: list[Language] = [Language.parse(lang) for lang in languages] or list(
            DEFAULT_LANGUAGES
        )
        self.config = config or DiagnosticConfig()
        self.error: str | None = None

        self._status = DiagnosticStatus.IDLE
        self._pools: dict[Language, list[Text]] = {}
        self._starting_skill: dict[Language, float] = {}
        self._language_index = 0
        self._current_text: Text | None = None
        self._current_difficulty = DEFAULT_START_DIFFICULTY
        self._questions: list[QuizQuestion] = []
        self._quiz_index = 0
        self._metrics: InteractionMetrics | None = None
        self._pending: DiagnosticPassageResult | None = None
        self._used_ids: dict[Language, list[str]] = {lang: [] for lang in self.languages}
        self._results: dict[Language, list[DiagnosticPassageResult]] = {
            lang: [] for lang in self.languages
        }

    @property
    def status(self) -> DiagnosticStatus:
        return self._status

    @property
    def current_language(self) -> Language:
        return self.languages[self._language_index]

    @property
    def current_text(self) -> Text | None:
        return self._current_text

    @property
    def current_difficulty(self) -> float:
        return self._current_difficulty

    @property
    def current_question(self) -> QuizQuestion | None:
        if self._status != DiagnosticStatus.QUIZ:
            return None
        return self._questions[self._quiz_index]

    @property
    def pending_result(self) -> DiagnosticPassageResult | None:
        """Result of the passage awaiting its adult observation."""
        return self._pending

    def results(self) -> dict[str, LanguagePassages]:
        """Completed passage results per language, in server payload shape."""
        return {
            lang.value: LanguagePassages(passages=list(passages))
            for lang, passages in self._results.items()
        }

    def _require(self, *states: DiagnosticStatus) -> None:
        if self._status not in states:
            allowed = ", ".join(s.value for s in states)
            raise DiagnosticRunError(
                f"Run {self.run_id} is {self._status.value}; expected one of: {allowed}"
            )

    def _fail(self, message: str) -> None:
        self.error = message
        self._status = DiagnosticStatus.INVALID
        self._current_text = None
        self._metrics = None
        logger.warning("diagnostic_run_invalid", run_id=self.run_id, reason=message)

    def begin_loading(self) -> None:
        self._require(DiagnosticStatus.IDLE)
        self._status = DiagnosticStatus.LOADING

    def load(
        self,
        pools: Mapping[str, Sequence[Text | Mapping]],
        starting_skill_by_language: Mapping[str, float] | None = None,
    ) -> None:
        """Provide the text pool and starting skill for every language."""
        self._require(DiagnosticStatus.LOADING)
        starting_skill_by_language = starting_skill_by_language or {}
        for lang in self.languages:
            self._pools[lang] = [
                t if isinstance(t, Text) else Text.model_validate(t)
                for t in pools.get(lang.value) or []
            ]
            self._starting_skill[lang] = coerce_float(
                starting_skill_by_language.get(lang.value), DEFAULT_START_DIFFICULTY
            )
        self._status = DiagnosticStatus.INTRO
        logger.info(
            "diagnostic_run_loaded",
            run_id=self.run_id,
            pool_sizes={lang.value: len(pool) for lang, pool in self._pools.items()},
        )

    def start(self, at: datetime) -> None:
        self._require(DiagnosticStatus.INTRO)
        first = self.languages[0]
        self._begin_passage(first, self._starting_skill[first], at)

    def _begin_passage(self, language: Language, target_difficulty: float, at: datetime) -> None:
        used = self._used_ids[language]
        text = choose_diagnostic_text(self._pools.get(language, []), target_difficulty, used)
        if text is None:
            self._fail(f"No diagnostic texts available for {language.value}")
            return

        used.append(text.id)
        self._current_text = text
        self._current_difficulty = coerce_float(target_difficulty, DEFAULT_START_DIFFICULTY)
        self._questions = text.quiz[:self.config.questions_per_passage]
        self._quiz_index = 0
        self._metrics = InteractionMetrics(started_at=at)
        self._pending = None
        self._status = DiagnosticStatus.READER
        logger.debug(
            "diagnostic_passage_started",
            run_id=self.run_id,
            language=language.value,
            text_id=text.id,
            target_difficulty=self._current_difficulty,
            text_difficulty=text.difficulty_score,
        )

    def record_word_tap(self, word: str, at: datetime) -> None:
        self._require(DiagnosticStatus.READER)
        self._metrics.record_word_tap(word, at)

    def record_sentence_play(self, at: datetime) -> None:
        self._require(DiagnosticStatus.READER)
        self._metrics.record_sentence_play(at)

    def finish_reading(self, at: datetime) -> None:
        """Move from the passage to its questions (or straight to observation)."""
        self._require(DiagnosticStatus.READER)
        if self._questions:
            self._status = DiagnosticStatus.QUIZ
        else:
            self._complete_passage(at)

    def answer_question(self, choice_index: int, at: datetime) -> bool:
        """Record an answer to the current question.

        Returns:
            Whether the answer was correct.
        """
        self._require(DiagnosticStatus.QUIZ)
        question = self._questions[self._quiz_index]
        correct = choice_index == question.answer_index
        self._metrics.record_quiz_answer(correct)
        self._quiz_index += 1
        if self._quiz_index >= len(self._questions):
            self._complete_passage(at)
        return correct

    def _complete_passage(self, at: datetime) -> None:
        text = self._current_text
        summary = self._metrics.to_summary(
            text, at, completed=True, quiz_total=len(self._questions)
        )
        performance = score_diagnostic_passage(summary)
        self._pending = DiagnosticPassageResult(
            text_id=text.id,
            difficulty_score=text.difficulty_score or self._current_difficulty,
            summary=summary,
            quiz_accuracy=summary.quiz_accuracy,
            passage_performance=round(performance, 3),
            completed_ts=at,
        )
        self._status = DiagnosticStatus.OBSERVATION

    def submit_observation(
        self,
        observation: AdultObservation | Mapping | None,
        at: datetime,
    ) -> None:
        """Attach the adult observation and advance to the next passage.

        The observation is kept with the passage result only; it does not
        affect the difficulty walk or the profile update.
        """
        self._require(DiagnosticStatus.OBSERVATION)
        if observation is not None and not isinstance(observation, AdultObservation):
            observation = AdultObservation.model_validate(observation)
        result = self._pending.model_copy(update={"observation": observation})
        language = self.current_language
        self._results[language].append(result)
        self._pending = None
        self._current_text = None
        self._metrics = None

        if len(self._results[language]) < self.config.passages_per_language:
            next_difficulty = get_next_diagnostic_difficulty(
                self._current_difficulty, result.passage_performance
            )
            self._begin_passage(language, next_difficulty, at)
            return

        if self._language_index + 1 < len(self.languages):
            self._language_index += 1
            next_language = self.current_language
            self._begin_passage(next_language, self._starting_skill[next_language], at)
            return

        self._status = DiagnosticStatus.FINISHING

    def finalize(
        self,
        profiles: Mapping[str, Profile | Mapping | None],
        end_ts: datetime,
        retention_days: int = HISTORY_RETENTION_DAYS,
    ) -> DiagnosticOutcome:
        """Apply the run to each language's profile exactly once."""
        self._require(DiagnosticStatus.FINISHING)
        outcome = apply_diagnostic_results(
            profiles,
            self.results(),
            end_ts,
            languages=self.languages,
            config=self.config,
            retention_days=retention_days,
            run_id=self.run_id,
        )
        self._status = DiagnosticStatus.COMPLETE
        logger.info(
            "diagnostic_run_completed",
            run_id=self.run_id,
            summary={
                lang: s.delta_skill for lang, s in outcome.diagnostic_summary.items()
            },
        )
        return outcome

    def abandon(self) -> None:
        """Stop the run; partial passage results are discarded."""
        if self._status == DiagnosticStatus.COMPLETE:
            raise DiagnosticRunError(f"Run {self.run_id} is already complete")
        self._results = {lang: [] for lang in self.languages}
        self._pending = None
        self._fail("abandoned")
