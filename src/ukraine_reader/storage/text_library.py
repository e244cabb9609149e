"""Read-only text library backed by one JSON file per language."""

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from ukraine_reader.models.profile import Language
from ukraine_reader.models.text import Text

logger = structlog.get_logger()

DEFAULT_LIMIT = 80


class TextLibrary:
    """Texts stored as ``<texts_dir>/<lang>.json`` (a JSON list of texts)."""

    def __init__(self, texts_dir: Path):
        self.texts_dir = texts_dir

    def all_texts(self, language: Language | str) -> list[Text]:
        lang = Language.parse(language)
        path = self.texts_dir / f"{lang.value}.json"
        if not path.exists():
            return []
        texts = []
        for item in json.loads(path.read_text(encoding="utf-8")):
            try:
                texts.append(Text.model_validate({"language": lang.value, **item}))
            except (ValidationError, TypeError):
                logger.warning("text_parse_error", path=str(path))
        return texts

    def fetch_texts(
        self,
        language: Language | str,
        min_difficulty: float | None = None,
        max_difficulty: float | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[Text]:
        """Texts in a difficulty range, easiest first."""
        texts = [
            t for t in self.all_texts(language)
            if (min_difficulty is None or t.difficulty_score >= min_difficulty)
            and (max_difficulty is None or t.difficulty_score <= max_difficulty)
        ]
        texts.sort(key=lambda t: t.difficulty_score)
        return texts[:max(0, limit)]

    def fetch_diagnostic_texts(
        self,
        language: Language | str,
        question_count: int,
        min_difficulty: float | None = None,
        max_difficulty: float | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[Text]:
        """Like ``fetch_texts`` with each quiz truncated to the run's question count."""
        return [
            t.with_quiz_limit(question_count)
            for t in self.fetch_texts(language, min_difficulty, max_difficulty, limit)
        ]

    def find_text(self, text_id: str) -> Text | None:
        """Look a text up by id across every language."""
        for language in Language:
            for text in self.all_texts(language):
                if text.id == text_id:
                    return text
        return None
