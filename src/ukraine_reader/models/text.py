"""Reading text models (read-only to the engine)."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from ukraine_reader.utils import coerce_float


class QuizQuestion(BaseModel):
    id: str | None = None
    prompt: str
    choices: list[str] = Field(default_factory=list)
    answer_index: int = 0


class Text(BaseModel):
    """A leveled reading passage with its comprehension quiz."""

    id: str
    language: str
    title: str = ""
    difficulty_score: float = 0.0
    paragraphs: list[str] = Field(default_factory=list)
    quiz: list[QuizQuestion] = Field(default_factory=list)

    @field_validator("difficulty_score", mode="before")
    @classmethod
    def _coerce_difficulty(cls, value: Any) -> float:
        return coerce_float(value, 0.0, allow_zero=True)

    def with_quiz_limit(self, question_count: int) -> "Text":
        """Copy of the text with the quiz truncated to ``question_count``."""
        return self.model_copy(update={"quiz": self.quiz[:max(0, question_count)]})
