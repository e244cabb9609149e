"""Reading session lifecycle payloads."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SessionStart(BaseModel):
    client_session_id: str
    language: str
    text_id: str
    challenge_type: str = "read_and_comprehension"
    difficulty_score: float = 25.0
    start_ts: datetime


class SessionEnd(BaseModel):
    completed: bool = True
    end_ts: datetime
    # Raw client telemetry; normalized before scoring.
    summary: dict[str, Any] = Field(default_factory=dict)


class SessionEvent(BaseModel):
    """One client-side reader event (tap, replay, page turn)."""

    event_id: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    ts: datetime


class SessionRecord(BaseModel):
    """Stored session: start payload plus the outcome once ended."""

    start: SessionStart
    ended: bool = False
    completed: bool | None = None
    end_ts: datetime | None = None
    summary: dict[str, Any] | None = None
    performance: float | None = None
    skill_after: float | None = None
    events: list[SessionEvent] = Field(default_factory=list)
