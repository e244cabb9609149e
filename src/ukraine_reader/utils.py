"""Utility functions shared by the reading engine."""

import math
import re
from datetime import UTC, datetime
from typing import Any

WORD_PATTERN = re.compile(r"(?:[^\W\d_]|[\u0300-\u036f'’-])+")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return min(high, max(low, value))


def coerce_float(value: Any, default: float, allow_zero: bool = False) -> float:
    """Coerce untrusted input to a finite float.

    Missing, unparseable and non-finite values fall back to ``default``.
    Zero also falls back unless ``allow_zero`` is set.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    if number == 0 and not allow_zero:
        return default
    return number


def as_utc(ts: datetime) -> datetime:
    """Return an aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp or datetime; None if it cannot be read."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip()))
    except ValueError:
        return None


def utc_now() -> datetime:
    return datetime.now(UTC)


def count_words(paragraphs: list[str] | None) -> int:
    """Count letter runs (apostrophes, hyphens and stress marks included)."""
    if not paragraphs:
        return 0
    return len(WORD_PATTERN.findall(" ".join(p for p in paragraphs if isinstance(p, str))))
