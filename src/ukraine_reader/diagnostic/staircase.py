"""Staircase difficulty walk for diagnostic passages."""

from ukraine_reader.utils import clamp, coerce_float

DEFAULT_START_DIFFICULTY = 25.0

# (minimum performance, difficulty step), checked top-down
STAIRCASE_STEPS: list[tuple[float, float]] = [
    (0.8, 6.0),
    (0.6, 2.0),
    (0.4, -2.0),
]
FLOOR_STEP = -6.0


def get_next_diagnostic_difficulty(current_difficulty: float, performance: float) -> float:
    """Difficulty for the next passage given the last passage's performance.

    Coarser than the session estimator so a run converges within a few
    passages. Result is clamped to [0, 100].
    """
    difficulty = coerce_float(current_difficulty, DEFAULT_START_DIFFICULTY)
    for threshold, step in STAIRCASE_STEPS:
        if performance >= threshold:
            return clamp(difficulty + step, 0.0, 100.0)
    return clamp(difficulty + FLOOR_STEP, 0.0, 100.0)
