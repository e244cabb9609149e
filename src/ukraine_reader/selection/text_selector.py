"""Text selection for reading sessions and diagnostic passages."""

import random
from collections.abc import Collection, Sequence

from ukraine_reader.models.profile import Profile
from ukraine_reader.models.text import Text

RECENT_TEXT_LIMIT = 15


def choose_text_for_session(
    texts: Sequence[Text],
    profile: Profile,
    recent_ids: Collection[str] = (),
    rng: random.Random | None = None,
) -> Text | None:
    """Pick the next session text from the learner's comfort or instructional band.

    The instructional band is drawn with the probability given by the
    profile's daily mix. An empty band falls back to the other band, then to
    the whole pool. Recently served texts are avoided unless nothing else
    is left.

    Args:
        texts: Candidate texts for the profile's language.
        profile: Current profile.
        recent_ids: Ids of recently served texts.
        rng: Random source (unseeded when omitted).

    Returns:
        One text, or None only if ``texts`` is empty.
    """
    if not texts:
        return None
    rng = rng or random.Random()

    skill = profile.skill_level
    comfort = [t for t in texts if skill - 6 <= t.difficulty_score <= skill + 4]
    instructional = [t for t in texts if skill + 4 < t.difficulty_score <= skill + 12]

    use_instructional = rng.random() < profile.recommended.daily_plan.mix.instructional

    target, other = (instructional, comfort) if use_instructional else (comfort, instructional)
    pool = target or other or list(texts)

    unseen = [t for t in pool if t.id not in recent_ids]
    candidates = unseen or pool
    return candidates[rng.randrange(len(candidates))]


def remember_recent(
    recent_ids: Sequence[str],
    text_id: str,
    limit: int = RECENT_TEXT_LIMIT,
) -> list[str]:
    """Most-recent-first list of served text ids, de-duplicated and capped."""
    return [text_id, *(i for i in recent_ids if i != text_id)][:limit]


def choose_diagnostic_text(
    texts: Sequence[Text],
    target_difficulty: float,
    used_ids: Collection[str] = (),
) -> Text | None:
    """Pick the unused text closest to the target difficulty.

    Deterministic: ties keep pool order. When every text has been used the
    whole pool is considered again so the run never stalls.
    """
    available = [t for t in texts if t.id not in used_ids] or list(texts)
    if not available:
        return None
    return min(available, key=lambda t: abs(t.difficulty_score - target_difficulty))
