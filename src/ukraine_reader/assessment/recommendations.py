"""Content recommendations per bottleneck."""

from ukraine_reader.models.profile import (
    Bottleneck,
    DailyPlan,
    DifficultyMix,
    Profile,
    Recommendations,
)

CONFIDENT_BALANCED_THRESHOLD = 0.75

TEXT_TYPES: dict[Bottleneck, list[str]] = {
    Bottleneck.DECODING_LIMITED: [
        "short dialogue-heavy stories",
        "repetitive folktale-style passages",
        "low rare-word passages",
    ],
    Bottleneck.COMPREHENSION_LIMITED: [
        "clear sequence stories",
        "slightly easier vocabulary with richer plot",
        "short cause-and-effect passages",
    ],
    Bottleneck.STAMINA_LIMITED: [
        "very short complete stories",
        "high-interest short scenes",
        "split passages with fast wins",
    ],
    Bottleneck.BALANCED: [
        "mixed narrative passages",
        "dialogue + descriptive balance",
        "slightly varied sentence lengths",
    ],
}

ACTIVITIES: dict[Bottleneck, list[str]] = {
    Bottleneck.DECODING_LIMITED: [
        "tap and replay hard words",
        "slow sentence replay",
        "short read + 2 comprehension checks",
    ],
    Bottleneck.COMPREHENSION_LIMITED: [
        "extra picture-backed questions",
        "brief retell prompt after reading",
        "fewer difficult words per passage",
    ],
    Bottleneck.STAMINA_LIMITED: [
        "2-minute reading blocks",
        "one challenge per sitting",
        "quick celebration after each completion",
    ],
    Bottleneck.BALANCED: [
        "read passage + comprehension",
        "occasional sentence replay",
        "steady daily routine",
    ],
}


def build_recommendations(profile: Profile, bottleneck: Bottleneck) -> Recommendations:
    """Map bottleneck and confidence to text types, activities and a daily plan.

    Only a confidently balanced learner is offered challenge texts.
    """
    daily_plan = DailyPlan()
    if bottleneck == Bottleneck.STAMINA_LIMITED:
        daily_plan = DailyPlan(
            challenges_per_day=3,
            mix=DifficultyMix(comfort=0.8, instructional=0.2, challenge=0.0),
        )

    if bottleneck == Bottleneck.BALANCED and profile.confidence > CONFIDENT_BALANCED_THRESHOLD:
        daily_plan.mix = DifficultyMix(comfort=0.6, instructional=0.3, challenge=0.1)

    return Recommendations(
        text_types=list(TEXT_TYPES[bottleneck]),
        activities=list(ACTIVITIES[bottleneck]),
        daily_plan=daily_plan,
    )
