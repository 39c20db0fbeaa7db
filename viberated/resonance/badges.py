"""Badge catalog and unlock rules.

Every rule is an independent predicate over the user's stats (already
including the just-finished measurement) and the measurement result.  Rules
may co-fire; badges the user already holds are never returned again.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import tzinfo

from ..constants import (
    CAFE_HUNTER_MIN_CAFES,
    EARLY_BIRD_BEFORE_HOUR,
    EXPLORER_MIN_CITIES,
    LIBRARY_LOVER_MIN_LIBRARIES,
    NIGHT_OWL_FROM_HOUR,
    VIBE_GIVER_MIN_RECIPIENTS,
)
from ..domain_models import BadgeDefinition, MeasurementResult, UserAccrualState

BADGES: tuple[BadgeDefinition, ...] = (
    BadgeDefinition("first_vibe", "First Vibe", "🎉", "Complete your first measurement"),
    BadgeDefinition("early_bird", "Early Bird", "🌅", "Measure before 7 AM"),
    BadgeDefinition("night_owl", "Night Owl", "🦉", "Measure after 10 PM"),
    BadgeDefinition("cafe_hunter", "Café Hunter", "☕", "Rate 10 different cafés"),
    BadgeDefinition("library_lover", "Library Lover", "📚", "Rate 5 libraries"),
    BadgeDefinition("streak_3", "3-Day Streak", "🔥", "Measure 3 days in a row"),
    BadgeDefinition("streak_7", "Week Warrior", "💪", "Measure 7 days in a row"),
    BadgeDefinition("streak_30", "Monthly Master", "🏆", "Measure 30 days in a row"),
    BadgeDefinition("perfect_10", "Perfect 10", "💯", "Find a location with 10/10 comfort"),
    BadgeDefinition("vibe_giver", "Vibe Giver", "💝", "Send vibes to 10 different users"),
    BadgeDefinition("explorer", "Explorer", "🗺️", "Rate locations in 5 different cities"),
)

_BADGE_BY_ID: dict[str, BadgeDefinition] = {b.id: b for b in BADGES}


@dataclass(frozen=True, slots=True)
class BadgeCheck:
    stats: UserAccrualState
    result: MeasurementResult
    local_hour: int


BadgePredicate = Callable[[BadgeCheck], bool]
StatsPredicate = Callable[[UserAccrualState], bool]

# Collection badges depend only on running totals and are also checked outside
# a measurement (after sending vibes).
COLLECTION_RULES: dict[str, StatsPredicate] = {
    "cafe_hunter": lambda s: s.distinct_cafes >= CAFE_HUNTER_MIN_CAFES,
    "library_lover": lambda s: s.distinct_libraries >= LIBRARY_LOVER_MIN_LIBRARIES,
    "vibe_giver": lambda s: s.distinct_vibe_recipients >= VIBE_GIVER_MIN_RECIPIENTS,
    "explorer": lambda s: s.distinct_cities >= EXPLORER_MIN_CITIES,
}


def _on_stats(rule: StatsPredicate) -> BadgePredicate:
    return lambda c: rule(c.stats)


BADGE_RULES: dict[str, BadgePredicate] = {
    "first_vibe": lambda c: c.stats.total_measurements == 1,
    "early_bird": lambda c: c.local_hour < EARLY_BIRD_BEFORE_HOUR,
    "night_owl": lambda c: c.local_hour >= NIGHT_OWL_FROM_HOUR,
    "streak_3": lambda c: c.stats.streak_days >= 3,
    "streak_7": lambda c: c.stats.streak_days >= 7,
    "streak_30": lambda c: c.stats.streak_days >= 30,
    "perfect_10": lambda c: c.result.comfort_rating == 10,
    **{badge_id: _on_stats(rule) for badge_id, rule in COLLECTION_RULES.items()},
}


def badge_by_id(badge_id: str) -> BadgeDefinition | None:
    return _BADGE_BY_ID.get(badge_id)


def measurement_hour(result: MeasurementResult, tz: tzinfo | None = None) -> int:
    """Hour of day of the measurement; ``tz=None`` uses the device's local time."""
    return result.created_at.astimezone(tz).hour


def check_badges(
    user_stats: UserAccrualState,
    result: MeasurementResult,
    *,
    tz: tzinfo | None = None,
    catalog: Sequence[BadgeDefinition] = BADGES,
    rules: dict[str, BadgePredicate] = BADGE_RULES,
) -> tuple[BadgeDefinition, ...]:
    """Return newly eligible badges in catalog order.

    Badges without a rule are never awarded by this function.
    """
    check = BadgeCheck(stats=user_stats, result=result, local_hour=measurement_hour(result, tz))
    earned = user_stats.earned_badge_ids
    return tuple(
        badge
        for badge in catalog
        if badge.id not in earned and badge.id in rules and rules[badge.id](check)
    )


def check_collection_badges(
    user_stats: UserAccrualState,
    *,
    catalog: Sequence[BadgeDefinition] = BADGES,
    rules: dict[str, StatsPredicate] = COLLECTION_RULES,
) -> tuple[BadgeDefinition, ...]:
    """Newly eligible collection badges, for checks that have no measurement."""
    earned = user_stats.earned_badge_ids
    return tuple(
        badge
        for badge in catalog
        if badge.id not in earned and badge.id in rules and rules[badge.id](user_stats)
    )
