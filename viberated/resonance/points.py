from __future__ import annotations

from dataclasses import dataclass

from viberated_core.vibe_math import round_int

from ..constants import (
    BASE_VIBRATIONS,
    DAILY_BONUS,
    GOOD_SCORE_BONUS,
    GOOD_SCORE_THRESHOLD,
    GREAT_SCORE_BONUS,
    GREAT_SCORE_THRESHOLD,
    MAX_STREAK_MULTIPLIER,
    NEW_LOCATION_BONUS,
    STREAK_STEP,
)
from ..domain_models import MeasurementContext, MeasurementResult


@dataclass(frozen=True, slots=True)
class PointsBreakdown:
    base: int
    streak_multiplier: float
    daily_bonus: int
    new_location_bonus: int
    total: int


def quality_base(vibe_score: int) -> int:
    base = BASE_VIBRATIONS
    if vibe_score >= GOOD_SCORE_THRESHOLD:
        base += GOOD_SCORE_BONUS
    if vibe_score >= GREAT_SCORE_THRESHOLD:
        base += GREAT_SCORE_BONUS
    return base


def streak_multiplier(streak_days: int) -> float:
    return min(1.0 + STREAK_STEP * max(0, int(streak_days)), MAX_STREAK_MULTIPLIER)


def points_breakdown(
    result: MeasurementResult, context: MeasurementContext, streak_days: int | None = None
) -> PointsBreakdown:
    streak = context.streak_days if streak_days is None else streak_days
    base = quality_base(result.vibe_score)
    multiplier = streak_multiplier(streak)
    daily = DAILY_BONUS if context.is_first_today else 0
    new_location = NEW_LOCATION_BONUS if context.is_new_location else 0
    return PointsBreakdown(
        base=base,
        streak_multiplier=multiplier,
        daily_bonus=daily,
        new_location_bonus=new_location,
        total=round_int(base * multiplier + daily + new_location),
    )


def calculate_points(
    result: MeasurementResult, context: MeasurementContext, streak_days: int | None = None
) -> int:
    """Vibrations earned for one measurement.

    The streak multiplier scales only the quality-adjusted base; the daily and
    new-location bonuses are added flat afterwards.
    """
    return points_breakdown(result, context, streak_days).total
