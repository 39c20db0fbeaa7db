from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo

from ..domain_models import (
    BadgeDefinition,
    MeasurementContext,
    MeasurementResult,
    RankDefinition,
    UserAccrualState,
)
from .badges import check_badges
from .points import PointsBreakdown, points_breakdown
from .ranks import current_rank, detect_rank_up


@dataclass(frozen=True, slots=True)
class AccrualOutcome:
    points: PointsBreakdown
    old_vibrations: int
    new_vibrations: int
    rank: RankDefinition
    rank_up: RankDefinition | None
    new_badges: tuple[BadgeDefinition, ...]
    new_state: UserAccrualState

    @property
    def vibrations_earned(self) -> int:
        return self.new_vibrations - self.old_vibrations


def apply_measurement(
    state: UserAccrualState,
    result: MeasurementResult,
    context: MeasurementContext,
    *,
    badge_tz: tzinfo | None = None,
) -> AccrualOutcome:
    """Compute everything one measurement earns, without touching storage.

    *state* is the user's state before the measurement; the returned
    ``new_state`` has the measurement counted, the streak from *context*, the
    points added and any new badges recorded.
    """
    breakdown = points_breakdown(result, context)
    old_total = state.vibrations
    new_total = old_total + breakdown.total
    merged = state.with_updates(
        vibrations=new_total,
        total_measurements=state.total_measurements + 1,
        streak_days=context.streak_days,
        last_measured_at=result.created_at,
    )
    new_badges = check_badges(merged, result, tz=badge_tz)
    final_state = merged.with_updates(
        earned_badge_ids=merged.earned_badge_ids | {b.id for b in new_badges}
    )
    return AccrualOutcome(
        points=breakdown,
        old_vibrations=old_total,
        new_vibrations=new_total,
        rank=current_rank(new_total),
        rank_up=detect_rank_up(old_total, new_total),
        new_badges=new_badges,
        new_state=final_state,
    )
