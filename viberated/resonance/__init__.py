from .badges import BADGES, badge_by_id, check_badges, check_collection_badges
from .day_context import DayStatus, resolve_day_status
from .outcome import AccrualOutcome, apply_measurement
from .points import PointsBreakdown, calculate_points, points_breakdown
from .ranks import (
    RANKS,
    RankProgress,
    current_rank,
    detect_rank_up,
    format_vibrations,
    rank_progress,
)

__all__ = [
    "BADGES",
    "RANKS",
    "AccrualOutcome",
    "DayStatus",
    "PointsBreakdown",
    "RankProgress",
    "apply_measurement",
    "badge_by_id",
    "calculate_points",
    "check_badges",
    "check_collection_badges",
    "current_rank",
    "detect_rank_up",
    "format_vibrations",
    "points_breakdown",
    "rank_progress",
    "resolve_day_status",
]
