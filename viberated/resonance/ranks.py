from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from viberated_core.vibe_math import clamp

from ..domain_models import RankDefinition

RANKS: tuple[RankDefinition, ...] = (
    RankDefinition(1, "Listener", 0, "👂", "#6B7280", "Just starting to sense the vibes"),
    RankDefinition(2, "Sensor", 100, "📡", "#3B82F6", "Developing frequency awareness"),
    RankDefinition(3, "Resonator", 500, "🔊", "#8B5CF6", "In tune with the environment"),
    RankDefinition(4, "Harmonizer", 1500, "🎵", "#EC4899", "Creating balanced spaces"),
    RankDefinition(
        5, "Frequency Master", 5000, "⚡", "#F59E0B", "Master of environmental frequencies"
    ),
)


@dataclass(frozen=True, slots=True)
class RankProgress:
    current: RankDefinition
    next: RankDefinition | None
    progress_percent: float
    to_next: int


def validate_rank_catalog(catalog: Sequence[RankDefinition]) -> None:
    """Raise ``ValueError`` unless *catalog* is a total, strictly increasing ladder."""
    if not catalog:
        raise ValueError("Rank catalog must not be empty")
    if catalog[0].min_vibrations != 0:
        raise ValueError("First rank must start at 0 vibrations")
    for lower, upper in zip(catalog, catalog[1:]):
        if upper.rank <= lower.rank:
            raise ValueError(f"Rank numbers must increase: {lower.rank} -> {upper.rank}")
        if upper.min_vibrations <= lower.min_vibrations:
            raise ValueError(
                f"Rank thresholds must increase: {lower.name}={lower.min_vibrations} -> "
                f"{upper.name}={upper.min_vibrations}"
            )


validate_rank_catalog(RANKS)


def current_rank(
    vibrations: int, catalog: Sequence[RankDefinition] = RANKS
) -> RankDefinition:
    """Highest rank whose threshold is met; totals below 0 map to the first rank."""
    selected = catalog[0]
    for rank in catalog:
        if vibrations >= rank.min_vibrations:
            selected = rank
    return selected


def next_rank(
    rank: RankDefinition, catalog: Sequence[RankDefinition] = RANKS
) -> RankDefinition | None:
    above = [r for r in catalog if r.rank > rank.rank]
    return min(above, key=lambda r: r.rank) if above else None


def rank_progress(vibrations: int, catalog: Sequence[RankDefinition] = RANKS) -> RankProgress:
    current = current_rank(vibrations, catalog)
    upcoming = next_rank(current, catalog)
    if upcoming is None:
        return RankProgress(current=current, next=None, progress_percent=100.0, to_next=0)
    span = upcoming.min_vibrations - current.min_vibrations
    progress = clamp(100.0 * (vibrations - current.min_vibrations) / span, 0.0, 100.0)
    return RankProgress(
        current=current,
        next=upcoming,
        progress_percent=progress,
        to_next=upcoming.min_vibrations - vibrations,
    )


def detect_rank_up(
    old_vibrations: int,
    new_vibrations: int,
    catalog: Sequence[RankDefinition] = RANKS,
) -> RankDefinition | None:
    """Return the new rank iff a single accrual moved the total into a higher rank.

    Must be given the exact before/after pair of one accrual so a jump across
    several thresholds is reported once, as the final rank reached.
    """
    old_rank = current_rank(old_vibrations, catalog)
    new_rank = current_rank(new_vibrations, catalog)
    if new_rank.rank > old_rank.rank:
        return new_rank
    return None


def format_vibrations(vibrations: int) -> str:
    """Compact display form: ``1500 -> "1.5K"``, ``2000000 -> "2.0M"``."""
    if vibrations >= 1_000_000:
        return f"{vibrations / 1_000_000:.1f}M"
    if vibrations >= 1_000:
        return f"{vibrations / 1_000:.1f}K"
    return str(vibrations)
