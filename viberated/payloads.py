"""Pydantic models for the payloads a measurement UI consumes.

``schema_version`` lets a display client and this package evolve
independently; bump it on backwards-incompatible shape changes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from viberated_core.vibe_math import motion_magnitude, round_half_up

from .domain_models import MeasurementResult, ProgressUpdate, RankDefinition
from .measurement.analyzer import vibe_indicator
from .resonance import AccrualOutcome, format_vibrations, rank_progress

SCHEMA_VERSION: str = "1"


class SamplePayload(BaseModel):
    sound_db: float
    light_lux: float
    motion_deviation: float


class ProgressPayload(BaseModel):
    """Emitted once per collected sample while a run is in flight."""

    schema_version: str = SCHEMA_VERSION
    progress_percent: float
    seconds_remaining: int
    sample_index: int
    total_samples: int
    latest: SamplePayload


class FrequencyBucketPayload(BaseModel):
    second: int
    label: str
    sound: float
    light: int


class VibeIndicatorPayload(BaseModel):
    tier: str
    label: str
    emoji: str
    color: str


class MeasurementResultPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    schema_version: str = SCHEMA_VERSION
    sound_db: float
    light_lux: int
    stability_percent: float
    sound_score: int
    light_score: int
    stability_score: int
    vibe_score: int
    comfort_rating: int
    duration_seconds: int
    sample_count: int
    created_at: str
    indicator: VibeIndicatorPayload
    frequency_data: list[FrequencyBucketPayload] = []


class RankPayload(BaseModel):
    rank: int
    name: str
    icon: str
    color: str
    min_vibrations: int


class BadgePayload(BaseModel):
    id: str
    name: str
    icon: str
    description: str


class AccrualPayload(BaseModel):
    schema_version: str = SCHEMA_VERSION
    base_points: int
    streak_multiplier: float
    daily_bonus: int
    new_location_bonus: int
    points: int
    total_vibrations: int
    total_display: str
    rank: RankPayload
    rank_progress_percent: float
    vibrations_to_next: int
    rank_up: RankPayload | None = None
    new_badges: list[BadgePayload] = []


def _rank_payload(rank: RankDefinition) -> RankPayload:
    return RankPayload(
        rank=rank.rank,
        name=rank.name,
        icon=rank.icon,
        color=rank.color,
        min_vibrations=rank.min_vibrations,
    )


def build_progress_payload(update: ProgressUpdate) -> ProgressPayload:
    sample = update.latest_sample
    x, y, z = sample.motion
    return ProgressPayload(
        progress_percent=round_half_up(update.progress_percent, 1),
        seconds_remaining=update.seconds_remaining,
        sample_index=update.sample_index,
        total_samples=update.total_samples,
        latest=SamplePayload(
            sound_db=round_half_up(sample.sound_db, 1),
            light_lux=round_half_up(sample.light_lux),
            motion_deviation=round_half_up(motion_magnitude(x, y, z), 3),
        ),
    )


def build_result_payload(result: MeasurementResult) -> MeasurementResultPayload:
    indicator = vibe_indicator(result.vibe_score)
    data = result.to_dict()
    data["indicator"] = VibeIndicatorPayload(
        tier=indicator.tier, label=indicator.label, emoji=indicator.emoji, color=indicator.color
    )
    return MeasurementResultPayload(**data)


def build_accrual_payload(
    outcome: AccrualOutcome,
    *,
    total_vibrations: int | None = None,
    rank_up: RankDefinition | None = None,
) -> AccrualPayload:
    """Summarize an accrual; *total_vibrations* overrides the computed total with the stored one."""
    total = outcome.new_vibrations if total_vibrations is None else total_vibrations
    progress = rank_progress(total)
    shown_rank_up = rank_up if total_vibrations is not None else outcome.rank_up
    return AccrualPayload(
        base_points=outcome.points.base,
        streak_multiplier=outcome.points.streak_multiplier,
        daily_bonus=outcome.points.daily_bonus,
        new_location_bonus=outcome.points.new_location_bonus,
        points=outcome.points.total,
        total_vibrations=total,
        total_display=format_vibrations(total),
        rank=_rank_payload(progress.current),
        rank_progress_percent=round_half_up(progress.progress_percent, 1),
        vibrations_to_next=progress.to_next,
        rank_up=_rank_payload(shown_rank_up) if shown_rank_up is not None else None,
        new_badges=[
            BadgePayload(id=b.id, name=b.name, icon=b.icon, description=b.description)
            for b in outcome.new_badges
        ],
    )
