"""Reduce a run's sample buffer to a :class:`MeasurementResult`.

Averaging and variance run on unrounded values; rounding happens only when
the result object is built.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import numpy as np
from viberated_core.comfort_bands import (
    DIMENSIONS,
    DIMENSION_UNITS,
    OPTIMAL_BANDS,
    LocationPreset,
    format_band,
    in_band,
    preset_for,
    score_in_band,
)
from viberated_core.vibe_math import (
    GRAVITY_MPS2,
    comfort_rating,
    composite_vibe_score,
    round_half_up,
    round_int,
    stability_from_variance,
)
from viberated_core.vibe_tiers import tier_for_score

from ..constants import CHART_LIGHT_DIVISOR, DEFAULT_DURATION_S
from ..domain_models import FrequencyBucket, MeasurementResult, Sample


class EmptySampleBufferError(AssertionError):
    """Analysis was invoked without any samples."""


@dataclass(frozen=True, slots=True)
class VibeIndicator:
    tier: str
    label: str
    emoji: str
    color: str


def motion_magnitudes(motion: np.ndarray) -> np.ndarray:
    """Per-sample deviation from rest, for an ``(n, 3)`` x/y/z array."""
    return np.sqrt(motion[:, 0] ** 2 + motion[:, 1] ** 2 + (motion[:, 2] - GRAVITY_MPS2) ** 2)


def stability_percent(motion: np.ndarray) -> float:
    if motion.shape[0] == 0:
        raise EmptySampleBufferError("stability needs at least one motion sample")
    # np.var is the population variance (ddof=0).
    return stability_from_variance(float(np.var(motion_magnitudes(motion))))


def build_frequency_data(
    sound: np.ndarray, light: np.ndarray, duration_seconds: int
) -> tuple[FrequencyBucket, ...]:
    """One bucket per second-sized chunk; trailing remainder samples are dropped."""
    if duration_seconds <= 0:
        return ()
    chunk = sound.shape[0] // duration_seconds
    if chunk == 0:
        return ()
    usable = chunk * duration_seconds
    sound_means = sound[:usable].reshape(duration_seconds, chunk).mean(axis=1)
    light_means = light[:usable].reshape(duration_seconds, chunk).mean(axis=1)
    return tuple(
        FrequencyBucket(
            second=idx + 1,
            sound=round_half_up(float(sound_mean), 1),
            light=round_int(float(light_mean) / CHART_LIGHT_DIVISOR),
        )
        for idx, (sound_mean, light_mean) in enumerate(zip(sound_means, light_means, strict=True))
    )


def analyze_samples(
    samples: Sequence[Sample],
    *,
    duration_seconds: int = DEFAULT_DURATION_S,
    bands: LocationPreset | None = None,
    created_at: datetime | None = None,
) -> MeasurementResult:
    if not samples:
        raise EmptySampleBufferError("analyze_samples() requires at least one sample")
    active_bands = bands or OPTIMAL_BANDS
    count = len(samples)
    sound = np.fromiter((s.sound_db for s in samples), dtype=np.float64, count=count)
    light = np.fromiter((s.light_lux for s in samples), dtype=np.float64, count=count)
    motion = np.asarray([s.motion for s in samples], dtype=np.float64).reshape(count, 3)

    avg_sound = float(np.mean(sound))
    avg_light = float(np.mean(light))
    stability = stability_percent(motion)

    sound_score = round_int(score_in_band(avg_sound, active_bands["sound"]))
    light_score = round_int(score_in_band(avg_light, active_bands["light"]))
    stability_score = round_int(stability)
    vibe_score = composite_vibe_score(sound_score, light_score, stability_score)

    return MeasurementResult(
        sound_db=round_half_up(avg_sound, 1),
        light_lux=round_int(avg_light),
        stability_percent=round_half_up(stability, 1),
        sound_score=sound_score,
        light_score=light_score,
        stability_score=stability_score,
        vibe_score=vibe_score,
        comfort_rating=comfort_rating(vibe_score),
        frequency_data=build_frequency_data(sound, light, duration_seconds),
        duration_seconds=duration_seconds,
        sample_count=count,
        created_at=created_at or datetime.now(UTC),
    )


def vibe_indicator(vibe_score: float) -> VibeIndicator:
    tier = tier_for_score(vibe_score)
    return VibeIndicator(
        tier=tier["key"], label=tier["label"], emoji=tier["emoji"], color=tier["color"]
    )


def compare_to_expected(result: MeasurementResult, location_type: str | None) -> dict[str, Any]:
    """Check each raw reading against the preset band for *location_type*."""
    preset = preset_for(location_type)
    actuals = {
        "sound": result.sound_db,
        "light": result.light_lux,
        "stability": result.stability_percent,
    }
    return {
        dimension: {
            "actual": actuals[dimension],
            "expected": format_band(preset[dimension]),
            "in_range": in_band(actuals[dimension], preset[dimension]),
            "unit": DIMENSION_UNITS[dimension],
        }
        for dimension in DIMENSIONS
    }
