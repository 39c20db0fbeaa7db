from __future__ import annotations

import numpy as np
import pytest
from builders import NOON_UTC, constant_samples, make_result, make_sample

from viberated.measurement.analyzer import (
    EmptySampleBufferError,
    analyze_samples,
    build_frequency_data,
    compare_to_expected,
    stability_percent,
    vibe_indicator,
)
from viberated.measurement.strategies import SimulatedSampleStrategy
from viberated_core.comfort_bands import LOCATION_PRESETS


def test_ideal_environment_scores_perfect() -> None:
    result = analyze_samples(constant_samples(170), duration_seconds=17, created_at=NOON_UTC)
    assert result.sound_db == 50.0
    assert result.light_lux == 400
    assert result.stability_percent == 100.0
    assert (result.sound_score, result.light_score, result.stability_score) == (100, 100, 100)
    assert result.vibe_score == 100
    assert result.comfort_rating == 10
    assert result.sample_count == 170
    assert result.created_at == NOON_UTC


def test_band_edges_score_fifty() -> None:
    samples = constant_samples(50, sound_db=60.0, light_lux=500.0)
    result = analyze_samples(samples, duration_seconds=5)
    assert result.sound_score == 50
    assert result.light_score == 50
    # 0.4*50 + 0.3*50 + 0.3*100 = 65
    assert result.vibe_score == 65
    assert result.comfort_rating == 7


def test_stability_uses_population_variance() -> None:
    samples = [
        make_sample(motion=(0.0, 0.0, 9.8)) if i % 2 == 0 else make_sample(motion=(1.0, 0.0, 9.8))
        for i in range(20)
    ]
    result = analyze_samples(samples, duration_seconds=5)
    # magnitudes alternate 0 and 1: population variance 0.25
    assert result.stability_percent == 75.0
    assert result.stability_score == 75


def test_wild_motion_floors_stability_at_zero() -> None:
    samples = [make_sample(motion=(5.0 * (i % 2), 0.0, 9.8)) for i in range(10)]
    assert analyze_samples(samples, duration_seconds=5).stability_score == 0


def test_empty_buffer_is_a_programming_error() -> None:
    with pytest.raises(EmptySampleBufferError):
        analyze_samples([])
    assert issubclass(EmptySampleBufferError, AssertionError)


def test_stability_percent_rejects_empty_motion() -> None:
    with pytest.raises(EmptySampleBufferError):
        stability_percent(np.empty((0, 3)))


def test_location_preset_bands_change_scores() -> None:
    result = analyze_samples(
        constant_samples(50), duration_seconds=5, bands=LOCATION_PRESETS["library"]
    )
    # library sound band 30-45: mid 37.5, tol 7.5, distance 12.5 -> 16.67
    assert result.sound_score == 17
    # library light band 350-550: mid 450, tol 100, distance 50 -> 75
    assert result.light_score == 75


@pytest.mark.asyncio
async def test_simulated_run_stays_within_score_ranges() -> None:
    strategy = SimulatedSampleStrategy(seed=11)
    samples = [await strategy.next_sample(None) for _ in range(170)]
    result = analyze_samples(samples, duration_seconds=17)
    for score in (
        result.sound_score,
        result.light_score,
        result.stability_score,
        result.vibe_score,
    ):
        assert 0 <= score <= 100
    assert 1 <= result.comfort_rating <= 10
    assert result.vibe_score == (
        4 * result.sound_score + 3 * result.light_score + 3 * result.stability_score + 5
    ) // 10


# ---------------------------------------------------------------------------
# Frequency data
# ---------------------------------------------------------------------------


def test_frequency_data_one_bucket_per_second() -> None:
    result = analyze_samples(constant_samples(170), duration_seconds=17)
    assert len(result.frequency_data) == 17
    assert [b.second for b in result.frequency_data] == list(range(1, 18))
    assert result.frequency_data[0].label == "1s"
    assert all(b.sound == 50.0 and b.light == 40 for b in result.frequency_data)


def test_frequency_data_drops_remainder_samples() -> None:
    sound = np.array([40.0, 50.0, 60.0, 70.0, 99.0])
    light = np.array([300.0, 500.0, 410.0, 390.0, 9999.0])
    buckets = build_frequency_data(sound, light, duration_seconds=2)
    assert len(buckets) == 2
    assert buckets[0].sound == 45.0
    assert buckets[0].light == 40
    assert buckets[1].sound == 65.0
    assert buckets[1].light == 40


def test_frequency_data_empty_when_fewer_samples_than_seconds() -> None:
    result = analyze_samples(constant_samples(10), duration_seconds=17)
    assert result.frequency_data == ()


def test_frequency_sound_is_rounded_to_one_decimal() -> None:
    buckets = build_frequency_data(np.array([50.0, 50.25]), np.array([400.0, 400.0]), 1)
    assert buckets[0].sound == 50.1


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("score", "tier"),
    [(95, "perfect"), (90, "perfect"), (80, "great"), (60, "good"), (10, "rough")],
)
def test_vibe_indicator(score: int, tier: str) -> None:
    assert vibe_indicator(score).tier == tier


def test_compare_to_expected_for_cafe() -> None:
    comparison = compare_to_expected(make_result(stability_percent=100.0), "cafe")
    assert comparison["sound"] == {
        "actual": 50.0,
        "expected": "45-65",
        "in_range": True,
        "unit": "dB",
    }
    assert comparison["light"]["in_range"] is True
    assert comparison["stability"]["expected"] == "60-85"
    assert comparison["stability"]["in_range"] is False
