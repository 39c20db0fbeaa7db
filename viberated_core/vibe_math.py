"""Scalar helpers shared by the analyzer and the accrual rules.

Rounding follows half-up semantics (``2.5 -> 3``, ``-2.5 -> -2``) so that
scores shown to users never depend on banker's rounding.
"""

from __future__ import annotations

from math import floor, isfinite, sqrt

GRAVITY_MPS2 = 9.8

MIN_COMFORT_RATING = 1
MAX_COMFORT_RATING = 10


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float, digits: int = 0) -> float:
    scale = 10.0**digits
    return floor(float(value) * scale + 0.5) / scale


def round_int(value: float) -> int:
    return int(floor(float(value) + 0.5))


def motion_magnitude(x: float, y: float, z: float, *, gravity: float = GRAVITY_MPS2) -> float:
    """Deviation of an accelerometer reading from rest under gravity."""
    return sqrt(x * x + y * y + (z - gravity) ** 2)


def stability_from_variance(variance: float) -> float:
    """Map motion variance to a 0-100 stability percentage (linear, floored at 0)."""
    if not isfinite(variance):
        return 0.0
    return clamp(100.0 - variance * 100.0, 0.0, 100.0)


def composite_vibe_score(sound_score: int, light_score: int, stability_score: int) -> int:
    """Weighted composite of the three integer sub-scores.

    Integer arithmetic keeps ``0.4*a + 0.3*b + 0.3*c`` exact before rounding.
    """
    weighted_tenths = 4 * int(sound_score) + 3 * int(light_score) + 3 * int(stability_score)
    return (weighted_tenths + 5) // 10


def comfort_rating(vibe_score: int) -> int:
    rating = (int(vibe_score) + 5) // 10
    return int(clamp(rating, MIN_COMFORT_RATING, MAX_COMFORT_RATING))
