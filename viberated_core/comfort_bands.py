from __future__ import annotations

from typing import TypedDict

from .vibe_math import clamp


class ComfortBand(TypedDict):
    min: float
    max: float


class LocationPreset(TypedDict):
    sound: ComfortBand
    light: ComfortBand
    stability: ComfortBand


DIMENSIONS: tuple[str, ...] = ("sound", "light", "stability")

OPTIMAL_BANDS: LocationPreset = {
    "sound": {"min": 40.0, "max": 60.0},
    "light": {"min": 300.0, "max": 500.0},
    "stability": {"min": 70.0, "max": 100.0},
}

DIMENSION_UNITS: dict[str, str] = {"sound": "dB", "light": "lux", "stability": "%"}

LOCATION_PRESETS: dict[str, LocationPreset] = {
    "cafe": {
        "sound": {"min": 45.0, "max": 65.0},
        "light": {"min": 250.0, "max": 450.0},
        "stability": {"min": 60.0, "max": 85.0},
    },
    "library": {
        "sound": {"min": 30.0, "max": 45.0},
        "light": {"min": 350.0, "max": 550.0},
        "stability": {"min": 80.0, "max": 95.0},
    },
    "office": {
        "sound": {"min": 40.0, "max": 55.0},
        "light": {"min": 400.0, "max": 600.0},
        "stability": {"min": 75.0, "max": 90.0},
    },
    "park": {
        "sound": {"min": 50.0, "max": 70.0},
        "light": {"min": 500.0, "max": 2000.0},
        "stability": {"min": 50.0, "max": 80.0},
    },
    "home": {
        "sound": {"min": 35.0, "max": 50.0},
        "light": {"min": 200.0, "max": 400.0},
        "stability": {"min": 85.0, "max": 98.0},
    },
}

DEFAULT_PRESET_KEY = "cafe"


def score_in_band(value: float, band: ComfortBand) -> float:
    """Triangular comfort score in [0, 100] for *value* against *band*.

    100 at the band midpoint, 50 at either band edge and 0 once the value is
    a full band width away from the midpoint.
    """
    low = float(band["min"])
    high = float(band["max"])
    if high <= low:
        raise ValueError(f"Comfort band max must exceed min, got {low!r}..{high!r}")
    midpoint = (low + high) / 2.0
    tolerance = (high - low) / 2.0
    distance = abs(float(value) - midpoint)
    return clamp(100.0 - (distance / tolerance) * 50.0, 0.0, 100.0)


def in_band(value: float, band: ComfortBand) -> bool:
    return float(band["min"]) <= float(value) <= float(band["max"])


def preset_for(location_type: str | None) -> LocationPreset:
    """Return the preset for *location_type*; unknown types fall back to cafe."""
    if location_type and location_type in LOCATION_PRESETS:
        return LOCATION_PRESETS[location_type]
    return LOCATION_PRESETS[DEFAULT_PRESET_KEY]


def format_band(band: ComfortBand) -> str:
    return f"{band['min']:g}-{band['max']:g}"
