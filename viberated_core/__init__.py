from .comfort_bands import (
    DIMENSIONS,
    LOCATION_PRESETS,
    OPTIMAL_BANDS,
    ComfortBand,
    LocationPreset,
    in_band,
    preset_for,
    score_in_band,
)
from .vibe_math import (
    GRAVITY_MPS2,
    clamp,
    comfort_rating,
    composite_vibe_score,
    motion_magnitude,
    round_half_up,
    round_int,
    stability_from_variance,
)
from .vibe_tiers import TIERS, VibeTier, tier_by_key, tier_for_score

__all__ = [
    "DIMENSIONS",
    "GRAVITY_MPS2",
    "LOCATION_PRESETS",
    "OPTIMAL_BANDS",
    "TIERS",
    "ComfortBand",
    "LocationPreset",
    "VibeTier",
    "clamp",
    "comfort_rating",
    "composite_vibe_score",
    "in_band",
    "motion_magnitude",
    "preset_for",
    "round_half_up",
    "round_int",
    "score_in_band",
    "stability_from_variance",
    "tier_by_key",
    "tier_for_score",
]
