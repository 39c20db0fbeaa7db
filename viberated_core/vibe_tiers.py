from __future__ import annotations

from typing import TypedDict


class VibeTier(TypedDict):
    key: str
    label: str
    emoji: str
    color: str
    min_score: int


# Ordered ascending by min_score; lower bounds are inclusive.
TIERS: tuple[VibeTier, ...] = (
    {"key": "rough", "label": "Rough Vibe", "emoji": "💨", "color": "#EF4444", "min_score": 0},
    {"key": "okay", "label": "Okay Vibe", "emoji": "😐", "color": "#F59E0B", "min_score": 40},
    {"key": "good", "label": "Good Vibe", "emoji": "👍", "color": "#8B5CF6", "min_score": 60},
    {"key": "great", "label": "Great Vibe", "emoji": "✨", "color": "#3B82F6", "min_score": 75},
    {"key": "perfect", "label": "Perfect Vibe", "emoji": "🔥", "color": "#10B981", "min_score": 90},
)

_TIER_BY_KEY: dict[str, VibeTier] = {t["key"]: t for t in TIERS}


def tier_for_score(vibe_score: float) -> VibeTier:
    """Return the highest tier whose lower bound is met; scores below 0 are rough."""
    selected = TIERS[0]
    for tier in TIERS:
        if vibe_score >= tier["min_score"]:
            selected = tier
    return selected


def tier_by_key(key: str) -> VibeTier | None:
    return _TIER_BY_KEY.get(key)
