from __future__ import annotations

import pytest

from viberated_core.vibe_tiers import TIERS, tier_by_key, tier_for_score


@pytest.mark.parametrize(
    ("score", "key"),
    [
        (100, "perfect"),
        (90, "perfect"),
        (89, "great"),
        (75, "great"),
        (74, "good"),
        (60, "good"),
        (59, "okay"),
        (40, "okay"),
        (39, "rough"),
        (0, "rough"),
        (-5, "rough"),
    ],
)
def test_tier_lower_bounds_are_inclusive(score: int, key: str) -> None:
    assert tier_for_score(score)["key"] == key


def test_tiers_are_sorted_ascending() -> None:
    mins = [t["min_score"] for t in TIERS]
    assert mins == sorted(mins)
    assert mins[0] == 0


def test_tier_by_key() -> None:
    tier = tier_by_key("great")
    assert tier is not None
    assert tier["color"] == "#3B82F6"
    assert tier_by_key("meh") is None
