from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest
from builders import NOON_UTC, make_result, make_state

from viberated.resonance.badges import (
    BADGES,
    badge_by_id,
    check_badges,
    check_collection_badges,
    measurement_hour,
)


def _ids(badges) -> list[str]:
    return [b.id for b in badges]


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, tzinfo=UTC)


def test_first_measurement_earns_first_vibe() -> None:
    badges = check_badges(make_state(total_measurements=1), make_result(), tz=UTC)
    assert _ids(badges) == ["first_vibe"]


def test_nothing_for_an_ordinary_measurement() -> None:
    assert check_badges(make_state(total_measurements=4), make_result(), tz=UTC) == ()


@pytest.mark.parametrize(
    ("hour", "expected"),
    [(0, ["early_bird"]), (6, ["early_bird"]), (7, []), (21, []), (22, ["night_owl"])],
)
def test_time_of_day_badges(hour: int, expected: list[str]) -> None:
    result = make_result(created_at=_at(hour, 59 if hour == 6 else 0))
    assert _ids(check_badges(make_state(total_measurements=2), result, tz=UTC)) == expected


def test_hour_uses_configured_timezone() -> None:
    # 03:00 UTC is 23:00 the previous evening in New York (EDT starts March 8 2026).
    result = make_result(created_at=_at(3))
    assert measurement_hour(result, ZoneInfo("America/New_York")) == 23
    badges = check_badges(make_state(total_measurements=2), result, tz=ZoneInfo("America/New_York"))
    assert _ids(badges) == ["night_owl"]


def test_streak_thresholds_co_fire() -> None:
    badges = check_badges(make_state(total_measurements=9, streak_days=7), make_result(), tz=UTC)
    assert _ids(badges) == ["streak_3", "streak_7"]


def test_perfect_comfort() -> None:
    badges = check_badges(
        make_state(total_measurements=3), make_result(comfort_rating=10, vibe_score=97), tz=UTC
    )
    assert _ids(badges) == ["perfect_10"]


def test_all_independent_predicates_can_fire_together() -> None:
    state = make_state(total_measurements=1, streak_days=30)
    result = make_result(comfort_rating=10, created_at=_at(5))
    badges = check_badges(state, result, tz=UTC)
    assert _ids(badges) == [
        "first_vibe",
        "early_bird",
        "streak_3",
        "streak_7",
        "streak_30",
        "perfect_10",
    ]


def test_collection_badges() -> None:
    state = make_state(
        total_measurements=40,
        distinct_cafes=10,
        distinct_libraries=5,
        distinct_cities=5,
        distinct_vibe_recipients=10,
    )
    badges = check_badges(state, make_result(), tz=UTC)
    assert _ids(badges) == ["cafe_hunter", "library_lover", "vibe_giver", "explorer"]


def test_collection_badges_below_threshold() -> None:
    state = make_state(total_measurements=40, distinct_cafes=9, distinct_cities=4)
    assert check_badges(state, make_result(), tz=UTC) == ()


def test_collection_badges_without_a_measurement() -> None:
    state = make_state(
        streak_days=30,
        distinct_vibe_recipients=10,
        distinct_cities=5,
        earned_badge_ids={"explorer"},
    )
    assert _ids(check_collection_badges(state)) == ["vibe_giver"]
    assert check_collection_badges(make_state(distinct_vibe_recipients=9)) == ()


def test_collection_rules_agree_with_measurement_rules() -> None:
    state = make_state(total_measurements=40, distinct_cafes=10, distinct_vibe_recipients=10)
    from_measurement = check_badges(state, make_result(), tz=UTC)
    assert _ids(check_collection_badges(state)) == _ids(from_measurement)


def test_already_earned_badges_are_excluded() -> None:
    state = make_state(total_measurements=1, streak_days=3, earned_badge_ids={"first_vibe"})
    assert _ids(check_badges(state, make_result(), tz=UTC)) == ["streak_3"]


def test_check_badges_is_idempotent() -> None:
    state = make_state(total_measurements=1, streak_days=3)
    result = make_result(comfort_rating=10)
    first = check_badges(state, result, tz=UTC)
    second = check_badges(state, result, tz=UTC)
    assert first == second
    assert state.earned_badge_ids == frozenset()
    assert len(BADGES) == 11


def test_badge_by_id() -> None:
    badge = badge_by_id("explorer")
    assert badge is not None and badge.name == "Explorer"
    assert badge_by_id("nope") is None


def test_default_timezone_is_device_local() -> None:
    expected = NOON_UTC.astimezone().hour
    assert measurement_hour(make_result(created_at=NOON_UTC)) == expected
