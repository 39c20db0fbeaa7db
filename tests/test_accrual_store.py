from __future__ import annotations

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from builders import NOON_UTC, make_result

from viberated.accrual_store import (
    AccrualStore,
    StorageError,
    UnknownLocationError,
    UnknownUserError,
)


def _seed(store: AccrualStore) -> None:
    store.ensure_user("alice")
    store.ensure_user("bob")
    store.ensure_location("cafe-1", "Bean There", "cafe", "Utrecht")
    store.ensure_location("cafe-2", "Grind", "cafe", "Amsterdam")
    store.ensure_location("lib-1", "Central Library", "library", "Utrecht")


# -- users -------------------------------------------------------------------


def test_new_user_gets_welcome_bonus(store: AccrualStore) -> None:
    assert store.ensure_user("alice", "Alice") is True
    assert store.ensure_user("alice", "Alice") is False
    state = store.load_user_accrual_state("alice")
    assert state.vibrations == 50
    assert state.total_measurements == 0
    assert state.last_measured_at is None


def test_unknown_user_raises(store: AccrualStore) -> None:
    with pytest.raises(UnknownUserError):
        store.load_user_accrual_state("ghost")
    with pytest.raises(UnknownUserError):
        store.apply_accrual("ghost", 5, "e1")


# -- accrual ------------------------------------------------------------------


def test_apply_accrual_returns_before_and_after(store: AccrualStore) -> None:
    store.ensure_user("alice")
    receipt = store.apply_accrual("alice", 30, "measurement:m1")
    assert receipt.applied is True
    assert (receipt.old_total, receipt.new_total) == (50, 80)


def test_apply_accrual_is_idempotent_per_event(store: AccrualStore) -> None:
    store.ensure_user("alice")
    first = store.apply_accrual("alice", 30, "measurement:m1")
    retry = store.apply_accrual("alice", 30, "measurement:m1")
    assert retry.applied is False
    assert retry.new_total == first.new_total == 80
    assert retry.old_total == 50
    assert store.load_user_accrual_state("alice").vibrations == 80


def test_apply_accrual_refuses_negative_total(store: AccrualStore) -> None:
    store.ensure_user("alice")
    with pytest.raises(StorageError, match="negative"):
        store.apply_accrual("alice", -51, "penalty")
    assert store.load_user_accrual_state("alice").vibrations == 50


def test_concurrent_deltas_are_not_lost(store: AccrualStore) -> None:
    store.ensure_user("alice")
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: store.apply_accrual("alice", 1, f"tick:{i}"), range(40)))
    assert store.load_user_accrual_state("alice").vibrations == 90


# -- measurements & locations ------------------------------------------------


def test_save_measurement_updates_aggregates(store: AccrualStore) -> None:
    _seed(store)
    assert store.location_measurement_count("cafe-1") == 0
    store.save_measurement(make_result(vibe_score=80), "cafe-1", "alice", streak_days=1)
    store.save_measurement(make_result(vibe_score=60), "cafe-1", "bob")

    location = store.get_location("cafe-1")
    assert location is not None
    assert location["measurement_count"] == 2
    assert location["avg_vibe_score"] == pytest.approx(70.0)
    assert store.location_measurement_count("cafe-1") == 2

    state = store.load_user_accrual_state("alice")
    assert state.total_measurements == 1
    assert state.streak_days == 1
    assert state.last_measured_at == NOON_UTC


def test_save_measurement_is_idempotent_by_id(store: AccrualStore) -> None:
    _seed(store)
    result = make_result()
    first = store.save_measurement(result, "cafe-1", "alice", measurement_id="m1")
    again = store.save_measurement(result, "cafe-1", "alice", measurement_id="m1")
    assert first == again == "m1"
    assert store.location_measurement_count("cafe-1") == 1
    assert store.load_user_accrual_state("alice").total_measurements == 1


def test_save_measurement_requires_known_location(store: AccrualStore) -> None:
    store.ensure_user("alice")
    with pytest.raises(UnknownLocationError):
        store.save_measurement(make_result(), "nowhere", "alice")


def test_record_measurement_writes_everything_together(store: AccrualStore) -> None:
    _seed(store)
    receipt = store.record_measurement(
        make_result(),
        "cafe-1",
        "alice",
        measurement_id="m1",
        points=31,
        streak_days=1,
        badge_ids=["first_vibe"],
    )
    assert receipt.measurement_id == "m1"
    assert receipt.accrual.event_id == "measurement:m1"
    assert (receipt.accrual.old_total, receipt.accrual.new_total) == (50, 81)
    assert receipt.granted_badges == ("first_vibe",)
    state = store.load_user_accrual_state("alice")
    assert state.vibrations == 81
    assert state.total_measurements == 1
    assert state.earned_badge_ids == frozenset({"first_vibe"})


def test_record_measurement_rolls_back_on_failure(store: AccrualStore) -> None:
    _seed(store)
    with pytest.raises(StorageError, match="negative"):
        store.record_measurement(
            make_result(),
            "cafe-1",
            "alice",
            measurement_id="m1",
            points=-100,
            badge_ids=["first_vibe"],
        )
    state = store.load_user_accrual_state("alice")
    assert state.vibrations == 50
    assert state.total_measurements == 0
    assert state.earned_badge_ids == frozenset()
    assert store.location_measurement_count("cafe-1") == 0
    assert store.get_location("cafe-1")["measurement_count"] == 0


def test_record_measurement_repeat_completes_without_double_credit(
    store: AccrualStore,
) -> None:
    _seed(store)
    store.save_measurement(make_result(), "cafe-1", "alice", measurement_id="m1")
    first = store.record_measurement(
        make_result(), "cafe-1", "alice", measurement_id="m1", points=10
    )
    again = store.record_measurement(
        make_result(), "cafe-1", "alice", measurement_id="m1", points=10
    )
    assert first.accrual.applied is True
    assert again.accrual.applied is False
    assert again.accrual.new_total == 60
    state = store.load_user_accrual_state("alice")
    assert state.vibrations == 60
    assert state.total_measurements == 1


def test_distinct_counts_feed_collection_badges(store: AccrualStore) -> None:
    _seed(store)
    for location_id in ("cafe-1", "cafe-1", "cafe-2", "lib-1"):
        store.save_measurement(make_result(), location_id, "alice")
    state = store.load_user_accrual_state("alice")
    assert state.distinct_cafes == 2
    assert state.distinct_libraries == 1
    assert state.distinct_cities == 2
    assert store.user_has_measured_location("alice", "cafe-2")
    assert not store.user_has_measured_location("bob", "cafe-2")
    assert store.user_has_measured_city("alice", "Utrecht")
    assert not store.user_has_measured_city("alice", "Rotterdam")


# -- badges & social ---------------------------------------------------------


def test_grant_badges_only_reports_new(store: AccrualStore) -> None:
    store.ensure_user("alice")
    assert store.grant_badges("alice", ["first_vibe", "streak_3"]) == ["first_vibe", "streak_3"]
    assert store.grant_badges("alice", ["first_vibe", "perfect_10"]) == ["perfect_10"]
    state = store.load_user_accrual_state("alice")
    assert state.earned_badge_ids == frozenset({"first_vibe", "streak_3", "perfect_10"})


def test_vibes_sent_counts_distinct_recipients(store: AccrualStore) -> None:
    _seed(store)
    store.ensure_user("carol")
    store.record_vibes_sent("alice", "bob", "nice spot")
    store.record_vibes_sent("alice", "bob")
    store.record_vibes_sent("alice", "carol")
    assert store.load_user_accrual_state("alice").distinct_vibe_recipients == 2


def test_vibes_credit_both_sides_once_per_request(store: AccrualStore) -> None:
    _seed(store)
    first = store.record_vibes_sent(
        "alice", "bob", sender_reward=5, recipient_reward=10, request_id="r1"
    )
    again = store.record_vibes_sent(
        "alice", "bob", sender_reward=5, recipient_reward=10, request_id="r1"
    )
    assert first.applied is True
    assert again.applied is False
    assert again.vibes_id == first.vibes_id
    assert (again.sender.new_total, again.recipient.new_total) == (55, 60)
    assert store.load_user_accrual_state("alice").vibrations == 55
    assert store.load_user_accrual_state("bob").vibrations == 60


def test_vibes_to_unknown_recipient_leave_no_trace(store: AccrualStore) -> None:
    _seed(store)
    with pytest.raises(StorageError):
        store.record_vibes_sent("alice", "ghost", sender_reward=5, recipient_reward=10)
    state = store.load_user_accrual_state("alice")
    assert state.vibrations == 50
    assert state.distinct_vibe_recipients == 0


def test_cannot_send_vibes_to_self(store: AccrualStore) -> None:
    store.ensure_user("alice")
    with pytest.raises(ValueError):
        store.record_vibes_sent("alice", "alice")


def test_leaderboard_orders_by_vibrations(store: AccrualStore) -> None:
    _seed(store)
    store.ensure_user("carol")
    store.apply_accrual("bob", 100, "b1")
    store.apply_accrual("carol", 20, "c1")
    board = store.leaderboard(limit=2)
    assert [row["user_id"] for row in board] == ["bob", "carol"]
    assert board[0]["vibrations"] == 150


# -- schema ------------------------------------------------------------------


def test_schema_version_mismatch_is_rejected(tmp_path: Path) -> None:
    db_path = tmp_path / "v.db"
    AccrualStore(db_path).close()
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE schema_meta SET value = '99' WHERE key = 'version'")
    conn.commit()
    conn.close()
    with pytest.raises(StorageError, match="schema version 99"):
        AccrualStore(db_path)


def test_in_memory_store() -> None:
    store = AccrualStore(":memory:")
    try:
        store.ensure_user("alice")
        assert store.load_user_accrual_state("alice").vibrations == 50
    finally:
        store.close()


def test_reopen_keeps_data(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "v.db"
    store = AccrualStore(db_path)
    store.ensure_user("alice")
    store.apply_accrual("alice", 5, "e1")
    store.close()
    reopened = AccrualStore(db_path)
    try:
        assert reopened.load_user_accrual_state("alice").vibrations == 55
    finally:
        reopened.close()
