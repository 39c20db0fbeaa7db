from __future__ import annotations

from datetime import UTC, datetime

import pytest
from builders import NOON_UTC, make_result, make_sample, make_state

from viberated.domain_models import (
    FrequencyBucket,
    MeasurementResult,
    UserAccrualState,
    parse_datetime,
)


class TestParseDatetime:
    def test_iso_with_zulu(self) -> None:
        assert parse_datetime("2026-03-10T12:00:00Z") == NOON_UTC

    def test_naive_is_treated_as_utc(self) -> None:
        assert parse_datetime("2026-03-10T12:00:00") == NOON_UTC

    def test_datetime_passthrough(self) -> None:
        assert parse_datetime(NOON_UTC) is NOON_UTC

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", 12345])
    def test_unparseable(self, value) -> None:
        assert parse_datetime(value) is None


def test_sample_to_dict() -> None:
    data = make_sample(sound_db=42.0, light_lux=310.0, motion=(0.1, -0.2, 9.7)).to_dict()
    assert data["sound_db"] == 42.0
    assert data["motion"] == {"x": 0.1, "y": -0.2, "z": 9.7}


def test_frequency_bucket_label() -> None:
    bucket = FrequencyBucket(second=3, sound=51.2, light=40)
    assert bucket.label == "3s"
    assert bucket.to_dict()["label"] == "3s"


def test_measurement_result_dict_roundtrip_preserves_fields() -> None:
    result = make_result(
        frequency_data=(FrequencyBucket(1, 48.5, 39), FrequencyBucket(2, 51.0, 41)),
    )
    restored = MeasurementResult.from_dict(result.to_dict())
    assert restored == result


def test_measurement_result_from_sparse_dict() -> None:
    restored = MeasurementResult.from_dict({"vibe_score": 64})
    assert restored.vibe_score == 64
    assert restored.comfort_rating == 1
    assert restored.frequency_data == ()
    assert restored.created_at.tzinfo is not None


def test_state_rejects_negative_vibrations() -> None:
    with pytest.raises(ValueError):
        UserAccrualState(user_id="u1", vibrations=-1)


def test_state_coerces_badge_ids_to_frozenset() -> None:
    state = make_state(earned_badge_ids={"first_vibe"})
    assert isinstance(state.earned_badge_ids, frozenset)


def test_state_with_updates_returns_copy() -> None:
    state = make_state(vibrations=10)
    updated = state.with_updates(vibrations=25, last_measured_at=datetime(2026, 1, 1, tzinfo=UTC))
    assert state.vibrations == 10
    assert updated.vibrations == 25
    assert updated.to_dict()["last_measured_at"] == "2026-01-01T00:00:00+00:00"
