"""Domain model objects for the measurement and resonance engines.

Everything here is immutable once built; ``to_dict`` keeps the JSON shape
used by the storage layer and the UI payloads stable.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

Motion = tuple[float, float, float]


def _as_float(value: object, default: float = 0.0) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return out


def parse_datetime(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Sample:
    timestamp_ms: int
    sound_db: float
    light_lux: float
    motion: Motion

    def to_dict(self) -> dict[str, Any]:
        x, y, z = self.motion
        return {
            "timestamp_ms": self.timestamp_ms,
            "sound_db": self.sound_db,
            "light_lux": self.light_lux,
            "motion": {"x": x, "y": y, "z": z},
        }


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    progress_percent: float
    seconds_remaining: int
    latest_sample: Sample
    sample_index: int
    total_samples: int


@dataclass(frozen=True, slots=True)
class FrequencyBucket:
    second: int
    sound: float
    light: int

    @property
    def label(self) -> str:
        return f"{self.second}s"

    def to_dict(self) -> dict[str, Any]:
        return {
            "second": self.second,
            "sound": self.sound,
            "light": self.light,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FrequencyBucket:
        return cls(
            second=int(data.get("second") or 0),
            sound=_as_float(data.get("sound")),
            light=int(_as_float(data.get("light"))),
        )


# ---------------------------------------------------------------------------
# MeasurementResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MeasurementResult:
    sound_db: float
    light_lux: int
    stability_percent: float
    sound_score: int
    light_score: int
    stability_score: int
    vibe_score: int
    comfort_rating: int
    frequency_data: tuple[FrequencyBucket, ...]
    duration_seconds: int
    sample_count: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "sound_db": self.sound_db,
            "light_lux": self.light_lux,
            "stability_percent": self.stability_percent,
            "sound_score": self.sound_score,
            "light_score": self.light_score,
            "stability_score": self.stability_score,
            "vibe_score": self.vibe_score,
            "comfort_rating": self.comfort_rating,
            "frequency_data": [bucket.to_dict() for bucket in self.frequency_data],
            "duration_seconds": self.duration_seconds,
            "sample_count": self.sample_count,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeasurementResult:
        raw_buckets = data.get("frequency_data") or []
        buckets = tuple(
            FrequencyBucket.from_dict(item) for item in raw_buckets if isinstance(item, dict)
        )
        return cls(
            sound_db=_as_float(data.get("sound_db")),
            light_lux=int(_as_float(data.get("light_lux"))),
            stability_percent=_as_float(data.get("stability_percent")),
            sound_score=int(_as_float(data.get("sound_score"))),
            light_score=int(_as_float(data.get("light_score"))),
            stability_score=int(_as_float(data.get("stability_score"))),
            vibe_score=int(_as_float(data.get("vibe_score"))),
            comfort_rating=int(_as_float(data.get("comfort_rating"), 1.0)),
            frequency_data=buckets,
            duration_seconds=int(_as_float(data.get("duration_seconds"))),
            sample_count=int(_as_float(data.get("sample_count"))),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(UTC),
        )


# ---------------------------------------------------------------------------
# Resonance catalogs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RankDefinition:
    rank: int
    name: str
    min_vibrations: int
    icon: str = ""
    color: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "name": self.name,
            "min_vibrations": self.min_vibrations,
            "icon": self.icon,
            "color": self.color,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    id: str
    name: str
    icon: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
        }


# ---------------------------------------------------------------------------
# Accrual inputs / state
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MeasurementContext:
    """Caller-supplied facts about the measurement being rewarded."""

    is_first_today: bool
    is_new_location: bool
    streak_days: int = 0


@dataclass(frozen=True, slots=True)
class UserAccrualState:
    user_id: str
    vibrations: int = 0
    total_measurements: int = 0
    streak_days: int = 0
    earned_badge_ids: frozenset[str] = frozenset()
    last_measured_at: datetime | None = None
    # Distinct counts feeding the collection badges
    distinct_cafes: int = 0
    distinct_libraries: int = 0
    distinct_cities: int = 0
    distinct_vibe_recipients: int = 0

    def __post_init__(self) -> None:
        if self.vibrations < 0:
            raise ValueError(f"UserAccrualState.vibrations must be >= 0, got {self.vibrations!r}")
        if not isinstance(self.earned_badge_ids, frozenset):
            object.__setattr__(self, "earned_badge_ids", frozenset(self.earned_badge_ids))

    def with_updates(self, **changes: Any) -> UserAccrualState:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "vibrations": self.vibrations,
            "total_measurements": self.total_measurements,
            "streak_days": self.streak_days,
            "earned_badge_ids": sorted(self.earned_badge_ids),
            "last_measured_at": (
                self.last_measured_at.isoformat() if self.last_measured_at is not None else None
            ),
            "distinct_cafes": self.distinct_cafes,
            "distinct_libraries": self.distinct_libraries,
            "distinct_cities": self.distinct_cities,
            "distinct_vibe_recipients": self.distinct_vibe_recipients,
        }
