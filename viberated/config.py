from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from viberated_core.comfort_bands import LOCATION_PRESETS

from .constants import DEFAULT_DURATION_S, DEFAULT_SAMPLE_RATE_HZ, MAX_DURATION_S, MIN_DURATION_S

LOGGER = logging.getLogger(__name__)

VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG: dict[str, Any] = {
    "measurement": {
        "duration_seconds": DEFAULT_DURATION_S,
        "sample_rate_hz": DEFAULT_SAMPLE_RATE_HZ,
        "use_real_sensors": False,
        "location_type": None,
    },
    "accrual": {
        "day_timezone": "UTC",
        "badge_timezone": None,
    },
    "storage": {
        "db_path": "data/viberated.db",
    },
    "logging": {
        "level": "INFO",
    },
}


class MeasurementConfigError(ValueError):
    """Run parameters were rejected before the run started."""


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_config_path(path_text: str, config_path: Path) -> Path:
    path = Path(path_text)
    if path.is_absolute():
        return path
    return config_path.resolve().parent / path


def _parse_timezone(name: object, field_name: str) -> ZoneInfo | None:
    if name is None or name == "":
        return None
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"{field_name} must be an IANA timezone name, got {name!r}") from None


@dataclass(frozen=True, slots=True)
class MeasurementConfig:
    duration_seconds: int = DEFAULT_DURATION_S
    sample_rate_hz: int = DEFAULT_SAMPLE_RATE_HZ
    use_real_sensors: bool = False
    location_type: str | None = None

    def __post_init__(self) -> None:
        duration = self.duration_seconds
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise MeasurementConfigError(
                f"duration_seconds must be an integer, got {duration!r}"
            )
        if not MIN_DURATION_S <= duration <= MAX_DURATION_S:
            raise MeasurementConfigError(
                f"duration_seconds must be {MIN_DURATION_S}-{MAX_DURATION_S}, got {duration}"
            )
        rate = self.sample_rate_hz
        if isinstance(rate, bool) or not isinstance(rate, int) or rate < 1:
            raise MeasurementConfigError(f"sample_rate_hz must be a positive integer, got {rate!r}")
        if self.location_type is not None and self.location_type not in LOCATION_PRESETS:
            raise MeasurementConfigError(
                f"location_type must be one of {sorted(LOCATION_PRESETS)}, "
                f"got {self.location_type!r}"
            )

    @property
    def total_samples(self) -> int:
        return self.duration_seconds * self.sample_rate_hz

    @property
    def sample_interval_s(self) -> float:
        return 1.0 / self.sample_rate_hz

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeasurementConfig:
        duration = data.get("durationSeconds", data.get("duration_seconds", DEFAULT_DURATION_S))
        rate = data.get("sampleRate", data.get("sample_rate_hz", DEFAULT_SAMPLE_RATE_HZ))
        use_real = data.get("useRealSensors", data.get("use_real_sensors", False))
        location_type = data.get("locationType", data.get("location_type"))
        return cls(
            duration_seconds=duration,
            sample_rate_hz=rate,
            use_real_sensors=bool(use_real),
            location_type=str(location_type) if location_type else None,
        )


@dataclass(slots=True)
class AccrualConfig:
    day_timezone: ZoneInfo
    badge_timezone: ZoneInfo | None
    """None evaluates time-of-day badges in the device's local time."""


@dataclass(slots=True)
class StorageConfig:
    db_path: Path


@dataclass(slots=True)
class LoggingConfig:
    level: str

    def __post_init__(self) -> None:
        level = str(self.level).upper()
        if level not in VALID_LOG_LEVELS:
            LOGGER.warning("logging.level=%r is not recognised, using INFO", self.level)
            level = "INFO"
        object.__setattr__(self, "level", level)


@dataclass(slots=True)
class AppConfig:
    measurement: MeasurementConfig
    accrual: AccrualConfig
    storage: StorageConfig
    logging: LoggingConfig
    config_path: Path | None = None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def build_config(raw: dict[str, Any], config_path: Path | None = None) -> AppConfig:
    merged = _deep_merge(deepcopy(DEFAULT_CONFIG), raw)
    base_path = (config_path or Path.cwd() / "config.yaml").resolve()
    accrual_cfg = merged.get("accrual") or {}
    day_tz = _parse_timezone(accrual_cfg.get("day_timezone") or "UTC", "accrual.day_timezone")
    return AppConfig(
        measurement=MeasurementConfig.from_dict(merged.get("measurement") or {}),
        accrual=AccrualConfig(
            day_timezone=day_tz or ZoneInfo("UTC"),
            badge_timezone=_parse_timezone(
                accrual_cfg.get("badge_timezone"), "accrual.badge_timezone"
            ),
        ),
        storage=StorageConfig(
            db_path=_resolve_config_path(
                str(
                    (merged.get("storage") or {}).get(
                        "db_path", DEFAULT_CONFIG["storage"]["db_path"]
                    )
                ),
                base_path,
            ),
        ),
        logging=LoggingConfig(level=str((merged.get("logging") or {}).get("level", "INFO"))),
        config_path=config_path,
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    path = (config_path or Path.cwd() / "config.yaml").resolve()
    app_config = build_config(_read_config_file(path), path)
    LOGGER.info(
        "Loaded config=%s duration_s=%s sample_rate_hz=%s db_path=%s",
        path,
        app_config.measurement.duration_seconds,
        app_config.measurement.sample_rate_hz,
        app_config.storage.db_path,
    )
    return app_config
