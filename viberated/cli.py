from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path

import yaml

from .accrual_store import AccrualStore, StorageError
from .config import AppConfig, MeasurementConfigError, load_config
from .domain_models import ProgressUpdate
from .measurement import MeasurementEngine, compare_to_expected, strategy_for_config
from .payloads import build_accrual_payload, build_progress_payload, build_result_payload
from .session import AccrualPersistError, MeasurementSession

LOGGER = logging.getLogger(__name__)


async def _no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one ViberRated vibe measurement")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    parser.add_argument("--duration", type=int, default=None, help="Measurement length in seconds")
    parser.add_argument("--sample-rate", type=int, default=None, help="Samples per second")
    parser.add_argument("--user", default="local", help="User id to credit")
    parser.add_argument("--location", default="here", help="Location id being rated")
    parser.add_argument(
        "--location-type",
        default=None,
        help="Location preset (cafe, library, office, park, home)",
    )
    parser.add_argument("--city", default=None, help="City of the location")
    parser.add_argument("--seed", type=int, default=None, help="Seed for simulated readings")
    parser.add_argument(
        "--fast", action="store_true", help="Skip the real-time wait between samples"
    )
    return parser.parse_args(argv)


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    changes: dict[str, object] = {}
    if args.duration is not None:
        changes["duration_seconds"] = args.duration
    if args.sample_rate is not None:
        changes["sample_rate_hz"] = args.sample_rate
    if args.location_type is not None:
        changes["location_type"] = args.location_type
    if changes:
        config.measurement = dataclasses.replace(config.measurement, **changes)
    return config


def _log_progress(update: ProgressUpdate) -> None:
    payload = build_progress_payload(update)
    LOGGER.debug(
        "%.0f%% (%ss left) sound=%.1f dB light=%.0f lx",
        payload.progress_percent,
        payload.seconds_remaining,
        payload.latest.sound_db,
        payload.latest.light_lux,
    )


async def run_session(config: AppConfig, args: argparse.Namespace) -> dict[str, object] | None:
    store = AccrualStore(config.storage.db_path)
    try:
        store.ensure_user(args.user)
        store.ensure_location(
            args.location,
            location_type=config.measurement.location_type,
            city=args.city,
        )
        engine = MeasurementEngine(
            lambda cfg: strategy_for_config(cfg, seed=args.seed),
            sleep=_no_sleep if args.fast else asyncio.sleep,
        )
        session = MeasurementSession(engine, store, accrual_config=config.accrual)
        outcome = await session.measure(
            args.user, args.location, config.measurement, on_progress=_log_progress
        )
        if outcome is None:
            return None
        return {
            "measurement_id": outcome.measurement_id,
            "result": build_result_payload(outcome.result).model_dump(),
            "accrual": build_accrual_payload(
                outcome.accrual, total_vibrations=outcome.new_total, rank_up=outcome.rank_up
            ).model_dump(),
            "expected": compare_to_expected(outcome.result, config.measurement.location_type),
        }
    finally:
        store.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = _apply_overrides(load_config(args.config), args)
    except (MeasurementConfigError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 2
    logging.getLogger().setLevel(config.logging.level)
    try:
        report = asyncio.run(run_session(config, args))
    except AccrualPersistError as exc:
        LOGGER.error("Measurement %s was scored but not saved", exc.measurement_id)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except StorageError as exc:
        print(f"Error: storage failure: {exc}", file=sys.stderr)
        return 1
    if report is None:
        print("Measurement stopped before completion", file=sys.stderr)
        return 1
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
