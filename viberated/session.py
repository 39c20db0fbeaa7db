"""Measurement session: run, score, accrue and persist one measurement.

The pure rules in :mod:`viberated.resonance` decide what a measurement earns;
this module gathers the day/location facts they need from storage and writes
the outcome back.  A measurement, its points and its badges are written in one
idempotent transaction keyed by the measurement id, so a failed persist is
retried as a whole.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, tzinfo
from uuid import uuid4

from .accrual_store import (
    AccrualReceipt,
    AccrualStore,
    StorageError,
    UnknownLocationError,
    UnknownUserError,
)
from .config import AccrualConfig, MeasurementConfig
from .constants import SEND_VIBES_RECIPIENT_REWARD, SEND_VIBES_SENDER_REWARD
from .domain_models import MeasurementContext, MeasurementResult, RankDefinition
from .measurement.engine import MeasurementEngine, ProgressCallback, SleepFn
from .resonance import (
    AccrualOutcome,
    apply_measurement,
    check_collection_badges,
    detect_rank_up,
    resolve_day_status,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class AccrualPersistError(RuntimeError):
    """Persisting a scored measurement failed after all retries.

    ``outcome`` carries the computed (but unsaved) accrual.  Nothing was
    written, so :meth:`MeasurementSession.retry_persist` can resume it later.
    """

    def __init__(
        self,
        message: str,
        outcome: AccrualOutcome,
        measurement_id: str,
        *,
        user_id: str,
        location_id: str,
        result: MeasurementResult,
    ) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.measurement_id = measurement_id
        self.user_id = user_id
        self.location_id = location_id
        self.result = result


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    measurement_id: str
    result: MeasurementResult
    accrual: AccrualOutcome
    receipt: AccrualReceipt
    rank_up: RankDefinition | None

    @property
    def new_total(self) -> int:
        return self.receipt.new_total


@dataclass(frozen=True, slots=True)
class VibesOutcome:
    vibes_id: int
    sender: AccrualReceipt
    recipient: AccrualReceipt


class MeasurementSession:
    def __init__(
        self,
        engine: MeasurementEngine,
        store: AccrualStore,
        *,
        accrual_config: AccrualConfig | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_s: float = 0.2,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.engine = engine
        self.store = store
        self.day_tz: tzinfo = accrual_config.day_timezone if accrual_config else UTC
        self.badge_tz: tzinfo | None = accrual_config.badge_timezone if accrual_config else None
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep

    async def measure(
        self,
        user_id: str,
        location_id: str,
        config: MeasurementConfig | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> SessionOutcome | None:
        """Run a measurement and record it. ``None`` if the run did not complete."""
        result = await self.engine.start_measurement(config, on_progress=on_progress)
        if result is None:
            return None
        return await self.record_result(user_id, location_id, result)

    def build_context(
        self, user_id: str, location_id: str, result: MeasurementResult
    ) -> tuple[MeasurementContext, AccrualOutcome]:
        location = self.store.get_location(location_id)
        if location is None:
            raise UnknownLocationError(f"Unknown location {location_id!r}")
        state = self.store.load_user_accrual_state(user_id)
        day = resolve_day_status(
            state.last_measured_at, state.streak_days, result.created_at, self.day_tz
        )
        context = MeasurementContext(
            is_first_today=day.is_first_today,
            is_new_location=self.store.location_measurement_count(location_id) == 0,
            streak_days=day.streak_days,
        )
        # Distinct-place counts must include this measurement before badges are checked.
        if not self.store.user_has_measured_location(user_id, location_id):
            location_type = location["location_type"]
            if location_type == "cafe":
                state = state.with_updates(distinct_cafes=state.distinct_cafes + 1)
            elif location_type == "library":
                state = state.with_updates(distinct_libraries=state.distinct_libraries + 1)
        city = location["city"]
        if city and not self.store.user_has_measured_city(user_id, city):
            state = state.with_updates(distinct_cities=state.distinct_cities + 1)
        outcome = apply_measurement(state, result, context, badge_tz=self.badge_tz)
        return context, outcome

    async def record_result(
        self,
        user_id: str,
        location_id: str,
        result: MeasurementResult,
        *,
        measurement_id: str | None = None,
    ) -> SessionOutcome:
        """Score *result* against the stored state and persist it, retrying storage errors."""
        return await self._persist_with_retries(
            user_id, location_id, result, measurement_id or uuid4().hex, None
        )

    async def retry_persist(self, error: AccrualPersistError) -> SessionOutcome:
        """Persist the outcome carried by *error* under its original measurement id."""
        return await self._persist_with_retries(
            error.user_id, error.location_id, error.result, error.measurement_id, error.outcome
        )

    async def _persist_with_retries(
        self,
        user_id: str,
        location_id: str,
        result: MeasurementResult,
        measurement_id: str,
        outcome: AccrualOutcome | None,
    ) -> SessionOutcome:
        last_outcome = outcome
        last_error: StorageError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                attempt_outcome = outcome
                if attempt_outcome is None:
                    _, attempt_outcome = self.build_context(user_id, location_id, result)
                last_outcome = attempt_outcome
                receipt = self._persist(
                    user_id, location_id, result, attempt_outcome, measurement_id
                )
            except (UnknownUserError, UnknownLocationError):
                raise
            except StorageError as exc:
                last_error = exc
                LOGGER.warning(
                    "Persisting measurement %s failed (attempt %d/%d): %s",
                    measurement_id,
                    attempt,
                    self.max_attempts,
                    exc,
                    exc_info=True,
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.retry_delay_s * attempt)
                continue
            rank_up = detect_rank_up(receipt.old_total, receipt.new_total)
            LOGGER.info(
                "Recorded measurement %s user=%s vibe=%d points=+%d total=%d%s",
                measurement_id,
                user_id,
                result.vibe_score,
                attempt_outcome.points.total,
                receipt.new_total,
                f" rank_up={rank_up.name}" if rank_up else "",
            )
            return SessionOutcome(
                measurement_id=measurement_id,
                result=result,
                accrual=attempt_outcome,
                receipt=receipt,
                rank_up=rank_up,
            )
        if last_outcome is None:
            raise StorageError(
                f"Could not load accrual state for measurement {measurement_id}: {last_error}"
            ) from last_error
        raise AccrualPersistError(
            f"Could not persist measurement {measurement_id}: {last_error}",
            last_outcome,
            measurement_id,
            user_id=user_id,
            location_id=location_id,
            result=result,
        ) from last_error

    def _persist(
        self,
        user_id: str,
        location_id: str,
        result: MeasurementResult,
        outcome: AccrualOutcome,
        measurement_id: str,
    ) -> AccrualReceipt:
        receipt = self.store.record_measurement(
            result,
            location_id,
            user_id,
            measurement_id=measurement_id,
            points=outcome.points.total,
            streak_days=outcome.new_state.streak_days,
            badge_ids=[b.id for b in outcome.new_badges],
        )
        return receipt.accrual

    def send_vibes(
        self,
        sender_id: str,
        recipient_id: str,
        message: str = "",
        *,
        request_id: str | None = None,
    ) -> VibesOutcome:
        """Record a vibe and reward both sides; grants collection badges the sender earned.

        Passing the same *request_id* again after a failure completes the
        request without crediting anyone twice.
        """
        receipt = self.store.record_vibes_sent(
            sender_id,
            recipient_id,
            message,
            sender_reward=SEND_VIBES_SENDER_REWARD,
            recipient_reward=SEND_VIBES_RECIPIENT_REWARD,
            request_id=request_id or uuid4().hex,
        )
        state = self.store.load_user_accrual_state(sender_id)
        earned = check_collection_badges(state)
        if earned:
            granted = self.store.grant_badges(sender_id, [b.id for b in earned])
            for badge_id in granted:
                LOGGER.info("User %s earned %s", sender_id, badge_id)
        return VibesOutcome(
            vibes_id=receipt.vibes_id, sender=receipt.sender, recipient=receipt.recipient
        )
