"""Fixed-duration measurement runs.

``MeasurementRun`` is a per-invocation handle that owns its sample buffer and
notification callbacks.  ``MeasurementEngine`` hands out run handles and
enforces that at most one of them is sampling at any time; a second start
while a run is active is ignored rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from uuid import uuid4

from viberated_core.comfort_bands import LocationPreset, preset_for

from ..config import MeasurementConfig
from ..domain_models import MeasurementResult, ProgressUpdate, Sample
from .analyzer import analyze_samples
from .strategies import SampleStrategy, strategy_for_config

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], None]
CompleteCallback = Callable[[MeasurementResult], None]
SleepFn = Callable[[float], Awaitable[None]]
StrategyFactory = Callable[[MeasurementConfig], SampleStrategy]

RUN_IDLE = "idle"
RUN_RUNNING = "running"
RUN_STOPPED = "stopped"
RUN_COMPLETED = "completed"
RUN_REJECTED = "rejected"


def seconds_remaining(sample_index: int, total_samples: int, sample_rate_hz: int) -> int:
    return math.ceil((total_samples - sample_index - 1) / sample_rate_hz)


class MeasurementRun:
    def __init__(
        self,
        engine: MeasurementEngine,
        config: MeasurementConfig,
        strategy: SampleStrategy,
        *,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        bands: LocationPreset | None = None,
    ) -> None:
        self.run_id = uuid4().hex
        self.config = config
        self.strategy = strategy
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.bands = bands
        self._engine = engine
        self._samples: list[Sample] = []
        self._state = RUN_IDLE
        self._stop_requested = False
        self.result: MeasurementResult | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == RUN_RUNNING

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    def stop(self) -> None:
        """Request a stop; takes effect before the next sample is taken."""
        if self._state in (RUN_IDLE, RUN_RUNNING):
            self._stop_requested = True

    async def execute(self) -> MeasurementResult | None:
        if self._state != RUN_IDLE:
            raise RuntimeError(f"Run {self.run_id} was already started (state={self._state})")
        if not self._engine._acquire(self):
            self._state = RUN_REJECTED
            return None
        self._state = RUN_RUNNING
        try:
            return await self._sample_loop()
        finally:
            if self._state == RUN_RUNNING:
                # Cancelled or a callback raised: treat like a stop.
                self._state = RUN_STOPPED
                self._samples.clear()
            self._engine._release(self)

    async def _sample_loop(self) -> MeasurementResult | None:
        config = self.config
        total = config.total_samples
        interval_s = config.sample_interval_s
        LOGGER.info(
            "Measurement run %s started: %ss at %s Hz (%s samples)",
            self.run_id,
            config.duration_seconds,
            config.sample_rate_hz,
            total,
        )
        previous: Sample | None = None
        for idx in range(total):
            if self._stop_requested:
                break
            sample = await self.strategy.next_sample(previous)
            self._samples.append(sample)
            previous = sample
            if self.on_progress is not None:
                self.on_progress(
                    ProgressUpdate(
                        progress_percent=100.0 * (idx + 1) / total,
                        seconds_remaining=seconds_remaining(idx, total, config.sample_rate_hz),
                        latest_sample=sample,
                        sample_index=idx,
                        total_samples=total,
                    )
                )
            await self._engine.sleep(interval_s)

        if self._stop_requested:
            LOGGER.info(
                "Measurement run %s stopped after %d samples; discarding buffer",
                self.run_id,
                len(self._samples),
            )
            self._samples.clear()
            self._state = RUN_STOPPED
            return None

        result = analyze_samples(
            self._samples,
            duration_seconds=config.duration_seconds,
            bands=self.bands,
        )
        self.result = result
        self._state = RUN_COMPLETED
        LOGGER.info(
            "Measurement run %s complete: vibe_score=%d comfort=%d samples=%d",
            self.run_id,
            result.vibe_score,
            result.comfort_rating,
            result.sample_count,
        )
        if self.on_complete is not None:
            self.on_complete(result)
        return result


class MeasurementEngine:
    def __init__(
        self,
        strategy_factory: StrategyFactory | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._strategy_factory: StrategyFactory = strategy_factory or strategy_for_config
        self.sleep = sleep
        self._active_run: MeasurementRun | None = None

    @property
    def active_run(self) -> MeasurementRun | None:
        return self._active_run

    @property
    def is_running(self) -> bool:
        return self._active_run is not None

    def _acquire(self, run: MeasurementRun) -> bool:
        if self._active_run is not None:
            LOGGER.warning(
                "Ignoring start of run %s: run %s is still active",
                run.run_id,
                self._active_run.run_id,
            )
            return False
        self._active_run = run
        return True

    def _release(self, run: MeasurementRun) -> None:
        if self._active_run is run:
            self._active_run = None

    def create_run(
        self,
        config: MeasurementConfig | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        strategy: SampleStrategy | None = None,
        bands: LocationPreset | None = None,
    ) -> MeasurementRun:
        cfg = config or MeasurementConfig()
        if bands is None and cfg.location_type is not None:
            bands = preset_for(cfg.location_type)
        return MeasurementRun(
            self,
            cfg,
            strategy or self._strategy_factory(cfg),
            on_progress=on_progress,
            on_complete=on_complete,
            bands=bands,
        )

    async def start_measurement(
        self,
        config: MeasurementConfig | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        strategy: SampleStrategy | None = None,
        bands: LocationPreset | None = None,
    ) -> MeasurementResult | None:
        """Run one measurement to completion.

        Returns ``None`` when the run was stopped, or when another run was
        already active (the call is then a no-op).
        """
        if self._active_run is not None:
            LOGGER.warning("start_measurement() ignored: run %s is active", self._active_run.run_id)
            return None
        run = self.create_run(
            config,
            on_progress=on_progress,
            on_complete=on_complete,
            strategy=strategy,
            bands=bands,
        )
        return await run.execute()

    def stop(self) -> bool:
        run = self._active_run
        if run is None:
            return False
        run.stop()
        return True
