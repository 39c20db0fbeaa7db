"""Sample acquisition strategies.

A strategy produces one :class:`~viberated.domain_models.Sample` per call to
``next_sample``.  The simulated strategy is a sine-wave baseline with uniform
jitter; the sensor strategy reads platform sensors and substitutes simulated
values for any reading that is unavailable, so a run never stalls on missing
hardware.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Awaitable, Callable, Sequence

import numpy as np
from viberated_core.vibe_math import GRAVITY_MPS2

from ..config import MeasurementConfig
from ..constants import (
    MIC_BYTE_MAX,
    MIC_DB_FLOOR,
    MIC_DB_SPAN,
    SIM_LIGHT_BASE_LUX,
    SIM_LIGHT_JITTER_LUX,
    SIM_LIGHT_PERIOD_MS,
    SIM_LIGHT_SWING_LUX,
    SIM_MOTION_XY_JITTER,
    SIM_MOTION_Z_JITTER,
    SIM_SOUND_BASE_DB,
    SIM_SOUND_JITTER_DB,
    SIM_SOUND_PERIOD_MS,
    SIM_SOUND_SWING_DB,
)
from ..domain_models import Motion, Sample

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], int]


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


SoundLevelReader = Callable[[], Awaitable[float | None]]
LightReader = Callable[[], Awaitable[float | None]]
MotionReader = Callable[[], Awaitable[Motion | None]]


class SampleStrategy:
    """Produces one sample per call; *previous* is the last sample of the run, if any."""

    async def next_sample(self, previous: Sample | None) -> Sample:
        raise NotImplementedError


def byte_spectrum_to_db(spectrum: Sequence[int] | np.ndarray) -> float | None:
    """Map an analyser byte spectrum (0-255 per bin) onto a 30-100 dB scale."""
    bins = np.asarray(spectrum, dtype=np.float64)
    if bins.size == 0:
        return None
    average = float(np.mean(np.clip(bins, 0.0, MIC_BYTE_MAX)))
    return MIC_DB_FLOOR + (average / MIC_BYTE_MAX) * MIC_DB_SPAN


class SimulatedSampleStrategy(SampleStrategy):
    """Sine-wave environment with uniform jitter, seedable for tests."""

    def __init__(
        self,
        *,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        clock: Clock = epoch_ms,
    ) -> None:
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self._clock = clock

    def sound_db(self, t_ms: int) -> float:
        base = SIM_SOUND_BASE_DB + SIM_SOUND_SWING_DB * math.sin(t_ms / SIM_SOUND_PERIOD_MS)
        return base + float(self.rng.uniform(-SIM_SOUND_JITTER_DB, SIM_SOUND_JITTER_DB))

    def light_lux(self, t_ms: int) -> float:
        base = SIM_LIGHT_BASE_LUX + SIM_LIGHT_SWING_LUX * math.sin(t_ms / SIM_LIGHT_PERIOD_MS)
        return base + float(self.rng.uniform(-SIM_LIGHT_JITTER_LUX, SIM_LIGHT_JITTER_LUX))

    def motion(self) -> Motion:
        x, y = self.rng.uniform(-SIM_MOTION_XY_JITTER, SIM_MOTION_XY_JITTER, size=2)
        z = GRAVITY_MPS2 + float(self.rng.uniform(-SIM_MOTION_Z_JITTER, SIM_MOTION_Z_JITTER))
        return (float(x), float(y), z)

    def sample_at(self, t_ms: int) -> Sample:
        return Sample(
            timestamp_ms=t_ms,
            sound_db=self.sound_db(t_ms),
            light_lux=self.light_lux(t_ms),
            motion=self.motion(),
        )

    async def next_sample(self, previous: Sample | None) -> Sample:
        return self.sample_at(self._clock())


class SensorSampleStrategy(SampleStrategy):
    """Reads microphone, ambient light and accelerometer readers.

    Each reading is independent: a reader that is missing, raises, or returns a
    non-finite value is replaced by the simulated value for that tick only.
    """

    def __init__(
        self,
        *,
        sound: SoundLevelReader | None = None,
        light: LightReader | None = None,
        motion: MotionReader | None = None,
        fallback: SimulatedSampleStrategy | None = None,
        clock: Clock = epoch_ms,
    ) -> None:
        self.sound = sound
        self.light = light
        self.motion = motion
        self.fallback = fallback or SimulatedSampleStrategy(clock=clock)
        self._clock = clock
        self.fallback_counts: dict[str, int] = {"sound": 0, "light": 0, "motion": 0}

    def _note_fallback(self, channel: str, reason: str) -> None:
        self.fallback_counts[channel] += 1
        if self.fallback_counts[channel] == 1:
            LOGGER.warning("%s sensor unavailable (%s); using simulated values", channel, reason)
        else:
            LOGGER.debug(
                "%s sensor fallback #%d: %s", channel, self.fallback_counts[channel], reason
            )

    async def _read_sound(self, t_ms: int) -> float:
        if self.sound is None:
            self._note_fallback("sound", "no reader")
            return self.fallback.sound_db(t_ms)
        try:
            value = await self.sound()
        except Exception as exc:
            self._note_fallback("sound", str(exc) or type(exc).__name__)
            return self.fallback.sound_db(t_ms)
        if value is None or not math.isfinite(value):
            self._note_fallback("sound", "no reading")
            return self.fallback.sound_db(t_ms)
        return float(value)

    async def _read_light(self, t_ms: int) -> float:
        if self.light is None:
            self._note_fallback("light", "no reader")
            return self.fallback.light_lux(t_ms)
        try:
            value = await self.light()
        except Exception as exc:
            self._note_fallback("light", str(exc) or type(exc).__name__)
            return self.fallback.light_lux(t_ms)
        if value is None or not math.isfinite(value) or value < 0:
            self._note_fallback("light", "no reading")
            return self.fallback.light_lux(t_ms)
        return float(value)

    async def _read_motion(self) -> Motion:
        if self.motion is None:
            self._note_fallback("motion", "no reader")
            return self.fallback.motion()
        try:
            value = await self.motion()
        except Exception as exc:
            self._note_fallback("motion", str(exc) or type(exc).__name__)
            return self.fallback.motion()
        if value is None or len(value) != 3 or not all(math.isfinite(v) for v in value):
            self._note_fallback("motion", "no reading")
            return self.fallback.motion()
        x, y, z = value
        return (float(x), float(y), float(z))

    async def next_sample(self, previous: Sample | None) -> Sample:
        t_ms = self._clock()
        return Sample(
            timestamp_ms=t_ms,
            sound_db=await self._read_sound(t_ms),
            light_lux=await self._read_light(t_ms),
            motion=await self._read_motion(),
        )


class MicrophoneLevelReader:
    """Adapts a byte-spectrum source (e.g. an FFT analyser node) to a dB reader."""

    def __init__(self, spectrum_source: Callable[[], Sequence[int] | np.ndarray | None]) -> None:
        self._spectrum_source = spectrum_source

    async def __call__(self) -> float | None:
        spectrum = self._spectrum_source()
        if spectrum is None:
            return None
        return byte_spectrum_to_db(spectrum)


def strategy_for_config(
    config: MeasurementConfig,
    *,
    sound: SoundLevelReader | None = None,
    light: LightReader | None = None,
    motion: MotionReader | None = None,
    seed: int | None = None,
) -> SampleStrategy:
    simulated = SimulatedSampleStrategy(seed=seed)
    if not config.use_real_sensors:
        return simulated
    return SensorSampleStrategy(sound=sound, light=light, motion=motion, fallback=simulated)
