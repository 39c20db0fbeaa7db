from .analyzer import (
    EmptySampleBufferError,
    VibeIndicator,
    analyze_samples,
    build_frequency_data,
    compare_to_expected,
    vibe_indicator,
)
from .engine import MeasurementEngine, MeasurementRun
from .strategies import (
    SampleStrategy,
    SensorSampleStrategy,
    SimulatedSampleStrategy,
    strategy_for_config,
)

__all__ = [
    "EmptySampleBufferError",
    "MeasurementEngine",
    "MeasurementRun",
    "SampleStrategy",
    "SensorSampleStrategy",
    "SimulatedSampleStrategy",
    "VibeIndicator",
    "analyze_samples",
    "build_frequency_data",
    "compare_to_expected",
    "strategy_for_config",
    "vibe_indicator",
]
