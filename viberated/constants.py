from __future__ import annotations

DEFAULT_DURATION_S: int = 17
"""The fixed measurement window shown to users."""

MIN_DURATION_S: int = 5
MAX_DURATION_S: int = 30
DEFAULT_SAMPLE_RATE_HZ: int = 10

# Simulated environment envelope
SIM_SOUND_BASE_DB: float = 50.0
SIM_SOUND_SWING_DB: float = 10.0
SIM_SOUND_JITTER_DB: float = 7.5
SIM_SOUND_PERIOD_MS: float = 1000.0
SIM_LIGHT_BASE_LUX: float = 400.0
SIM_LIGHT_SWING_LUX: float = 100.0
SIM_LIGHT_JITTER_LUX: float = 25.0
SIM_LIGHT_PERIOD_MS: float = 2000.0
SIM_MOTION_XY_JITTER: float = 0.1
SIM_MOTION_Z_JITTER: float = 0.15

# Microphone byte spectrum (0-255) mapped onto a dB range
MIC_DB_FLOOR: float = 30.0
MIC_DB_SPAN: float = 70.0
MIC_BYTE_MAX: float = 255.0

# Chart buckets carry light scaled down for amplitude parity with sound
CHART_LIGHT_DIVISOR: float = 10.0

# Resonance accrual
BASE_VIBRATIONS: int = 10
GOOD_SCORE_THRESHOLD: int = 80
GOOD_SCORE_BONUS: int = 5
GREAT_SCORE_THRESHOLD: int = 90
GREAT_SCORE_BONUS: int = 10
STREAK_STEP: float = 0.1
MAX_STREAK_MULTIPLIER: float = 2.0
DAILY_BONUS: int = 5
NEW_LOCATION_BONUS: int = 15
WELCOME_BONUS: int = 50
SEND_VIBES_SENDER_REWARD: int = 5
SEND_VIBES_RECIPIENT_REWARD: int = 10

EARLY_BIRD_BEFORE_HOUR: int = 7
NIGHT_OWL_FROM_HOUR: int = 22

CAFE_HUNTER_MIN_CAFES: int = 10
LIBRARY_LOVER_MIN_LIBRARIES: int = 5
VIBE_GIVER_MIN_RECIPIENTS: int = 10
EXPLORER_MIN_CITIES: int = 5
