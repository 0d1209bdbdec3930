# pylint: disable=line-too-long
"""Constants for the Smart Thermostat adaptive PID integration."""

from enum import Enum

DOMAIN = "smart_thermostat"

# ------------------------------
# Thermal (HVAC) modes
# ------------------------------
THERMAL_MODE_HEAT = "heat"
THERMAL_MODE_COOL = "cool"
THERMAL_MODE_HEAT_COOL = "heat_cool"
THERMAL_MODES = (THERMAL_MODE_HEAT, THERMAL_MODE_COOL, THERMAL_MODE_HEAT_COOL)

# Legacy names still sent by older hosts
LEGACY_THERMAL_MODES = {
    "heating": THERMAL_MODE_HEAT,
    "cooling": THERMAL_MODE_COOL,
    "auto": THERMAL_MODE_HEAT_COOL,
}

# ------------------------------
# Operating modes
# ------------------------------
OPERATING_MODE_MANUAL = "manual"
OPERATING_MODE_SCHEDULE = "schedule"
OPERATING_MODE_OFF = "off"
OPERATING_MODES = (OPERATING_MODE_MANUAL, OPERATING_MODE_SCHEDULE, OPERATING_MODE_OFF)

# ------------------------------
# Trend labels
# ------------------------------
TREND_HEATING = "heating"
TREND_COOLING = "cooling"
TREND_STABLE = "stable"
TREND_UNKNOWN = "unknown"
# Display-only labels (never produced by the trend detector)
TREND_IDLE = "idle"
TREND_OFF = "off"

# ------------------------------
# Config entry keys
# ------------------------------
CONF_MIN_TEMP = "min_temp"
CONF_MAX_TEMP = "max_temp"
CONF_TARGET_TEMP = "target_temp"
CONF_HYSTERESIS = "hysteresis"
CONF_SAMPLE_INTERVAL = "sample_interval"
CONF_PRECISION = "precision"
CONF_MAX_OUTPUT_CHANGE = "max_output_change"
CONF_THERMAL_MODE = "mode"
CONF_OPERATING_MODE = "operating_mode"
CONF_AWAY_TEMP = "away_temp"
CONF_LEARNING_ENABLED = "learning_enabled"
CONF_KP = "kp"
CONF_KI = "ki"
CONF_KD = "kd"

# ------------------------------
# Defaults
# ------------------------------
DEFAULT_MIN_TEMP = 15.0
DEFAULT_MAX_TEMP = 25.0
DEFAULT_TARGET_TEMP = 21.0
DEFAULT_HYSTERESIS = 0.2
DEFAULT_SAMPLE_INTERVAL_SEC = 60.0
DEFAULT_PRECISION = 0.5
DEFAULT_MAX_OUTPUT_CHANGE = 0.5  # max setpoint change per cycle (°C)
DEFAULT_AWAY_TEMP = 16.0

# Actuator precision steps (°C)
PRECISION_STEPS = (1.0, 0.5, 0.2, 0.1)

# Initial gains (before learning)
DEFAULT_KP = 1.0
DEFAULT_KI = 0.02  # high enough to compensate steady-state offset
DEFAULT_KD = 0.5

# Allowed ranges for tuned gains
KP_MIN = 0.1
KP_MAX = 5.0
KI_MIN = 0.001
KI_MAX = 0.5
KD_MIN = 0.0
KD_MAX = 2.0

# ------------------------------
# Learning / adaptation
# ------------------------------
LEARNING_MIN_SAMPLES = 30          # samples before estimation is attempted
LEARNING_ESTIMATION_MIN_SAMPLES = 10
LEARNING_TIMEOUT_SEC = 3600        # force tuned state after 1h
LEARNING_MIN_EXCITATION = 0.5      # °C deviation needed to estimate dynamics
TEMPERATURE_HISTORY_WINDOW_SEC = 3600
TIME_CONSTANT_FRACTION = 0.632     # first-order 63.2% point
DEAD_TIME_FRACTION = 0.1

# Cohen-Coon regimes (dead_time / time_constant)
RATIO_FAST_MAX = 0.1
RATIO_MODERATE_MAX = 0.5

PERFORMANCE_HISTORY_SIZE = 1000
ADAPTATION_INTERVAL = 100          # adapt every N tracked samples
OSCILLATION_STDDEV_RATIO = 0.5     # stddev > ratio * mean -> oscillating
OSCILLATION_DAMPING = 0.95
SLUGGISH_HYSTERESIS_MULT = 2.0     # mean > mult * hysteresis -> sluggish
SLUGGISH_GAIN = 1.02

# ------------------------------
# Trend detection
# ------------------------------
TREND_WINDOW_SIZE = 5
TREND_MIN_SAMPLES = 3
TREND_THRESHOLD = 0.1  # °C between oldest and newest sample

# ------------------------------
# Schedule
# ------------------------------
WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)
SCHEDULE_TIMEZONE_LOCAL = "local"
SCHEDULE_TIMEZONE_UTC = "UTC"

# ------------------------------
# Persistence
# ------------------------------
STORAGE_VERSION = 1
STORAGE_KEY = "smart_thermostat.adaptive_pid.{}"


class EventType(Enum):
    """Events fired on the Home Assistant bus."""

    ADAPTIVE_PID_EVENT = "smart_thermostat_adaptive_pid_event"
