# pylint: disable=line-too-long, too-many-instance-attributes, too-many-public-methods
"""Adaptive PID controller for thermostats driven by a target setpoint.

Each temperature sample goes through:

    boost expiry -> effective target -> PID (or mode-mismatch bypass)
    -> learning / adaptation -> setpoint shaping -> activation latch

The output is a setpoint for a thermostat-like actuator (TRV, split, heat pump)
plus a boolean telling whether the actuator should be running. The controller is
synchronous and never performs I/O; persistence goes through
``snapshot_state()`` / ``restore_state()``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from homeassistant.util import dt as dt_util

from .activation_latch import ActivationLatch, TrendDetector
from .bounds import TemperatureBounds, parse_temperature
from .clock import Clock
from .const import (
    CONF_AWAY_TEMP,
    CONF_HYSTERESIS,
    CONF_KD,
    CONF_KI,
    CONF_KP,
    CONF_LEARNING_ENABLED,
    CONF_MAX_OUTPUT_CHANGE,
    CONF_MAX_TEMP,
    CONF_MIN_TEMP,
    CONF_OPERATING_MODE,
    CONF_PRECISION,
    CONF_SAMPLE_INTERVAL,
    CONF_TARGET_TEMP,
    CONF_THERMAL_MODE,
    DEFAULT_AWAY_TEMP,
    DEFAULT_HYSTERESIS,
    DEFAULT_KD,
    DEFAULT_KI,
    DEFAULT_KP,
    DEFAULT_MAX_OUTPUT_CHANGE,
    DEFAULT_MAX_TEMP,
    DEFAULT_MIN_TEMP,
    DEFAULT_PRECISION,
    DEFAULT_SAMPLE_INTERVAL_SEC,
    DEFAULT_TARGET_TEMP,
    LEGACY_THERMAL_MODES,
    OPERATING_MODE_MANUAL,
    OPERATING_MODE_OFF,
    OPERATING_MODE_SCHEDULE,
    OPERATING_MODES,
    PRECISION_STEPS,
    THERMAL_MODE_COOL,
    THERMAL_MODE_HEAT,
    THERMAL_MODE_HEAT_COOL,
    THERMAL_MODES,
    TREND_IDLE,
    TREND_OFF,
    TREND_STABLE,
)
from .learning import LearningEngine
from .pid_core import PIDGains, PIDTerms, compute_pid, is_mode_mismatch, relax_integral
from .schedule import WeeklySchedule
from .setpoint_shaper import round_to_precision, shape_setpoint
from .target_resolver import AwayOverride, OverrideState, resolve_effective_target

_LOGGER = logging.getLogger(__name__)


def normalize_thermal_mode(mode: Any) -> Optional[str]:
    """Map a thermal mode (or its legacy alias) to heat / cool / heat_cool."""
    if not isinstance(mode, str):
        return None
    mode = mode.strip().lower()
    mode = LEGACY_THERMAL_MODES.get(mode, mode)
    return mode if mode in THERMAL_MODES else None


def _coerce_float(value: Any, default: float) -> float:
    parsed = parse_temperature(value)
    return default if parsed is None else parsed


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "on", "yes", "1"):
            return True
        if lowered in ("false", "off", "no", "0"):
            return False
    return default


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_util.UTC)
    return parsed


def _timestamp_to_iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=dt_util.UTC).isoformat()


########################################################################
#                                                                      #
#                      CONFIGURATION & STATE                           #
#                                                                      #
########################################################################


@dataclass(frozen=True)
class ControllerConfig:
    """Immutable controller configuration. Invalid values raise ValueError."""

    min_temp: float = DEFAULT_MIN_TEMP
    max_temp: float = DEFAULT_MAX_TEMP
    target_temp: float = DEFAULT_TARGET_TEMP
    hysteresis: float = DEFAULT_HYSTERESIS
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL_SEC  # seconds
    precision: float = DEFAULT_PRECISION
    max_output_change: float = DEFAULT_MAX_OUTPUT_CHANGE
    mode: str = THERMAL_MODE_HEAT
    operating_mode: str = OPERATING_MODE_MANUAL
    away_temp: float = DEFAULT_AWAY_TEMP
    learning_enabled: bool = True
    kp: float = DEFAULT_KP
    ki: float = DEFAULT_KI
    kd: float = DEFAULT_KD

    def __post_init__(self) -> None:
        numeric = (
            "min_temp", "max_temp", "target_temp", "hysteresis", "sample_interval",
            "precision", "max_output_change", "away_temp", "kp", "ki", "kd",
        )
        for name in numeric:
            if parse_temperature(getattr(self, name)) is None:
                raise ValueError(f"{name} must be a finite number, got {getattr(self, name)!r}")

        if not self.min_temp < self.max_temp:
            raise ValueError(f"min_temp ({self.min_temp}) must be lower than max_temp ({self.max_temp})")
        if not any(math.isclose(self.precision, step) for step in PRECISION_STEPS):
            raise ValueError(f"precision must be one of {PRECISION_STEPS}, got {self.precision}")
        if self.hysteresis < 0:
            raise ValueError(f"hysteresis must be >= 0, got {self.hysteresis}")
        if self.max_output_change <= 0:
            raise ValueError(f"max_output_change must be > 0, got {self.max_output_change}")
        if self.sample_interval <= 0:
            raise ValueError(f"sample_interval must be > 0, got {self.sample_interval}")
        if min(self.kp, self.ki, self.kd) < 0:
            raise ValueError("PID gains must be >= 0")
        if self.mode not in THERMAL_MODES:
            raise ValueError(f"mode must be one of {THERMAL_MODES}, got {self.mode!r}")
        if self.operating_mode not in OPERATING_MODES:
            raise ValueError(f"operating_mode must be one of {OPERATING_MODES}, got {self.operating_mode!r}")

    @property
    def bounds(self) -> TemperatureBounds:
        return TemperatureBounds(self.min_temp, self.max_temp)

    @property
    def initial_gains(self) -> PIDGains:
        return PIDGains(kp=self.kp, ki=self.ki, kd=self.kd)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ControllerConfig":
        """Build a config from config-entry data (CONF_* keys).

        Missing or unparsable values fall back to the defaults; legacy thermal
        mode names are accepted. The resulting combination is still validated.
        """
        data = data or {}
        operating_mode = data.get(CONF_OPERATING_MODE)
        if operating_mode not in OPERATING_MODES:
            operating_mode = OPERATING_MODE_MANUAL

        return cls(
            min_temp=_coerce_float(data.get(CONF_MIN_TEMP), DEFAULT_MIN_TEMP),
            max_temp=_coerce_float(data.get(CONF_MAX_TEMP), DEFAULT_MAX_TEMP),
            target_temp=_coerce_float(data.get(CONF_TARGET_TEMP), DEFAULT_TARGET_TEMP),
            hysteresis=_coerce_float(data.get(CONF_HYSTERESIS), DEFAULT_HYSTERESIS),
            sample_interval=_coerce_float(data.get(CONF_SAMPLE_INTERVAL), DEFAULT_SAMPLE_INTERVAL_SEC),
            precision=_coerce_float(data.get(CONF_PRECISION), DEFAULT_PRECISION),
            max_output_change=_coerce_float(data.get(CONF_MAX_OUTPUT_CHANGE), DEFAULT_MAX_OUTPUT_CHANGE),
            mode=normalize_thermal_mode(data.get(CONF_THERMAL_MODE)) or THERMAL_MODE_HEAT,
            operating_mode=operating_mode,
            away_temp=_coerce_float(data.get(CONF_AWAY_TEMP), DEFAULT_AWAY_TEMP),
            learning_enabled=_coerce_bool(data.get(CONF_LEARNING_ENABLED), True),
            kp=_coerce_float(data.get(CONF_KP), DEFAULT_KP),
            ki=_coerce_float(data.get(CONF_KI), DEFAULT_KI),
            kd=_coerce_float(data.get(CONF_KD), DEFAULT_KD),
        )


@dataclass
class ControlState:
    """Mutable PID state carried from one sample to the next."""

    gains: PIDGains = field(default_factory=PIDGains)
    integral: float = 0.0  # always >= 0
    last_error: float = 0.0
    last_temp: Optional[float] = None
    last_output: Optional[float] = None
    last_update: Optional[datetime] = None


@dataclass(frozen=True)
class ControlResult:
    """Output of one ``update()``."""

    setpoint: float
    active: bool
    debug: Dict[str, Any]


########################################################################
#                                                                      #
#                      CONTROLLER                                      #
#                                                                      #
########################################################################


class AdaptivePID:
    """Self-tuning setpoint-biasing PID for slow thermal plants."""

    def __init__(
        self,
        config: ControllerConfig,
        name: str = "adaptive_pid",
        clock: Optional[Clock] = None,
        saved_state: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._config = config
        self._name = name
        self._clock = clock or Clock()
        self._bounds = config.bounds

        # Mirrors changed by the setters; the config keeps construction values
        self._mode: str = config.mode
        self._operating_mode: str = config.operating_mode
        self._base_target: float = self._bounds.clamp(config.target_temp)
        self._target: float = self._base_target

        self._schedule: Optional[WeeklySchedule] = None
        self._overrides = OverrideState(away=AwayOverride(temperature=self._bounds.clamp(config.away_temp)))

        self._state = ControlState(gains=config.initial_gains)
        self._learning = LearningEngine(name, config.hysteresis, config.learning_enabled)
        self._trend = TrendDetector()
        self._latch = ActivationLatch()

        self._parameters_changed = False
        self._last_trend: Optional[str] = None
        self._last_active_mode: Optional[str] = None
        self._last_debug: Dict[str, Any] = {}

        _LOGGER.debug(
            "%s - AdaptivePID created: mode=%s, operating_mode=%s, target=%.1f, bounds=[%.1f, %.1f], learning=%s",
            self._name, self._mode, self._operating_mode, self._base_target,
            config.min_temp, config.max_temp, config.learning_enabled,
        )

        if saved_state:
            self.restore_state(saved_state)

    # ------------------------------
    # Properties
    # ------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def operating_mode(self) -> str:
        return self._operating_mode

    @property
    def base_target(self) -> float:
        return self._base_target

    @property
    def target_temp(self) -> float:
        """Effective target computed by the last cycle or resolution."""
        return self._target

    @property
    def gains(self) -> PIDGains:
        return self._state.gains

    @property
    def integral(self) -> float:
        return self._state.integral

    @property
    def schedule(self) -> Optional[WeeklySchedule]:
        return self._schedule

    @property
    def overrides(self) -> OverrideState:
        return self._overrides

    @property
    def learning(self) -> LearningEngine:
        return self._learning

    @property
    def latch(self) -> ActivationLatch:
        return self._latch

    @property
    def last_debug(self) -> Dict[str, Any]:
        return self._last_debug

    # ------------------------------
    # Control cycle
    # ------------------------------

    def _refresh_target(self, now: datetime) -> float:
        if self._overrides.boost.expire_if_due(now):
            _LOGGER.info("%s - Boost expired", self._name)
        self._target = resolve_effective_target(
            self._bounds, self._base_target, self._schedule, self._overrides, now
        )
        return self._target

    def _set_gains(self, gains: PIDGains) -> None:
        if gains != self._state.gains:
            self._state.gains = gains
            self._parameters_changed = True

    def update(self, current_temp: Any) -> ControlResult:
        """Process one temperature sample and return the setpoint to apply."""
        now = self._clock.now()
        cfg = self._config

        temp = parse_temperature(current_temp)
        if temp is None:
            _LOGGER.debug("%s - Ignoring non-numeric temperature %r", self._name, current_temp)
            target = self._refresh_target(now)
            setpoint = self._state.last_output
            if setpoint is None:
                setpoint = round_to_precision(target, cfg.precision)
            debug = self._build_debug(now, None, setpoint, 0.0, self._last_trend, self._last_active_mode, None, False)
            return ControlResult(setpoint=setpoint, active=False, debug=debug)

        if self._state.last_update is not None:
            dt = max((now - self._state.last_update).total_seconds(), 0.0)
        else:
            dt = cfg.sample_interval
        self._state.last_update = now

        target = self._refresh_target(now)

        if self._operating_mode == OPERATING_MODE_OFF:
            self._latch.force_off()
            parked = cfg.max_temp if self._mode == THERMAL_MODE_COOL else cfg.min_temp
            setpoint = round_to_precision(parked, cfg.precision)
            return self._finish(now, temp, setpoint, 0.0, TREND_OFF, self._mode, None, False)

        ts = now.timestamp()
        self._learning.record(temp, ts)
        self._trend.add(temp)
        raw_trend = self._trend.trend

        error = target - temp
        active_mode = self._mode
        if self._mode == THERMAL_MODE_HEAT_COOL:
            active_mode = THERMAL_MODE_HEAT if error > 0 else THERMAL_MODE_COOL
        in_hysteresis = abs(error) < cfg.hysteresis

        if is_mode_mismatch(self._mode, error):
            # Room already past the target: let it drift back, bleed the integral
            setpoint = round_to_precision(target, cfg.precision)
            self._state.last_output = setpoint
            self._state.last_temp = temp
            self._state.integral = relax_integral(self._state.integral, error)
            active = self._latch.update(self._mode, error, setpoint, target, raw_trend, cfg.hysteresis, cfg.precision)
            return self._finish(now, temp, setpoint, error, TREND_IDLE, active_mode, None, active)

        gains = self._learning.learn(self._state.gains, ts)
        self._set_gains(gains)

        terms, integral = compute_pid(
            error, dt, active_mode, self._state.gains, self._state.integral, self._state.last_error, self._bounds
        )
        self._state.integral = integral

        setpoint = shape_setpoint(
            target, terms.adjustment, active_mode, in_hysteresis, self._state.last_output,
            cfg.precision, cfg.max_output_change, self._bounds,
        )

        self._state.last_error = error
        self._state.last_temp = temp
        self._state.last_output = setpoint

        if not self._learning.learning_phase:
            self._set_gains(self._learning.track_performance(error, self._state.gains))

        active = self._latch.update(self._mode, error, setpoint, target, raw_trend, cfg.hysteresis, cfg.precision)
        trend = TREND_STABLE if in_hysteresis else raw_trend

        _LOGGER.debug(
            "%s - T=%.2f target=%.2f err=%.2f dt=%.0fs P=%.3f I=%.3f D=%.3f -> setpoint=%.1f active=%s",
            self._name, temp, target, error, dt, terms.p, terms.i, terms.d, setpoint, active,
        )
        return self._finish(now, temp, setpoint, error, trend, active_mode, terms, active)

    def _finish(
        self,
        now: datetime,
        temp: float,
        setpoint: float,
        error: float,
        trend: str,
        active_mode: str,
        terms: Optional[PIDTerms],
        active: bool,
    ) -> ControlResult:
        self._last_trend = trend
        self._last_active_mode = active_mode
        debug = self._build_debug(now, temp, setpoint, error, trend, active_mode, terms, active)
        self._last_debug = debug
        return ControlResult(setpoint=setpoint, active=active, debug=debug)

    def _build_debug(
        self,
        now: datetime,
        temp: Optional[float],
        setpoint: float,
        error: float,
        trend: Optional[str],
        active_mode: Optional[str],
        terms: Optional[PIDTerms],
        active: bool,
    ) -> Dict[str, Any]:
        boost = self._overrides.boost
        away = self._overrides.away
        slot = self._schedule.match(now) if self._schedule is not None else None

        debug: Dict[str, Any] = {
            "current_temp": temp,
            "target_temp": self._target,
            "base_target_temp": self._base_target,
            "setpoint": setpoint,
            "error": round(error, 2),
            "trend": trend,
            "mode": self._mode,
            "active_mode": active_mode or self._mode,
            "precision": self._config.precision,
            "state": self._learning.state,
            "learning_complete": self._learning.learning_complete,
            "pid": self._state.gains.as_dict(3),
            "operating_mode": self._operating_mode,
            "schedule_active": self._operating_mode == OPERATING_MODE_SCHEDULE and self._schedule is not None,
            "current_schedule_slot": slot.as_dict() if slot is not None else None,
            "boost_active": boost.active,
            "boost_temp": boost.temperature,
            "boost_end_time": boost.end_time.isoformat() if boost.end_time is not None else None,
            "boost_remaining": boost.remaining_minutes(now),
            "away_mode": away.active,
            "away_temp": away.temperature,
            "active": active,
            "heating_latch": self._latch.heating,
            "cooling_latch": self._latch.cooling,
        }
        if terms is not None:
            debug["pid_terms"] = terms.as_dict()
        return debug

    # ------------------------------
    # Setters
    # ------------------------------

    def set_manual_target(self, temp: Any) -> bool:
        """Set the base (manual) target. Resets the integral."""
        value = parse_temperature(temp)
        if value is None:
            _LOGGER.debug("%s - Rejected manual target %r", self._name, temp)
            return False
        self._base_target = self._bounds.clamp(value)
        self._state.integral = 0.0
        self._refresh_target(self._clock.now())
        _LOGGER.debug("%s - Manual target set to %.1f", self._name, self._base_target)
        return True

    def set_operating_mode(self, mode: Any) -> bool:
        """Switch between manual, schedule and off. Resets the integral."""
        if mode not in OPERATING_MODES:
            _LOGGER.debug("%s - Rejected operating mode %r", self._name, mode)
            return False
        self._operating_mode = mode
        self._state.integral = 0.0
        if mode == OPERATING_MODE_OFF:
            self._latch.force_off()
        _LOGGER.debug("%s - Operating mode set to %s", self._name, mode)
        return True

    def set_thermal_mode(self, mode: Any) -> bool:
        """Switch between heat, cool and heat_cool (legacy names accepted). Resets the integral."""
        normalized = normalize_thermal_mode(mode)
        if normalized is None:
            _LOGGER.debug("%s - Rejected thermal mode %r", self._name, mode)
            return False
        self._mode = normalized
        self._state.integral = 0.0
        _LOGGER.debug("%s - Thermal mode set to %s", self._name, normalized)
        return True

    def set_schedule(self, schedule: Any) -> bool:
        """Install a weekly schedule (dict or WeeklySchedule); None or False removes it."""
        if schedule is None or schedule is False:
            self._schedule = None
        elif isinstance(schedule, WeeklySchedule):
            self._schedule = schedule
        else:
            parsed = WeeklySchedule.from_dict(schedule)
            if parsed is None:
                _LOGGER.debug("%s - Rejected schedule %r", self._name, schedule)
                return False
            self._schedule = parsed
        self._refresh_target(self._clock.now())
        return True

    def set_boost(self, boost: Any) -> bool:
        """Start a boost from ``{"temp": float, "duration": minutes}``; False cancels it."""
        if boost is False or boost is None:
            self._overrides.boost.clear()
            self._refresh_target(self._clock.now())
            return True
        if not isinstance(boost, dict):
            _LOGGER.debug("%s - Rejected boost %r", self._name, boost)
            return False

        temp = parse_temperature(boost.get("temp"))
        duration = parse_temperature(boost.get("duration"))
        if temp is None or duration is None or duration <= 0:
            _LOGGER.debug("%s - Rejected boost %r", self._name, boost)
            return False

        now = self._clock.now()
        try:
            end_time = now + timedelta(minutes=duration)
        except (OverflowError, ValueError):
            _LOGGER.debug("%s - Rejected boost duration %r", self._name, boost.get("duration"))
            return False

        self._overrides.boost.active = True
        self._overrides.boost.temperature = self._bounds.clamp(temp)
        self._overrides.boost.end_time = end_time
        self._refresh_target(now)
        _LOGGER.info(
            "%s - Boost to %.1f for %.0f min (until %s)",
            self._name, self._overrides.boost.temperature, duration, self._overrides.boost.end_time.isoformat(),
        )
        return True

    def set_away(self, away: Any) -> bool:
        """False disables away, True enables it, a number enables it with that ceiling."""
        if away is False:
            self._overrides.away.active = False
        elif away is True:
            self._overrides.away.active = True
        else:
            value = parse_temperature(away)
            if value is None:
                _LOGGER.debug("%s - Rejected away value %r", self._name, away)
                return False
            self._overrides.away.active = True
            self._overrides.away.temperature = self._bounds.clamp(value)
        self._refresh_target(self._clock.now())
        return True

    # ------------------------------
    # Queries
    # ------------------------------

    def parameters_changed(self) -> bool:
        """One-shot flag raised when the gains changed; cleared on read."""
        changed = self._parameters_changed
        self._parameters_changed = False
        return changed

    def resolve_current_target(self) -> float:
        """Recompute the effective target without processing a sample."""
        return self._refresh_target(self._clock.now())

    def get_status(self) -> Dict[str, Any]:
        """Status from the last known values, without running a cycle."""
        now = self._clock.now()
        target = self._refresh_target(now)
        last_temp = self._state.last_temp
        setpoint = self._state.last_output
        if setpoint is None:
            setpoint = round_to_precision(target, self._config.precision)

        return {
            "setpoint": setpoint,
            "current_temp": last_temp,
            "target_temp": target,
            "error": round(target - last_temp, 2) if last_temp is not None else None,
            "state": self._learning.state,
            "trend": self._last_trend,
            "mode": self._mode,
            "active_mode": self._last_active_mode,
            "operating_mode": self._operating_mode,
            "boost_active": self._overrides.boost.active,
            "boost_remaining": self._overrides.boost.remaining_minutes(now),
            "away_mode": self._overrides.away.active,
            "active": self._latch.active,
            "pid": self._state.gains.as_dict(3),
        }

    def get_diagnostics(self) -> Dict[str, Any]:
        """Return diagnostic information (suitable for attributes/UI)."""
        characteristics = self._learning.last_characteristics
        diagnostics = dict(self._last_debug)
        diagnostics.update(
            {
                "integral": round(self._state.integral, 4),
                "last_error": round(self._state.last_error, 4),
                "learning_phase": self._learning.learning_phase,
                "learning_complete": self._learning.learning_complete,
                "learning_start": _timestamp_to_iso(self._learning.learning_start),
                "temperature_samples": len(self._learning.temperature_history),
                "performance_samples": len(self._learning.performance_history),
                "performance_count": self._learning.performance_history.total_count,
                "time_constant_s": round(characteristics.time_constant, 1) if characteristics else None,
                "dead_time_s": round(characteristics.dead_time, 1) if characteristics else None,
            }
        )
        return diagnostics

    def reset(self) -> None:
        """Forget learned gains, histories, latches and integral; learn again."""
        self._state = ControlState(gains=self._config.initial_gains)
        self._learning.reset()
        self._trend.clear()
        self._latch.force_off()
        self._last_trend = None
        self._last_active_mode = None
        self._last_debug = {}
        self._parameters_changed = True
        _LOGGER.info(
            "%s - Controller reset: gains back to Kp=%.3f, Ki=%.4f, Kd=%.3f",
            self._name, self._state.gains.kp, self._state.gains.ki, self._state.gains.kd,
        )

    # ------------------------------
    # Persistence
    # ------------------------------

    def snapshot_state(self) -> Dict[str, Any]:
        """Return a JSON-serialisable snapshot for persistence."""
        boost = self._overrides.boost
        return {
            "kp": self._state.gains.kp,
            "ki": self._state.gains.ki,
            "kd": self._state.gains.kd,
            "integral": self._state.integral,
            "last_error": self._state.last_error,
            "last_temp": self._state.last_temp,
            "last_output": self._state.last_output,
            "learning_phase": self._learning.learning_phase,
            "learning_complete": self._learning.learning_complete,
            "learning_start": _timestamp_to_iso(self._learning.learning_start),
            "temperature_history": self._learning.temperature_history.save_state(),
            "performance_history": self._learning.performance_history.save_state(),
            "performance_count": self._learning.performance_history.total_count,
            "trend_window": self._trend.save_state(),
            "heating_latch": self._latch.heating,
            "cooling_latch": self._latch.cooling,
            "mode": self._mode,
            "operating_mode": self._operating_mode,
            "base_target_temp": self._base_target,
            "target_temp": self._target,
            "schedule": self._schedule.as_dict() if self._schedule is not None else None,
            "boost_active": boost.active,
            "boost_temp": boost.temperature,
            "boost_end_time": boost.end_time.isoformat() if boost.end_time is not None else None,
            "away_mode": self._overrides.away.active,
            "away_temp": self._overrides.away.temperature,
        }

    def _load_float(self, state: Dict[str, Any], key: str, current: Optional[float], minimum: Optional[float] = None) -> Optional[float]:
        if key not in state:
            return current
        raw = state[key]
        value = parse_temperature(raw)
        if value is None or (minimum is not None and value < minimum):
            _LOGGER.warning("%s - Invalid '%s' in saved state (%r), using default", self._name, key, raw)
            return current
        return value

    def _load_bool(self, state: Dict[str, Any], key: str, current: bool) -> bool:
        if key not in state:
            return current
        raw = state[key]
        if not isinstance(raw, bool):
            _LOGGER.warning("%s - Invalid '%s' in saved state (%r), using default", self._name, key, raw)
            return current
        return raw

    def restore_state(self, state: Optional[Dict[str, Any]]) -> None:
        """Load a snapshot. Partial, older or corrupt blobs keep defaults for bad fields."""
        if not state:
            return
        if not isinstance(state, dict):
            _LOGGER.warning("%s - Ignoring saved state of type %s", self._name, type(state).__name__)
            return

        gains = self._state.gains
        self._state.gains = PIDGains(
            kp=self._load_float(state, "kp", gains.kp, minimum=0.0),
            ki=self._load_float(state, "ki", gains.ki, minimum=0.0),
            kd=self._load_float(state, "kd", gains.kd, minimum=0.0),
        )
        self._state.integral = self._load_float(state, "integral", self._state.integral, minimum=0.0)
        self._state.last_error = self._load_float(state, "last_error", self._state.last_error)
        if state.get("last_temp") is not None:
            self._state.last_temp = self._load_float(state, "last_temp", self._state.last_temp)
        if state.get("last_output") is not None:
            last_output = self._load_float(state, "last_output", self._state.last_output)
            if last_output is not None:
                self._state.last_output = self._bounds.clamp(last_output)

        # Learning
        self._learning.learning_phase = self._load_bool(state, "learning_phase", self._learning.learning_phase)
        self._learning.learning_complete = self._load_bool(state, "learning_complete", self._learning.learning_complete)
        learning_start = _parse_datetime(state.get("learning_start"))
        if learning_start is not None:
            self._learning.learning_start = learning_start.timestamp()
        try:
            temperature_history = state.get("temperature_history")
            if temperature_history is not None:
                self._learning.temperature_history.load_state(list(temperature_history))
            performance_history = state.get("performance_history")
            if performance_history is not None:
                count = parse_temperature(state.get("performance_count"))
                self._learning.performance_history.load_state(
                    list(performance_history), int(count) if count is not None and count >= 0 else 0
                )
            trend_window = state.get("trend_window")
            if trend_window is not None:
                self._trend.load_state(list(trend_window))
        except (TypeError, ValueError):
            _LOGGER.warning("%s - Invalid history in saved state, starting with empty history", self._name)
            self._learning.temperature_history.clear()
            self._learning.performance_history.clear()
            self._trend.clear()

        self._latch.heating = self._load_bool(state, "heating_latch", self._latch.heating)
        self._latch.cooling = self._load_bool(state, "cooling_latch", self._latch.cooling)

        # Mirrors
        if "mode" in state:
            mode = normalize_thermal_mode(state["mode"])
            if mode is None:
                _LOGGER.warning("%s - Invalid 'mode' in saved state (%r), using default", self._name, state["mode"])
            else:
                self._mode = mode
        if "operating_mode" in state:
            if state["operating_mode"] in OPERATING_MODES:
                self._operating_mode = state["operating_mode"]
            else:
                _LOGGER.warning("%s - Invalid 'operating_mode' in saved state (%r), using default", self._name, state["operating_mode"])
        base_target = self._load_float(state, "base_target_temp", self._base_target)
        self._base_target = self._bounds.clamp(base_target)

        # Schedule and overrides
        if state.get("schedule") is not None:
            schedule = WeeklySchedule.from_dict(state["schedule"])
            if schedule is None:
                _LOGGER.warning("%s - Invalid 'schedule' in saved state, ignoring it", self._name)
            else:
                self._schedule = schedule

        boost = self._overrides.boost
        boost_temp = parse_temperature(state.get("boost_temp"))
        boost_end = _parse_datetime(state.get("boost_end_time"))
        if state.get("boost_active") is True and boost_temp is not None and boost_end is not None:
            boost.active = True
            boost.temperature = self._bounds.clamp(boost_temp)
            boost.end_time = boost_end
        else:
            if state.get("boost_active") is True:
                _LOGGER.warning("%s - Invalid boost in saved state, dropping it", self._name)
            boost.clear()

        self._overrides.away.active = self._load_bool(state, "away_mode", self._overrides.away.active)
        away_temp = self._load_float(state, "away_temp", self._overrides.away.temperature)
        self._overrides.away.temperature = self._bounds.clamp(away_temp)

        self._refresh_target(self._clock.now())
        _LOGGER.info(
            "%s - State restored: Kp=%.3f, Ki=%.4f, Kd=%.3f, state=%s",
            self._name, self._state.gains.kp, self._state.gains.ki, self._state.gains.kd, self._learning.state,
        )
