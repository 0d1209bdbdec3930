# pylint: disable=line-too-long
"""Learning and adaptation engine.

Two stages:

- LEARNING: every sample is kept in a one-hour history. Once enough samples are
  available the step response is approximated by a first-order model with dead
  time (time constant = 63.2% point, dead time = 10% point) and the gains are
  computed with Cohen-Coon style formulas keyed on dead_time / time_constant.
  After one hour without a conclusive estimate, the current gains are kept.

- TUNED: absolute errors go into a rolling buffer; every ADAPTATION_INTERVAL
  samples the recent mean / standard deviation nudge Kp and Kd (damp oscillation,
  speed up a sluggish loop).
"""

from __future__ import annotations

import logging
import statistics
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Iterator, List, Optional, Sequence

from .const import (
    ADAPTATION_INTERVAL,
    DEAD_TIME_FRACTION,
    LEARNING_ESTIMATION_MIN_SAMPLES,
    LEARNING_MIN_EXCITATION,
    LEARNING_MIN_SAMPLES,
    LEARNING_TIMEOUT_SEC,
    OSCILLATION_DAMPING,
    OSCILLATION_STDDEV_RATIO,
    PERFORMANCE_HISTORY_SIZE,
    RATIO_FAST_MAX,
    RATIO_MODERATE_MAX,
    SLUGGISH_GAIN,
    SLUGGISH_HYSTERESIS_MULT,
    TEMPERATURE_HISTORY_WINDOW_SEC,
    TIME_CONSTANT_FRACTION,
)
from .pid_core import PIDGains

_LOGGER = logging.getLogger(__name__)


########################################################################
#                                                                      #
#                      HISTORY CONTAINERS                              #
#                                                                      #
########################################################################


@dataclass(frozen=True)
class TemperatureSample:
    temp: float
    timestamp: float  # Unix timestamp (s)


class TemperatureHistory:
    """Time-ordered samples, evicted by age (keeps the last ``window_s`` seconds)."""

    def __init__(self, window_s: float = TEMPERATURE_HISTORY_WINDOW_SEC) -> None:
        self._window_s = float(window_s)
        self._samples: Deque[TemperatureSample] = deque()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[TemperatureSample]:
        return iter(self._samples)

    def append(self, temp: float, timestamp: float) -> None:
        if self._samples and timestamp < self._samples[-1].timestamp:
            # Clock went backwards: older samples can no longer be ordered
            _LOGGER.debug("Temperature history reset (timestamp %.0f before last sample)", timestamp)
            self._samples.clear()
        self._samples.append(TemperatureSample(temp=float(temp), timestamp=float(timestamp)))
        self._evict(timestamp)

    def _evict(self, now_ts: float) -> None:
        cutoff = now_ts - self._window_s
        while self._samples and self._samples[0].timestamp <= cutoff:
            self._samples.popleft()

    def samples(self) -> List[TemperatureSample]:
        return list(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def save_state(self) -> List[dict]:
        return [{"temp": s.temp, "timestamp": s.timestamp} for s in self._samples]

    def load_state(self, raw: Sequence[Any]) -> None:
        """Reload samples, dropping malformed or out-of-order entries."""
        self._samples.clear()
        for item in raw:
            try:
                temp = float(item["temp"])
                timestamp = float(item["timestamp"])
            except (KeyError, TypeError, ValueError):
                continue
            if self._samples and timestamp < self._samples[-1].timestamp:
                continue
            self._samples.append(TemperatureSample(temp=temp, timestamp=timestamp))
        if self._samples:
            self._evict(self._samples[-1].timestamp)


class PerformanceHistory:
    """Rolling buffer of absolute errors, evicted by count (oldest first)."""

    def __init__(self, capacity: int = PERFORMANCE_HISTORY_SIZE) -> None:
        self._errors: Deque[float] = deque(maxlen=capacity)
        # Samples ever appended; drives the adaptation period once the buffer is full
        self._total: int = 0

    def __len__(self) -> int:
        return len(self._errors)

    @property
    def capacity(self) -> int:
        return self._errors.maxlen

    @property
    def total_count(self) -> int:
        return self._total

    def append(self, abs_error: float) -> int:
        self._errors.append(float(abs_error))
        self._total += 1
        return self._total

    def recent(self, count: int) -> List[float]:
        return list(self._errors)[-count:]

    def clear(self) -> None:
        self._errors.clear()
        self._total = 0

    def save_state(self) -> List[float]:
        return list(self._errors)

    def load_state(self, raw: Sequence[Any], total_count: Optional[int] = None) -> None:
        values = []
        for item in raw:
            try:
                values.append(abs(float(item)))
            except (TypeError, ValueError):
                continue
        self._errors = deque(values, maxlen=self._errors.maxlen)
        self._total = max(int(total_count or 0), len(self._errors))


########################################################################
#                                                                      #
#                      PLANT ESTIMATION & TUNING                       #
#                                                                      #
########################################################################


@dataclass(frozen=True)
class ThermalCharacteristics:
    """First-order-plus-dead-time approximation of the plant (seconds)."""

    time_constant: float = 0.0
    dead_time: float = 0.0
    excitation: float = 0.0  # max deviation from the first sample (°C)

    @property
    def conclusive(self) -> bool:
        return self.time_constant > 0.0 and self.dead_time > 0.0


def _first_crossing(temps: Sequence[float], end_idx: int, level: float, rising: bool, default: int) -> int:
    """First index before ``end_idx`` where the response reaches ``level``."""
    for i in range(end_idx):
        if (rising and temps[i] >= level) or (not rising and temps[i] <= level):
            return i
    return default


def estimate_thermal_characteristics(samples: Sequence[TemperatureSample]) -> ThermalCharacteristics:
    """Estimate time constant and dead time from the recorded response.

    Inconclusive (zeros) when there are too few samples or the temperature moved
    less than LEARNING_MIN_EXCITATION from the first sample.
    """
    if len(samples) < LEARNING_ESTIMATION_MIN_SAMPLES:
        return ThermalCharacteristics()

    temps = [s.temp for s in samples]
    times = [s.timestamp for s in samples]
    first = temps[0]

    max_change = 0.0
    end_idx = 0
    for i in range(1, len(temps)):
        change = abs(temps[i] - first)
        if change > max_change:
            max_change = change
            end_idx = i

    if max_change < LEARNING_MIN_EXCITATION:
        return ThermalCharacteristics(excitation=max_change)

    delta = temps[end_idx] - first
    rising = delta > 0

    tc_idx = _first_crossing(temps, end_idx, first + TIME_CONSTANT_FRACTION * delta, rising, default=end_idx)
    dt_idx = _first_crossing(temps, end_idx, first + DEAD_TIME_FRACTION * delta, rising, default=0)

    return ThermalCharacteristics(
        time_constant=times[tc_idx] - times[0],
        dead_time=times[dt_idx] - times[0],
        excitation=max_change,
    )


def cohen_coon_gains(characteristics: ThermalCharacteristics) -> Optional[PIDGains]:
    """Cohen-Coon style gains for a first-order plant with dead time, clamped."""
    if not characteristics.conclusive:
        return None

    tau = characteristics.time_constant
    theta = characteristics.dead_time
    ratio = theta / tau

    if ratio < RATIO_FAST_MAX:
        # Fast plant: aggressive
        kp = 1.35 / ratio
        ki = kp / (2.5 * theta)
        kd = kp * 0.37 * theta
    elif ratio < RATIO_MODERATE_MAX:
        kp = (1.35 + 0.25 * ratio) / ratio
        ki = kp / ((2.5 - 2.0 * ratio) * theta)
        kd = kp * (0.37 - 0.3 * ratio) * theta
    else:
        # Slow plant: conservative
        kp = 0.9 / ratio
        ki = kp / (3.3 * theta)
        kd = kp * 0.2 * theta

    return PIDGains(kp=kp, ki=ki, kd=kd).clamped()


########################################################################
#                                                                      #
#                      LEARNING ENGINE                                 #
#                                                                      #
########################################################################


class LearningEngine:
    """Owns the learning state machine and the two histories."""

    def __init__(self, name: str, hysteresis: float, learning_enabled: bool = True) -> None:
        self._name = name
        self._hysteresis = float(hysteresis)
        self._learning_enabled = bool(learning_enabled)

        self.learning_phase: bool = self._learning_enabled
        self.learning_complete: bool = False
        self.learning_start: Optional[float] = None  # Unix timestamp (s)
        self.temperature_history = TemperatureHistory()
        self.performance_history = PerformanceHistory()
        self.last_characteristics: Optional[ThermalCharacteristics] = None

    @property
    def is_learning(self) -> bool:
        return self.learning_phase and not self.learning_complete

    @property
    def state(self) -> str:
        return "learning" if self.learning_phase else "running"

    def reset(self) -> None:
        self.learning_phase = self._learning_enabled
        self.learning_complete = False
        self.learning_start = None
        self.temperature_history.clear()
        self.performance_history.clear()
        self.last_characteristics = None

    def record(self, temp: float, timestamp: float) -> None:
        self.temperature_history.append(temp, timestamp)

    def _complete(self) -> None:
        self.learning_complete = True
        self.learning_phase = False

    def learn(self, gains: PIDGains, now_ts: float) -> PIDGains:
        """Run one learning step; returns the gains to use from now on."""
        if not self.is_learning:
            return gains

        if self.learning_start is None:
            self.learning_start = now_ts

        if len(self.temperature_history) >= LEARNING_MIN_SAMPLES:
            characteristics = estimate_thermal_characteristics(self.temperature_history.samples())
            self.last_characteristics = characteristics
            tuned = cohen_coon_gains(characteristics)
            if tuned is not None:
                _LOGGER.info(
                    "%s - Learning complete: tau=%.0fs, dead_time=%.0fs -> Kp=%.3f, Ki=%.4f, Kd=%.3f",
                    self._name, characteristics.time_constant, characteristics.dead_time,
                    tuned.kp, tuned.ki, tuned.kd,
                )
                self._complete()
                return tuned
            _LOGGER.debug(
                "%s - Estimation inconclusive (excitation %.2f°C over %d samples)",
                self._name, characteristics.excitation, len(self.temperature_history),
            )

        if now_ts - self.learning_start > LEARNING_TIMEOUT_SEC:
            _LOGGER.info(
                "%s - Learning timed out, keeping gains Kp=%.3f, Ki=%.4f, Kd=%.3f",
                self._name, gains.kp, gains.ki, gains.kd,
            )
            self._complete()

        return gains

    def track_performance(self, error: float, gains: PIDGains) -> PIDGains:
        """Record |error| and periodically adapt Kp/Kd from recent performance."""
        count = self.performance_history.append(abs(error))
        if count % ADAPTATION_INTERVAL != 0 or len(self.performance_history) < ADAPTATION_INTERVAL:
            return gains

        recent = self.performance_history.recent(ADAPTATION_INTERVAL)
        avg_error = statistics.fmean(recent)
        std_dev = statistics.pstdev(recent, avg_error)

        kp, kd = gains.kp, gains.kd
        if std_dev > avg_error * OSCILLATION_STDDEV_RATIO:
            kp *= OSCILLATION_DAMPING
            kd *= OSCILLATION_DAMPING
            reason = "oscillation"
        elif avg_error > self._hysteresis * SLUGGISH_HYSTERESIS_MULT:
            kp *= SLUGGISH_GAIN
            reason = "sluggish"
        else:
            reason = "ok"

        adapted = PIDGains(kp=kp, ki=gains.ki, kd=kd).clamped()
        _LOGGER.debug(
            "%s - Continuous adaptation (%s): mean=%.3f, std=%.3f, Kp %.3f -> %.3f, Kd %.3f -> %.3f",
            self._name, reason, avg_error, std_dev, gains.kp, adapted.kp, gains.kd, adapted.kd,
        )
        return adapted
