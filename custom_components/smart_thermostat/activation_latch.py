"""Activation latch: decides whether the actuator should run.

One latch per direction, each a two-state machine kept across cycles so that the
output does not toggle inside the hysteresis band::

    heating: off --(error > hyst)-------------------------------> on
             off --(setpoint > target + step, trend cooling, error > 0)--> on
             on  --(error <= 0)-------------------------------> off

Cooling mirrors it. Anything else holds the previous state.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Sequence

from .const import (
    THERMAL_MODE_COOL,
    THERMAL_MODE_HEAT,
    THERMAL_MODE_HEAT_COOL,
    TREND_COOLING,
    TREND_HEATING,
    TREND_MIN_SAMPLES,
    TREND_STABLE,
    TREND_THRESHOLD,
    TREND_UNKNOWN,
    TREND_WINDOW_SIZE,
)

_LOGGER = logging.getLogger(__name__)


class TrendDetector:
    """Direction of the temperature over the last few samples."""

    def __init__(self, size: int = TREND_WINDOW_SIZE) -> None:
        self._window: Deque[float] = deque(maxlen=size)

    def __len__(self) -> int:
        return len(self._window)

    def add(self, temp: float) -> None:
        self._window.append(float(temp))

    def clear(self) -> None:
        self._window.clear()

    @property
    def trend(self) -> str:
        if len(self._window) < TREND_MIN_SAMPLES:
            return TREND_UNKNOWN
        diff = self._window[-1] - self._window[0]
        if diff > TREND_THRESHOLD:
            return TREND_HEATING
        if diff < -TREND_THRESHOLD:
            return TREND_COOLING
        return TREND_STABLE

    def save_state(self) -> List[float]:
        return list(self._window)

    def load_state(self, raw: Sequence[Any]) -> None:
        values = []
        for item in raw:
            try:
                values.append(float(item))
            except (TypeError, ValueError):
                continue
        self._window = deque(values, maxlen=self._window.maxlen)


@dataclass
class ActivationLatch:
    heating: bool = False
    cooling: bool = False

    @property
    def active(self) -> bool:
        return self.heating or self.cooling

    def force_off(self) -> None:
        self.heating = False
        self.cooling = False

    def update(
        self,
        mode: str,
        error: float,
        setpoint: float,
        target: float,
        trend: str,
        hysteresis: float,
        precision: float,
    ) -> bool:
        """Advance both latches for one cycle and return the combined state.

        Parameters
        ----------
        mode:
            configured thermal mode; a direction it does not allow stays off
        error:
            target - current (°C)
        setpoint:
            setpoint emitted this cycle
        trend:
            raw trend from TrendDetector (not the display label)
        """
        if mode in (THERMAL_MODE_HEAT, THERMAL_MODE_HEAT_COOL):
            if error > hysteresis:
                self.heating = True
            elif setpoint > target + precision and trend == TREND_COOLING and error > 0:
                if not self.heating:
                    _LOGGER.debug("Proactive heating: setpoint %.1f, error %.2f, temperature falling", setpoint, error)
                self.heating = True
            elif error <= 0:
                self.heating = False
        else:
            self.heating = False

        if mode in (THERMAL_MODE_COOL, THERMAL_MODE_HEAT_COOL):
            if error < -hysteresis:
                self.cooling = True
            elif setpoint < target - precision and trend == TREND_HEATING and error < 0:
                if not self.cooling:
                    _LOGGER.debug("Proactive cooling: setpoint %.1f, error %.2f, temperature rising", setpoint, error)
                self.cooling = True
            elif error >= 0:
                self.cooling = False
        else:
            self.cooling = False

        return self.active

    def as_dict(self) -> Dict[str, bool]:
        return {"heating": self.heating, "cooling": self.cooling}
