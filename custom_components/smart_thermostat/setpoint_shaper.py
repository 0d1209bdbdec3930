"""Turn a PID adjustment into the setpoint sent to the actuator."""

from __future__ import annotations

import math
from typing import Optional

from .bounds import TemperatureBounds
from .const import THERMAL_MODE_COOL


def round_to_precision(value: float, precision: float) -> float:
    """Round to the nearest multiple of the thermostat step (ties round up)."""
    steps = math.floor(value / precision + 0.5)
    # Avoid 21.499999 style artefacts of the multiplication
    return round(steps * precision, 6)


def shape_setpoint(
    target: float,
    adjustment: float,
    active_mode: str,
    in_hysteresis: bool,
    last_output: Optional[float],
    precision: float,
    max_output_change: float,
    bounds: TemperatureBounds,
) -> float:
    """Apply direction, minimum step, rate limit, bounds and rounding.

    - heat pushes the setpoint above the target, cool below it
    - outside the hysteresis band the setpoint is at least one precision step
      beyond the target so that the actuator actually reacts
    - the change from ``last_output`` is limited to ``max_output_change``
    """
    if active_mode == THERMAL_MODE_COOL:
        raw = target - adjustment
        if not in_hysteresis:
            raw = min(raw, target - precision)
    else:
        raw = target + adjustment
        if not in_hysteresis:
            raw = max(raw, target + precision)

    if last_output is not None:
        change = raw - last_output
        if abs(change) > max_output_change:
            raw = last_output + math.copysign(max_output_change, change)

    return round_to_precision(bounds.clamp(raw), precision)
