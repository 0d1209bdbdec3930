"""PID core of the adaptive controller.

The PID output is a *bias*: how far the actuator setpoint is pushed away from the
target. Its sign is applied later by the setpoint shaper, depending on the active
thermal mode.

- P acts on |error|
- I integrates the error signed in the direction the active mode pushes, and the
  accumulator is clamped to [0, limit]: when the room overshoots, the error flips
  sign and drives the accumulator back down (anti-windup)
- D acts on the change of |error| (derivative on error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .bounds import TemperatureBounds, clamp
from .const import (
    DEFAULT_KD,
    DEFAULT_KI,
    DEFAULT_KP,
    KD_MAX,
    KD_MIN,
    KI_MAX,
    KI_MIN,
    KP_MAX,
    KP_MIN,
    THERMAL_MODE_COOL,
    THERMAL_MODE_HEAT,
)


@dataclass
class PIDGains:
    """Kp / Ki / Kd gains."""

    kp: float = DEFAULT_KP
    ki: float = DEFAULT_KI
    kd: float = DEFAULT_KD

    def clamped(self) -> "PIDGains":
        """Return the gains limited to their allowed ranges."""
        return PIDGains(
            kp=clamp(self.kp, KP_MIN, KP_MAX),
            ki=clamp(self.ki, KI_MIN, KI_MAX),
            kd=clamp(self.kd, KD_MIN, KD_MAX),
        )

    def as_dict(self, digits: Optional[int] = None) -> Dict[str, float]:
        if digits is None:
            return {"Kp": self.kp, "Ki": self.ki, "Kd": self.kd}
        return {
            "Kp": round(self.kp, digits),
            "Ki": round(self.ki, digits),
            "Kd": round(self.kd, digits),
        }


@dataclass(frozen=True)
class PIDTerms:
    """P, I and D contributions of one cycle."""

    p: float
    i: float
    d: float

    @property
    def adjustment(self) -> float:
        return self.p + self.i + self.d

    def as_dict(self) -> Dict[str, float]:
        return {"P": round(self.p, 2), "I": round(self.i, 2), "D": round(self.d, 2)}


def integral_limit(bounds: TemperatureBounds, ki: float) -> float:
    """Upper bound of the accumulator so that Ki * I never exceeds half the span."""
    divisor = 2.0 * ki
    if divisor <= 0.0:
        divisor = 1.0
    return bounds.span / divisor


def is_mode_mismatch(mode: str, error: float) -> bool:
    """True when the room is already past the target in the direction the mode pushes."""
    return (mode == THERMAL_MODE_HEAT and error < 0) or (mode == THERMAL_MODE_COOL and error > 0)


def relax_integral(integral: float, error: float) -> float:
    """Bleed the accumulator by |error| while the plant coasts (never below 0)."""
    return max(0.0, integral - abs(error))


def compute_pid(
    error: float,
    dt: float,
    active_mode: str,
    gains: PIDGains,
    integral: float,
    last_error: float,
    bounds: TemperatureBounds,
) -> Tuple[PIDTerms, float]:
    """Compute the PID terms for one cycle.

    Parameters
    ----------
    error:
        target - current (°C), positive when the room is too cold
    dt:
        elapsed time since the previous cycle (seconds)
    active_mode:
        'heat' or 'cool' (already resolved for heat_cool)
    integral:
        accumulator before this cycle

    Returns the terms and the updated accumulator.
    """
    abs_error = abs(error)

    p_term = gains.kp * abs_error

    signed_error = error if active_mode == THERMAL_MODE_HEAT else -error
    integral += signed_error * dt
    integral = clamp(integral, 0.0, integral_limit(bounds, gains.ki))
    i_term = gains.ki * integral

    error_change = abs_error - abs(last_error)
    derivative = error_change / dt if dt > 0 else 0.0
    d_term = gains.kd * derivative

    return PIDTerms(p=p_term, i=i_term, d=d_term), integral
