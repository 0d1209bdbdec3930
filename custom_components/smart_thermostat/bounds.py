"""Temperature bounds shared by the resolver, the PID core and the shaper."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional


def clamp(x: float, lo: float, hi: float) -> float:
    """Clamp x into [lo, hi]."""
    if x < lo:
        return lo
    if x > hi:
        return hi
    return x


@dataclass(frozen=True)
class TemperatureBounds:
    """Closed [min_temp, max_temp] interval the controller never leaves."""

    min_temp: float
    max_temp: float

    @property
    def span(self) -> float:
        return self.max_temp - self.min_temp

    def clamp(self, value: float) -> float:
        return clamp(value, self.min_temp, self.max_temp)


def parse_temperature(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None (booleans are rejected)."""
    if isinstance(value, bool):
        return None
    try:
        temp = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(temp):
        return None
    return temp
