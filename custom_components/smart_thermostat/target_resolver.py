"""Effective target resolution.

Priority, highest first:

1. BOOST - temporary override, wins unconditionally until it expires
2. AWAY - ceiling applied on top of schedule/manual
3. SCHEDULE - whenever a schedule is configured (not gated by operating mode)
4. MANUAL - base target
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .bounds import TemperatureBounds
from .const import DEFAULT_AWAY_TEMP
from .schedule import WeeklySchedule


@dataclass
class BoostOverride:
    """Temporary boost: a fixed temperature until ``end_time``."""

    active: bool = False
    temperature: Optional[float] = None
    end_time: Optional[datetime] = None

    def is_running(self, now: datetime) -> bool:
        if not self.active or self.temperature is None:
            return False
        return self.end_time is None or now <= self.end_time

    def clear(self) -> None:
        self.active = False
        self.temperature = None
        self.end_time = None

    def expire_if_due(self, now: datetime) -> bool:
        """Clear the boost once ``now`` passed its expiry. Returns True if it expired."""
        if self.active and self.end_time is not None and now > self.end_time:
            self.clear()
            return True
        return False

    def remaining_minutes(self, now: datetime) -> int:
        if not self.active or self.end_time is None:
            return 0
        return max(0, round((self.end_time - now).total_seconds() / 60.0))


@dataclass
class AwayOverride:
    """Away mode: caps the target at ``temperature``."""

    active: bool = False
    temperature: float = DEFAULT_AWAY_TEMP


@dataclass
class OverrideState:
    boost: BoostOverride = field(default_factory=BoostOverride)
    away: AwayOverride = field(default_factory=AwayOverride)


def resolve_effective_target(
    bounds: TemperatureBounds,
    base_target: float,
    schedule: Optional[WeeklySchedule],
    overrides: OverrideState,
    now: datetime,
) -> float:
    """Combine manual target, schedule, away ceiling and boost into one target.

    Pure apart from reading ``now``: an expired boost is ignored here but only
    cleared by the controller at the start of a cycle.
    """
    effective = base_target

    if schedule is not None:
        effective = schedule.temperature_at(now, base_target)

    if overrides.away.active:
        effective = min(effective, overrides.away.temperature)

    if overrides.boost.is_running(now):
        effective = overrides.boost.temperature

    return bounds.clamp(effective)
