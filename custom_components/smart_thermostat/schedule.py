"""Weekly schedule lookup.

A schedule maps each weekday to a list of ``{"time": "HH:MM", "temp": float}``
slots, plus an optional ``default`` temperature and a ``timezone`` selector
(``local``, ``UTC`` or an IANA zone name)::

    {
        "monday": [{"time": "06:00", "temp": 21}, {"time": "22:00", "temp": 18}],
        "default": 19,
        "timezone": "Europe/Warsaw",
    }

The slot in force is the latest one at or before the current time of day. Before
the first slot of the day the last slot of the previous day still applies, so the
temperature carries over midnight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .bounds import parse_temperature
from .clock import local_time_parts
from .const import SCHEDULE_TIMEZONE_LOCAL, WEEKDAYS

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleSlot:
    """A (time-of-day, temperature) pair."""

    minute_of_day: int
    temperature: float

    @property
    def time(self) -> str:
        return f"{self.minute_of_day // 60:02d}:{self.minute_of_day % 60:02d}"

    def as_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "temp": self.temperature}


@dataclass(frozen=True)
class ScheduleMatch:
    """The slot in force and the weekday it was taken from."""

    day: str
    slot: ScheduleSlot
    carried_over: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "time": self.slot.time,
            "temp": self.slot.temperature,
            "carried_over": self.carried_over,
        }


def _parse_time(value: Any) -> Optional[int]:
    """Parse 'HH:MM' (or 'HH') into minutes since midnight."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def parse_slot(raw: Any) -> Optional[ScheduleSlot]:
    """Build a slot from its dict form, or None when malformed."""
    if not isinstance(raw, dict):
        return None
    minute_of_day = _parse_time(raw.get("time"))
    temperature = parse_temperature(raw.get("temp"))
    if minute_of_day is None or temperature is None:
        return None
    return ScheduleSlot(minute_of_day=minute_of_day, temperature=temperature)


@dataclass
class WeeklySchedule:
    """Weekly schedule with per-day ordered slots."""

    days: Dict[str, List[ScheduleSlot]] = field(default_factory=dict)
    default: Optional[float] = None
    timezone: str = SCHEDULE_TIMEZONE_LOCAL

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["WeeklySchedule"]:
        """Parse a schedule object. Returns None if ``raw`` is not a mapping.

        Malformed slots are dropped; slots are sorted by time of day.
        """
        if not isinstance(raw, dict):
            return None

        days: Dict[str, List[ScheduleSlot]] = {}
        for key, value in raw.items():
            day = str(key).lower()
            if day not in WEEKDAYS:
                continue
            if not isinstance(value, list):
                _LOGGER.debug("Ignoring schedule for %s: not a list of slots", day)
                continue
            slots = [slot for slot in (parse_slot(item) for item in value) if slot is not None]
            if len(slots) != len(value):
                _LOGGER.debug("Dropped %d malformed slot(s) for %s", len(value) - len(slots), day)
            if slots:
                days[day] = sorted(slots, key=lambda s: s.minute_of_day)

        timezone = raw.get("timezone")
        if not isinstance(timezone, str) or not timezone:
            timezone = SCHEDULE_TIMEZONE_LOCAL

        return cls(days=days, default=parse_temperature(raw.get("default")), timezone=timezone)

    def as_dict(self) -> Dict[str, Any]:
        """Return the JSON-serialisable form accepted by ``from_dict``."""
        data: Dict[str, Any] = {
            day: [slot.as_dict() for slot in slots] for day, slots in self.days.items()
        }
        if self.default is not None:
            data["default"] = self.default
        data["timezone"] = self.timezone
        return data

    def match(self, now: datetime) -> Optional[ScheduleMatch]:
        """Return the slot in force at ``now``, or None if the schedule has none."""
        parts = local_time_parts(now, self.timezone)
        today = WEEKDAYS[parts.weekday]

        active: Optional[ScheduleSlot] = None
        for slot in self.days.get(today, []):
            if slot.minute_of_day <= parts.minute_of_day:
                active = slot

        if active is not None:
            return ScheduleMatch(day=today, slot=active)

        yesterday = WEEKDAYS[(parts.weekday - 1) % 7]
        previous = self.days.get(yesterday)
        if previous:
            return ScheduleMatch(day=yesterday, slot=previous[-1], carried_over=True)

        return None

    def temperature_at(self, now: datetime, fallback: float) -> float:
        """Scheduled temperature at ``now``.

        Falls back to the schedule default, then to ``fallback`` (the manual target).
        """
        found = self.match(now)
        if found is not None:
            return found.slot.temperature
        if self.default is not None:
            return self.default
        return fallback
