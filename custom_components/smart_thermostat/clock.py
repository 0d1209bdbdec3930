"""Time provider for the adaptive PID controller.

The controller never reads the system clock directly: every instant comes from a
``Clock`` so the host (and the tests) decide what "now" is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Optional

from homeassistant.util import dt as dt_util

from .const import SCHEDULE_TIMEZONE_LOCAL, SCHEDULE_TIMEZONE_UTC

_LOGGER = logging.getLogger(__name__)


class Clock:
    """Supplies the current instant as a timezone-aware UTC datetime."""

    def now(self) -> datetime:
        """Return the current instant."""
        return dt_util.utcnow()


@dataclass(frozen=True)
class LocalTimeParts:
    """Weekday / hour / minute of an instant seen from a given timezone."""

    weekday: int  # 0 = Monday ... 6 = Sunday
    hour: int
    minute: int

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute


def resolve_time_zone(selector: Optional[str]) -> tzinfo:
    """Return the tzinfo for 'local', 'UTC' or an IANA zone identifier.

    An unknown identifier falls back to the Home Assistant local zone.
    """
    if not selector or selector == SCHEDULE_TIMEZONE_LOCAL:
        return dt_util.DEFAULT_TIME_ZONE
    if selector == SCHEDULE_TIMEZONE_UTC:
        return dt_util.UTC
    if not isinstance(selector, str):
        return dt_util.DEFAULT_TIME_ZONE

    try:
        zone = dt_util.get_time_zone(selector)
    except ValueError:
        zone = None

    if zone is None:
        _LOGGER.debug("Unknown timezone '%s', falling back to local time", selector)
        return dt_util.DEFAULT_TIME_ZONE
    return zone


def local_time_parts(now: datetime, selector: Optional[str]) -> LocalTimeParts:
    """Split ``now`` into weekday/hour/minute in the selected timezone."""
    local = now.astimezone(resolve_time_zone(selector))
    return LocalTimeParts(weekday=local.weekday(), hour=local.hour, minute=local.minute)
