"""Weekly schedule parsing and lookup."""

from datetime import datetime, timedelta
from unittest.mock import patch

from homeassistant.util import dt as dt_util

from custom_components.smart_thermostat.clock import local_time_parts, resolve_time_zone
from custom_components.smart_thermostat.schedule import ScheduleSlot, WeeklySchedule, parse_slot

MONDAY = datetime(2024, 1, 1, tzinfo=dt_util.UTC)  # a Monday


def _at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    return MONDAY + timedelta(days=day_offset, hours=hour, minutes=minute)


def _weekday_schedule(**extra):
    raw = {
        "monday": [{"time": "06:00", "temp": 21}, {"time": "22:00", "temp": 18}],
        "timezone": "UTC",
    }
    raw.update(extra)
    return WeeklySchedule.from_dict(raw)


def test_parse_slot_rejects_malformed():
    """Malformed slots are rejected."""
    assert parse_slot({"time": "06:30", "temp": "20.5"}) == ScheduleSlot(minute_of_day=390, temperature=20.5)
    assert parse_slot({"time": "25:00", "temp": 20}) is None
    assert parse_slot({"time": "06:00", "temp": "warm"}) is None
    assert parse_slot({"time": "06:00", "temp": True}) is None
    assert parse_slot({"temp": 20}) is None
    assert parse_slot("06:00=20") is None


def test_from_dict_sorts_and_drops_bad_slots():
    """Slots are sorted by time and bad slots are dropped."""
    schedule = WeeklySchedule.from_dict(
        {
            "Monday": [
                {"time": "22:00", "temp": 18},
                {"time": "bogus", "temp": 30},
                {"time": "06:00", "temp": 21},
            ],
            "holiday": [{"time": "08:00", "temp": 25}],
            "default": 19,
        }
    )

    assert [slot.time for slot in schedule.days["monday"]] == ["06:00", "22:00"]
    assert "holiday" not in schedule.days
    assert schedule.default == 19.0
    assert schedule.timezone == "local"


def test_from_dict_rejects_non_mapping():
    """A non-mapping schedule is rejected."""
    assert WeeklySchedule.from_dict(None) is None
    assert WeeklySchedule.from_dict([{"time": "06:00", "temp": 21}]) is None


def test_latest_slot_of_the_day_applies():
    """The latest slot already started today applies."""
    schedule = _weekday_schedule()

    found = schedule.match(_at(0, 12))
    assert found.day == "monday"
    assert found.slot.temperature == 21
    assert not found.carried_over

    assert schedule.temperature_at(_at(0, 22, 30), 20.0) == 18


def test_previous_day_slot_carries_over_midnight():
    """The previous day's last slot carries over past midnight."""
    schedule = _weekday_schedule()

    found = schedule.match(_at(1, 2))  # Tuesday 02:00
    assert found.day == "monday"
    assert found.slot.time == "22:00"
    assert found.carried_over
    assert schedule.temperature_at(_at(1, 2), 20.0) == 18


def test_before_first_slot_uses_previous_day_last_slot():
    """Before today's first slot the previous day's last slot applies."""
    schedule = WeeklySchedule.from_dict(
        {
            "sunday": [{"time": "20:00", "temp": 17}],
            "monday": [{"time": "06:00", "temp": 21}],
            "timezone": "UTC",
        }
    )

    assert schedule.temperature_at(_at(0, 5), 20.0) == 17


def test_default_then_fallback_when_no_slot_applies():
    """Schedule default applies first, then the manual fallback."""
    with_default = _weekday_schedule(default=19)
    without_default = _weekday_schedule()

    # Wednesday: neither Wednesday nor Tuesday has slots
    assert with_default.temperature_at(_at(2, 12), 20.0) == 19
    assert without_default.temperature_at(_at(2, 12), 20.0) == 20.0
    assert without_default.match(_at(2, 12)) is None


def test_iana_timezone_shifts_the_lookup():
    """An IANA timezone shifts the local time used for the lookup."""
    raw = {"monday": [{"time": "06:00", "temp": 21}], "default": 16}
    warsaw = WeeklySchedule.from_dict(dict(raw, timezone="Europe/Warsaw"))
    utc = WeeklySchedule.from_dict(dict(raw, timezone="UTC"))

    # 05:30 UTC is 06:30 in Warsaw (UTC+1 in winter)
    now = _at(0, 5, 30)
    assert warsaw.temperature_at(now, 20.0) == 21
    assert utc.temperature_at(now, 20.0) == 16


def test_invalid_timezone_falls_back_to_local():
    """An unknown timezone falls back to local time."""
    with patch.object(dt_util, "DEFAULT_TIME_ZONE", dt_util.UTC):
        assert resolve_time_zone("Not/AZone") is dt_util.UTC
        assert resolve_time_zone("local") is dt_util.UTC
        assert resolve_time_zone(None) is dt_util.UTC

        schedule = WeeklySchedule.from_dict({"monday": [{"time": "06:00", "temp": 21}], "timezone": "Not/AZone"})
        assert schedule.temperature_at(_at(0, 6, 1), 20.0) == 21


def test_local_time_parts():
    """Weekday, hour and minute are taken in the given zone."""
    parts = local_time_parts(_at(1, 2, 45), "UTC")
    assert parts.weekday == 1
    assert parts.minute_of_day == 2 * 60 + 45


def test_as_dict_is_accepted_by_from_dict():
    """A serialised schedule parses back to the same schedule."""
    schedule = _weekday_schedule(default=19)
    again = WeeklySchedule.from_dict(schedule.as_dict())
    assert again == schedule
