"""Shared fixtures for the adaptive PID tests."""

from datetime import datetime, timedelta

import pytest

from homeassistant.util import dt as dt_util

from custom_components.smart_thermostat.clock import Clock
from custom_components.smart_thermostat.prop_algo_adaptive_pid import AdaptivePID, ControllerConfig

# Monday 2024-01-01 12:00 UTC
START = datetime(2024, 1, 1, 12, 0, tzinfo=dt_util.UTC)


class FakeClock(Clock):
    """Clock whose instant only moves when the test says so."""

    def __init__(self, start: datetime = START):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, minutes=minutes)
        return self._now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    """Reference configuration: heat, target 21 in [15, 25], 0.5 step."""
    return ControllerConfig(
        min_temp=15.0,
        max_temp=25.0,
        target_temp=21.0,
        hysteresis=0.2,
        precision=0.5,
        mode="heat",
    )


@pytest.fixture
def make_controller(clock):
    """Factory building an AdaptivePID bound to the fake clock."""

    def _make(config=None, **kwargs):
        return AdaptivePID(config or ControllerConfig(**kwargs), name="TestAdaptivePID", clock=clock)

    return _make
