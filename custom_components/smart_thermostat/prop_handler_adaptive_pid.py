# pylint: disable=line-too-long
"""Adaptive PID handler: binds the controller to Home Assistant.

The handler owns everything the controller must not do itself: persistence in a
``Store``, parsing of host commands, bus events and state attributes.
"""

import logging
from typing import Any, Dict, Optional

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store
from homeassistant.util import slugify

from .bounds import parse_temperature
from .clock import Clock
from .const import STORAGE_KEY, STORAGE_VERSION, EventType
from .prop_algo_adaptive_pid import AdaptivePID, ControllerConfig, ControlResult

_LOGGER = logging.getLogger(__name__)


class AdaptivePIDHandler:
    """Handler for AdaptivePID persistence and host commands."""

    def __init__(self, hass: HomeAssistant, name: str, entry_infos: Dict[str, Any], clock: Optional[Clock] = None):
        self._hass = hass
        self._name = name
        self._entry_infos = entry_infos or {}
        self._clock = clock
        self._store: Store | None = None
        self._algorithm: AdaptivePID | None = None
        self._last_result: ControlResult | None = None

    def __str__(self) -> str:
        return self._name

    @property
    def algorithm(self) -> AdaptivePID | None:
        return self._algorithm

    @property
    def last_result(self) -> ControlResult | None:
        return self._last_result

    def init_algorithm(self):
        """Initialize the AdaptivePID algorithm. Raises ValueError on an invalid configuration."""
        # Slugified name so that a re-created entity finds its learned state
        self._store = Store(self._hass, STORAGE_VERSION, STORAGE_KEY.format(slugify(self._name)))

        config = ControllerConfig.from_dict(self._entry_infos)
        self._algorithm = AdaptivePID(config, name=self._name, clock=self._clock)

        _LOGGER.info("%s - AdaptivePID algorithm initialized", self)

    async def async_added_to_hass(self):
        """Load persistent data and resynchronise the target."""
        if self._store and self._algorithm:
            try:
                data = await self._store.async_load()
                if data:
                    self._algorithm.restore_state(data)
                    _LOGGER.debug("%s - AdaptivePID state loaded", self)
            except Exception as e:
                _LOGGER.error("%s - Failed to load AdaptivePID state: %s", self, e)
            self._algorithm.resolve_current_target()

    async def _async_save(self):
        """Save AdaptivePID state to storage."""
        if self._store and self._algorithm:
            try:
                await self._store.async_save(self._algorithm.snapshot_state())
                _LOGGER.debug("%s - AdaptivePID state saved", self)
            except Exception as e:
                _LOGGER.error("%s - Failed to save AdaptivePID state: %s", self, e)

    async def async_process_temperature(self, value: Any) -> ControlResult | None:
        """Run one control cycle on a sensor reading. Returns None for an unusable reading."""
        if self._algorithm is None:
            return None

        current_temp = parse_temperature(value)
        if current_temp is None:
            _LOGGER.warning("%s - Invalid temperature value received: %r", self, value)
            return None

        result = self._algorithm.update(current_temp)
        self._last_result = result

        # Persist only when the gains moved (learning or adaptation)
        if self._algorithm.parameters_changed():
            pid = result.debug.get("pid", {})
            _LOGGER.info(
                "%s - PID parameters updated and saved (Kp=%s, Ki=%s, Kd=%s)",
                self, pid.get("Kp"), pid.get("Ki"), pid.get("Kd"),
            )
            await self._async_save()

        return result

    async def async_handle_command(self, command: Dict[str, Any]) -> bool:
        """Apply a host command dict. Returns True if at least one field was applied.

        Recognised keys: ``schedule``, ``boost`` (``False``, ``{"temp", "duration"}``
        or ``{"relative", "duration"}``), ``away``, ``operating_mode``, ``setpoint``
        and ``mode``.
        """
        algo = self._algorithm
        if algo is None or not isinstance(command, dict):
            return False

        applied = False
        state_changed = False

        if "schedule" in command:
            if algo.set_schedule(command["schedule"]):
                applied = state_changed = True
                _LOGGER.info("%s - Schedule updated", self)

        if "boost" in command:
            boost = command["boost"]
            if isinstance(boost, dict) and "relative" in boost:
                relative = parse_temperature(boost.get("relative"))
                if relative is not None:
                    boost = {"temp": algo.resolve_current_target() + relative, "duration": boost.get("duration")}
            if algo.set_boost(boost):
                applied = True

        if "away" in command:
            if algo.set_away(command["away"]):
                applied = True
                _LOGGER.info("%s - Away mode %s", self, "enabled" if algo.overrides.away.active else "disabled")

        if "operating_mode" in command:
            operating_mode = str(command["operating_mode"]).lower()
            if algo.set_operating_mode(operating_mode):
                applied = state_changed = True
                _LOGGER.info("%s - Operating mode changed to %s", self, operating_mode)

        if "setpoint" in command:
            if algo.set_manual_target(command["setpoint"]):
                applied = True
                _LOGGER.info("%s - Setpoint changed to %.1f", self, algo.base_target)

        if "mode" in command:
            if algo.set_thermal_mode(command["mode"]):
                applied = True
                _LOGGER.info("%s - Thermal mode changed to %s", self, algo.mode)

        if not applied:
            _LOGGER.debug("%s - Command ignored: %r", self, command)

        if state_changed:
            await self._async_save()

        return applied

    async def async_reset_learning(self):
        """Reset learning data."""
        if self._algorithm is None:
            return
        self._algorithm.reset()
        self._algorithm.parameters_changed()
        self._last_result = None
        self._hass.bus.async_fire(EventType.ADAPTIVE_PID_EVENT.value, {"name": self._name, "type": "learning_reset"})
        _LOGGER.info("%s - AdaptivePID learning reset", self)
        await self._async_save()

    async def async_remove(self):
        """Save state on removal."""
        await self._async_save()

    def extra_state_attributes(self) -> Dict[str, Any]:
        """Attributes exposed on the entity: last debug record and diagnostics."""
        if self._algorithm is None:
            return {}
        attributes: Dict[str, Any] = {}
        if self._last_result is not None:
            attributes.update(self._last_result.debug)
            attributes["setpoint"] = self._last_result.setpoint
        attributes["adaptive_pid"] = self._algorithm.get_diagnostics()
        return attributes
