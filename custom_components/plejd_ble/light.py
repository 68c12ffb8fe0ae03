"""Light platform for Plejd BLE integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.light import ATTR_BRIGHTNESS, ColorMode, LightEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import CONF_DEVICES, DOMAIN
from .core.models import MeshEvent, parse_device_roster
from .core.session_manager import PlejdSessionManager
from .entity import PlejdMeshEntity

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the Plejd lights from a config entry."""
    session_manager: PlejdSessionManager = hass.data[DOMAIN][config_entry.entry_id]
    devices = parse_device_roster(config_entry.data[CONF_DEVICES])

    async_add_entities(
        PlejdLight(session_manager, config_entry.entry_id, device)
        for device in devices
    )


class PlejdLight(PlejdMeshEntity, LightEntity):
    """A dimmable light in the mesh."""

    _attr_name = None
    _attr_color_mode = ColorMode.BRIGHTNESS
    _attr_supported_color_modes = {ColorMode.BRIGHTNESS}
    _attr_is_on: bool | None = None
    _attr_brightness: int | None = None

    def _handle_device_event(self, event: MeshEvent) -> None:
        if event.device is None:
            return
        self._attr_is_on = event.device.is_on
        if event.device.dim is not None:
            self._attr_brightness = event.device.dim

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn the light on."""
        brightness = kwargs.get(ATTR_BRIGHTNESS)
        if not await self._session_manager.async_turn_on(self.device_id, brightness):
            _LOGGER.debug(
                "Mesh not connected, queued turn on for %s", self._device.name
            )

        self._attr_is_on = True
        if brightness is not None:
            self._attr_brightness = brightness
        self.async_write_ha_state()

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn the light off."""
        if not await self._session_manager.async_turn_off(self.device_id):
            _LOGGER.debug(
                "Mesh not connected, queued turn off for %s", self._device.name
            )

        self._attr_is_on = False
        self.async_write_ha_state()
