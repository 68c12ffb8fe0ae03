"""Base entity classes for Plejd BLE integration."""

from __future__ import annotations

from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity import Entity

from .const import DOMAIN, MANUFACTURER
from .core.models import MeshDevice, MeshEvent, MeshEventType
from .core.session_manager import PlejdSessionManager

# Events after which `available` may have changed
_AVAILABILITY_EVENTS = (
    MeshEventType.AUTHENTICATED,
    MeshEventType.DISCONNECTED,
    MeshEventType.PING_FAILED,
    MeshEventType.CONNECTION_FAILED,
)


class PlejdMeshEntity(Entity):
    """Base class for entities backed by one device of the mesh."""

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(
        self,
        session_manager: PlejdSessionManager,
        entry_id: str,
        device: MeshDevice,
    ) -> None:
        """Initialize the entity."""
        self._session_manager = session_manager
        self._device = device
        self._attr_unique_id = f"{entry_id}_{device.device_id}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, self._attr_unique_id)},
            manufacturer=MANUFACTURER,
            name=device.name,
        )

    @property
    def device_id(self) -> int:
        """Mesh device id."""
        return self._device.device_id

    async def async_added_to_hass(self) -> None:
        """Subscribe to mesh events."""
        self.async_on_remove(self._session_manager.add_listener(self._handle_event))

    @callback
    def _handle_event(self, event: MeshEvent) -> None:
        if event.type in _AVAILABILITY_EVENTS:
            self.async_write_ha_state()
            return

        if event.device is None or event.device.device_id != self.device_id:
            return
        self._handle_device_event(event)
        self.async_write_ha_state()

    def _handle_device_event(self, event: MeshEvent) -> None:
        """Apply a state or dim event addressed to this device."""

    @property
    def available(self) -> bool:
        """Return if entity is available."""
        return self._session_manager.is_authenticated
