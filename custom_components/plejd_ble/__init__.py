"""The Plejd BLE integration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from homeassistant.components import bluetooth
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP, Platform
from homeassistant.core import Event, HomeAssistant, callback
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers.event import async_call_later

from .ble_client import PlejdHABLEClient
from .const import CONF_CRYPTO_KEY, DOMAIN, RESCAN_DELAY
from .core.crypto import parse_crypto_key
from .core.models import MeshEvent, MeshEventType
from .core.session_manager import PlejdSessionManager

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [
    Platform.LIGHT,
]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Plejd BLE from a config entry."""
    if not bluetooth.async_scanner_count(hass, connectable=True):
        raise ConfigEntryNotReady(
            "No connectable Bluetooth adapter or proxy is available yet"
        )

    crypto_key = parse_crypto_key(entry.data[CONF_CRYPTO_KEY])

    client = PlejdHABLEClient(hass)
    session_manager = PlejdSessionManager(crypto_key, client)

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = session_manager

    # Set up platforms before the mesh starts so no state event is missed
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    entry.async_on_unload(async_rescan_on_failure(hass, session_manager))
    await session_manager.async_start()

    async def _async_stop(event: Event) -> None:
        await session_manager.async_stop()

    entry.async_on_unload(
        hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_stop)
    )

    return True


@callback
def async_rescan_on_failure(
    hass: HomeAssistant, session_manager: PlejdSessionManager
) -> Callable[[], None]:
    """Scan for the mesh again a while after no node could be reached.

    Returns:
        A function that removes the listener and any pending rescan.
    """
    cancel_rescan: Callable[[], None] | None = None

    async def _async_rescan(_now: datetime) -> None:
        nonlocal cancel_rescan
        cancel_rescan = None
        await session_manager.async_scan()

    @callback
    def _handle_event(event: MeshEvent) -> None:
        nonlocal cancel_rescan
        if event.type != MeshEventType.CONNECTION_FAILED or cancel_rescan is not None:
            return
        _LOGGER.info(
            "Mesh unreachable (%s), scanning again in %s s", event.error, RESCAN_DELAY
        )
        cancel_rescan = async_call_later(hass, RESCAN_DELAY, _async_rescan)

    remove_listener = session_manager.add_listener(_handle_event)

    @callback
    def _cancel() -> None:
        remove_listener()
        if cancel_rescan is not None:
            cancel_rescan()

    return _cancel


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        session_manager: PlejdSessionManager = hass.data[DOMAIN].pop(entry.entry_id)
        # Disconnect from the mesh
        await session_manager.async_stop()

    return unload_ok
