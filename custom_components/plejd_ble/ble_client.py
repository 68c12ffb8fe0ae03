"""Home Assistant BLE transport for the Plejd mesh."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak_retry_connector import BLEAK_RETRY_EXCEPTIONS as BLEAK_EXCEPTIONS
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection
from homeassistant.components import bluetooth
from homeassistant.components.bluetooth import (
    BluetoothCallbackMatcher,
    BluetoothChange,
    BluetoothScanningMode,
    BluetoothServiceInfoBleak,
)
from homeassistant.core import HomeAssistant, callback

from .core.ble_interface import MeshTransport
from .core.crypto import parse_address
from .core.exceptions import InvalidInputError, TransportError
from .core.models import Peripheral

_LOGGER = logging.getLogger(__name__)


class PlejdHABLEClient(MeshTransport):
    """Home Assistant concrete implementation of MeshTransport.

    Scanning goes through Home Assistant's Bluetooth component so that
    advertisements from every adapter and Bluetooth proxy are seen, and
    connections are made with bleak-retry-connector.
    """

    def __init__(self, hass: HomeAssistant) -> None:
        """Initialize the BLE client.

        Args:
            hass: The Home Assistant instance.
        """
        super().__init__()
        self._hass = hass
        self._client: BleakClient | None = None
        self._devices: dict[str, BLEDevice] = {}
        self._cancel_scan: Callable[[], None] | None = None

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to a mesh node."""
        return self._client is not None and self._client.is_connected

    async def start(self) -> None:
        """Report the adapter as powered on once a connectable scanner exists."""
        powered_on = bluetooth.async_scanner_count(self._hass, connectable=True) > 0
        if not powered_on:
            _LOGGER.warning("No connectable Bluetooth adapter or proxy available")
        self._notify_power_state(powered_on)

    async def start_scan(self, service_uuid: str) -> None:
        """Start listening for advertisements of the mesh service."""
        await self.stop_scan()

        for info in bluetooth.async_discovered_service_info(self._hass):
            if service_uuid in info.service_uuids:
                self._handle_advertisement(info, BluetoothChange.ADVERTISEMENT)

        self._cancel_scan = bluetooth.async_register_callback(
            self._hass,
            self._handle_advertisement,
            BluetoothCallbackMatcher(service_uuid=service_uuid, connectable=True),
            BluetoothScanningMode.ACTIVE,
        )

    async def stop_scan(self) -> None:
        if self._cancel_scan is not None:
            self._cancel_scan()
            self._cancel_scan = None

    @callback
    def _handle_advertisement(
        self, info: BluetoothServiceInfoBleak, change: BluetoothChange
    ) -> None:
        try:
            address = parse_address(info.address)
        except InvalidInputError:
            _LOGGER.debug("Skipping device with unusable address %s", info.address)
            return

        self._devices[info.address] = info.device
        self._notify_discovered(
            Peripheral(
                identifier=info.address,
                address=address,
                rssi=info.rssi,
                name=info.name,
            )
        )

    async def connect(self, peripheral: Peripheral) -> None:
        """Connect to a mesh node.

        Args:
            peripheral: The node to connect to.
        """
        ble_device = bluetooth.async_ble_device_from_address(
            self._hass, peripheral.identifier, connectable=True
        ) or self._devices.get(peripheral.identifier)
        if ble_device is None:
            raise TransportError(f"Could not find device {peripheral.identifier}")

        await self.disconnect()
        _LOGGER.debug("Attempting to connect to mesh node %s", peripheral.identifier)
        try:
            self._client = await establish_connection(
                BleakClientWithServiceCache,
                ble_device,
                peripheral.name or peripheral.identifier,
                disconnected_callback=self._on_disconnected,
                max_attempts=1,
            )
        except BLEAK_EXCEPTIONS as err:
            self._client = None
            raise TransportError(
                f"Failed to connect to {peripheral.identifier}: {err}"
            ) from err

    async def discover_characteristics(
        self, peripheral: Peripheral, service_uuid: str
    ) -> dict[str, Any]:
        """Return the characteristics of the mesh service by UUID."""
        client = self._require_client()
        service = client.services.get_service(service_uuid)
        if service is None:
            raise TransportError(
                f"Service {service_uuid} not found on {peripheral.identifier}"
            )
        return {char.uuid: char for char in service.characteristics}

    async def write(self, handle: Any, data: bytes, response: bool = False) -> None:
        client = self._require_client()
        try:
            await client.write_gatt_char(handle, data, response=response)
        except BLEAK_EXCEPTIONS as err:
            raise TransportError(f"Error writing to characteristic: {err}") from err

    async def read(self, handle: Any) -> bytes:
        client = self._require_client()
        try:
            return bytes(await client.read_gatt_char(handle))
        except BLEAK_EXCEPTIONS as err:
            raise TransportError(f"Error reading characteristic: {err}") from err

    async def subscribe(self, handle: Any, callback: Callable[[bytes], None]) -> None:
        """Start notifications and forward their payload to a callback."""
        client = self._require_client()

        def _handle_notification(_: Any, data: bytearray) -> None:
            _LOGGER.debug("Received BLE notification: %s", data.hex())
            callback(bytes(data))

        try:
            await client.start_notify(handle, _handle_notification)
        except BLEAK_EXCEPTIONS as err:
            raise TransportError(f"Error starting notifications: {err}") from err

    async def unsubscribe(self, handle: Any) -> None:
        client = self._require_client()
        try:
            await client.stop_notify(handle)
        except BLEAK_EXCEPTIONS as err:
            raise TransportError(f"Error stopping notifications: {err}") from err

    async def disconnect(self) -> None:
        """Disconnect from the mesh node."""
        client, self._client = self._client, None
        if client is None:
            return

        _LOGGER.debug("Disconnecting from mesh node %s", client.address)
        try:
            await client.disconnect()
        except BLEAK_EXCEPTIONS as err:
            raise TransportError(f"Error during disconnect: {err}") from err

    def _require_client(self) -> BleakClient:
        if not self.is_connected or self._client is None:
            raise TransportError("Not connected to a mesh node")
        return self._client

    def _on_disconnected(self, client: BleakClient) -> None:
        # Only an unexpected loss of the current link is reported
        if client is not self._client:
            return
        _LOGGER.debug("Mesh node %s disconnected", client.address)
        self._client = None
        self._notify_disconnected()
