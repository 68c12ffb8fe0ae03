"""Shared fixtures for the Plejd BLE tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio

from custom_components.plejd_ble.core.ble_interface import (
    PLEJD_AUTH_CHAR_UUID,
    PLEJD_DATA_CHAR_UUID,
    PLEJD_LAST_DATA_CHAR_UUID,
    PLEJD_PING_CHAR_UUID,
    MeshTransport,
)
from custom_components.plejd_ble.core.crypto import encrypt_decrypt, parse_address
from custom_components.plejd_ble.core.exceptions import TransportError
from custom_components.plejd_ble.core.models import MeshEvent, MeshSettings, Peripheral
from custom_components.plejd_ble.core.session_manager import PlejdSessionManager

CRYPTO_KEY = bytes.fromhex("000102030405060708090a0b0c0d0e0f")


def make_peripheral(suffix: int, name: str = "P mesh") -> Peripheral:
    identifier = f"AA:BB:CC:DD:EE:{suffix:02X}"
    return Peripheral(
        identifier=identifier, address=parse_address(identifier), rssi=-60, name=name
    )


class FakeTransport(MeshTransport):
    """In-memory stand-in for a mesh node behind a BLE adapter."""

    def __init__(self) -> None:
        super().__init__()
        self.powered = True
        self.advertised: list[Peripheral] = []
        # identifier -> "ok", "fail" or "hang"
        self.connect_results: dict[str, str] = {}
        self.connect_calls: list[str] = []
        self.disconnect_calls = 0
        self.connected: Peripheral | None = None
        # Handles are upper case to make sure lookups ignore case
        self.characteristics = [
            PLEJD_DATA_CHAR_UUID.upper(),
            PLEJD_LAST_DATA_CHAR_UUID.upper(),
            PLEJD_AUTH_CHAR_UUID.upper(),
            PLEJD_PING_CHAR_UUID.upper(),
        ]
        self.challenge = bytes(range(16))
        self.ping_offset = 1
        # lowercase uuid -> exception raised by writes to it, or "hang"
        self.write_faults: dict[str, Any] = {}
        self.writes: list[tuple[str, bytes]] = []
        self.notify: Callable[[bytes], None] | None = None
        self._last_ping = b"\x00"

    async def start(self) -> None:
        self._notify_power_state(self.powered)

    async def start_scan(self, service_uuid: str) -> None:
        for peripheral in self.advertised:
            self._notify_discovered(peripheral)

    async def stop_scan(self) -> None:
        pass

    async def connect(self, peripheral: Peripheral) -> None:
        self.connect_calls.append(peripheral.identifier)
        result = self.connect_results.get(peripheral.identifier, "ok")
        if result == "hang":
            await asyncio.Event().wait()
        if result == "fail":
            raise TransportError("connection refused")
        self.connected = peripheral

    async def discover_characteristics(self, peripheral, service_uuid):
        self._require_link()
        return {uuid: uuid for uuid in self.characteristics}

    async def write(self, handle, data: bytes, response: bool = False) -> None:
        self._require_link()
        fault = self.write_faults.get(handle.lower())
        if fault == "hang":
            await asyncio.Event().wait()
        if fault is not None:
            raise fault
        self.writes.append((handle.lower(), bytes(data)))
        if handle.lower() == PLEJD_PING_CHAR_UUID:
            self._last_ping = bytes(data)

    async def read(self, handle) -> bytes:
        self._require_link()
        if handle.lower() == PLEJD_AUTH_CHAR_UUID:
            return self.challenge
        if handle.lower() == PLEJD_PING_CHAR_UUID:
            return bytes([(self._last_ping[0] + self.ping_offset) & 0xFF])
        raise TransportError(f"{handle} is not readable")

    async def subscribe(self, handle, callback: Callable[[bytes], None]) -> None:
        self._require_link()
        self.notify = callback

    async def unsubscribe(self, handle) -> None:
        self.notify = None

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = None

    def drop_link(self) -> None:
        """Simulate the mesh node going away."""
        self.connected = None
        self._notify_disconnected()

    def written(self, uuid: str) -> list[bytes]:
        return [data for handle, data in self.writes if handle == uuid]

    def sent_frames(self, peripheral: Peripheral) -> list[bytes]:
        """Decrypt everything written to the data characteristic."""
        address = peripheral.address[::-1]
        return [
            encrypt_decrypt(CRYPTO_KEY, address, data)
            for data in self.written(PLEJD_DATA_CHAR_UUID)
        ]

    def _require_link(self) -> None:
        if self.connected is None:
            raise TransportError("not connected")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> MeshSettings:
    return MeshSettings(
        scan_window=0.05,
        connect_timeout=0.2,
        discovery_timeout=0.2,
        ping_interval=0.05,
    )


@pytest.fixture
def events() -> list[MeshEvent]:
    return []


@pytest_asyncio.fixture
async def manager(transport, settings, events):
    session_manager = PlejdSessionManager(CRYPTO_KEY, transport, settings)
    session_manager.add_listener(events.append)
    yield session_manager
    await session_manager.async_stop()


@pytest.fixture
def wait_until():
    async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not reached in time")
            await asyncio.sleep(0.005)

    return _wait_until
