"""
Core models for the Plejd BLE integration.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .crypto import ADDRESS_SIZE, reverse_address


class ConnectionState(IntEnum):
    """State of the single mesh connection."""

    IDLE = 0
    SCANNING = 1
    CONNECTING = 2
    CONNECTED = 3
    AUTHENTICATED = 4
    DISCONNECTED = 5


class CharacteristicState(IntEnum):
    """Whether all four mesh characteristics are resolved."""

    UNINITIALIZED = 0
    INITIALIZED = 1


class MeshEventType(StrEnum):
    """Events emitted to listeners."""

    DIM_CHANGED = "dim_changed"
    STATE_CHANGED = "state_changed"
    SCAN_COMPLETE = "scan_complete"
    AUTHENTICATED = "authenticated"
    AUTHENTICATION_FAILED = "authentication_failed"
    CONNECTION_FAILED = "connection_failed"
    DISCONNECTED = "disconnected"
    PING_SUCCESS = "ping_success"
    PING_FAILED = "ping_failed"


class Peripheral(BaseModel):
    """A discovered mesh node that can act as gateway."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    address: bytes
    rssi: int | None = None
    name: str | None = None

    @field_validator("address")
    @classmethod
    def _check_address(cls, value: bytes) -> bytes:
        if len(value) != ADDRESS_SIZE:
            raise ValueError(f"address must be {ADDRESS_SIZE} bytes")
        return value


class CharacteristicHandles(BaseModel):
    """Transport handles of the four mesh characteristics."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any = None
    last_data: Any = None
    auth: Any = None
    ping: Any = None

    def is_complete(self) -> bool:
        """Check if every characteristic has been found."""
        return all(
            handle is not None
            for handle in (self.data, self.last_data, self.auth, self.ping)
        )


class MeshSession(BaseModel):
    """The one active connection and what it needs to talk to the mesh."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    peripheral: Peripheral
    address: bytes
    characteristics: CharacteristicHandles = Field(
        default_factory=CharacteristicHandles
    )
    characteristic_state: CharacteristicState = CharacteristicState.UNINITIALIZED

    @classmethod
    def for_peripheral(cls, peripheral: Peripheral) -> MeshSession:
        """Start a fresh session against a peripheral."""
        return cls(peripheral=peripheral, address=reverse_address(peripheral.address))


class DeviceEvent(BaseModel):
    """A decoded state notification for one mesh device."""

    model_config = ConfigDict(frozen=True)

    device_id: int
    state: int
    dim: int | None = None

    @property
    def is_on(self) -> bool:
        return self.state != 0


class MeshEvent(BaseModel):
    """An event delivered to engine listeners."""

    model_config = ConfigDict(frozen=True)

    type: MeshEventType
    device: DeviceEvent | None = None
    peripherals: tuple[Peripheral, ...] = ()
    ping: int | None = None
    error: str | None = None


class MeshSettings(BaseModel):
    """Timing and capacity settings of the session engine, in seconds."""

    scan_window: float = Field(default=5.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    discovery_timeout: float = Field(default=5.0, gt=0)
    ping_interval: float = Field(default=3.0, gt=0)
    write_queue_limit: int = Field(default=64, gt=0)


class MeshDevice(BaseModel):
    """A device from the user supplied roster."""

    model_config = ConfigDict(frozen=True)

    device_id: int = Field(ge=0, le=255)
    name: str


def parse_device_roster(value: str) -> list[MeshDevice]:
    """Parse a roster like ``"11:Kitchen, 12:Hall"``.

    Raises:
        ValueError: If an entry is not ``<id>:<name>`` or an id repeats.
    """
    devices: list[MeshDevice] = []
    seen: set[int] = set()
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        device_id, sep, name = entry.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid roster entry: {entry!r}")
        device = MeshDevice(device_id=int(device_id), name=name.strip())
        if device.device_id in seen:
            raise ValueError(f"Duplicate device id {device.device_id}")
        seen.add(device.device_id)
        devices.append(device)
    return devices
