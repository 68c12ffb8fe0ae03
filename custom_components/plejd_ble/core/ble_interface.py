"""Interface for Plejd mesh BLE communication."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Final

from .models import Peripheral

# Plejd BLE Service and Characteristic UUIDs
PLEJD_SERVICE_UUID: Final = "31ba0001-6085-4726-be45-040c957391b5"
PLEJD_DATA_CHAR_UUID: Final = "31ba0004-6085-4726-be45-040c957391b5"
PLEJD_LAST_DATA_CHAR_UUID: Final = "31ba0005-6085-4726-be45-040c957391b5"
PLEJD_AUTH_CHAR_UUID: Final = "31ba0009-6085-4726-be45-040c957391b5"
PLEJD_PING_CHAR_UUID: Final = "31ba000a-6085-4726-be45-040c957391b5"

# Every mesh node that can act as gateway advertises this name
PLEJD_MESH_NAME: Final = "P mesh"


def normalize_uuid(uuid: str) -> str:
    """Return a UUID in lowercase without dashes for comparison."""
    return uuid.replace("-", "").lower()


class MeshTransport(ABC):
    """Abstract base class for the BLE stack used by the mesh session.

    Every operation raises TransportError on failure. The engine registers
    its callbacks before calling start(); implementations deliver them on
    the event loop.
    """

    def __init__(self) -> None:
        self._power_state_callback: Callable[[bool], None] | None = None
        self._discovered_callback: Callable[[Peripheral], None] | None = None
        self._disconnected_callback: Callable[[], None] | None = None

    def register_callbacks(
        self,
        *,
        power_state: Callable[[bool], None],
        discovered: Callable[[Peripheral], None],
        disconnected: Callable[[], None],
    ) -> None:
        """Register the callbacks for adapter and link events.

        Args:
            power_state: Called with True once the adapter can scan/connect.
            discovered: Called for every peripheral seen while scanning.
            disconnected: Called when the current link is lost without
                disconnect() having been requested.
        """
        self._power_state_callback = power_state
        self._discovered_callback = discovered
        self._disconnected_callback = disconnected

    def _notify_power_state(self, powered_on: bool) -> None:
        if self._power_state_callback:
            self._power_state_callback(powered_on)

    def _notify_discovered(self, peripheral: Peripheral) -> None:
        if self._discovered_callback:
            self._discovered_callback(peripheral)

    def _notify_disconnected(self) -> None:
        if self._disconnected_callback:
            self._disconnected_callback()

    @abstractmethod
    async def start(self) -> None:
        """Start delivering adapter events."""

    @abstractmethod
    async def start_scan(self, service_uuid: str) -> None:
        """Start scanning for peripherals advertising a service."""

    @abstractmethod
    async def stop_scan(self) -> None:
        """Stop scanning."""

    @abstractmethod
    async def connect(self, peripheral: Peripheral) -> None:
        """Open a link to a peripheral."""

    @abstractmethod
    async def discover_characteristics(
        self, peripheral: Peripheral, service_uuid: str
    ) -> dict[str, Any]:
        """Resolve the characteristics of a service.

        Returns:
            A mapping of characteristic UUID to the handle used for I/O.
        """

    @abstractmethod
    async def write(self, handle: Any, data: bytes, response: bool = False) -> None:
        """Write to a characteristic."""

    @abstractmethod
    async def read(self, handle: Any) -> bytes:
        """Read a characteristic."""

    @abstractmethod
    async def subscribe(self, handle: Any, callback: Callable[[bytes], None]) -> None:
        """Subscribe to notifications of a characteristic."""

    @abstractmethod
    async def unsubscribe(self, handle: Any) -> None:
        """Stop notifications of a characteristic."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the current link, if any."""
