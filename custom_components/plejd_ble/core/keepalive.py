"""Keepalive ping for an authenticated mesh session."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from typing import Any

from .ble_interface import MeshTransport
from .exceptions import ProtocolMismatchError

_LOGGER = logging.getLogger(__name__)


async def ping(transport: MeshTransport, handle: Any) -> int:
    """Run one ping round trip on the ping characteristic.

    Writes a random byte and expects it back incremented by one.

    Returns:
        The byte echoed by the mesh.

    Raises:
        TransportError: If the write or read fails.
        ProtocolMismatchError: If the echo is wrong.
    """
    sent = secrets.token_bytes(1)
    await transport.write(handle, sent, response=True)
    received = await transport.read(handle)

    expected = (sent[0] + 1) & 0xFF
    if len(received) < 1 or received[0] != expected:
        raise ProtocolMismatchError(
            f"Ping echo mismatch: sent {sent.hex()}, got {received.hex()}"
        )
    return received[0]


class KeepaliveMonitor:
    """Calls a tick callback at a fixed interval while running."""

    def __init__(self, interval: float, on_tick: Callable[[], None]) -> None:
        self._interval = interval
        self._on_tick = on_tick
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking, replacing a previous run."""
        self.stop()
        _LOGGER.debug("Starting keepalive every %.1f s", self._interval)
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            _LOGGER.debug("Stopping keepalive")
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._on_tick()
