"""Buffer for command frames issued while the mesh is not authenticated."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable

from .exceptions import TransportError

_LOGGER = logging.getLogger(__name__)


class WriteQueue:
    """FIFO of plaintext frames waiting for an authenticated session."""

    def __init__(self, limit: int = 64) -> None:
        """Initialize the queue.

        Args:
            limit: Maximum number of frames kept. When full, the oldest frame
                is dropped to make room.
        """
        self._limit = limit
        self._frames: deque[bytes] = deque()

    def __len__(self) -> int:
        return len(self._frames)

    def enqueue(self, frame: bytes) -> None:
        """Append a frame to the end of the queue."""
        if len(self._frames) >= self._limit:
            dropped = self._frames.popleft()
            _LOGGER.warning(
                "Write queue full (%d frames), dropping oldest frame %s",
                self._limit,
                dropped.hex(),
            )
        self._frames.append(frame)

    def clear(self) -> None:
        self._frames.clear()

    async def drain(self, writer: Callable[[bytes], Awaitable[None]]) -> bool:
        """Write queued frames in order until empty or a write fails.

        A frame leaves the queue only after its write succeeded, so on failure
        it and everything behind it stay queued for the next drain.

        Returns:
            True if the queue was emptied.
        """
        while self._frames:
            frame = self._frames[0]
            try:
                await writer(frame)
            except TransportError as err:
                _LOGGER.warning(
                    "Write failed, keeping %d frame(s) queued: %s",
                    len(self._frames),
                    err,
                )
                return False
            self._frames.popleft()
        return True
