from __future__ import annotations

import logging
import struct
from typing import Final, NamedTuple

from .exceptions import InvalidInputError
from .models import DeviceEvent

_LOGGER = logging.getLogger(__name__)

COMMAND_HEADER: Final = b"\x01\x10"

OPCODE_STATE: Final = 0x0097
OPCODE_DIM: Final = 0x0098
OPCODE_DIM_UPDATE: Final = 0x00C8

STATE_OFF: Final = 0
STATE_ON: Final = 1

_COMMAND: Final = struct.Struct(">B2sHB")
_BRIGHTNESS: Final = struct.Struct(">H")


class CommandFrame(NamedTuple):
    """Fields of an outbound command frame."""

    device_id: int
    opcode: int
    state: int
    brightness: int | None = None


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise InvalidInputError(f"{name} must be between 0 and 255, got {value}")


# --- COMMANDS ---


def encode_turn_on(device_id: int, brightness: int | None = None) -> bytes:
    """Create a command frame that turns a device on.

    Args:
        device_id: The mesh device id (0-255).
        brightness: Optional brightness (0-255). Without it the device
            returns to its last level.

    Returns:
        The plaintext frame.
    """
    _check_byte("device id", device_id)
    if brightness is None:
        return _COMMAND.pack(device_id, COMMAND_HEADER, OPCODE_STATE, STATE_ON)

    _check_byte("brightness", brightness)
    # The firmware takes brightness as a 16-bit value with the byte repeated.
    return _COMMAND.pack(
        device_id, COMMAND_HEADER, OPCODE_DIM, STATE_ON
    ) + _BRIGHTNESS.pack(brightness << 8 | brightness)


def encode_turn_off(device_id: int) -> bytes:
    """Create a command frame that turns a device off."""
    _check_byte("device id", device_id)
    return _COMMAND.pack(device_id, COMMAND_HEADER, OPCODE_STATE, STATE_OFF)


def decode_command(frame: bytes) -> CommandFrame:
    """Split an outbound command frame back into its fields."""
    if len(frame) not in (_COMMAND.size, _COMMAND.size + _BRIGHTNESS.size):
        raise InvalidInputError(f"Invalid command frame length: {len(frame)}")

    device_id, header, opcode, state = _COMMAND.unpack_from(frame)
    if header != COMMAND_HEADER:
        raise InvalidInputError(f"Invalid command header: {header.hex()}")

    brightness = None
    if len(frame) > _COMMAND.size:
        (brightness,) = _BRIGHTNESS.unpack_from(frame, _COMMAND.size)
    return CommandFrame(device_id, opcode, state, brightness)


# --- NOTIFICATIONS ---


def decode_notification(data: bytes) -> DeviceEvent | None:
    """Decode a decrypted last-data notification.

    Args:
        data: The plaintext notification bytes.

    Returns:
        A DeviceEvent with a dim level for combined state and dim updates, a
        DeviceEvent without one for state updates, or None for anything else.
    """
    if len(data) < 6:
        _LOGGER.debug("Ignoring short notification: %s", data.hex())
        return None

    device_id = data[0]
    (kind,) = struct.unpack_from(">H", data, 3)
    state = data[5]

    if kind in (OPCODE_DIM_UPDATE, OPCODE_DIM):
        if len(data) < 8:
            _LOGGER.debug("Ignoring truncated dim update: %s", data.hex())
            return None
        (dim,) = struct.unpack_from(">H", data, 6)
        _LOGGER.debug(
            "Device %d got state+dim update: %d - %d", device_id, state, dim >> 8
        )
        return DeviceEvent(device_id=device_id, state=state, dim=dim >> 8)

    if kind == OPCODE_STATE:
        _LOGGER.debug("Device %d got state update: %d", device_id, state)
        return DeviceEvent(device_id=device_id, state=state)

    _LOGGER.debug("Ignoring notification of kind 0x%04x", kind)
    return None
