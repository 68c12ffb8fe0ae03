"""Unit tests for Plejd command and notification framing."""

import pytest

from custom_components.plejd_ble.core import protocol
from custom_components.plejd_ble.core.exceptions import InvalidInputError
from custom_components.plejd_ble.core.models import DeviceEvent


def test_turn_off_frame():
    assert protocol.encode_turn_off(1) == bytes.fromhex("010110009700")
    assert protocol.encode_turn_off(0xFE) == bytes.fromhex("fe0110009700")


def test_turn_on_frames():
    assert protocol.encode_turn_on(1) == bytes.fromhex("010110009701")
    assert protocol.encode_turn_on(0x1F, 255) == bytes.fromhex("1f01100098 01ffff")
    # Zero is an explicit brightness, not "no brightness"
    assert protocol.encode_turn_on(2, 0) == bytes.fromhex("0201100098010000")


def test_turn_on_with_brightness_decodes_back():
    frame = protocol.encode_turn_on(0x01, 128)

    assert frame == bytes.fromhex("0101100098018080")
    decoded = protocol.decode_command(frame)
    assert decoded.device_id == 1
    assert decoded.opcode == protocol.OPCODE_DIM
    assert decoded.state == 1
    assert decoded.brightness == 0x8080


def test_decode_command_without_brightness():
    decoded = protocol.decode_command(protocol.encode_turn_off(9))

    assert decoded == protocol.CommandFrame(9, protocol.OPCODE_STATE, 0, None)


@pytest.mark.parametrize("frame", ["0101", "0102030097 01", "010110009801ff"])
def test_decode_command_rejects_malformed(frame):
    with pytest.raises(InvalidInputError):
        protocol.decode_command(bytes.fromhex(frame))


@pytest.mark.parametrize(
    ("device_id", "brightness"), [(256, None), (-1, None), (1, 256), (1, -5)]
)
def test_out_of_range_arguments(device_id, brightness):
    with pytest.raises(InvalidInputError):
        protocol.encode_turn_on(device_id, brightness)


def test_decode_state_update():
    event = protocol.decode_notification(bytes.fromhex("0b0110009701"))

    assert event == DeviceEvent(device_id=11, state=1)
    assert event.dim is None
    assert event.is_on


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        ("0b011000c801ff00", DeviceEvent(device_id=11, state=1, dim=255)),
        ("0b0110009800 8000", DeviceEvent(device_id=11, state=0, dim=128)),
        ("050110009801 40ff 0000", DeviceEvent(device_id=5, state=1, dim=64)),
    ],
)
def test_decode_dim_update(data, expected):
    assert protocol.decode_notification(bytes.fromhex(data)) == expected


@pytest.mark.parametrize(
    "data",
    [
        "0b0110001b01",  # unknown kind
        "0b011000",  # too short for any kind
        "0b011000c801",  # dim update without dim bytes
        "",
    ],
)
def test_ignored_notifications(data):
    assert protocol.decode_notification(bytes.fromhex(data)) is None
