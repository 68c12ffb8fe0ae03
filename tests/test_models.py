"""Unit tests for the Plejd data models."""

import pytest
from pydantic import ValidationError

from custom_components.plejd_ble.core.models import (
    DeviceEvent,
    MeshDevice,
    MeshSession,
    MeshSettings,
    Peripheral,
    parse_device_roster,
)

from conftest import make_peripheral


def test_parse_device_roster():
    devices = parse_device_roster(" 11:Kitchen, 12:Hall ,")

    assert devices == [
        MeshDevice(device_id=11, name="Kitchen"),
        MeshDevice(device_id=12, name="Hall"),
    ]
    assert parse_device_roster("") == []


@pytest.mark.parametrize("roster", ["11", "11:", "x:Kitchen", "300:Attic", "1:A, 1:B"])
def test_invalid_roster(roster):
    with pytest.raises(ValueError):
        parse_device_roster(roster)


def test_session_uses_reversed_address():
    peripheral = make_peripheral(0x42)
    session = MeshSession.for_peripheral(peripheral)

    assert session.address == bytes.fromhex("42eeddccbbaa")
    assert not session.characteristics.is_complete()


def test_peripheral_address_size():
    with pytest.raises(ValidationError):
        Peripheral(identifier="x", address=b"\x01\x02")


def test_device_event_is_on():
    assert DeviceEvent(device_id=1, state=1).is_on
    assert not DeviceEvent(device_id=1, state=0, dim=0).is_on


def test_settings_defaults():
    settings = MeshSettings()

    assert settings.scan_window == 5.0
    assert settings.connect_timeout == 10.0
    assert settings.ping_interval == 3.0
    assert settings.write_queue_limit == 64
    with pytest.raises(ValidationError):
        MeshSettings(ping_interval=0)
