"""Tests for the Plejd light entity."""

import pytest

from custom_components.plejd_ble.core.models import (
    DeviceEvent,
    MeshDevice,
    MeshEvent,
    MeshEventType,
)
from custom_components.plejd_ble.core.session_manager import PlejdSessionManager
from custom_components.plejd_ble.light import PlejdLight

from conftest import CRYPTO_KEY


@pytest.fixture
def light(transport):
    manager = PlejdSessionManager(CRYPTO_KEY, transport)
    entity = PlejdLight(manager, "entry-1", MeshDevice(device_id=11, name="Kitchen"))
    entity.writes = 0

    def _count_write():
        entity.writes += 1

    entity.async_write_ha_state = _count_write
    return entity


def test_unique_id(light):
    assert light.unique_id == "entry-1_11"
    assert light.available is False


@pytest.mark.parametrize(
    "event_type",
    [
        MeshEventType.AUTHENTICATED,
        MeshEventType.DISCONNECTED,
        MeshEventType.PING_FAILED,
        MeshEventType.CONNECTION_FAILED,
    ],
)
def test_link_changes_refresh_availability(light, event_type):
    light._handle_event(MeshEvent(type=event_type))

    assert light.writes == 1


def test_device_events_update_state(light):
    light._handle_event(
        MeshEvent(
            type=MeshEventType.DIM_CHANGED,
            device=DeviceEvent(device_id=11, state=1, dim=128),
        )
    )
    assert light.is_on is True
    assert light.brightness == 128

    light._handle_event(
        MeshEvent(
            type=MeshEventType.STATE_CHANGED,
            device=DeviceEvent(device_id=11, state=0),
        )
    )
    assert light.is_on is False
    assert light.brightness == 128
    assert light.writes == 2


def test_other_devices_and_pings_are_ignored(light):
    light._handle_event(
        MeshEvent(
            type=MeshEventType.STATE_CHANGED,
            device=DeviceEvent(device_id=12, state=1),
        )
    )
    light._handle_event(MeshEvent(type=MeshEventType.PING_SUCCESS, ping=5))

    assert light.is_on is None
    assert light.writes == 0


def test_event_without_device_is_ignored(light):
    light._handle_device_event(MeshEvent(type=MeshEventType.STATE_CHANGED))

    assert light.is_on is None
