"""Config flow for Plejd BLE integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as schemas
from homeassistant import config_entries
from homeassistant.components.bluetooth import async_discovered_service_info
from homeassistant.config_entries import ConfigFlowResult

from .const import CONF_CRYPTO_KEY, CONF_DEVICES, DOMAIN
from .core.ble_interface import PLEJD_MESH_NAME, PLEJD_SERVICE_UUID
from .core.crypto import key_fingerprint, parse_crypto_key
from .core.exceptions import InvalidInputError
from .core.models import parse_device_roster

_LOGGER = logging.getLogger(__name__)


class PlejdBLEConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Plejd BLE."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step."""
        errors: dict[str, str] = {}

        if user_input is not None:
            try:
                crypto_key = parse_crypto_key(user_input[CONF_CRYPTO_KEY])
            except InvalidInputError as err:
                _LOGGER.debug("Rejected crypto key: %s", err)
                errors[CONF_CRYPTO_KEY] = "invalid_crypto_key"

            try:
                devices = parse_device_roster(user_input[CONF_DEVICES])
            except ValueError as err:
                _LOGGER.debug("Rejected device roster: %s", err)
                errors[CONF_DEVICES] = "invalid_devices"
            else:
                if not devices:
                    errors[CONF_DEVICES] = "invalid_devices"

            if not errors:
                await self.async_set_unique_id(key_fingerprint(crypto_key))
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Plejd mesh ({len(devices)} devices)",
                    data={
                        CONF_CRYPTO_KEY: crypto_key.hex(),
                        CONF_DEVICES: user_input[CONF_DEVICES],
                    },
                )

        nodes = [
            info
            for info in async_discovered_service_info(self.hass)
            if PLEJD_SERVICE_UUID in info.service_uuids
            and info.name == PLEJD_MESH_NAME
        ]
        _LOGGER.debug("Found %d mesh node(s) before setup", len(nodes))

        return self.async_show_form(
            step_id="user",
            data_schema=schemas.Schema(
                {
                    schemas.Required(CONF_CRYPTO_KEY): str,
                    schemas.Required(CONF_DEVICES): str,
                }
            ),
            errors=errors,
            description_placeholders={"nodes": str(len(nodes))},
        )
