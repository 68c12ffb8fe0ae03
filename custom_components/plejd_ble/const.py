"""Constants for the Plejd BLE integration."""

from typing import Final

DOMAIN: Final = "plejd_ble"

CONF_CRYPTO_KEY: Final = "crypto_key"
CONF_DEVICES: Final = "devices"

MANUFACTURER: Final = "Plejd"

# Seconds to wait before scanning again after no mesh node could be reached
RESCAN_DELAY: Final = 60
