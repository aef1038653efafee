"""BLE constants and configuration."""

import logging

logger = logging.getLogger("ledremote.ble")

# Protocol constants shared with the ESP32 firmware
TARGET_NAME = "ESP32_LED"
SERVICE_UUID = "12345678-1234-1234-1234-123456789012"
LED_CHAR_UUID = "87654321-4321-4321-4321-210987654321"

# Environment override for the advertised name used by the CLI
TARGET_NAME_ENV = "LEDREMOTE_TARGET_NAME"


class BLEConfig:
    """Configuration constants for BLE operations."""

    SCAN_TIMEOUT = 10.0
    CONNECTION_TIMEOUT = 15.0
    GATT_IO_TIMEOUT = 10.0
    DISCONNECT_TIMEOUT_SECONDS = 5.0
    ADAPTER_POLL_INTERVAL = 1.0
    ADAPTER_PROBE_TIMEOUT = 2.0
    LOOP_THREAD_JOIN_TIMEOUT = 2.0


# Backwards-compatible aliases for module-level constants
SCAN_TIMEOUT = BLEConfig.SCAN_TIMEOUT
CONNECTION_TIMEOUT = BLEConfig.CONNECTION_TIMEOUT
GATT_IO_TIMEOUT = BLEConfig.GATT_IO_TIMEOUT
DISCONNECT_TIMEOUT_SECONDS = BLEConfig.DISCONNECT_TIMEOUT_SECONDS

# User-visible messages
ERROR_PERMISSIONS_REQUIRED = "Permissions required for Bluetooth"
ERROR_NOT_CONNECTED = "Not connected to ESP32"
ERROR_COMMAND_FAILED = "Failed to turn LED {0}"

# Diagnostic messages
ERROR_TIMEOUT = "{0} timed out after {1:.1f} seconds"
ERROR_ADAPTER_UNAVAILABLE = "Bluetooth adapter did not power on within {0:.1f} seconds"
ERROR_LOOP_CLOSED = "BLE event loop is not running"

__all__ = [
    "BLEConfig",
    "CONNECTION_TIMEOUT",
    "DISCONNECT_TIMEOUT_SECONDS",
    "ERROR_ADAPTER_UNAVAILABLE",
    "ERROR_COMMAND_FAILED",
    "ERROR_LOOP_CLOSED",
    "ERROR_NOT_CONNECTED",
    "ERROR_PERMISSIONS_REQUIRED",
    "ERROR_TIMEOUT",
    "GATT_IO_TIMEOUT",
    "LED_CHAR_UUID",
    "SCAN_TIMEOUT",
    "SERVICE_UUID",
    "TARGET_NAME",
    "TARGET_NAME_ENV",
    "logger",
]
