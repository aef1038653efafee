"""BLE interface package for the LED remote."""

from ledremote.interfaces.ble.backend import (
    Advertisement,
    BLEBackend,
    Capability,
    GattCharacteristic,
    GattService,
    PeripheralHandle,
    REQUIRED_CAPABILITIES,
)
from ledremote.interfaces.ble.bleak_backend import BleakBackend
from ledremote.interfaces.ble.commands import Command, CommandWriter
from ledremote.interfaces.ble.connection import ConnectionManager
from ledremote.interfaces.ble.constants import (
    BLEConfig,
    LED_CHAR_UUID,
    SERVICE_UUID,
    TARGET_NAME,
    logger,
)
from ledremote.interfaces.ble.discovery import ScanSession
from ledremote.interfaces.ble.errors import (
    AdapterUnavailableError,
    BLEError,
    BLEErrorHandler,
    ConnectFailureError,
    DiscoveryMissError,
    PermissionDeniedError,
    WriteFailureError,
)
from ledremote.interfaces.ble.events import (
    StatePublisher,
    TOPIC_CONNECTION_STATE,
    TOPIC_ERROR,
    TOPIC_STATE,
)
from ledremote.interfaces.ble.gating import AdapterMonitor, PermissionGate
from ledremote.interfaces.ble.gatt import ServiceResolver
from ledremote.interfaces.ble.interface import LedRemote
from ledremote.interfaces.ble.state import AdapterState, BLEStateManager, ConnectionState
from ledremote.interfaces.ble.streams import EventStream, Subscription

__all__ = [
    # Core classes
    "LedRemote",
    "AdapterMonitor",
    "PermissionGate",
    "ScanSession",
    "ConnectionManager",
    "ServiceResolver",
    "CommandWriter",
    "Command",
    "BLEStateManager",
    "BLEErrorHandler",
    "StatePublisher",
    "EventStream",
    "Subscription",
    # Backend interface
    "BLEBackend",
    "BleakBackend",
    "Advertisement",
    "Capability",
    "GattCharacteristic",
    "GattService",
    "PeripheralHandle",
    "REQUIRED_CAPABILITIES",
    # State and errors
    "AdapterState",
    "ConnectionState",
    "BLEError",
    "AdapterUnavailableError",
    "ConnectFailureError",
    "DiscoveryMissError",
    "PermissionDeniedError",
    "WriteFailureError",
    # Constants/helpers
    "BLEConfig",
    "LED_CHAR_UUID",
    "SERVICE_UUID",
    "TARGET_NAME",
    "TOPIC_CONNECTION_STATE",
    "TOPIC_ERROR",
    "TOPIC_STATE",
    "logger",
]
