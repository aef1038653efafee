"""BLE connection state management."""

from enum import Enum
from threading import RLock
from typing import Optional, TYPE_CHECKING

from ledremote.interfaces.ble.constants import logger

if TYPE_CHECKING:
    from ledremote.interfaces.ble.backend import GattCharacteristic, PeripheralHandle


class ConnectionState(Enum):
    """Enum for the connection states reported by the BLE stack."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class AdapterState(Enum):
    """Power state of the system Bluetooth radio."""

    UNKNOWN = "unknown"
    UNAVAILABLE = "unavailable"
    UNAUTHORIZED = "unauthorized"
    TURNING_ON = "turning_on"
    ON = "on"
    TURNING_OFF = "turning_off"
    OFF = "off"


# Transitions the stack is expected to report; anything else is logged but still applied.
_EXPECTED_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
    },
    ConnectionState.CONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.CONNECTED: {
        ConnectionState.DISCONNECTING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.DISCONNECTING: {
        ConnectionState.DISCONNECTED,
    },
}


class BLEStateManager:
    """Thread-safe owner of the single peripheral's connection state.

    Holds the last connection state observed from the BLE stack, the peripheral
    being managed, the resolved LED characteristic and the ``is_connected`` flag
    shown to the presentation layer. The flag normally mirrors the observed
    state but may be downgraded on its own after a failed write.

    Invariant: ``characteristic`` is only non-None while ``state`` is CONNECTED.
    """

    def __init__(self):
        """Initialize state manager with disconnected state."""
        self._state_lock = RLock()
        self._state = ConnectionState.DISCONNECTED
        self._is_connected = False
        self._peripheral: Optional["PeripheralHandle"] = None
        self._characteristic: Optional["GattCharacteristic"] = None

    @property
    def lock(self) -> RLock:
        """Expose the reentrant lock controlling state changes."""
        return self._state_lock

    @property
    def state(self) -> ConnectionState:
        """Get the last observed connection state."""
        with self._state_lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        """Cached connectivity flag used to gate writes."""
        with self._state_lock:
            return self._is_connected

    @is_connected.setter
    def is_connected(self, value: bool) -> None:
        with self._state_lock:
            self._is_connected = bool(value)

    @property
    def peripheral(self) -> Optional["PeripheralHandle"]:
        """Get the peripheral currently owned by the connection manager."""
        with self._state_lock:
            return self._peripheral

    @peripheral.setter
    def peripheral(self, handle: Optional["PeripheralHandle"]) -> None:
        with self._state_lock:
            self._peripheral = handle

    @property
    def characteristic(self) -> Optional["GattCharacteristic"]:
        """Get the resolved LED characteristic, if any."""
        with self._state_lock:
            return self._characteristic

    def set_characteristic(self, characteristic: "GattCharacteristic") -> bool:
        """
        Record a resolved characteristic if the connection is still up.

        Returns:
            bool: True if recorded, False if the state is no longer CONNECTED.
        """
        with self._state_lock:
            if self._state != ConnectionState.CONNECTED:
                logger.debug(
                    "Discarding characteristic %s; state is %s",
                    characteristic.uuid,
                    self._state.value,
                )
                return False
            self._characteristic = characteristic
            return True

    def clear_characteristic(self) -> None:
        """Forget the resolved characteristic."""
        with self._state_lock:
            self._characteristic = None

    def observe(self, new_state: ConnectionState) -> bool:
        """
        Record a connection state reported by the BLE stack.

        The stack is the source of truth, so unexpected transitions are applied
        anyway and only logged. Leaving CONNECTED always clears the characteristic.

        Parameters:
            new_state (ConnectionState): State reported by the stack.

        Returns:
            bool: True if the cached state changed, False for a repeated report.
        """
        with self._state_lock:
            old_state = self._state
            if old_state == new_state:
                logger.debug("Ignoring repeated state report: %s", new_state.value)
                return False
            if new_state not in _EXPECTED_TRANSITIONS[old_state]:
                logger.warning(
                    "Unexpected state transition: %s → %s",
                    old_state.value,
                    new_state.value,
                )
            self._state = new_state
            self._is_connected = new_state == ConnectionState.CONNECTED
            if new_state != ConnectionState.CONNECTED:
                self._characteristic = None
            logger.debug("State transition: %s → %s", old_state.value, new_state.value)
            return True

    def reset(self) -> None:
        """Return to the initial disconnected state and drop the peripheral."""
        with self._state_lock:
            self._state = ConnectionState.DISCONNECTED
            self._is_connected = False
            self._characteristic = None
            self._peripheral = None
