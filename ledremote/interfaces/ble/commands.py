"""LED commands and the writer that sends them."""

import asyncio
from enum import Enum
from typing import Optional

from ledremote.interfaces.ble.backend import BLEBackend
from ledremote.interfaces.ble.constants import (
    ERROR_COMMAND_FAILED,
    ERROR_NOT_CONNECTED,
    GATT_IO_TIMEOUT,
    logger,
)
from ledremote.interfaces.ble.errors import WriteFailureError
from ledremote.interfaces.ble.events import StatePublisher
from ledremote.interfaces.ble.state import BLEStateManager
from ledremote.interfaces.ble.utils import with_timeout

__all__ = ["Command", "CommandWriter"]


class Command(Enum):
    """LED commands understood by the firmware."""

    ON = "ON"
    OFF = "OFF"

    @property
    def payload(self) -> bytes:
        """ASCII digit written to the characteristic: b"1" for ON, b"0" for OFF."""
        return b"1" if self is Command.ON else b"0"


class CommandWriter:
    """
    Writes LED commands to the resolved characteristic.

    A failed write marks the link as disconnected straight away, without waiting for
    the stack to report it, so no further writes are attempted until a new
    scan and connect cycle.
    """

    def __init__(
        self,
        backend: BLEBackend,
        state_manager: BLEStateManager,
        publisher: StatePublisher,
        *,
        timeout: Optional[float] = GATT_IO_TIMEOUT,
    ):
        self.backend = backend
        self.state_manager = state_manager
        self.publisher = publisher
        self.timeout = timeout

    async def send_command(self, command: Command) -> bool:
        """
        Send `command` as an acknowledged single-byte write.

        Parameters:
            command (Command): ON or OFF.

        Returns:
            bool: True if the write completed.
        """
        characteristic = self.state_manager.characteristic
        handle = self.state_manager.peripheral
        if characteristic is None or handle is None or not self.state_manager.is_connected:
            logger.warning("Cannot send LED %s - no characteristic or disconnected", command.value)
            self.publisher.error(ERROR_NOT_CONNECTED)
            return False

        try:
            await with_timeout(
                self.backend.write(handle, characteristic, command.payload, response=True),
                self.timeout,
                f"LED {command.value} write",
                WriteFailureError,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - write failures downgrade the connection
            logger.warning("Error sending LED %s: %s", command.value, e)
            self.publisher.error(ERROR_COMMAND_FAILED.format(command.value))
            self.state_manager.is_connected = False
            self.publisher.flag("is_connected", False)
            return False

        logger.info("LED %s sent successfully", command.value)
        return True
