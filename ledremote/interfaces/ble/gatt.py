"""GATT service and characteristic resolution."""

import asyncio
from typing import Optional, Sequence

from ledremote.interfaces.ble.backend import (
    BLEBackend,
    GattCharacteristic,
    GattService,
    PeripheralHandle,
)
from ledremote.interfaces.ble.constants import (
    GATT_IO_TIMEOUT,
    LED_CHAR_UUID,
    SERVICE_UUID,
    logger,
)
from ledremote.interfaces.ble.state import BLEStateManager, ConnectionState
from ledremote.interfaces.ble.utils import normalize_uuid, with_timeout

__all__ = ["ServiceResolver"]


class ServiceResolver:
    """Locates the LED characteristic on a connected peripheral."""

    def __init__(
        self,
        backend: BLEBackend,
        state_manager: BLEStateManager,
        *,
        service_uuid: str = SERVICE_UUID,
        char_uuid: str = LED_CHAR_UUID,
        timeout: Optional[float] = GATT_IO_TIMEOUT,
    ):
        self.backend = backend
        self.state_manager = state_manager
        self.service_uuid = normalize_uuid(service_uuid)
        self.char_uuid = normalize_uuid(char_uuid)
        self.timeout = timeout

    def _is_current(self, handle: PeripheralHandle) -> bool:
        return (
            self.state_manager.state == ConnectionState.CONNECTED
            and self.state_manager.is_connected
            and self.state_manager.peripheral == handle
        )

    async def discover(self, handle: PeripheralHandle) -> Optional[GattCharacteristic]:
        """
        Enumerate services on `handle` and record the LED characteristic.

        Does nothing unless `handle` is the managed peripheral and is connected.
        A missing service or characteristic is only logged; writes will then fail
        their precondition until the next connection.

        Parameters:
            handle (PeripheralHandle): Peripheral that just reported CONNECTED.

        Returns:
            Optional[GattCharacteristic]: The recorded characteristic, or None.
        """
        if not self._is_current(handle):
            logger.debug("Skipping service discovery for %s; not connected", handle.address)
            return None

        try:
            services = await with_timeout(
                self.backend.discover_services(handle),
                self.timeout,
                "service discovery",
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - discovery failures are log-only
            logger.warning("Service discovery error: %s", e)
            return None

        logger.debug("Found %d services", len(services))
        characteristic = self.find_characteristic(services)
        if characteristic is None:
            logger.warning("LED characteristic NOT found!")
            return None

        # The link may have dropped while services were being enumerated.
        if self.state_manager.peripheral != handle or not self.state_manager.set_characteristic(
            characteristic
        ):
            return None
        logger.info("LED characteristic found!")
        return characteristic

    def find_characteristic(
        self, services: Sequence[GattService]
    ) -> Optional[GattCharacteristic]:
        """Return the configured characteristic from `services`, or None."""
        for service in services:
            logger.debug("Service: %s", service.uuid)
            if normalize_uuid(service.uuid) != self.service_uuid:
                continue
            logger.debug("Found target service!")
            for characteristic in service.characteristics:
                logger.debug("Characteristic: %s", characteristic.uuid)
                if normalize_uuid(characteristic.uuid) == self.char_uuid:
                    return characteristic
        return None
