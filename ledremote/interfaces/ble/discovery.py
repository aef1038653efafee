"""Time-bounded discovery of the LED peripheral."""

import asyncio
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from ledremote.interfaces.ble.backend import Advertisement, BLEBackend, PeripheralHandle
from ledremote.interfaces.ble.constants import SCAN_TIMEOUT, TARGET_NAME, logger
from ledremote.interfaces.ble.errors import BLEErrorHandler
from ledremote.interfaces.ble.events import StatePublisher
from ledremote.interfaces.ble.gating import PermissionGate
from ledremote.interfaces.ble.streams import Subscription

if TYPE_CHECKING:
    from ledremote.interfaces.ble.connection import ConnectionManager

__all__ = ["ScanSession"]


class ScanSession:
    """
    Scans for a peripheral advertising an exact name and hands it to the connection manager.

    At most one scan runs at a time. The match handler and the timeout both try to
    cancel the scan subscription; whichever cancels first decides the outcome.
    """

    def __init__(
        self,
        backend: BLEBackend,
        permission_gate: PermissionGate,
        publisher: StatePublisher,
        connection_manager: Optional["ConnectionManager"] = None,
        *,
        filter_name: str = TARGET_NAME,
        timeout: float = SCAN_TIMEOUT,
    ):
        self.backend = backend
        self.permission_gate = permission_gate
        self.publisher = publisher
        self.connection_manager = connection_manager
        self.filter_name = filter_name
        self.timeout = timeout
        self.error_handler = BLEErrorHandler()
        self.last_handle: Optional[PeripheralHandle] = None
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def _set_scanning(self, value: bool) -> None:
        self._scanning = value
        self.publisher.flag("is_scanning", value)

    def _can_start(self) -> bool:
        if self._scanning:
            logger.debug("Scan already running; ignoring request")
            return False
        if not self.permission_gate.granted:
            logger.warning("Cannot scan without Bluetooth permissions")
            return False
        return True

    async def start_scan(
        self, filter_name: Optional[str] = None, timeout: Optional[float] = None
    ) -> Optional[PeripheralHandle]:
        """
        Scan until a peripheral named exactly `filter_name` is seen or `timeout` elapses.

        On a match the scan is stopped, `is_scanning` drops to False and the handle is
        passed to the connection manager before this coroutine returns. A timeout is
        not an error: the scan simply ends with no handle and no connection attempt.

        Parameters:
            filter_name (Optional[str]): Advertised name to match; defaults to the session's name.
            timeout (Optional[float]): Scan window in seconds; defaults to the session's timeout.

        Returns:
            Optional[PeripheralHandle]: The matched peripheral, or None.
        """
        filter_name = self.filter_name if filter_name is None else filter_name
        timeout = self.timeout if timeout is None else timeout
        if not self._can_start():
            return None

        self._set_scanning(True)
        found: "asyncio.Future[PeripheralHandle]" = asyncio.get_running_loop().create_future()
        subscription: Optional[Subscription[Sequence[Advertisement]]] = None
        handle: Optional[PeripheralHandle] = None

        def _on_results(batch: Sequence[Advertisement]) -> None:
            for advertisement in batch:
                logger.debug("Found device: %s - %s", advertisement.name, advertisement.address)
                if advertisement.name != filter_name:
                    continue
                # Cancelling first means the rest of this batch, and any later batch, is ignored.
                if subscription is not None and subscription.cancel() and not found.done():
                    found.set_result(PeripheralHandle.from_advertisement(advertisement))
                return

        try:
            if self.backend.is_scanning:
                await self.backend.stop_scan()
            subscription = self.backend.scan_results.subscribe(_on_results)
            await self.backend.start_scan()
            logger.debug("Scanning for %s (takes up to %.0f seconds)...", filter_name, timeout)
            try:
                handle = await self._await_match(found, timeout)
            except asyncio.TimeoutError:
                if subscription.cancel():
                    logger.info("No device named %s found within %.1f seconds", filter_name, timeout)
                else:
                    handle = found.result()
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - scan failures end the scan quietly
            logger.warning("Scan error: %s", e)
            handle = None
        finally:
            if subscription is not None:
                subscription.cancel()
            if not found.done():
                found.cancel()
            await self.error_handler.safe_cleanup_async(self.backend.stop_scan(), "stop scan")
            self._set_scanning(False)

        if handle is None:
            return None
        logger.info("Found %s at %s", handle.name, handle.address)
        self.last_handle = handle
        if self.connection_manager is not None:
            await self.connection_manager.connect(handle)
        return handle

    async def _await_match(
        self, found: "asyncio.Future[PeripheralHandle]", timeout: float
    ) -> PeripheralHandle:
        # Shielded so a timeout leaves `found` intact for a match that already won.
        return await asyncio.wait_for(asyncio.shield(found), timeout)

    async def collect(self, timeout: Optional[float] = None) -> List[Advertisement]:
        """
        Scan for the full window and return every distinct advertiser seen.

        Used for diagnostics; it never connects.
        """
        timeout = self.timeout if timeout is None else timeout
        if not self._can_start():
            return []

        seen: Dict[str, Advertisement] = {}

        def _on_results(batch: Sequence[Advertisement]) -> None:
            for advertisement in batch:
                previous = seen.get(advertisement.address)
                if previous is None or (advertisement.name and not previous.name):
                    seen[advertisement.address] = advertisement

        self._set_scanning(True)
        try:
            with self.backend.scan_results.subscribe(_on_results):
                if self.backend.is_scanning:
                    await self.backend.stop_scan()
                await self.backend.start_scan()
                await asyncio.sleep(timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - report what was seen so far
            logger.warning("Scan error: %s", e)
        finally:
            await self.error_handler.safe_cleanup_async(self.backend.stop_scan(), "stop scan")
            self._set_scanning(False)
        return sorted(seen.values(), key=lambda a: (a.name is None, a.name or "", a.address))
