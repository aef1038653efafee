"""Startup gating: Bluetooth capabilities and adapter power state."""

import asyncio
import time
from typing import Iterable, Optional, Tuple

from ledremote.interfaces.ble.backend import BLEBackend, Capability, REQUIRED_CAPABILITIES
from ledremote.interfaces.ble.constants import (
    BLEConfig,
    ERROR_ADAPTER_UNAVAILABLE,
    ERROR_PERMISSIONS_REQUIRED,
    logger,
)
from ledremote.interfaces.ble.errors import AdapterUnavailableError, BLEErrorHandler
from ledremote.interfaces.ble.events import StatePublisher
from ledremote.interfaces.ble.state import AdapterState

__all__ = ["AdapterMonitor", "PermissionGate"]


class PermissionGate:
    """Requests the capabilities needed to scan and connect, producing one verdict."""

    def __init__(
        self,
        backend: BLEBackend,
        publisher: StatePublisher,
        capabilities: Iterable[Capability] = REQUIRED_CAPABILITIES,
    ):
        self.backend = backend
        self.publisher = publisher
        self.capabilities: Tuple[Capability, ...] = tuple(capabilities)
        self._granted = False

    @property
    def granted(self) -> bool:
        """Verdict of the last request; False until a request succeeds."""
        return self._granted

    async def request_capabilities(self) -> bool:
        """
        Request every required capability as one batch.

        The verdict is granted only if each capability is individually granted; a
        capability missing from the backend's answer counts as denied. On denial the
        user is warned and scanning stays blocked until this is called again.

        Returns:
            bool: True if all capabilities were granted.
        """
        try:
            statuses = await self.backend.request_capabilities(self.capabilities)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - a failed request is a denial
            logger.warning("Capability request failed: %s", e)
            statuses = {}

        denied = [c.value for c in self.capabilities if not statuses.get(c, False)]
        self._granted = not denied
        self.publisher.flag("has_permissions", self._granted)
        if self._granted:
            logger.info("All permissions granted")
        else:
            logger.warning("Bluetooth/Location permissions denied: %s", ", ".join(denied))
            self.publisher.error(ERROR_PERMISSIONS_REQUIRED)
        return self._granted


class AdapterMonitor:
    """
    Waits for the Bluetooth radio to report powered-on.

    Only the first powered-on report is awaited; the radio is not watched afterwards.
    """

    def __init__(self, backend: BLEBackend, poll_interval: float = BLEConfig.ADAPTER_POLL_INTERVAL):
        self.backend = backend
        self.poll_interval = poll_interval
        self.error_handler = BLEErrorHandler()
        self.last_state = AdapterState.UNKNOWN

    async def await_adapter_ready(self, timeout: Optional[float] = None) -> AdapterState:
        """
        Poll the adapter until it reports ON.

        Parameters:
            timeout (Optional[float]): Give up after this many seconds; None waits forever.

        Returns:
            AdapterState: Always ``AdapterState.ON``.

        Raises:
            AdapterUnavailableError: If `timeout` elapses first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            state = await self._read_adapter_state()
            if state != self.last_state:
                logger.debug("Adapter state: %s", state.value)
                self.last_state = state
            if state == AdapterState.ON:
                return state
            if deadline is not None and time.monotonic() >= deadline:
                raise AdapterUnavailableError(ERROR_ADAPTER_UNAVAILABLE.format(timeout))
            await asyncio.sleep(self.poll_interval)

    async def _read_adapter_state(self) -> AdapterState:
        return await self.error_handler.safe_await(
            self.backend.adapter_state(),
            default_return=AdapterState.UNKNOWN,
            error_msg="Adapter state query failed",
        )
