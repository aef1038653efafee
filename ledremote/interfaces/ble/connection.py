"""BLE connection lifecycle management."""

import asyncio
from typing import Optional, Set

from ledremote.interfaces.ble.backend import BLEBackend, PeripheralHandle
from ledremote.interfaces.ble.constants import (
    CONNECTION_TIMEOUT,
    DISCONNECT_TIMEOUT_SECONDS,
    logger,
)
from ledremote.interfaces.ble.errors import ConnectFailureError
from ledremote.interfaces.ble.events import StatePublisher
from ledremote.interfaces.ble.gatt import ServiceResolver
from ledremote.interfaces.ble.state import BLEStateManager, ConnectionState
from ledremote.interfaces.ble.streams import Subscription
from ledremote.interfaces.ble.utils import with_timeout

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Owns the connection to the single managed peripheral.

    The manager subscribes to the peripheral's connection-state stream before
    connecting, triggers service discovery each time CONNECTED is observed and
    drops the resolved characteristic when the link goes away. It never
    reconnects on its own; a dropped link needs a fresh scan.
    """

    def __init__(
        self,
        backend: BLEBackend,
        state_manager: BLEStateManager,
        resolver: ServiceResolver,
        publisher: StatePublisher,
        *,
        timeout: float = CONNECTION_TIMEOUT,
        disconnect_timeout: Optional[float] = DISCONNECT_TIMEOUT_SECONDS,
    ):
        """
        Parameters:
            backend (BLEBackend): Platform BLE stack.
            state_manager (BLEStateManager): Shared connection state; this manager is its only writer of transitions.
            resolver (ServiceResolver): Run after every observed CONNECTED transition.
            publisher (StatePublisher): Receives `is_connected` and connection-state updates.
            timeout (float): Default connect timeout in seconds.
            disconnect_timeout (Optional[float]): Upper bound for the backend disconnect call.
        """
        self.backend = backend
        self.state_manager = state_manager
        self.resolver = resolver
        self.publisher = publisher
        self.timeout = timeout
        self.disconnect_timeout = disconnect_timeout
        self._state_subscription: Optional[Subscription[ConnectionState]] = None
        self._discovery_tasks: Set["asyncio.Task"] = set()

    @property
    def is_connected(self) -> bool:
        return self.state_manager.is_connected

    @property
    def peripheral(self) -> Optional[PeripheralHandle]:
        return self.state_manager.peripheral

    async def connect(self, handle: PeripheralHandle, timeout: Optional[float] = None) -> bool:
        """
        Connect to `handle` and start observing its connection state.

        Failures are logged and reflected as disconnected; they are never raised.

        Parameters:
            handle (PeripheralHandle): Peripheral found by the scan.
            timeout (Optional[float]): Connect timeout in seconds; defaults to the manager's timeout.

        Returns:
            bool: True if the backend reported a successful connect.
        """
        timeout = self.timeout if timeout is None else timeout
        current = self.state_manager.peripheral
        if current is not None:
            cached = self.state_manager.state
            # A CONNECTED link downgraded by a failed write is torn down and reopened.
            if current == handle and (
                cached == ConnectionState.CONNECTING
                or (cached == ConnectionState.CONNECTED and self.state_manager.is_connected)
            ):
                logger.debug("Already connected or connecting to %s", handle.address)
                return self.state_manager.is_connected
            await self.disconnect()

        self.state_manager.peripheral = handle
        # Subscribe first so the CONNECTED transition cannot be missed.
        self._state_subscription = self.backend.connection_states(handle).subscribe(
            lambda state: self._on_state_change(handle, state)
        )

        logger.info("Connecting to %s (%s)", handle.name, handle.address)
        try:
            await with_timeout(
                self.backend.connect(handle, timeout),
                timeout,
                "connect",
                ConnectFailureError,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - connect failures become state, not exceptions
            logger.warning("Connection failed: %s", e)
            if self.state_manager.state != ConnectionState.DISCONNECTED:
                self._on_state_change(handle, ConnectionState.DISCONNECTED)
            self.state_manager.clear_characteristic()
            self.state_manager.is_connected = False
            self._release_subscription()
            self.state_manager.peripheral = None
            self.publisher.flag("is_connected", False)
            return False

        logger.info("Connection successful to %s", handle.address)
        return True

    def _on_state_change(self, handle: PeripheralHandle, state: ConnectionState) -> None:
        if self.state_manager.peripheral != handle:
            logger.debug("Ignoring stale state %s from %s", state.value, handle.address)
            return
        logger.debug("Connection state: %s", state.value)
        changed = self.state_manager.observe(state)
        self.publisher.flag("is_connected", self.state_manager.is_connected)
        if not changed:
            return
        self.publisher.connection_state(state)
        if state == ConnectionState.CONNECTED:
            self._schedule_discovery(handle)
        elif state == ConnectionState.DISCONNECTED:
            logger.info("Disconnected from %s", handle.address)

    def _schedule_discovery(self, handle: PeripheralHandle) -> None:
        task = asyncio.ensure_future(self.resolver.discover(handle))
        self._discovery_tasks.add(task)
        task.add_done_callback(self._discovery_tasks.discard)

    async def wait_for_discovery(self) -> None:
        """Wait until every scheduled service discovery has finished."""
        while True:
            pending = [task for task in self._discovery_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def disconnect(self) -> None:
        """
        Disconnect and release everything tied to the current peripheral.

        Safe to call repeatedly or with no peripheral. Backend errors are logged
        and swallowed. Always ends disconnected with no characteristic.
        """
        handle = self.state_manager.peripheral
        if handle is not None:
            logger.debug("Disconnecting from %s", handle.address)
            try:
                await with_timeout(
                    self.backend.disconnect(handle),
                    self.disconnect_timeout,
                    "disconnect",
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001 - teardown must not raise
                logger.warning("Disconnect error: %s", e)

        self.state_manager.clear_characteristic()
        self._release_subscription()
        await self._cancel_discovery()
        self.state_manager.reset()
        self.publisher.flag("is_connected", False)

    def _release_subscription(self) -> None:
        if self._state_subscription is not None:
            self._state_subscription.cancel()
            self._state_subscription = None

    async def _cancel_discovery(self) -> None:
        tasks = [task for task in self._discovery_tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._discovery_tasks.clear()
