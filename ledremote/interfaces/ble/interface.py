"""Synchronous controller for the ESP32 LED peripheral."""

import asyncio
import atexit
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import Thread
from typing import List, Optional

from ledremote.interfaces.ble.backend import Advertisement, BLEBackend, PeripheralHandle
from ledremote.interfaces.ble.bleak_backend import BleakBackend
from ledremote.interfaces.ble.commands import Command, CommandWriter
from ledremote.interfaces.ble.connection import ConnectionManager
from ledremote.interfaces.ble.constants import (
    BLEConfig,
    ERROR_LOOP_CLOSED,
    ERROR_TIMEOUT,
    LED_CHAR_UUID,
    SERVICE_UUID,
    TARGET_NAME,
    logger,
)
from ledremote.interfaces.ble.discovery import ScanSession
from ledremote.interfaces.ble.errors import BLEError, BLEErrorHandler
from ledremote.interfaces.ble.events import StatePublisher
from ledremote.interfaces.ble.gating import AdapterMonitor, PermissionGate
from ledremote.interfaces.ble.gatt import ServiceResolver
from ledremote.interfaces.ble.state import BLEStateManager, ConnectionState

__all__ = ["LedRemote"]


class LedRemote:
    """
    Blocking front end to the BLE LED controller.

    All BLE work runs as tasks on a private asyncio event loop in a background
    thread, so the components never race each other; the public methods submit
    coroutines to that loop and wait for them.

    Architecture:
        - AdapterMonitor: waits for the radio to power on at startup
        - PermissionGate: requests capabilities and produces `has_permissions`
        - ScanSession: finds the peripheral by name and hands it off
        - ConnectionManager: owns the connection and its state subscription
        - ServiceResolver: locates the LED characteristic after each connect
        - CommandWriter: sends ON/OFF and downgrades the link on failure

    State changes and user-visible errors are published through pypubsub
    (see `ledremote.interfaces.ble.events`).
    """

    BLEError = BLEError

    def __init__(
        self,
        backend: Optional[BLEBackend] = None,
        *,
        target_name: str = TARGET_NAME,
        service_uuid: str = SERVICE_UUID,
        char_uuid: str = LED_CHAR_UUID,
        scan_timeout: float = BLEConfig.SCAN_TIMEOUT,
        connect_timeout: float = BLEConfig.CONNECTION_TIMEOUT,
        register_atexit: bool = True,
    ) -> None:
        """
        Build the component graph and start the background event loop.

        Parameters:
            backend (Optional[BLEBackend]): Platform BLE stack; defaults to a `BleakBackend` on the default adapter.
            target_name (str): Exact advertised name to scan for.
            service_uuid (str): Service holding the LED characteristic.
            char_uuid (str): LED characteristic UUID.
            scan_timeout (float): Scan window in seconds.
            connect_timeout (float): Connect timeout in seconds.
            register_atexit (bool): Close the controller at interpreter exit so the link is released.
        """
        if backend is None:
            backend = BleakBackend()
        self.backend = backend
        self.error_handler = BLEErrorHandler()
        self.publisher = StatePublisher(self)
        self._state_manager = BLEStateManager()

        self.adapter_monitor = AdapterMonitor(backend)
        self.permission_gate = PermissionGate(backend, self.publisher)
        self.resolver = ServiceResolver(
            backend, self._state_manager, service_uuid=service_uuid, char_uuid=char_uuid
        )
        self.connection_manager = ConnectionManager(
            backend,
            self._state_manager,
            self.resolver,
            self.publisher,
            timeout=connect_timeout,
        )
        self.scan_session = ScanSession(
            backend,
            self.permission_gate,
            self.publisher,
            self.connection_manager,
            filter_name=target_name,
            timeout=scan_timeout,
        )
        self.command_writer = CommandWriter(backend, self._state_manager, self.publisher)

        self._closed = False
        self._eventLoop = asyncio.new_event_loop()
        self._eventThread = Thread(target=self._run_event_loop, name="LedRemoteLoop", daemon=True)
        try:
            self._eventThread.start()
        except RuntimeError:
            self._eventLoop.close()
            raise
        self._exit_handler = atexit.register(self.close) if register_atexit else None

    def __repr__(self):
        return f"LedRemote(target_name={self.scan_session.filter_name!r})"

    @property
    def has_permissions(self) -> bool:
        return self.permission_gate.granted

    @property
    def is_scanning(self) -> bool:
        return self.scan_session.is_scanning

    @property
    def is_connected(self) -> bool:
        return self._state_manager.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        return self._state_manager.state

    @property
    def peripheral(self) -> Optional[PeripheralHandle]:
        return self._state_manager.peripheral

    @property
    def is_ready(self) -> bool:
        """True when a command could be written right now."""
        return self.is_connected and self._state_manager.characteristic is not None

    def initialize(self, adapter_timeout: Optional[float] = None) -> bool:
        """
        Wait for the adapter to power on, then request capabilities.

        Returns:
            bool: The capability verdict.

        Raises:
            AdapterUnavailableError: If the adapter stays off past `adapter_timeout`.
        """

        async def _initialize() -> bool:
            await self.adapter_monitor.await_adapter_ready(timeout=adapter_timeout)
            return await self.permission_gate.request_capabilities()

        return self.async_await(_initialize())

    def request_permissions(self) -> bool:
        return self.async_await(self.permission_gate.request_capabilities())

    def start_scan(self) -> Optional[PeripheralHandle]:
        """Scan for the target and connect to it if found; see `ScanSession.start_scan`."""
        return self.async_await(self.scan_session.start_scan())

    def list_devices(self, timeout: Optional[float] = None) -> List[Advertisement]:
        return self.async_await(self.scan_session.collect(timeout))

    def wait_until_ready(self) -> bool:
        """Wait for pending service discovery and report whether commands can be sent."""
        self.async_await(self.connection_manager.wait_for_discovery())
        return self.is_ready

    def send_command(self, command: Command) -> bool:
        return self.async_await(self.command_writer.send_command(command))

    def led_on(self) -> bool:
        return self.send_command(Command.ON)

    def led_off(self) -> bool:
        return self.send_command(Command.OFF)

    def disconnect(self) -> None:
        self.async_await(self.connection_manager.disconnect())

    def close(self) -> None:
        """
        Tear down the connection, the backend and the event loop.

        Idempotent; failures during teardown are logged and suppressed.
        """
        if self._closed:
            return
        self._closed = True
        if self._exit_handler is not None:
            self.error_handler.safe_cleanup(
                lambda: atexit.unregister(self.close), "atexit unregister"
            )
            self._exit_handler = None

        async def _teardown() -> None:
            await self.error_handler.safe_cleanup_async(
                self.connection_manager.disconnect(), "disconnect"
            )
            backend_close = getattr(self.backend, "close", None)
            if backend_close is not None:
                await self.error_handler.safe_cleanup_async(backend_close(), "backend close")

        self.error_handler.safe_cleanup(
            lambda: self._submit(_teardown()).result(
                BLEConfig.DISCONNECT_TIMEOUT_SECONDS + BLEConfig.LOOP_THREAD_JOIN_TIMEOUT
            ),
            "controller teardown",
        )
        self.error_handler.safe_cleanup(
            lambda: self._eventLoop.call_soon_threadsafe(self._eventLoop.stop),
            "event loop stop",
        )
        self._eventThread.join(timeout=BLEConfig.LOOP_THREAD_JOIN_TIMEOUT)
        if self._eventThread.is_alive():
            logger.warning(
                "BLE event thread did not exit within %.1fs",
                BLEConfig.LOOP_THREAD_JOIN_TIMEOUT,
            )

    def __enter__(self):
        return self

    def __exit__(self, _type, _value, _traceback):
        self.close()

    def async_await(self, coro, timeout: Optional[float] = None):
        """
        Run `coro` on the controller's event loop and wait for its result.

        Raises:
            BLEError: If the controller is closed or the wait times out.
        """
        if self._closed:
            coro.close()
            raise self.BLEError(ERROR_LOOP_CLOSED)
        future = self._submit(coro)
        try:
            return future.result(timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise self.BLEError(ERROR_TIMEOUT.format("BLE operation", timeout)) from e

    def _submit(self, coro) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._eventLoop)

    def _run_event_loop(self):
        asyncio.set_event_loop(self._eventLoop)
        self.error_handler.safe_execute(
            self._eventLoop.run_forever, error_msg="Error in event loop", reraise=False
        )
        self._eventLoop.close()
