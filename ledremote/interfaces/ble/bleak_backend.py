"""BLE backend built on bleak."""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ledremote.interfaces.ble.backend import (
    Advertisement,
    Capability,
    GattCharacteristic,
    GattService,
    PeripheralHandle,
)
from ledremote.interfaces.ble.constants import BLEConfig, logger
from ledremote.interfaces.ble.errors import BLEError, BLEErrorHandler
from ledremote.interfaces.ble.state import AdapterState, ConnectionState
from ledremote.interfaces.ble.streams import EventStream
from ledremote.interfaces.ble.utils import with_timeout

__all__ = ["BleakBackend"]


class BleakBackend:
    """
    Exposes bleak's scanner and client through the `BLEBackend` interface.

    Connection-state streams are keyed by device address. bleak invokes its
    callbacks on the running event loop, so every stream event is delivered
    on the loop that drives this backend.
    """

    def __init__(self, adapter: Optional[str] = None, probe_timeout: float = BLEConfig.ADAPTER_PROBE_TIMEOUT):
        """
        Parameters:
            adapter (Optional[str]): Host adapter to use (e.g. "hci0" on BlueZ); None selects the default.
            probe_timeout (float): Seconds allowed for the scanner start used to probe adapter power.
        """
        self.adapter = adapter
        self.probe_timeout = probe_timeout
        self.error_handler = BLEErrorHandler()
        self.scan_results: EventStream[Sequence[Advertisement]] = EventStream("scan results")
        self._scanner: Optional[BleakScanner] = None
        self._clients: Dict[str, BleakClient] = {}
        self._state_streams: Dict[str, EventStream[ConnectionState]] = {}

    def _backend_kwargs(self) -> dict:
        return {"adapter": self.adapter} if self.adapter else {}

    @property
    def is_scanning(self) -> bool:
        return self._scanner is not None

    async def adapter_state(self) -> AdapterState:
        """
        Probe the radio by briefly starting a scanner.

        bleak has no portable power-state API; a scanner that refuses to start is
        reported as OFF.
        """
        if self._scanner is not None:
            return AdapterState.ON
        scanner = BleakScanner(**self._backend_kwargs())
        try:
            await with_timeout(scanner.start(), self.probe_timeout, "adapter probe")
        except BleakError as e:
            logger.debug("Bluetooth adapter unavailable: %s", e)
            return AdapterState.OFF
        except BLEError as e:
            logger.debug("%s", e)
            await self.error_handler.safe_cleanup_async(scanner.stop(), "adapter probe stop")
            return AdapterState.UNKNOWN
        await self.error_handler.safe_cleanup_async(scanner.stop(), "adapter probe stop")
        return AdapterState.ON

    async def request_capabilities(
        self, capabilities: Iterable[Capability]
    ) -> Mapping[Capability, bool]:
        # Desktop stacks enforce access at the OS/user level, not through runtime prompts.
        result = {capability: True for capability in capabilities}
        logger.debug("Capabilities granted by platform: %s", ", ".join(c.value for c in result))
        return result

    def _on_detection(self, device, advertisement_data) -> None:
        name = getattr(advertisement_data, "local_name", None) or device.name
        self.scan_results.emit(
            [
                Advertisement(
                    address=device.address,
                    name=name,
                    rssi=getattr(advertisement_data, "rssi", None),
                    device=device,
                )
            ]
        )

    async def start_scan(self) -> None:
        if self._scanner is not None:
            return
        scanner = BleakScanner(detection_callback=self._on_detection, **self._backend_kwargs())
        await scanner.start()
        self._scanner = scanner

    async def stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is not None:
            await scanner.stop()

    def connection_states(self, handle: PeripheralHandle) -> EventStream[ConnectionState]:
        stream = self._state_streams.get(handle.address)
        if stream is None:
            stream = EventStream(f"connection state {handle.address}")
            self._state_streams[handle.address] = stream
        return stream

    def _on_disconnected(self, address: str, client: BleakClient) -> None:
        if self._clients.get(address) is not client:
            return
        self._clients.pop(address, None)
        self.connection_states(PeripheralHandle(address=address, name=None)).emit(
            ConnectionState.DISCONNECTED
        )

    async def connect(self, handle: PeripheralHandle, timeout: float) -> None:
        """Connect without auto-reconnect; emits CONNECTING, then CONNECTED or DISCONNECTED."""
        stream = self.connection_states(handle)
        client = self._clients.get(handle.address)
        if client is None:
            target = handle.device if handle.device is not None else handle.address
            client = BleakClient(
                target,
                disconnected_callback=lambda c: self._on_disconnected(handle.address, c),
                timeout=timeout,
                **self._backend_kwargs(),
            )
            self._clients[handle.address] = client
        stream.emit(ConnectionState.CONNECTING)
        try:
            await client.connect()
        except BaseException:
            if self._clients.get(handle.address) is client:
                self._clients.pop(handle.address, None)
            stream.emit(ConnectionState.DISCONNECTED)
            raise
        stream.emit(ConnectionState.CONNECTED)

    async def disconnect(self, handle: PeripheralHandle) -> None:
        client = self._clients.get(handle.address)
        if client is None:
            return
        stream = self.connection_states(handle)
        stream.emit(ConnectionState.DISCONNECTING)
        try:
            await client.disconnect()
        finally:
            # The disconnected callback normally does this; cover stacks that skip it.
            if self._clients.get(handle.address) is client:
                self._clients.pop(handle.address, None)
                stream.emit(ConnectionState.DISCONNECTED)

    def _require_client(self, handle: PeripheralHandle) -> BleakClient:
        client = self._clients.get(handle.address)
        if client is None:
            raise BLEError(f"No BLE client for {handle.address}")
        return client

    async def discover_services(self, handle: PeripheralHandle) -> Sequence[GattService]:
        client = self._require_client(handle)
        services: List[GattService] = []
        for service in client.services:
            services.append(
                GattService(
                    uuid=str(service.uuid),
                    characteristics=tuple(
                        GattCharacteristic(uuid=str(char.uuid), handle=char)
                        for char in service.characteristics
                    ),
                )
            )
        return services

    async def write(
        self,
        handle: PeripheralHandle,
        characteristic: GattCharacteristic,
        data: bytes,
        *,
        response: bool,
    ) -> None:
        client = self._require_client(handle)
        specifier = characteristic.handle if characteristic.handle is not None else characteristic.uuid
        await client.write_gatt_char(specifier, data, response=response)

    async def close(self) -> None:
        """Stop scanning and drop every client."""
        await self.error_handler.safe_cleanup_async(self.stop_scan(), "stop scan")
        for address in list(self._clients):
            await self.error_handler.safe_cleanup_async(
                self.disconnect(PeripheralHandle(address=address, name=None)),
                "client disconnect",
            )
        self.scan_results.cancel_all()
        for stream in self._state_streams.values():
            stream.cancel_all()
