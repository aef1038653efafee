"""
Shared pytest fixtures for LED remote tests.
"""

import asyncio
from typing import Dict, List, Optional, Sequence

import pytest  # type: ignore[import-untyped]  # pylint: disable=E0401
from pubsub import pub

from ledremote.interfaces.ble.backend import (
    Advertisement,
    GattCharacteristic,
    GattService,
    PeripheralHandle,
)
from ledremote.interfaces.ble.constants import LED_CHAR_UUID, SERVICE_UUID, TARGET_NAME
from ledremote.interfaces.ble.events import (
    StatePublisher,
    TOPIC_CONNECTION_STATE,
    TOPIC_ERROR,
    TOPIC_STATE,
)
from ledremote.interfaces.ble.state import AdapterState, ConnectionState
from ledremote.interfaces.ble.streams import EventStream

TARGET_ADDRESS = "AA:BB:CC:DD:EE:FF"


def make_led_services() -> List[GattService]:
    """Return the service table exposed by the LED firmware."""
    return [
        GattService(uuid="00001800-0000-1000-8000-00805f9b34fb"),
        GattService(
            uuid=SERVICE_UUID,
            characteristics=(GattCharacteristic(uuid=LED_CHAR_UUID, handle=42),),
        ),
    ]


class FakeBackend:
    """
    Scriptable in-memory BLE stack.

    Scan batches queued in `scan_batches` are emitted on the event loop right after
    `start_scan()`. `connect()` emits CONNECTING then CONNECTED unless `connect_error`
    is set or `connect_hangs` is True. Every call is appended to `calls`.
    """

    def __init__(self):
        self.scan_results: EventStream[Sequence[Advertisement]] = EventStream("fake scan results")
        self.calls: List[tuple] = []
        self.adapter_states: List[AdapterState] = [AdapterState.ON]
        self.adapter_error: Optional[Exception] = None
        self.capability_result: Optional[Dict] = None
        self.capability_error: Optional[Exception] = None
        self.scan_batches: List[List[Advertisement]] = []
        self.start_scan_error: Optional[Exception] = None
        self.stop_scan_error: Optional[Exception] = None
        self.connect_error: Optional[Exception] = None
        self.connect_hangs = False
        self.disconnect_error: Optional[Exception] = None
        self.services: List[GattService] = make_led_services()
        self.discover_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None
        self.subscribers_at_connect: List[int] = []
        self.scan_state_at_connect: List[tuple] = []
        self.closed = False
        self._scanning = False
        self._state_streams: Dict[str, EventStream[ConnectionState]] = {}

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def adapter_state(self) -> AdapterState:
        self.calls.append(("adapter_state",))
        if self.adapter_error is not None:
            raise self.adapter_error
        if len(self.adapter_states) > 1:
            return self.adapter_states.pop(0)
        return self.adapter_states[0]

    async def request_capabilities(self, capabilities):
        capabilities = tuple(capabilities)
        self.calls.append(("request_capabilities", capabilities))
        if self.capability_error is not None:
            raise self.capability_error
        if self.capability_result is not None:
            return self.capability_result
        return {capability: True for capability in capabilities}

    async def start_scan(self) -> None:
        self.calls.append(("start_scan",))
        if self.start_scan_error is not None:
            raise self.start_scan_error
        self._scanning = True
        loop = asyncio.get_running_loop()
        for batch in self.scan_batches:
            loop.call_soon(self._emit_batch, batch)

    def _emit_batch(self, batch: List[Advertisement]) -> None:
        if self._scanning:
            self.scan_results.emit(batch)

    async def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))
        self._scanning = False
        if self.stop_scan_error is not None:
            raise self.stop_scan_error

    def connection_states(self, handle: PeripheralHandle) -> EventStream[ConnectionState]:
        stream = self._state_streams.get(handle.address)
        if stream is None:
            stream = EventStream(f"fake connection state {handle.address}")
            self._state_streams[handle.address] = stream
        return stream

    def emit_state(self, address: str, state: ConnectionState) -> None:
        """Report a connection state as the stack would."""
        self.connection_states(PeripheralHandle(address=address, name=None)).emit(state)

    async def connect(self, handle: PeripheralHandle, timeout: float) -> None:
        self.calls.append(("connect", handle, timeout))
        self.subscribers_at_connect.append(len(self.connection_states(handle)))
        self.scan_state_at_connect.append((self._scanning, len(self.scan_results)))
        self.emit_state(handle.address, ConnectionState.CONNECTING)
        if self.connect_hangs:
            await asyncio.sleep(3600)
        if self.connect_error is not None:
            self.emit_state(handle.address, ConnectionState.DISCONNECTED)
            raise self.connect_error
        self.emit_state(handle.address, ConnectionState.CONNECTED)

    async def disconnect(self, handle: PeripheralHandle) -> None:
        self.calls.append(("disconnect", handle))
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.emit_state(handle.address, ConnectionState.DISCONNECTING)
        self.emit_state(handle.address, ConnectionState.DISCONNECTED)

    async def discover_services(self, handle: PeripheralHandle) -> Sequence[GattService]:
        self.calls.append(("discover_services", handle))
        if self.discover_error is not None:
            raise self.discover_error
        return list(self.services)

    async def write(self, handle, characteristic, data, *, response):
        self.calls.append(("write", handle, characteristic, data, response))
        if self.write_error is not None:
            raise self.write_error

    async def close(self) -> None:
        self.calls.append(("close",))
        self.closed = True


class EventRecorder:
    """Collects pypubsub messages published by the controller."""

    def __init__(self):
        self.states: List[tuple] = []
        self.errors: List[str] = []
        self.connection_states: List[ConnectionState] = []

    def on_state(self, name, value, interface):
        self.states.append((name, value))

    def on_error(self, message, interface):
        self.errors.append(message)

    def on_connection_state(self, state, interface):
        self.connection_states.append(state)

    def values(self, name: str) -> List[bool]:
        """Return every published value of flag `name`, in order."""
        return [value for flag, value in self.states if flag == name]


def make_advertisement(name: Optional[str] = TARGET_NAME, address: str = TARGET_ADDRESS, rssi: int = -60):
    return Advertisement(address=address, name=name, rssi=rssi)


def make_handle(name: Optional[str] = TARGET_NAME, address: str = TARGET_ADDRESS) -> PeripheralHandle:
    return PeripheralHandle(address=address, name=name)


@pytest.fixture
def backend():
    """Fresh FakeBackend per test."""
    return FakeBackend()


@pytest.fixture
def recorder():
    """
    Subscribe an EventRecorder to every controller topic for the duration of a test.

    pypubsub holds listeners weakly; the fixture keeps the recorder alive.
    """
    rec = EventRecorder()
    pub.subscribe(rec.on_state, TOPIC_STATE)
    pub.subscribe(rec.on_error, TOPIC_ERROR)
    pub.subscribe(rec.on_connection_state, TOPIC_CONNECTION_STATE)
    yield rec
    pub.unsubscribe(rec.on_state, TOPIC_STATE)
    pub.unsubscribe(rec.on_error, TOPIC_ERROR)
    pub.unsubscribe(rec.on_connection_state, TOPIC_CONNECTION_STATE)


@pytest.fixture
def publisher(recorder):
    """StatePublisher whose messages land in `recorder`."""
    return StatePublisher(interface="test")
