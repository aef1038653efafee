"""Interface to the platform BLE stack and the data it exchanges."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, Tuple

from ledremote.interfaces.ble.state import AdapterState, ConnectionState
from ledremote.interfaces.ble.streams import EventStream

__all__ = [
    "Advertisement",
    "BLEBackend",
    "Capability",
    "GattCharacteristic",
    "GattService",
    "PeripheralHandle",
    "REQUIRED_CAPABILITIES",
]


class Capability(Enum):
    """OS capabilities needed before the radio may be used."""

    BLUETOOTH_SCAN = "bluetooth_scan"
    BLUETOOTH_CONNECT = "bluetooth_connect"
    BLUETOOTH = "bluetooth"
    LOCATION_WHEN_IN_USE = "location_when_in_use"


REQUIRED_CAPABILITIES: Tuple[Capability, ...] = (
    Capability.BLUETOOTH_SCAN,
    Capability.BLUETOOTH_CONNECT,
    Capability.BLUETOOTH,
    Capability.LOCATION_WHEN_IN_USE,
)


@dataclass(frozen=True)
class Advertisement:
    """A single discovery report."""

    address: str
    name: Optional[str]
    rssi: Optional[int] = None
    device: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class PeripheralHandle:
    """Identifies one discovered peripheral; `device` is the backend's own object."""

    address: str
    name: Optional[str]
    device: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def from_advertisement(cls, advertisement: Advertisement) -> "PeripheralHandle":
        return cls(
            address=advertisement.address,
            name=advertisement.name,
            device=advertisement.device,
        )


@dataclass(frozen=True)
class GattCharacteristic:
    uuid: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattService:
    uuid: str
    characteristics: Tuple[GattCharacteristic, ...] = ()


class BLEBackend(Protocol):
    """
    Operations the LED controller needs from the platform BLE stack.

    Implementations must deliver stream events on the event loop that awaits
    their coroutines.
    """

    scan_results: EventStream[Sequence[Advertisement]]

    @property
    def is_scanning(self) -> bool:
        """Whether a discovery scan is running."""

    async def adapter_state(self) -> AdapterState:
        """Report the current radio power state."""

    async def request_capabilities(
        self, capabilities: Iterable[Capability]
    ) -> Mapping[Capability, bool]:
        """Request `capabilities` as one batch and return the per-capability result."""

    async def start_scan(self) -> None:
        """Begin emitting discovery batches on `scan_results`."""

    async def stop_scan(self) -> None:
        """Stop the running scan; a no-op if none is running."""

    def connection_states(self, handle: PeripheralHandle) -> EventStream[ConnectionState]:
        """Return the connection-state stream for `handle`."""

    async def connect(self, handle: PeripheralHandle, timeout: float) -> None:
        """Connect to `handle`, raising on failure or timeout."""

    async def disconnect(self, handle: PeripheralHandle) -> None:
        """Disconnect from `handle`."""

    async def discover_services(self, handle: PeripheralHandle) -> Sequence[GattService]:
        """Enumerate the services and characteristics of a connected peripheral."""

    async def write(
        self,
        handle: PeripheralHandle,
        characteristic: GattCharacteristic,
        data: bytes,
        *,
        response: bool,
    ) -> None:
        """Write `data` to `characteristic`; `response` requests an acknowledged write."""
