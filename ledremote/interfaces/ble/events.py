"""Publish state changes and user-visible errors for presentation layers."""

from typing import Any

from pubsub import pub

from ledremote.interfaces.ble.constants import logger
from ledremote.interfaces.ble.state import ConnectionState

TOPIC_STATE = "ledremote.state"
TOPIC_ERROR = "ledremote.error"
TOPIC_CONNECTION_STATE = "ledremote.connection.state"

__all__ = [
    "StatePublisher",
    "TOPIC_CONNECTION_STATE",
    "TOPIC_ERROR",
    "TOPIC_STATE",
]


class StatePublisher:
    """
    Sends presentation events through pypubsub on behalf of one controller.

    Every message carries ``interface`` so listeners can tell controllers apart.
    Boolean flags are published only when their value changes.
    """

    def __init__(self, interface: Any = None):
        self.interface = interface
        self._flags: dict = {}

    def flag(self, name: str, value: bool) -> None:
        """Publish ``name=value`` on TOPIC_STATE if it differs from the last value sent."""
        value = bool(value)
        if self._flags.get(name) == value:
            return
        self._flags[name] = value
        logger.debug("%s = %s", name, value)
        pub.sendMessage(TOPIC_STATE, name=name, value=value, interface=self.interface)

    def error(self, message: str) -> None:
        """Publish a user-visible error message."""
        logger.debug("User-visible error: %s", message)
        pub.sendMessage(TOPIC_ERROR, message=message, interface=self.interface)

    def connection_state(self, state: ConnectionState) -> None:
        pub.sendMessage(TOPIC_CONNECTION_STATE, state=state, interface=self.interface)
