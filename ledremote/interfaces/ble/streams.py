"""Event streams with explicitly cancellable subscriptions."""

from threading import RLock
from typing import Callable, Dict, Generic, Optional, TypeVar

from ledremote.interfaces.ble.constants import logger

T = TypeVar("T")

__all__ = ["EventStream", "Subscription"]


class Subscription(Generic[T]):
    """
    A listener registration on an `EventStream`.

    Cancelling is idempotent. Only the first `cancel()` call returns True, which lets
    competing code paths (e.g. a scan match and a scan timeout) decide a single winner.
    """

    def __init__(self, stream: "EventStream[T]", token: int, callback: Callable[[T], None]):
        self._stream = stream
        self._token = token
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        """Whether events are still delivered to the callback."""
        return self._active

    def cancel(self) -> bool:
        """
        Stop delivering events to this subscription.

        Returns:
            bool: True if this call deactivated the subscription, False if it was already cancelled.
        """
        with self._stream.lock:
            if not self._active:
                return False
            self._active = False
        self._stream._remove(self._token)
        return True

    def _deliver(self, value: T) -> None:
        if not self._active:
            return
        self._callback(value)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, _type, _value, _traceback):
        self.cancel()


class EventStream(Generic[T]):
    """
    Minimal observable used for scan results and connection-state changes.

    With ``replay=True`` the most recent value is delivered to new subscribers
    immediately, mirroring stacks that report the current state on listen.
    """

    def __init__(self, name: str, *, replay: bool = False):
        self.name = name
        self.replay = replay
        self._lock = RLock()
        self._subscriptions: Dict[int, Subscription[T]] = {}
        self._counter = 0
        self._latest: Optional[T] = None
        self._has_latest = False

    @property
    def lock(self) -> RLock:
        return self._lock

    @property
    def latest(self) -> Optional[T]:
        """Most recently emitted value, or None."""
        with self._lock:
            return self._latest

    def subscribe(self, callback: Callable[[T], None]) -> Subscription[T]:
        """
        Register `callback` and return the subscription controlling it.

        Parameters:
            callback (Callable[[T], None]): Invoked with each emitted value.

        Returns:
            Subscription[T]: Handle used to cancel delivery.
        """
        with self._lock:
            token = self._counter
            self._counter += 1
            subscription = Subscription(self, token, callback)
            self._subscriptions[token] = subscription
            replay_value = self._latest if (self.replay and self._has_latest) else None
            should_replay = self.replay and self._has_latest
        if should_replay:
            subscription._deliver(replay_value)  # type: ignore[arg-type]
        return subscription

    def emit(self, value: T) -> None:
        """
        Deliver `value` to every active subscription in registration order.

        A subscription cancelled by an earlier callback in the same emit does not
        receive the value. Listener errors are logged and do not stop delivery.
        """
        with self._lock:
            self._latest = value
            self._has_latest = True
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            try:
                subscription._deliver(value)
            except Exception:  # noqa: BLE001 - listener errors are logged only
                logger.exception("Error in %s listener", self.name)

    def cancel_all(self) -> None:
        """Cancel every subscription on this stream."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            subscription.cancel()

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subscriptions.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
