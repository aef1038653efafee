"""Error types and error handling utilities for BLE operations."""

import asyncio
from concurrent.futures import TimeoutError as FutureTimeoutError

from bleak.exc import BleakError

from ledremote.interfaces.ble.constants import logger

__all__ = [
    "AdapterUnavailableError",
    "BLEError",
    "BLEErrorHandler",
    "ConnectFailureError",
    "DiscoveryMissError",
    "PermissionDeniedError",
    "WriteFailureError",
]


class BLEError(Exception):
    """An exception class for BLE errors."""


class PermissionDeniedError(BLEError):
    """Raised when one or more required Bluetooth capabilities are refused."""


class AdapterUnavailableError(BLEError):
    """Raised when the Bluetooth radio never reports powered-on."""


class ConnectFailureError(BLEError):
    """Raised when connecting to the peripheral times out or is rejected."""


class DiscoveryMissError(BLEError):
    """Raised when the LED service or characteristic is absent."""


class WriteFailureError(BLEError):
    """Raised when a command write fails."""


# Failures the BLE stack produces in normal operation; logged without a traceback.
_EXPECTED_ERRORS = (BleakError, BLEError, FutureTimeoutError, asyncio.TimeoutError)


def _log_failure(error: BaseException, error_msg: str) -> None:
    if isinstance(error, _EXPECTED_ERRORS):
        logger.debug("%s: %s", error_msg, error)
    else:
        logger.error("%s", error_msg, exc_info=error)


class BLEErrorHandler:
    """
    Shared try/except shapes for the LED controller.

    Link loss, adapter trouble and timeouts are routine for a battery-powered
    peripheral, so they are logged at debug level; anything else is a bug and
    is logged with its traceback. Teardown helpers never raise, and the async
    helpers never swallow cancellation of the calling task.
    """

    @staticmethod
    def safe_execute(
        func,
        default_return=None,
        log_error: bool = True,
        error_msg: str = "Error in operation",
        reraise: bool = False,
    ):
        """
        Call `func()` and return its result, or `default_return` if it raises.

        Parameters:
            func (callable): Zero-argument callable, e.g. the event loop's `run_forever`.
            default_return: Returned when `func` raises and `reraise` is False.
            log_error (bool): Log the failure (see class docstring for levels).
            error_msg (str): Log message prefix.
            reraise (bool): Propagate the exception after logging it.
        """
        try:
            return func()
        except Exception as e:  # noqa: BLE001 - callers choose via reraise
            if log_error:
                _log_failure(e, error_msg)
            if reraise:
                raise
            return default_return

    @staticmethod
    async def safe_await(
        awaitable,
        default_return=None,
        log_error: bool = True,
        error_msg: str = "Error in operation",
    ):
        """Await `awaitable` and return its result, or `default_return` if it raises."""
        try:
            return await awaitable
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - the default stands in for the result
            if log_error:
                _log_failure(e, error_msg)
            return default_return

    @staticmethod
    def safe_cleanup(func, cleanup_name: str = "cleanup operation"):
        """Run a teardown callable; failures are logged at debug level and dropped."""
        try:
            func()
        except Exception as e:  # noqa: BLE001 - cleanup paths must not raise
            logger.debug("Error during %s: %s", cleanup_name, e)

    @staticmethod
    async def safe_cleanup_async(awaitable, cleanup_name: str = "cleanup operation"):
        """Async counterpart of `safe_cleanup`."""
        try:
            await awaitable
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - cleanup paths must not raise
            logger.debug("Error during %s: %s", cleanup_name, e)
