"""Utility functions for BLE operations."""

import asyncio
from typing import Optional

from ledremote.interfaces.ble.constants import ERROR_TIMEOUT
from ledremote.interfaces.ble.errors import BLEError


async def with_timeout(awaitable, timeout: Optional[float], label: str, error_class=BLEError):
    """
    Await an awaitable, applying an optional timeout.

    Parameters:
        awaitable: An awaitable to execute.
        timeout (Optional[float]): Maximum seconds to wait; if None, wait indefinitely.
        label (str): Short description used in the timeout error message.
        error_class (type): BLEError subclass raised on timeout.

    Returns:
        The result returned by the awaitable.

    Raises:
        BLEError: If the awaitable does not complete before the timeout elapses.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise error_class(ERROR_TIMEOUT.format(label, timeout)) from exc


def normalize_uuid(uuid: Optional[str]) -> str:
    """Return `uuid` as a stripped lowercase string for comparisons."""
    return str(uuid or "").strip().lower()
