"""Command-line entry point: ``python -m ledremote on|off|scan|status``."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from pubsub import pub
from tabulate import tabulate

from ledremote import __version__
from ledremote.interfaces.ble import (
    BLEBackend,
    BLEConfig,
    BLEError,
    BleakBackend,
    ConnectFailureError,
    DiscoveryMissError,
    LedRemote,
    PermissionDeniedError,
    TARGET_NAME,
    TOPIC_ERROR,
)
from ledremote.interfaces.ble.constants import TARGET_NAME_ENV

logger = logging.getLogger(__name__)


def _print_error(message, interface):
    """Show user-visible errors published by the controller."""
    print(f"Error: {message}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledremote",
        description="Toggle the LED on an ESP32 over Bluetooth Low Energy.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--name",
        default=os.environ.get(TARGET_NAME_ENV, TARGET_NAME),
        help=f"Advertised peripheral name (default: {TARGET_NAME}, or ${TARGET_NAME_ENV})",
    )
    parser.add_argument("--adapter", default=None, help="Host Bluetooth adapter, e.g. hci0")
    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=BLEConfig.SCAN_TIMEOUT,
        help="Scan window in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=BLEConfig.CONNECTION_TIMEOUT,
        help="Connect timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--adapter-timeout",
        type=float,
        default=None,
        help="Give up if the adapter is not powered on within this many seconds",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("on", help="Turn the LED on")
    subparsers.add_parser("off", help="Turn the LED off")
    subparsers.add_parser("scan", help="List nearby BLE advertisers")
    subparsers.add_parser("status", help="Show adapter and permission status")
    return parser


def _run(remote: LedRemote, args: argparse.Namespace) -> int:
    if not remote.initialize(adapter_timeout=args.adapter_timeout):
        raise PermissionDeniedError("Bluetooth capabilities were denied")

    if args.command == "status":
        rows = [
            ["adapter", remote.adapter_monitor.last_state.value],
            ["has_permissions", remote.has_permissions],
            ["is_connected", remote.is_connected],
        ]
        print(tabulate(rows, headers=["property", "value"]))
        return 0

    if args.command == "scan":
        devices = remote.list_devices()
        rows = [[d.name or "", d.address, "" if d.rssi is None else d.rssi] for d in devices]
        print(tabulate(rows, headers=["name", "address", "rssi"]))
        return 0

    handle = remote.start_scan()
    if handle is None:
        print(f"No device named {args.name} found", file=sys.stderr)
        return 1
    if not remote.wait_until_ready():
        if not remote.is_connected:
            raise ConnectFailureError(f"Could not connect to {handle.address}")
        raise DiscoveryMissError(f"LED characteristic not found on {handle.address}")

    ok = remote.led_on() if args.command == "on" else remote.led_off()
    remote.disconnect()
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None, backend: Optional[BLEBackend] = None) -> int:
    """
    Parse arguments, run one command and return the process exit status.

    Parameters:
        argv (Optional[List[str]]): Arguments without the program name; defaults to sys.argv[1:].
        backend (Optional[BLEBackend]): BLE stack to use; defaults to bleak on `--adapter`.
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if backend is None:
        backend = BleakBackend(adapter=args.adapter)

    pub.subscribe(_print_error, TOPIC_ERROR)
    try:
        with LedRemote(
            backend,
            target_name=args.name,
            scan_timeout=args.scan_timeout,
            connect_timeout=args.connect_timeout,
        ) as remote:
            return _run(remote, args)
    except KeyboardInterrupt:
        return 130
    except BLEError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        pub.unsubscribe(_print_error, TOPIC_ERROR)


if __name__ == "__main__":
    sys.exit(main())
