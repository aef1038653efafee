"""
Example that blinks the ESP32 LED a few times and reports state changes.

It shows the controller's presentation events:
- `ledremote.state` carries `has_permissions`, `is_scanning` and `is_connected`
- `ledremote.error` carries the messages a UI would show to the user

Run with the board powered and advertising as ESP32_LED (or pass --name).
"""
import argparse
import logging
import time

from pubsub import pub

from ledremote.interfaces.ble import TOPIC_ERROR, TOPIC_STATE, LedRemote

logger = logging.getLogger(__name__)


def on_state(name, value, interface):
    """Log each boolean the controller publishes."""
    logger.info("%s -> %s", name, value)


def on_error(message, interface):
    logger.warning("User-visible error: %s", message)


def main():
    """
    Scan for the board, blink its LED `--count` times and disconnect.
    """
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Blink the ESP32 LED over BLE.")
    parser.add_argument("--name", default="ESP32_LED", help="Advertised name of the board.")
    parser.add_argument("--count", type=int, default=3, help="Number of blinks.")
    parser.add_argument("--interval", type=float, default=0.5, help="Seconds between toggles.")
    args = parser.parse_args()

    pub.subscribe(on_state, TOPIC_STATE)
    pub.subscribe(on_error, TOPIC_ERROR)

    with LedRemote(target_name=args.name) as remote:
        if not remote.initialize():
            return
        if remote.start_scan() is None:
            logger.info("No board named %s nearby", args.name)
            return
        if not remote.wait_until_ready():
            logger.info("Board found but the LED characteristic is unavailable")
            return
        try:
            for _ in range(args.count):
                if not remote.led_on():
                    break
                time.sleep(args.interval)
                if not remote.led_off():
                    break
                time.sleep(args.interval)
        except KeyboardInterrupt:
            logger.info("Interrupted")


if __name__ == "__main__":
    main()
