"""Control an ESP32 LED peripheral over Bluetooth Low Energy."""

__version__ = "0.3.0"
