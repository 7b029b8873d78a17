"""
Live sensor connection modules.

Each module inherits from LiveSensorSource and implements:
- connect() / disconnect(): open and release the device
- read() -> OrientationSample: block for the next sample
"""

from .base import LiveSensorSource
from .serial_source import SerialOrientationSensor, parse_line

__all__ = [
    "LiveSensorSource",
    "SerialOrientationSensor",
    "parse_line",
]
