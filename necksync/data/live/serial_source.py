import logging
import re
import threading
import time
from typing import Callable, Optional

import serial

from ..models import OrientationSample
from .base import LiveSensorSource

logger = logging.getLogger(__name__)

LINE_REGEX = re.compile(
    r"Roll=(?P<roll>-?\d+\.?\d*)\s+"
    r"Pitch=(?P<pitch>-?\d+\.?\d*)"
    r"(?:\s+Yaw=(?P<yaw>-?\d+\.?\d*))?"
)

# Alternative regex for firmware that prints an ANGLES prefix
LINE_REGEX_ALT = re.compile(
    r"ANGLES \(deg\):\s+"
    r"Pitch=(?P<pitch>-?\d+\.?\d*)\s+"
    r"Roll=(?P<roll>-?\d+\.?\d*)"
    r"(?:\s+Yaw=(?P<yaw>-?\d+\.?\d*))?"
)


def parse_line(line: str, timestamp: float) -> Optional[OrientationSample]:
    """Parse one line of headset firmware output. Angles are in degrees."""
    match = LINE_REGEX.search(line) or LINE_REGEX_ALT.search(line)
    if not match:
        return None

    yaw = match.group("yaw")
    return OrientationSample(
        pitch_deg=float(match.group("pitch")),
        roll_deg=float(match.group("roll")),
        yaw_deg=float(yaw) if yaw is not None else 0.0,
        timestamp=timestamp,
    )


class SerialOrientationSensor(LiveSensorSource):
    """
    Head tracker streaming angle lines over a serial port.

    A port that failed or was never opened is reopened by is_available(),
    at most once per ``reopen_interval`` seconds, so a restart picks up a
    replugged tracker.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        timeout: float = 1.0,
        reset_delay: float = 2.0,       # board resets when the port opens
        reopen_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.reset_delay = reset_delay
        self.reopen_interval = reopen_interval
        self.clock = clock
        self.ser = None
        self._last_open_attempt: Optional[float] = None
        self._open_lock = threading.Lock()

    def connect(self):
        self._last_open_attempt = self.clock()
        self.ser = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
        if self.reset_delay > 0:
            time.sleep(self.reset_delay)
        self.ser.reset_input_buffer()
        logger.info("Opened %s at %d baud", self.port, self.baudrate)

    def disconnect(self):
        if self.ser:
            self.ser.close()
            self.ser = None

    def is_available(self) -> bool:
        if self.ser is None:
            self._try_reopen()
        return self.ser is not None and self.ser.is_open

    def _try_reopen(self) -> None:
        # Reader and watchdog threads both poll availability
        if not self._open_lock.acquire(blocking=False):
            return
        try:
            last = self._last_open_attempt
            if self.ser is not None or (last is not None and self.clock() - last < self.reopen_interval):
                return
            self.connect()
        except serial.SerialException as e:
            self.disconnect()
            logger.debug("Could not reopen %s: %s", self.port, e)
        finally:
            self._open_lock.release()

    def read(self) -> Optional[OrientationSample]:
        if self.ser is None:
            raise serial.SerialException(f"{self.port} is not open")

        try:
            line = self.ser.readline().decode(errors="ignore")
        except serial.SerialException:
            self.disconnect()
            raise

        if line.strip():
            logger.debug("[RAW] %s", line.strip())

        return parse_line(line, self.clock())
