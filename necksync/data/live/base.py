# data/live/base.py
from abc import abstractmethod
from typing import Optional
import logging
import threading

from ..models import OrientationSample
from ..source import SensorSource

logger = logging.getLogger(__name__)


class LiveSensorSource(SensorSource):
    """
    Base class for hardware-backed orientation sources.

    Subclasses open and close the device and read one sample at a time;
    this class runs the reader thread while anyone is subscribed.
    """

    def __init__(self):
        super().__init__()
        self._reader: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @abstractmethod
    def connect(self):
        pass

    @abstractmethod
    def disconnect(self):
        pass

    @abstractmethod
    def read(self) -> Optional[OrientationSample]:
        """
        Block for the next sample.

        Return None for lines that carry no orientation data. Raise to
        report a delivery error.
        """
        pass

    def _on_first_subscriber(self) -> None:
        if self._reader is not None:
            return
        self._stop_event.clear()
        self._reader = threading.Thread(target=self._read_loop, name=type(self).__name__, daemon=True)
        self._reader.start()

    def _on_last_unsubscribe(self) -> None:
        reader = self._reader
        if reader is None:
            return
        self._stop_event.set()
        if reader is not threading.current_thread():
            reader.join(timeout=2.0)
        self._reader = None

    def _read_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                sample = self.read()
            except Exception as e:
                logger.warning("%s read failed: %s", type(self).__name__, e)
                self._deliver_error(e)
                if not self.is_available():
                    break
                continue
            if sample is not None:
                self._deliver(sample)

    def close(self) -> None:
        super().close()
        self.disconnect()
