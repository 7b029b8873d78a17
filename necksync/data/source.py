"""
Sensor source abstraction and simulated headset.

Defines the contract the pipeline consumes (availability check plus a
subscription delivering orientation samples or errors) and a simulated
headset for testing and development. Live sources inherit from SensorSource.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging
import threading
import time

import numpy as np

from .models import OrientationSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[OrientationSample], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """
    Handle for one subscriber of a sensor source.

    cancel() is idempotent; a cancelled subscription receives nothing more.
    """

    def __init__(self, source: "SensorSource", on_sample: SampleCallback, on_error: ErrorCallback):
        self.source = source
        self.on_sample = on_sample
        self.on_error = on_error
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.source._unsubscribe(self)


class SensorSource(ABC):
    """
    Abstract base class for orientation sensor sources.

    Subclasses implement is_available() and decide when to call _deliver()
    and _deliver_error(); subscription bookkeeping is shared.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._sub_lock = threading.Lock()

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the headset currently reports motion capability."""
        pass

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Subscription:
        """Register callbacks for samples and delivery errors."""
        subscription = Subscription(self, on_sample, on_error)
        with self._sub_lock:
            self._subscriptions.append(subscription)
            first = len(self._subscriptions) == 1
        if first:
            self._on_first_subscriber()
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._sub_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            empty = not self._subscriptions
        if empty:
            self._on_last_unsubscribe()

    @property
    def subscriber_count(self) -> int:
        with self._sub_lock:
            return len(self._subscriptions)

    def _deliver(self, sample: OrientationSample) -> None:
        with self._sub_lock:
            targets = [s for s in self._subscriptions if s.active]
        for subscription in targets:
            subscription.on_sample(sample)

    def _deliver_error(self, error: Exception) -> None:
        with self._sub_lock:
            targets = [s for s in self._subscriptions if s.active]
        for subscription in targets:
            subscription.on_error(error)

    def _on_first_subscriber(self) -> None:
        """Hook: start producing samples."""

    def _on_last_unsubscribe(self) -> None:
        """Hook: stop producing samples."""

    def close(self) -> None:
        """Cancel all subscriptions and release resources."""
        with self._sub_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.cancel()


class SimulatedHeadsetSource(SensorSource):
    """
    Simulated headset for testing and development.

    Produces upright head motion with Gaussian noise and periodic slouch
    episodes where pitch settles around ``slouch_pitch``.

    With ``autostream`` the source emits on a background thread at
    ``sample_rate`` while anyone is subscribed; otherwise call emit().
    """

    SAMPLE_RATE = 60.0  # Hz

    def __init__(
        self,
        sample_rate: float = SAMPLE_RATE,
        noise_level: float = 1.0,           # degrees std dev
        slouch_interval: float = 30.0,      # seconds between slouch episodes
        slouch_duration: float = 8.0,       # seconds per episode
        slouch_pitch: float = 30.0,         # degrees during an episode
        available: bool = True,
        autostream: bool = False,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize simulated headset.

        Args:
            sample_rate: Emission rate in Hz when streaming
            noise_level: Standard deviation of angular noise (degrees)
            slouch_interval: Seconds between the starts of slouch episodes
            slouch_duration: Length of each slouch episode (seconds)
            slouch_pitch: Pitch held during a slouch episode (degrees)
            available: Initial availability
            autostream: Emit on a background thread while subscribed
            seed: Seed for the noise generator
            clock: Time source for sample timestamps
        """
        super().__init__()
        self.sample_rate = sample_rate
        self.noise_level = noise_level
        self.slouch_interval = slouch_interval
        self.slouch_duration = slouch_duration
        self.slouch_pitch = slouch_pitch
        self.autostream = autostream
        self.clock = clock

        self._available = available
        self._rng = np.random.default_rng(seed)
        self._start_time: Optional[float] = None
        self._yaw_drift = 0.0

        self._stream_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def is_available(self) -> bool:
        return self._available

    def set_available(self, available: bool) -> None:
        """Simulate the headset being put on or taken off."""
        self._available = available

    def generate(self, now: Optional[float] = None) -> OrientationSample:
        """Generate the next sample without delivering it."""
        now = self.clock() if now is None else now
        if self._start_time is None:
            self._start_time = now
        elapsed = now - self._start_time

        in_slouch = (
            self.slouch_interval > 0
            and elapsed % self.slouch_interval >= self.slouch_interval - self.slouch_duration
        )
        base_pitch = self.slouch_pitch if in_slouch else 0.0

        noise = self._rng.normal(0.0, self.noise_level, 3)
        self._yaw_drift += float(self._rng.normal(0.0, 0.05))

        return OrientationSample(
            pitch_deg=float(base_pitch + noise[0]),
            roll_deg=float(noise[1]),
            yaw_deg=float(self._yaw_drift + noise[2]),
            timestamp=now,
        )

    def emit(self, sample: Optional[OrientationSample] = None) -> Optional[OrientationSample]:
        """
        Deliver one sample to subscribers.

        Nothing is delivered while the headset is unavailable.

        Args:
            sample: Sample to deliver (generated if None)

        Returns:
            The delivered sample, or None when unavailable
        """
        if not self._available:
            return None
        if sample is None:
            sample = self.generate()
        self._deliver(sample)
        return sample

    def emit_error(self, error: Exception) -> None:
        """Deliver a delivery error to subscribers."""
        self._deliver_error(error)

    def _on_first_subscriber(self) -> None:
        if not self.autostream or self._stream_thread is not None:
            return
        self._stop_event.clear()
        self._stream_thread = threading.Thread(
            target=self._stream_loop, name="simulated-headset", daemon=True
        )
        self._stream_thread.start()

    def _on_last_unsubscribe(self) -> None:
        thread = self._stream_thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._stream_thread = None

    def _stream_loop(self) -> None:
        interval = 1.0 / self.sample_rate
        while not self._stop_event.wait(interval):
            self.emit()
