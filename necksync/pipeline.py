"""
Motion-to-posture pipeline.

Coordinates all core components:
- Sample delivery from the headset source
- Pitch smoothing
- Posture classification
- Session statistics
- Session recording
- Snapshot publication to the rendering layer

Samples are processed one at a time under a single lock, so snapshots are
published in arrival order and never interleave.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from .config import PipelineConfig
from .data.models import ConnectionState, FilteredOrientation, OrientationSample, PipelineSnapshot
from .data.records import (
    JsonSessionStore,
    PostureSession,
    SessionRecorder,
    SessionStore,
)
from .data.source import SensorSource, SimulatedHeadsetSource, Subscription
from .errors import NeckSyncError, SensorDeliveryError, SensorUnavailable
from .filters import SampleFilter
from .session_stats import SessionAccumulator
from .state_machines import ConnectionStateMachine, PostureClassifier

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[PipelineSnapshot], None]


class Watchdog:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="posture-watchdog", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.callback()


class MotionPipeline:
    """
    Live posture coach for one headset.

    Public operations never raise; failures show up as status text,
    ``last_error`` and the connection state of published snapshots.
    """

    def __init__(
        self,
        source: SensorSource,
        recorder: Optional[SessionRecorder] = None,
        config: Optional[PipelineConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the pipeline.

        Args:
            source: Headset sensor source (simulated or live)
            recorder: Session recorder with an injected store (None to skip persistence)
            config: Thresholds and timing (None for defaults)
            clock: Wall-clock time source, in Unix seconds
        """
        self.config = config or PipelineConfig()
        self.source = source
        self.recorder = recorder
        self.clock = clock

        now = clock()

        # Processing layer
        self.sample_filter = SampleFilter(self.config.filter_alpha)
        self.classifier = PostureClassifier(
            warning_threshold=self.config.warning_threshold,
            promotion_window=self.config.promotion_window,
            now=now,
        )
        self.accumulator = SessionAccumulator(
            poor_posture_threshold=self.config.poor_posture_threshold,
            history_size=self.config.history_size,
            now=now,
        )
        self.connection = ConnectionStateMachine()

        self.running = False
        self.last_error: Optional[NeckSyncError] = None

        self._lock = threading.RLock()
        self._listeners: List[SnapshotListener] = []
        self._subscription: Optional[Subscription] = None
        self._watchdog: Optional[Watchdog] = None
        self._pending_start: Optional[threading.Timer] = None
        self._session_open = False
        self._sample_count = 0

        self._orientation = FilteredOrientation(0.0, 0.0, 0.0, now)
        self._snapshot = PipelineSnapshot.initial()

    # ------------------------------------------------------------------ #
    # Rendering collaborator
    # ------------------------------------------------------------------ #
    def add_listener(self, listener: SnapshotListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def snapshot(self) -> PipelineSnapshot:
        """Latest published snapshot."""
        with self._lock:
            return self._snapshot

    @property
    def orientation(self) -> FilteredOrientation:
        """Latest smoothed orientation."""
        with self._lock:
            return self._orientation

    # ------------------------------------------------------------------ #
    # Control operations
    # ------------------------------------------------------------------ #
    def start(self) -> bool:
        """
        Start receiving samples.

        Returns:
            True if the pipeline is running afterwards
        """
        with self._lock:
            self._pending_start = None
            if self.running:
                return True

            if not self.source.is_available():
                self.last_error = SensorUnavailable()
                self.connection.unavailable(str(self.last_error))
                logger.warning("Cannot start: %s", self.last_error)
                self._publish()
                return False

            now = self.clock()
            if not self._session_open:
                self._open_session(now)

            self.last_error = None
            self.connection.begin_connecting()
            self.running = True
            self._subscription = self.source.subscribe(self.on_sample, self.on_error)

            self._watchdog = Watchdog(self.config.watchdog_interval, self.check_device_status)
            self._watchdog.start()

            logger.info("Motion pipeline started")
            self._publish()
            return True

    def stop(self, end_session: bool = True) -> Optional[PostureSession]:
        """
        Stop receiving samples. Safe to call repeatedly.

        Args:
            end_session: Close and persist the active session

        Returns:
            The closed session, if one was closed
        """
        with self._lock:
            pending, self._pending_start = self._pending_start, None
            subscription, self._subscription = self._subscription, None
            watchdog, self._watchdog = self._watchdog, None
            was_running = self.running
            self.running = False

            closed = None
            if end_session and self._session_open:
                closed = self._close_session(self.clock())

            if self.connection.stopped():
                self._publish()

        # Released outside the lock: source and watchdog threads may be
        # waiting on it to deliver their last callback.
        if pending is not None:
            pending.cancel()
        if subscription is not None:
            subscription.cancel()
        if watchdog is not None:
            watchdog.stop()

        if was_running:
            logger.info("Motion pipeline stopped")
        return closed

    def restart(self) -> Optional[threading.Timer]:
        """
        Stop, then start again after ``restart_delay``.

        The active session is kept. The delay lets the headset release its
        handle before it is re-acquired; the start runs on a timer thread so
        the caller is not blocked.

        Returns:
            The pending timer, or None when the delay is zero
        """
        logger.info("Restarting motion pipeline")
        self.stop(end_session=False)

        delay = self.config.restart_delay
        if delay <= 0:
            self.start()
            return None

        timer = threading.Timer(delay, lambda: self._start_if_pending(timer))
        timer.daemon = True
        with self._lock:
            self._pending_start = timer
        timer.start()
        return timer

    def _start_if_pending(self, timer: threading.Timer) -> None:
        with self._lock:
            # stop() or a direct start() may have superseded this timer
            if self._pending_start is not timer:
                logger.debug("Skipping superseded restart")
                return
            self.start()

    def reset_session(self) -> None:
        """Clear session statistics without touching the connection."""
        with self._lock:
            now = self.clock()
            self.accumulator.reset(now)
            self.classifier.reset(now)
            self._publish()

    # ------------------------------------------------------------------ #
    # Sensor callbacks
    # ------------------------------------------------------------------ #
    def on_sample(self, sample: OrientationSample) -> Optional[PipelineSnapshot]:
        """
        Process a single orientation sample.

        Returns:
            The published snapshot, or None if the pipeline is stopped
        """
        with self._lock:
            if not self.running:
                return None

            now = self.clock()

            orientation = self.sample_filter.filter_sample(sample, self._orientation.pitch_deg)
            self.classifier.update(orientation.pitch_deg, now)
            self.accumulator.tick(orientation.pitch_deg, now)

            self._orientation = orientation
            self._sample_count += 1

            if self.connection.state != ConnectionState.CONNECTED:
                logger.info("Headset connected")
                self.last_error = None
            self.connection.sample_received()

            return self._publish(now)

    def on_error(self, error: Exception) -> None:
        """Record a delivery error; the next good sample reconnects."""
        with self._lock:
            if not self.running:
                return

            if not isinstance(error, SensorDeliveryError):
                error = SensorDeliveryError(str(error), cause=error)
            self.last_error = error

            logger.warning("Sensor delivery error: %s", error)
            if self.connection.delivery_failed(str(error)):
                self._publish()

    def check_device_status(self) -> None:
        """Watchdog tick: detect a headset that went away between samples."""
        with self._lock:
            if not self.running:
                return
            if not self.source.is_available() and self.connection.watchdog_miss():
                logger.warning("Headset disconnected")
                self._publish()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _open_session(self, now: float) -> None:
        self.accumulator.reset(now)
        self.classifier.reset(now)
        if self.recorder is not None:
            self.recorder.start_new_session(now)
        self._session_open = True

    def _close_session(self, now: float) -> Optional[PostureSession]:
        self._session_open = False
        if self.recorder is None:
            return None
        return self.recorder.end_current_session(self.accumulator.poor_posture_duration, now)

    def _publish(self, now: Optional[float] = None) -> PipelineSnapshot:
        stats = self.accumulator.stats
        snapshot = PipelineSnapshot(
            pitch=self._orientation.pitch_deg,
            roll=self._orientation.roll_deg,
            yaw=self._orientation.yaw_deg,
            connection_state=self.connection.state,
            connection_status=self.connection.status,
            posture_state=self.classifier.state,
            pitch_history=self.accumulator.history,
            poor_posture_duration=stats.poor_posture_duration,
            poor_posture_percentage=stats.poor_posture_percentage,
            total_session_time=stats.total_session_time,
            timestamp=self.clock() if now is None else now,
        )
        self._snapshot = snapshot

        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)

        return snapshot

    def get_status(self) -> dict:
        """Get current pipeline status."""
        with self._lock:
            stats = self.accumulator.stats
            status = {
                "running": self.running,
                "samples_processed": self._sample_count,
                "connection": self.connection.get_status(),
                "posture": self.classifier.get_status(),
                "total_session_time": stats.total_session_time,
                "poor_posture_duration": stats.poor_posture_duration,
                "poor_posture_percentage": stats.poor_posture_percentage,
                "last_error": str(self.last_error) if self.last_error else None,
            }

            if self.recorder is not None:
                current = self.recorder.current_session
                status["session_id"] = str(current.id) if current else None
                write_error = self.recorder.last_write_error
                status["last_write_error"] = str(write_error) if write_error else None

            return status


def create_simulated_pipeline(
    config: Optional[PipelineConfig] = None,
    store: Optional[SessionStore] = None,
    **source_kwargs,
) -> MotionPipeline:
    """
    Create a pipeline fed by a simulated headset.

    Convenience function for testing and development.

    Args:
        config: Pipeline configuration
        store: Session store (None to skip persistence)
        **source_kwargs: Passed to SimulatedHeadsetSource

    Returns:
        Configured MotionPipeline instance
    """
    config = config or PipelineConfig()
    source_kwargs.setdefault("sample_rate", config.sample_rate)
    source_kwargs.setdefault("autostream", True)
    source = SimulatedHeadsetSource(**source_kwargs)

    recorder = SessionRecorder(store) if store is not None else None
    return MotionPipeline(source=source, recorder=recorder, config=config)


def create_serial_pipeline(
    port: str,
    baudrate: int = 115200,
    config: Optional[PipelineConfig] = None,
    sessions_path: Optional[Union[Path, str]] = None,
) -> MotionPipeline:
    """
    Create a pipeline reading a head tracker on a serial port.

    A port that cannot be opened is logged; start() then reports the
    device as unavailable and restart() can be used once it is plugged in.

    Args:
        port: Serial port name
        baudrate: Serial baud rate
        config: Pipeline configuration
        sessions_path: JSON file for finished sessions (None to skip persistence)
    """
    import serial

    from .data.live.serial_source import SerialOrientationSensor

    sensor = SerialOrientationSensor(port=port, baudrate=baudrate)
    try:
        sensor.connect()
    except serial.SerialException as e:
        logger.warning("Could not open %s: %s", port, e)

    recorder = SessionRecorder(JsonSessionStore(sessions_path)) if sessions_path else None
    return MotionPipeline(source=sensor, recorder=recorder, config=config)
