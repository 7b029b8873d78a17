"""
Tests for the motion pipeline orchestrator.
"""

import time

import pytest

from necksync.config import PipelineConfig
from necksync.data.models import AlertState, ConnectionState, FilteredOrientation, GoodState, WarningState
from necksync.data.records import InMemorySessionStore, SessionRecorder, SessionStore
from necksync.data.source import SimulatedHeadsetSource
from necksync.errors import PersistenceWriteFailure, SensorDeliveryError, SensorUnavailable
from necksync.pipeline import MotionPipeline, Watchdog, create_simulated_pipeline

from .conftest import make_sample


@pytest.fixture
def source():
    return SimulatedHeadsetSource(autostream=False, seed=7)


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def pipeline(source, store, clock, unfiltered_config):
    p = MotionPipeline(
        source=source,
        recorder=SessionRecorder(store, clock=clock),
        config=unfiltered_config,
        clock=clock,
    )
    yield p
    p.stop()


def feed(source, clock, pitches, step=1.0):
    for pitch in pitches:
        clock.advance(step)
        source.emit(make_sample(pitch, clock.now))


class TestLifecycle:
    """Tests for start/stop/restart."""

    def test_initial_snapshot(self, pipeline):
        snapshot = pipeline.snapshot()
        assert snapshot.pitch == 0.0
        assert snapshot.roll == 0.0
        assert snapshot.yaw == 0.0
        assert not snapshot.connected
        assert snapshot.connection_status == "Not started"
        assert snapshot.pitch_history == ()
        assert isinstance(snapshot.posture_state, GoodState)

    def test_start_subscribes_and_connects_on_first_sample(self, pipeline, source):
        assert pipeline.start()
        assert pipeline.running
        assert source.subscriber_count == 1
        assert pipeline.snapshot().connection_state == ConnectionState.CONNECTING
        assert pipeline.snapshot().connection_status == "Starting motion updates"

        source.emit(make_sample(10.0, roll=3.0, yaw=-4.0))
        snapshot = pipeline.snapshot()
        assert snapshot.connected
        assert snapshot.connection_status == "Connected"
        assert snapshot.roll == 3.0
        assert snapshot.yaw == -4.0

    def test_start_twice_keeps_one_subscription(self, pipeline, source):
        pipeline.start()
        pipeline.start()
        assert source.subscriber_count == 1

    def test_unavailable_sensor(self, pipeline, source):
        source.set_available(False)

        assert not pipeline.start()
        assert not pipeline.running
        assert isinstance(pipeline.last_error, SensorUnavailable)
        snapshot = pipeline.snapshot()
        assert snapshot.connection_status == "Device motion not available"
        assert not snapshot.connected
        assert source.subscriber_count == 0

    def test_restart_recovers_from_unavailable(self, pipeline, source, clock):
        """Unavailable at start, restart later, connected on first sample."""
        source.set_available(False)
        pipeline.start()

        source.set_available(True)
        assert pipeline.restart() is None
        assert pipeline.running
        assert not pipeline.snapshot().connected

        feed(source, clock, [5.0])
        assert pipeline.snapshot().connected
        assert pipeline.last_error is None

    def test_stop_is_idempotent(self, pipeline, source):
        published = []
        pipeline.add_listener(published.append)
        pipeline.start()
        source.emit(make_sample(5.0))

        pipeline.stop()
        after_first = pipeline.snapshot()
        count = len(published)

        pipeline.stop()
        assert pipeline.snapshot() == after_first
        assert len(published) == count
        assert after_first.connection_status == "Stopped"
        assert not after_first.connected
        assert source.subscriber_count == 0

    def test_stop_before_start(self, pipeline, store):
        assert pipeline.stop() is None
        assert pipeline.snapshot().connection_status == "Stopped"
        assert store.list_sessions() == []

    def test_samples_after_stop_are_ignored(self, pipeline, source):
        pipeline.start()
        source.emit(make_sample(5.0))
        pipeline.stop()

        assert pipeline.on_sample(make_sample(50.0)) is None
        assert pipeline.snapshot().pitch == 5.0

    def test_restart_keeps_session(self, pipeline, source):
        pipeline.start()
        session = pipeline.recorder.current_session

        pipeline.restart()
        assert pipeline.recorder.current_session == session

    def test_restart_with_delay_runs_on_timer(self, source, clock):
        config = PipelineConfig(watchdog_interval=3600.0, restart_delay=0.01)
        p = MotionPipeline(source=source, config=config, clock=clock)
        p.start()

        timer = p.restart()
        assert timer is not None
        timer.join(timeout=2.0)
        assert p.running
        p.stop()

    def test_stop_cancels_pending_restart(self, source, clock):
        config = PipelineConfig(watchdog_interval=3600.0, restart_delay=5.0)
        p = MotionPipeline(source=source, config=config, clock=clock)
        p.start()

        timer = p.restart()
        p.stop()
        timer.join(timeout=2.0)
        assert not p.running

    def test_restart_timer_firing_after_stop_does_not_start(self, source, clock):
        """A timer that fired while stop() held the lock must not start."""
        config = PipelineConfig(watchdog_interval=3600.0, restart_delay=5.0)
        p = MotionPipeline(source=source, config=config, clock=clock)
        p.start()

        timer = p.restart()
        p.stop()
        timer.function()

        assert not p.running
        assert source.subscriber_count == 0

    def test_direct_start_supersedes_pending_restart(self, source, clock):
        config = PipelineConfig(watchdog_interval=3600.0, restart_delay=5.0)
        p = MotionPipeline(source=source, config=config, clock=clock)
        p.start()

        timer = p.restart()
        assert p.start()
        timer.cancel()
        timer.function()

        assert p.running
        assert source.subscriber_count == 1
        p.stop()


class TestProcessing:
    """Tests for per-sample processing."""

    def test_pitch_is_smoothed(self, source, clock):
        p = MotionPipeline(source=source, config=PipelineConfig(watchdog_interval=3600.0), clock=clock)
        p.start()
        source.emit(make_sample(10.0))
        assert p.snapshot().pitch == pytest.approx(2.0)
        source.emit(make_sample(10.0))
        assert p.snapshot().pitch == pytest.approx(3.6)
        p.stop()

    def test_roll_and_yaw_pass_through(self, source, clock):
        p = MotionPipeline(source=source, config=PipelineConfig(watchdog_interval=3600.0), clock=clock)
        p.start()
        source.emit(make_sample(10.0, roll=12.0, yaw=-30.0))
        snapshot = p.snapshot()
        assert snapshot.roll == 12.0
        assert snapshot.yaw == -30.0
        p.stop()

    def test_orientation_tracks_filtered_sample(self, source, clock):
        p = MotionPipeline(source=source, config=PipelineConfig(watchdog_interval=3600.0), clock=clock)
        p.start()
        source.emit(make_sample(10.0, roll=4.0, yaw=-8.0))

        orientation = p.orientation
        assert isinstance(orientation, FilteredOrientation)
        assert orientation.pitch_deg == pytest.approx(2.0)
        assert orientation.roll_deg == 4.0
        assert orientation.yaw_deg == -8.0
        assert p.snapshot().pitch == orientation.pitch_deg
        p.stop()

    def test_infinite_pitch_propagates(self, source, clock):
        """Inf is passed through unchanged rather than turning into NaN."""
        p = MotionPipeline(source=source, config=PipelineConfig(watchdog_interval=3600.0), clock=clock)
        p.start()
        feed(source, clock, [float("inf"), float("inf"), 5.0])

        assert p.snapshot().pitch == float("inf")
        assert isinstance(p.snapshot().posture_state, WarningState)
        p.stop()

    def test_publishes_in_arrival_order(self, pipeline, source, clock):
        published = []
        pipeline.add_listener(lambda s: published.append(s.pitch))
        pipeline.start()

        pitches = [1.0, -2.0, 3.0, -4.0, 5.0]
        feed(source, clock, pitches)

        assert published[-5:] == pitches
        assert pipeline.snapshot().pitch_history == tuple(pitches)

    def test_escalates_to_alert(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [0.0])
        feed(source, clock, [30.0])
        assert isinstance(pipeline.snapshot().posture_state, WarningState)
        assert not pipeline.snapshot().alert_requested

        feed(source, clock, [30.0, 30.0, 30.0])
        snapshot = pipeline.snapshot()
        assert isinstance(snapshot.posture_state, AlertState)
        assert snapshot.alert_requested

    def test_session_statistics(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [-30.0] * 10 + [0.0] * 10)

        snapshot = pipeline.snapshot()
        assert snapshot.poor_posture_duration == pytest.approx(10.0)
        assert snapshot.total_session_time == pytest.approx(20.0)
        assert snapshot.poor_posture_percentage == 50

    def test_listener_failure_does_not_stop_others(self, pipeline, source):
        received = []

        def broken(snapshot):
            raise RuntimeError("renderer crashed")

        pipeline.add_listener(broken)
        pipeline.add_listener(received.append)
        pipeline.start()
        source.emit(make_sample(1.0))

        assert received
        assert pipeline.snapshot().connected

    def test_remove_listener(self, pipeline, source):
        received = []
        pipeline.add_listener(received.append)
        pipeline.remove_listener(received.append)
        pipeline.start()
        source.emit(make_sample(1.0))
        assert received == []

    def test_reset_session(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [-30.0] * 5)
        pipeline.reset_session()

        snapshot = pipeline.snapshot()
        assert snapshot.pitch_history == ()
        assert snapshot.poor_posture_duration == 0.0
        assert snapshot.poor_posture_percentage == 0
        assert snapshot.connected


class TestFailures:
    """Tests for delivery errors and the watchdog."""

    def test_delivery_error(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [1.0])

        source.emit_error(RuntimeError("Bluetooth link lost"))
        snapshot = pipeline.snapshot()
        assert snapshot.connection_status == "Error: Bluetooth link lost"
        assert not snapshot.connected
        assert pipeline.running
        assert isinstance(pipeline.last_error, SensorDeliveryError)

        feed(source, clock, [2.0])
        assert pipeline.snapshot().connected
        assert pipeline.snapshot().connection_status == "Connected"

    def test_watchdog_detects_disconnect(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [1.0])

        source.set_available(False)
        pipeline.check_device_status()

        snapshot = pipeline.snapshot()
        assert snapshot.connection_status == "Device disconnected"
        assert not snapshot.connected
        assert pipeline.running

    def test_watchdog_ignores_available_sensor(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [1.0])
        pipeline.check_device_status()
        assert pipeline.snapshot().connected

    def test_watchdog_thread_calls_back(self):
        calls = []
        watchdog = Watchdog(0.01, lambda: calls.append(1))
        watchdog.start()
        deadline = time.time() + 2.0
        while not calls and time.time() < deadline:
            time.sleep(0.01)
        watchdog.stop()

        assert calls
        assert not watchdog.running


class TestSessions:
    """Tests for session recording through the pipeline."""

    def test_stop_persists_session(self, pipeline, source, store, clock):
        start = clock.now
        pipeline.start()
        feed(source, clock, [-30.0] * 10 + [0.0] * 10)

        closed = pipeline.stop()
        assert closed is not None
        assert store.list_sessions() == [closed]
        assert closed.start_time == start
        assert closed.total_duration == pytest.approx(20.0)
        assert closed.poor_posture_percentage == 50

    def test_start_opens_fresh_session(self, pipeline, source, store, clock):
        pipeline.start()
        feed(source, clock, [-30.0] * 3)
        pipeline.stop()

        pipeline.start()
        assert pipeline.snapshot().poor_posture_duration == 0.0
        feed(source, clock, [0.0] * 4)
        pipeline.stop()

        sessions = store.list_sessions()
        assert len(sessions) == 2
        assert sessions[0].poor_posture_percentage == 0
        assert sessions[1].poor_posture_percentage == 100

    def test_persistence_failure_does_not_raise(self, source, clock, unfiltered_config):
        class BrokenStore(SessionStore):
            def append_session(self, session):
                raise PersistenceWriteFailure("read-only volume")

            def list_sessions(self):
                return []

            def clear_all(self):
                pass

        p = MotionPipeline(
            source=source,
            recorder=SessionRecorder(BrokenStore(), clock=clock),
            config=unfiltered_config,
            clock=clock,
        )
        p.start()
        feed(source, clock, [0.0])

        assert p.stop() is not None
        assert p.get_status()["last_write_error"] == "read-only volume"

    def test_status(self, pipeline, source, clock):
        pipeline.start()
        feed(source, clock, [-30.0, 0.0])

        status = pipeline.get_status()
        assert status["running"]
        assert status["samples_processed"] == 2
        assert status["connection"]["state"] == "connected"
        assert status["poor_posture_percentage"] == 50
        assert status["session_id"] == str(pipeline.recorder.current_session.id)


class TestSimulatedPipeline:

    def test_streams_samples(self):
        """End to end on the background simulated headset."""
        store = InMemorySessionStore()
        p = create_simulated_pipeline(
            config=PipelineConfig(sample_rate=200.0),
            store=store,
            seed=1,
        )
        try:
            assert p.start()
            deadline = time.time() + 3.0
            while len(p.snapshot().pitch_history) < 5 and time.time() < deadline:
                time.sleep(0.01)
            assert p.snapshot().connected
        finally:
            p.stop()

        assert len(store.list_sessions()) == 1
        assert not p.running
