"""
Posture and Connectivity State Machines

Implements the two small state machines of the motion pipeline:
1. Posture classification over filtered pitch (Good / Warning / Alert)
2. Headset connectivity (Disconnected / Connecting / Connected)

Both are driven by explicit timestamps so they can be replayed in tests.
Transitions are kept in a bounded history for debugging.
"""

from __future__ import annotations

from collections import deque
from typing import Dict, Optional
import logging

from .data.models import (
    AlertState,
    ConnectionState,
    GoodState,
    PostureLevel,
    PostureState,
    WarningState,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# POSTURE CLASSIFIER
# ---------------------------------------------------------------------

class PostureClassifier:
    """
    Classifies filtered pitch with dwell-time promotion.

    GOOD → WARNING → ALERT, back to GOOD as soon as pitch drops to the
    threshold or below.

    The dwell clock starts at the first sample above the warning threshold
    and is reset by every sample at or below it; rapid oscillation around the
    threshold therefore never accumulates dwell time.
    """

    WARNING_THRESHOLD = 20.0    # degrees
    PROMOTION_WINDOW = 2.0      # seconds above threshold before ALERT

    def __init__(
        self,
        warning_threshold: float = WARNING_THRESHOLD,
        promotion_window: float = PROMOTION_WINDOW,
        now: float = 0.0,
    ):
        self.warning_threshold = warning_threshold
        self.promotion_window = promotion_window

        self.state: PostureState = GoodState(posture_duration=0.0)
        self.session_start = now
        self._non_good_since: Optional[float] = None

        self.history = deque(maxlen=100)

    def update(self, pitch: float, now: float) -> PostureState:
        """
        Re-evaluate the posture state for one filtered pitch sample.

        Args:
            pitch: Filtered pitch (degrees)
            now: Evaluation time (Unix seconds)

        Returns:
            The new posture state
        """
        if pitch > self.warning_threshold:
            if self._non_good_since is None:
                self._non_good_since = now
            dwell = now - self._non_good_since

            if dwell > self.promotion_window:
                new_state = AlertState(pitch=pitch, duration=dwell)
            else:
                new_state = WarningState(pitch=pitch, time_above_threshold=dwell)
        else:
            self._non_good_since = None
            new_state = GoodState(posture_duration=max(0.0, now - self.session_start))

        self._record(new_state, now)
        self.state = new_state
        return new_state

    @property
    def level(self) -> PostureLevel:
        return self.state.level

    def _record(self, new_state: PostureState, now: float) -> None:
        if new_state.level == self.state.level:
            return

        self.history.append({
            "time": now,
            "from": self.state.level.value,
            "to": new_state.level.value,
        })
        logger.debug("Posture %s -> %s", self.state.level.value, new_state.level.value)

    def reset(self, now: float) -> None:
        self.state = GoodState(posture_duration=0.0)
        self.session_start = now
        self._non_good_since = None
        self.history.clear()

    def get_status(self) -> Dict:
        return {
            "state": self.state.level.value,
            "dwell_started_at": self._non_good_since,
            "session_start": self.session_start,
        }


# ---------------------------------------------------------------------
# CONNECTION STATE MACHINE
# ---------------------------------------------------------------------

class ConnectionStateMachine:
    """
    Tracks headset connectivity from two independent event sources.

    DISCONNECTED → CONNECTING → CONNECTED
    CONNECTED → DISCONNECTED on a delivery error or a watchdog miss.

    Sample arrival is the only way into CONNECTED; an error, a watchdog miss
    or stop() forces DISCONNECTED.
    """

    def __init__(self):
        self.state = ConnectionState.DISCONNECTED
        self.status = "Not started"
        self.history = deque(maxlen=100)

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def begin_connecting(self, status: str = "Starting motion updates") -> bool:
        return self._transition(ConnectionState.CONNECTING, status)

    def sample_received(self) -> bool:
        return self._transition(ConnectionState.CONNECTED, "Connected")

    def delivery_failed(self, message: str) -> bool:
        return self._transition(ConnectionState.DISCONNECTED, f"Error: {message}")

    def watchdog_miss(self) -> bool:
        """Sensor reported unavailable; only meaningful while connected."""
        if self.state != ConnectionState.CONNECTED:
            return False
        return self._transition(ConnectionState.DISCONNECTED, "Device disconnected")

    def unavailable(self, status: str = "Device motion not available") -> bool:
        return self._transition(ConnectionState.DISCONNECTED, status)

    def stopped(self) -> bool:
        return self._transition(ConnectionState.DISCONNECTED, "Stopped")

    def _transition(self, new_state: ConnectionState, status: str) -> bool:
        """Apply a transition. Returns True if state or status changed."""
        if new_state == self.state and status == self.status:
            return False

        if new_state != self.state:
            self.history.append({
                "from": self.state.value,
                "to": new_state.value,
                "reason": status,
            })
            logger.debug("Connection %s -> %s (%s)", self.state.value, new_state.value, status)

        self.state = new_state
        self.status = status
        return True

    def get_status(self) -> Dict:
        return {
            "state": self.state.value,
            "status": self.status,
        }
