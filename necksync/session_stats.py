"""
Session statistics for the posture pipeline.

Accumulates wall-clock time spent in poor posture against total session time,
and keeps a bounded history of recent filtered pitch values for display.
"""

from collections import deque
from dataclasses import dataclass, replace
from typing import Optional, Tuple
import math


def poor_posture_percentage(poor_duration: float, total_duration: float) -> int:
    """
    Percentage of a session spent in poor posture, rounded half up.

    Returns 0 for an empty session.
    """
    if total_duration <= 0:
        return 0
    return int(math.floor(100.0 * poor_duration / total_duration + 0.5))


@dataclass(frozen=True)
class SessionStats:
    """
    Totals for the running session.

    All times in Unix seconds, durations in seconds.
    Invariant: 0 <= poor_posture_duration <= total_session_time.
    """
    session_start_time: float
    last_update_time: float
    total_session_time: float = 0.0
    poor_posture_duration: float = 0.0
    poor_posture_start_time: Optional[float] = None
    poor_posture_percentage: int = 0

    @property
    def in_poor_posture(self) -> bool:
        return self.poor_posture_start_time is not None


class SessionAccumulator:
    """
    Time-weighted poor posture tally plus rolling pitch history.

    Each tick advances by the wall-clock delta since the previous tick, not by
    the nominal sample period, so irregular delivery does not skew totals.
    """

    POOR_POSTURE_THRESHOLD = -22.0  # degrees
    HISTORY_SIZE = 100

    def __init__(
        self,
        poor_posture_threshold: float = POOR_POSTURE_THRESHOLD,
        history_size: int = HISTORY_SIZE,
        now: float = 0.0,
    ):
        self.poor_posture_threshold = poor_posture_threshold
        self.history_size = history_size

        self._history: deque = deque(maxlen=history_size)
        self._stats = SessionStats(session_start_time=now, last_update_time=now)

    def tick(self, filtered_pitch: float, now: float) -> SessionStats:
        """
        Advance the session by one sample.

        Both durations are updated before the percentage is recomputed, and
        the whole result is swapped in as one immutable SessionStats.

        Args:
            filtered_pitch: Smoothed pitch (degrees)
            now: Sample processing time (Unix seconds)

        Returns:
            The updated stats
        """
        stats = self._stats

        # A clock that steps backwards contributes no time
        dt = max(0.0, now - stats.last_update_time)
        total = stats.total_session_time + dt
        poor = stats.poor_posture_duration
        poor_start = stats.poor_posture_start_time

        if filtered_pitch < self.poor_posture_threshold:
            poor += dt
            if poor_start is None:
                poor_start = now
        else:
            poor_start = None

        self._history.append(filtered_pitch)

        self._stats = replace(
            stats,
            last_update_time=now,
            total_session_time=total,
            poor_posture_duration=poor,
            poor_posture_start_time=poor_start,
            poor_posture_percentage=poor_posture_percentage(poor, total),
        )
        return self._stats

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def history(self) -> Tuple[float, ...]:
        """Recent filtered pitch values, oldest first."""
        return tuple(self._history)

    @property
    def poor_posture_duration(self) -> float:
        return self._stats.poor_posture_duration

    @property
    def total_session_time(self) -> float:
        return self._stats.total_session_time

    @property
    def poor_posture_percentage(self) -> int:
        return self._stats.poor_posture_percentage

    def reset(self, now: float) -> None:
        """Start a fresh session without replacing the accumulator."""
        self._history.clear()
        self._stats = SessionStats(session_start_time=now, last_update_time=now)
