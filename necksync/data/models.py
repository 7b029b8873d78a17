"""
Data models and types for the motion-to-posture pipeline.

Defines the transient sensor samples, the posture state union, connection
states and the read-only snapshot handed to the rendering layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union
import math


class PostureLevel(Enum):
    """Coarse posture level, one per PostureState variant."""
    GOOD = "good"
    WARNING = "warning"
    ALERT = "alert"


class ConnectionState(Enum):
    """Headset connectivity as seen by the pipeline."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class OrientationSample:
    """
    Single head orientation reading from the headset.

    Angles in degrees, timestamp in Unix seconds.
    """
    pitch_deg: float
    roll_deg: float
    yaw_deg: float
    timestamp: float

    @classmethod
    def from_radians(cls, pitch: float, roll: float, yaw: float, timestamp: float) -> "OrientationSample":
        """Create a sample from attitude angles reported in radians."""
        return cls(
            pitch_deg=math.degrees(pitch),
            roll_deg=math.degrees(roll),
            yaw_deg=math.degrees(yaw),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class FilteredOrientation:
    """Orientation after smoothing. Only pitch is filtered."""
    pitch_deg: float
    roll_deg: float
    yaw_deg: float
    timestamp: float


# ---------------------------------------------------------------------
# POSTURE STATE (tagged union)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class GoodState:
    posture_duration: float  # seconds since session start

    level = PostureLevel.GOOD

    @property
    def should_trigger_haptic(self) -> bool:
        return False


@dataclass(frozen=True)
class WarningState:
    pitch: float
    time_above_threshold: float  # seconds

    level = PostureLevel.WARNING

    @property
    def should_trigger_haptic(self) -> bool:
        return False


@dataclass(frozen=True)
class AlertState:
    pitch: float
    duration: float  # seconds above threshold

    level = PostureLevel.ALERT

    @property
    def should_trigger_haptic(self) -> bool:
        return True


PostureState = Union[GoodState, WarningState, AlertState]


@dataclass(frozen=True)
class PipelineSnapshot:
    """
    Read-only view of everything the rendering layer draws.

    A new snapshot is published for every processed sample and for every
    connectivity change. Listeners must treat it as immutable.
    """
    pitch: float
    roll: float
    yaw: float
    connection_state: ConnectionState
    connection_status: str
    posture_state: PostureState
    pitch_history: Tuple[float, ...]
    poor_posture_duration: float
    poor_posture_percentage: int
    total_session_time: float = 0.0
    timestamp: Optional[float] = None

    @property
    def connected(self) -> bool:
        return self.connection_state == ConnectionState.CONNECTED

    @property
    def alert_requested(self) -> bool:
        """Whether the renderer should fire a haptic/visual alert."""
        return self.posture_state.should_trigger_haptic

    @classmethod
    def initial(cls, status: str = "Not started") -> "PipelineSnapshot":
        """Snapshot of a freshly created pipeline."""
        return cls(
            pitch=0.0,
            roll=0.0,
            yaw=0.0,
            connection_state=ConnectionState.DISCONNECTED,
            connection_status=status,
            posture_state=GoodState(posture_duration=0.0),
            pitch_history=(),
            poor_posture_duration=0.0,
            poor_posture_percentage=0,
        )
