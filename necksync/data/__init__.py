"""Data models, sensor sources and session persistence."""

from .models import (
    PostureLevel,
    ConnectionState,
    OrientationSample,
    FilteredOrientation,
    GoodState,
    WarningState,
    AlertState,
    PostureState,
    PipelineSnapshot,
)
from .records import (
    PostureSession,
    SessionStore,
    InMemorySessionStore,
    JsonSessionStore,
    SessionRecorder,
)
from .source import SensorSource, Subscription, SimulatedHeadsetSource

__all__ = [
    "PostureLevel",
    "ConnectionState",
    "OrientationSample",
    "FilteredOrientation",
    "GoodState",
    "WarningState",
    "AlertState",
    "PostureState",
    "PipelineSnapshot",
    "PostureSession",
    "SessionStore",
    "InMemorySessionStore",
    "JsonSessionStore",
    "SessionRecorder",
    "SensorSource",
    "Subscription",
    "SimulatedHeadsetSource",
]
