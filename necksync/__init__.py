"""NeckSync: head-orientation posture coaching pipeline."""

from .config import PipelineConfig, load_config
from .errors import (
    NeckSyncError,
    SensorUnavailable,
    SensorDeliveryError,
    PersistenceWriteFailure,
)
from .filters import SampleFilter, low_pass_filter
from .state_machines import PostureClassifier, ConnectionStateMachine
from .session_stats import SessionAccumulator, SessionStats
from .pipeline import MotionPipeline, create_simulated_pipeline, create_serial_pipeline
from .history import SessionHistory, Timeframe

__version__ = "0.1.0"

__all__ = [
    "PipelineConfig",
    "load_config",
    "NeckSyncError",
    "SensorUnavailable",
    "SensorDeliveryError",
    "PersistenceWriteFailure",
    "SampleFilter",
    "low_pass_filter",
    "PostureClassifier",
    "ConnectionStateMachine",
    "SessionAccumulator",
    "SessionStats",
    "MotionPipeline",
    "create_simulated_pipeline",
    "create_serial_pipeline",
    "SessionHistory",
    "Timeframe",
]
