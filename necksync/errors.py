"""
Error types for the posture pipeline.

None of these escape the pipeline's public operations. They are recorded on
the pipeline (``last_error``) or the session recorder (``last_write_error``)
and surfaced to the rendering layer as status text.
"""

from typing import Optional


class NeckSyncError(Exception):
    """Base class for all pipeline errors."""


class SensorUnavailable(NeckSyncError):
    """The sensor reports no motion capability at start()."""

    def __init__(self, message: str = "Device motion not available"):
        super().__init__(message)


class SensorDeliveryError(NeckSyncError):
    """A sensor source delivered an error instead of a sample."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PersistenceWriteFailure(NeckSyncError):
    """A session store could not write a session."""
