"""Shared fixtures for the posture pipeline tests."""

import pytest

from necksync.config import PipelineConfig
from necksync.data.models import OrientationSample


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def make_sample(pitch: float, timestamp: float = 0.0, roll: float = 0.0, yaw: float = 0.0) -> OrientationSample:
    return OrientationSample(pitch_deg=pitch, roll_deg=roll, yaw_deg=yaw, timestamp=timestamp)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def unfiltered_config():
    """Config with smoothing disabled and an idle watchdog."""
    return PipelineConfig(filter_alpha=1.0, watchdog_interval=3600.0, restart_delay=0.0)
