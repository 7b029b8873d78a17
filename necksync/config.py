"""
Pipeline configuration.

Every tunable of the motion-to-posture pipeline lives here with the values the
headset app ships with. Load overrides from a JSON file with ``load_config``.
"""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Union
import json


@dataclass
class PipelineConfig:
    """Thresholds, rates and buffer sizes for one pipeline instance."""

    # Low-pass filter weight given to the newest sample
    filter_alpha: float = 0.2

    # Classifier (degrees / seconds)
    warning_threshold: float = 20.0
    promotion_window: float = 2.0

    # Session statistics (degrees); stricter than the warning bound
    poor_posture_threshold: float = -22.0
    history_size: int = 100

    # Timing (Hz / seconds)
    sample_rate: float = 60.0
    watchdog_interval: float = 1.0 / 60.0
    restart_delay: float = 0.1

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError for settings the pipeline cannot run with."""
        if not 0.0 < self.filter_alpha <= 1.0:
            raise ValueError(f"filter_alpha must be in (0, 1], got {self.filter_alpha}")
        if self.promotion_window < 0:
            raise ValueError(f"promotion_window must be >= 0, got {self.promotion_window}")
        if self.history_size <= 0:
            raise ValueError(f"history_size must be positive, got {self.history_size}")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.watchdog_interval <= 0:
            raise ValueError(f"watchdog_interval must be positive, got {self.watchdog_interval}")
        if self.restart_delay < 0:
            raise ValueError(f"restart_delay must be >= 0, got {self.restart_delay}")

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Build a config from a dict, ignoring keys it does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(path: Union[Path, str]) -> PipelineConfig:
    """
    Load a PipelineConfig from a JSON file.

    Missing keys keep their defaults.

    Args:
        path: Path to a JSON object of config overrides
    """
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return PipelineConfig.from_dict(data)
