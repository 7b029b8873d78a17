"""
Low-pass smoothing for noisy angular signals.

Exponential smoothing trades lag for noise rejection: each output is a convex
combination of the previous output and the newest raw value. NaN and Inf
inputs are not sanitized and propagate into the output.
"""

from .data.models import FilteredOrientation, OrientationSample

DEFAULT_ALPHA = 0.2


def low_pass_filter(current: float, previous: float, alpha: float = DEFAULT_ALPHA) -> float:
    """Return ``previous*(1-alpha) + current*alpha``."""
    # A held value must come back unchanged, including +/-inf
    if current == previous:
        return current
    return previous * (1.0 - alpha) + current * alpha


class SampleFilter:
    """
    Exponential filter for a single angular signal.

    Holds no state beyond the weight; callers pass the previous output in.
    """

    def __init__(self, alpha: float = DEFAULT_ALPHA):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha

    def apply(self, current: float, previous: float) -> float:
        return low_pass_filter(current, previous, self.alpha)

    def filter_sample(self, sample: OrientationSample, previous_pitch: float) -> FilteredOrientation:
        """Smooth the pitch of ``sample``; roll and yaw pass through."""
        return FilteredOrientation(
            pitch_deg=self.apply(sample.pitch_deg, previous_pitch),
            roll_deg=sample.roll_deg,
            yaw_deg=sample.yaw_deg,
            timestamp=sample.timestamp,
        )
