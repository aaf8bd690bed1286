"""Time series frames, timestamp validation and rolling-origin splits."""

from .structs import Observation, TimeSeriesFrame
from .validators import FrameQualityReport, TimestampValidator
from .splitters import RollingOriginSplits, RollingOriginSplitter, Split

__all__ = [
    "Observation",
    "TimeSeriesFrame",
    "FrameQualityReport",
    "TimestampValidator",
    "RollingOriginSplits",
    "RollingOriginSplitter",
    "Split",
]
