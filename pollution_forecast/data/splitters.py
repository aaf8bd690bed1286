"""Rolling-origin splitting for time series cross-validation."""

from typing import List, Dict, Any, Iterator, Optional, Tuple, Union
from dataclasses import dataclass
from pathlib import Path
import logging

import pandas as pd

from ..utils.serialization import load_json, save_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Split:
    """One fold: a training window immediately followed by a test window."""
    split_id: int
    train_range: range
    test_range: range

    def __post_init__(self):
        """Validate no leakage"""
        if len(self.train_range) == 0 or len(self.test_range) == 0:
            raise ValueError("Train and test ranges must be non-empty")
        if self.train_range.step != 1 or self.test_range.step != 1:
            raise ValueError("Train and test ranges must be contiguous")
        if self.train_range.stop > self.test_range.start:
            raise ValueError(
                f"Train/test leakage: train ends at {self.train_range.stop - 1}, "
                f"test starts at {self.test_range.start}"
            )

    @property
    def train_size(self) -> int:
        return len(self.train_range)

    @property
    def test_size(self) -> int:
        return len(self.test_range)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "split_id": self.split_id,
            "train_start": self.train_range.start,
            "train_stop": self.train_range.stop,
            "test_start": self.test_range.start,
            "test_stop": self.test_range.stop,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Split":
        """Create from dictionary."""
        return cls(
            split_id=data["split_id"],
            train_range=range(data["train_start"], data["train_stop"]),
            test_range=range(data["test_start"], data["test_stop"]),
        )


class RollingOriginSplits:
    """
    Lazy, restartable sequence of rolling-origin splits.

    Every iteration regenerates the same split boundaries from the stored
    sizes; nothing is materialized up front.
    """

    def __init__(
        self,
        n_observations: int,
        initial_window: int,
        assess_window: int,
        step: int,
        max_splits: int,
    ):
        self.n_observations = n_observations
        self.initial_window = initial_window
        self.assess_window = assess_window
        self.step = step
        self.max_splits = max_splits

    def __iter__(self) -> Iterator[Split]:
        window_size = self.initial_window + self.assess_window
        origin = 0
        split_id = 0
        while split_id < self.max_splits and origin + window_size <= self.n_observations:
            train_end = origin + self.initial_window
            yield Split(
                split_id=split_id,
                train_range=range(origin, train_end),
                test_range=range(train_end, train_end + self.assess_window),
            )
            origin += self.step
            split_id += 1

    def __len__(self) -> int:
        available = self.n_observations - (self.initial_window + self.assess_window)
        if available < 0:
            return 0
        return min(self.max_splits, available // self.step + 1)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(n_splits={len(self)}, "
            f"initial_window={self.initial_window}, assess_window={self.assess_window}, "
            f"step={self.step})"
        )


class RollingOriginSplitter:
    """Generates rolling-origin (train, test) splits over a time-indexed frame."""

    def __init__(self, save_dir: Optional[str] = None):
        """Initialize splitter with optional save directory."""
        self.save_dir = Path(save_dir) if save_dir else None

    def generate(
        self,
        frame: Any,
        initial_window: int,
        assess_window: int,
        step: int,
        max_splits: int,
    ) -> RollingOriginSplits:
        """
        Generate rolling-origin splits.

        The first training window starts at the earliest observation, each
        test window immediately follows its training window, and the origin
        advances by ``step`` observations per fold.

        Args:
            frame: Anything with a length (TimeSeriesFrame, DataFrame)
            initial_window: Training observations per fold
            assess_window: Test observations per fold
            step: Fold advance in observations
            max_splits: Maximum number of folds

        Returns:
            Restartable sequence of Split; empty when
            ``initial_window + assess_window`` exceeds the frame length
        """
        for name, value in (
            ("initial_window", initial_window),
            ("assess_window", assess_window),
            ("step", step),
            ("max_splits", max_splits),
        ):
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")

        splits = RollingOriginSplits(
            n_observations=len(frame),
            initial_window=initial_window,
            assess_window=assess_window,
            step=step,
            max_splits=max_splits,
        )
        if not splits:
            logger.warning(
                f"No splits: initial_window + assess_window = {initial_window + assess_window} "
                f"exceeds {len(frame)} observations"
            )
        else:
            logger.info(f"Generated {len(splits)} rolling-origin splits")
        return splits

    def split_metadata(self, frame: Any, split: Split) -> Dict[str, Any]:
        """
        Timestamps of a split's window boundaries.

        Args:
            frame: TimeSeriesFrame or DataFrame with DatetimeIndex
            split: Split to describe

        Returns:
            Dictionary with sizes and boundary timestamps
        """
        index = _datetime_index(frame)
        return {
            **split.to_dict(),
            "train_size": split.train_size,
            "test_size": split.test_size,
            "train_start_time": str(index[split.train_range.start]),
            "train_end_time": str(index[split.train_range.stop - 1]),
            "test_start_time": str(index[split.test_range.start]),
            "test_end_time": str(index[split.test_range.stop - 1]),
        }

    def validate_no_leakage(self, frame: Any, split: Split) -> Tuple[bool, List[str]]:
        """
        Validate that split has no temporal data leakage.

        Args:
            frame: TimeSeriesFrame or DataFrame with DatetimeIndex
            split: Split to validate

        Returns:
            Tuple of (is_valid, list of issues)
        """
        issues: List[str] = []
        index = _datetime_index(frame)

        if split.test_range.stop > len(index):
            issues.append(
                f"Test window ends at row {split.test_range.stop - 1} beyond {len(index)} rows"
            )
            return False, issues

        train_times = index[split.train_range.start:split.train_range.stop]
        test_times = index[split.test_range.start:split.test_range.stop]

        if train_times.max() >= test_times.min():
            issues.append(
                f"Training data ({train_times.max()}) overlaps with "
                f"test data ({test_times.min()})"
            )
        if split.test_range.start != split.train_range.stop:
            issues.append(
                f"Test window starts {split.test_range.start - split.train_range.stop} "
                f"rows after the training window ends"
            )

        return len(issues) == 0, issues

    def save_splits(self, splits: Union[RollingOriginSplits, List[Split]], name: str) -> Path:
        """
        Save split boundaries to a JSON file.

        Args:
            splits: Splits to save
            name: Name for the split file

        Returns:
            Path to saved file
        """
        if not self.save_dir:
            raise ValueError("No save directory configured")

        file_path = self.save_dir / f"{name}_splits.json"
        save_json([split.to_dict() for split in splits], file_path)
        logger.info(f"Split boundaries saved to {file_path}")
        return file_path

    def load_splits(self, name: str) -> List[Split]:
        """
        Load split boundaries from a JSON file.

        Args:
            name: Name of the split file

        Returns:
            List of Split loaded from file
        """
        if not self.save_dir:
            raise ValueError("No save directory configured")

        file_path = self.save_dir / f"{name}_splits.json"
        if not file_path.exists():
            raise FileNotFoundError(f"Split file not found: {file_path}")

        return [Split.from_dict(data) for data in load_json(file_path)]


def _datetime_index(frame: Any) -> pd.DatetimeIndex:
    index = frame.timestamps if hasattr(frame, "timestamps") else frame.index
    if not isinstance(index, pd.DatetimeIndex):
        raise ValueError("Frame does not have a DatetimeIndex")
    return index
