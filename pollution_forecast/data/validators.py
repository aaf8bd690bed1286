"""Timestamp invariant checks and frame quality metrics."""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
import logging

import pandas as pd
from pandas.tseries.frequencies import to_offset

from ..utils.error_handling import MalformedInputError

logger = logging.getLogger(__name__)


@dataclass
class FrameQualityReport:
    """Data quality metrics for a time-indexed DataFrame."""
    row_count: int
    column_count: int
    null_count: Dict[str, int]
    period: Optional[pd.Timedelta]
    largest_gap_periods: float
    start: Optional[pd.Timestamp] = None
    end: Optional[pd.Timestamp] = None
    issues: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "row_count": self.row_count,
            "column_count": self.column_count,
            "null_count": self.null_count,
            "period": str(self.period) if self.period is not None else None,
            "largest_gap_periods": self.largest_gap_periods,
            "start": self.start.isoformat() if self.start is not None else None,
            "end": self.end.isoformat() if self.end is not None else None,
            "issues": self.issues,
        }


class TimestampValidator:
    """Validates the strictly-increasing, one-per-period timestamp invariant."""

    def __init__(self, max_gap_tolerance: int = 1, frequency: Optional[str] = None):
        """
        Initialize validator.

        Args:
            max_gap_tolerance: Largest allowed distance between consecutive
                timestamps, in periods (1 allows no missing periods)
            frequency: Expected sampling frequency such as 'h'; inferred from
                the most common spacing when None
        """
        if max_gap_tolerance < 1:
            raise ValueError("max_gap_tolerance must be >= 1")
        self.max_gap_tolerance = max_gap_tolerance
        self.frequency = frequency

    def infer_period(self, index: pd.DatetimeIndex) -> Optional[pd.Timedelta]:
        """Return the configured period, or the modal spacing of the index."""
        if self.frequency is not None:
            return pd.Timedelta(to_offset(self.frequency))
        if len(index) < 2:
            return None
        diffs = pd.Series(index[1:] - index[:-1])
        return diffs.value_counts().idxmax()

    def get_quality_report(self, df: pd.DataFrame) -> FrameQualityReport:
        """
        Calculate quality metrics and collect invariant violations.

        Args:
            df: DataFrame with DatetimeIndex, in the order it was received

        Returns:
            FrameQualityReport; ``issues`` is empty when the invariant holds
        """
        issues: List[str] = []

        if not isinstance(df.index, pd.DatetimeIndex):
            issues.append("Index is not a DatetimeIndex")
            return FrameQualityReport(
                row_count=len(df),
                column_count=len(df.columns),
                null_count={col: int(df[col].isnull().sum()) for col in df.columns},
                period=None,
                largest_gap_periods=float("nan"),
                issues=issues,
            )

        index = df.index
        if index.hasnans:
            issues.append("Index contains missing timestamps")

        duplicated = index[index.duplicated()]
        if len(duplicated) > 0:
            issues.append(
                f"Found {len(duplicated)} duplicate timestamps (first: {duplicated[0]})"
            )

        if not index.hasnans and not index.is_monotonic_increasing:
            position = next(
                i for i in range(1, len(index)) if index[i] < index[i - 1]
            )
            issues.append(
                f"Timestamps not increasing at position {position}: "
                f"{index[position - 1]} -> {index[position]}"
            )

        period = self.infer_period(index) if not issues else None
        largest_gap = 0.0
        if period is not None and len(index) > 1:
            spacing = pd.Series(index[1:] - index[:-1]) / period
            largest_gap = float(spacing.max())
            too_wide = spacing[spacing > self.max_gap_tolerance]
            if len(too_wide) > 0:
                pos = int(too_wide.index[0])
                issues.append(
                    f"Gap of {too_wide.iloc[0]:g} periods between {index[pos]} and "
                    f"{index[pos + 1]} exceeds tolerance of {self.max_gap_tolerance}"
                )
            off_grid = spacing[(spacing % 1 != 0) | (spacing < 1)]
            if len(off_grid) > 0:
                pos = int(off_grid.index[0])
                issues.append(
                    f"Timestamps {index[pos]} and {index[pos + 1]} are not one period ({period}) apart"
                )

        return FrameQualityReport(
            row_count=len(df),
            column_count=len(df.columns),
            null_count={col: int(df[col].isnull().sum()) for col in df.columns},
            period=period,
            largest_gap_periods=largest_gap,
            start=index[0] if len(index) else None,
            end=index[-1] if len(index) else None,
            issues=issues,
        )

    def validate(self, df: pd.DataFrame) -> FrameQualityReport:
        """
        Validate the timestamp invariant.

        Raises:
            MalformedInputError: If timestamps are non-monotonic, duplicated
                or contain gaps wider than the tolerance
        """
        report = self.get_quality_report(df)
        if not report.is_valid:
            for issue in report.issues:
                logger.error(f"Malformed input: {issue}")
            raise MalformedInputError("; ".join(report.issues))
        return report
