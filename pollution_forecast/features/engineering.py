"""Core feature engineering utilities for hourly pollution series.

Provides target lag features, calendar signature features and centering/scaling
of numeric columns whose statistics are fitted on a training sub-range only.
"""

from typing import List, Optional, Dict, Any, Sequence, Tuple
import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from ..utils.error_handling import LeakageViolationError

logger = logging.getLogger(__name__)

CALENDAR_FEATURES = [
    "hour", "month", "day_of_week",
    "hour_sin", "hour_cos", "day_of_week_sin", "day_of_week_cos",
]


def lag_column(column: str, lag: int) -> str:
    """Name of the lag-``lag`` feature of ``column``."""
    return f"{column}_lag_{lag}"


def scaled_column(column: str) -> str:
    """Name of the centered/scaled copy of ``column``."""
    return f"{column}_scaled"


@dataclass
class FeatureDefinitions:
    """Container for derived feature names and metadata."""
    lag_features: List[str]
    calendar_features: List[str]
    scaled_features: List[str]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def all_features(self) -> List[str]:
        return self.lag_features + self.calendar_features + self.scaled_features

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "lag_features": self.lag_features,
            "calendar_features": self.calendar_features,
            "scaled_features": self.scaled_features,
            "metadata": self.metadata,
        }


class SplitAwareScaler:
    """
    Centers and scales numeric columns with statistics from a fitting sub-range.

    The statistics are computed once from the rows in ``fit_range`` and then
    applied unchanged to every row of any frame passed to ``transform``.
    """

    def __init__(self, columns: Sequence[str]):
        self.columns = list(columns)
        self.fit_range: Optional[range] = None
        self._scaler: Optional[StandardScaler] = None

    @property
    def is_fitted(self) -> bool:
        return self._scaler is not None

    def fit(self, df: pd.DataFrame, fit_range: range) -> "SplitAwareScaler":
        """
        Fit centering/scaling statistics on the positional rows of ``fit_range``.

        Args:
            df: Full DataFrame
            fit_range: Positional row range whose values define the statistics

        Returns:
            Self for method chaining
        """
        if len(fit_range) == 0:
            raise ValueError("Cannot fit scaler on an empty range")
        if fit_range.start < 0 or fit_range.stop > len(df) or fit_range.step != 1:
            raise ValueError(
                f"fit_range {fit_range} is not a contiguous range within {len(df)} rows"
            )
        missing = [col for col in self.columns if col not in df.columns]
        if missing:
            raise KeyError(f"Columns to scale not found in DataFrame: {missing}")

        subset = df.iloc[fit_range.start:fit_range.stop][self.columns].astype(float)
        self._scaler = StandardScaler().fit(subset.to_numpy())
        self.fit_range = fit_range
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Return the scaled columns for every row of ``df``.

        Returns:
            DataFrame with one ``<column>_scaled`` column per scaled column
        """
        if not self.is_fitted:
            raise ValueError("Scaler not fitted")
        values = self._scaler.transform(df[self.columns].astype(float).to_numpy())
        return pd.DataFrame(
            values,
            index=df.index,
            columns=[scaled_column(col) for col in self.columns],
        )

    def statistics(self) -> Dict[str, Dict[str, float]]:
        """Fitted mean and scale per column."""
        if not self.is_fitted:
            return {}
        return {
            col: {"mean": float(mean), "scale": float(scale)}
            for col, mean, scale in zip(self.columns, self._scaler.mean_, self._scaler.scale_)
        }

    def assert_no_leakage(self, test_range: range) -> None:
        """
        Verify the statistics were not computed from any test-range row.

        Raises:
            LeakageViolationError: If the fitting range overlaps ``test_range``
        """
        if self.fit_range is None:
            return
        overlap_start = max(self.fit_range.start, test_range.start)
        overlap_stop = min(self.fit_range.stop, test_range.stop)
        if overlap_start < overlap_stop:
            raise LeakageViolationError(
                f"Scaling statistics for {self.columns} were fitted on rows "
                f"{self.fit_range.start}-{self.fit_range.stop - 1}, which overlap "
                f"test rows {test_range.start}-{test_range.stop - 1}"
            )


class FeatureEngineer:
    """Handles feature engineering for time series data."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize FeatureEngineer with optional configuration."""
        self.config = config or {}
        self._feature_definitions: Optional[FeatureDefinitions] = None

    def create_lag_features(
        self,
        df: pd.DataFrame,
        columns: Sequence[str],
        lags: Sequence[int],
    ) -> Tuple[pd.DataFrame, List[str]]:
        """
        Create lag features for specified columns.

        The first ``k`` rows of a lag-``k`` feature are null. Lags are taken by
        row position, so ``df`` must hold one row per period
        (``TimeSeriesFrame.build`` fills skipped periods with null rows).

        Args:
            df: DataFrame with time series data
            columns: Columns to create lags for
            lags: List of lag periods (e.g., [1, 2, 3, 24])

        Returns:
            Tuple of (DataFrame with lag features added, lag feature names)
        """
        result = df.copy()
        lag_feature_names = []
        for col in columns:
            if col not in df.columns:
                raise KeyError(f"Column {col} not found in DataFrame")
            for lag in lags:
                feature_name = lag_column(col, lag)
                result[feature_name] = df[col].shift(lag)
                lag_feature_names.append(feature_name)

        logger.debug(f"Created {len(lag_feature_names)} lag features")
        return result, lag_feature_names

    def create_calendar_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Create calendar signature features from the DatetimeIndex.

        Args:
            df: DataFrame with DatetimeIndex

        Returns:
            DataFrame with calendar features added
        """
        if not isinstance(df.index, pd.DatetimeIndex):
            raise ValueError("DataFrame must have DatetimeIndex")

        result = df.copy()
        result["hour"] = df.index.hour
        result["month"] = df.index.month
        # Day of week (0=Monday, 6=Sunday)
        result["day_of_week"] = df.index.dayofweek

        result["hour_sin"] = np.sin(2 * np.pi * df.index.hour / 24)
        result["hour_cos"] = np.cos(2 * np.pi * df.index.hour / 24)
        result["day_of_week_sin"] = np.sin(2 * np.pi * df.index.dayofweek / 7)
        result["day_of_week_cos"] = np.cos(2 * np.pi * df.index.dayofweek / 7)
        return result

    def engineer_all_features(
        self,
        df: pd.DataFrame,
        target_column: str,
        lag_orders: Sequence[int],
        scale_columns: Sequence[str] = (),
        fit_range: Optional[range] = None,
    ) -> Tuple[pd.DataFrame, FeatureDefinitions, Optional[SplitAwareScaler]]:
        """
        Derive lag, calendar and scaled features.

        Args:
            df: Raw DataFrame with DatetimeIndex
            target_column: Column whose lags are derived
            lag_orders: Lag periods of the target
            scale_columns: Numeric columns to center/scale
            fit_range: Positional rows the scaling statistics are fitted on;
                required when ``scale_columns`` is non-empty

        Returns:
            Tuple of (feature DataFrame, FeatureDefinitions, fitted scaler or None)
        """
        result, lag_names = self.create_lag_features(df, [target_column], lag_orders)
        result = self.create_calendar_features(result)

        scaler = None
        scaled_names: List[str] = []
        if scale_columns:
            if fit_range is None:
                raise ValueError(
                    "fit_range is required to scale columns; scaling over the whole "
                    "series would use test-period statistics"
                )
            scaler = SplitAwareScaler(scale_columns).fit(df, fit_range)
            scaled = scaler.transform(df)
            result = pd.concat([result, scaled], axis=1)
            scaled_names = list(scaled.columns)

        self._feature_definitions = FeatureDefinitions(
            lag_features=lag_names,
            calendar_features=list(CALENDAR_FEATURES),
            scaled_features=scaled_names,
            metadata={
                "target_column": target_column,
                "lag_orders": list(lag_orders),
                "scaling_range": [fit_range.start, fit_range.stop] if scaler else None,
                "scaling_statistics": scaler.statistics() if scaler else {},
            },
        )
        logger.info(
            f"Derived {len(self._feature_definitions.all_features)} features "
            f"({len(lag_names)} lag, {len(CALENDAR_FEATURES)} calendar, {len(scaled_names)} scaled)"
        )
        return result, self._feature_definitions, scaler

    def get_feature_definitions(self) -> Optional[FeatureDefinitions]:
        """Definitions produced by the last call to engineer_all_features."""
        return self._feature_definitions
