"""Core data structures for the back-testing harness."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd

from ..features.engineering import FeatureEngineer, SplitAwareScaler
from ..utils.config_manager import BacktestConfig
from .validators import TimestampValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """One period of the series: the target value and its covariates."""
    timestamp: pd.Timestamp
    target: float
    covariates: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class TimeSeriesFrame:
    """
    Ordered, time-indexed table of observations and derived features.

    Attributes:
        data: DataFrame indexed by a strictly increasing DatetimeIndex holding
            the target, the covariates and any derived feature columns
        target_column: Name of the target column
        covariate_columns: Names of the raw covariate columns
        lag_columns: Derived target lag columns
        feature_columns: All derived feature columns (lags, calendar, scaled)
        scaler: Scaler whose statistics produced the scaled columns
        metadata: Free-form metadata (quality report, feature definitions)

    The frame is read-only: every accessor returns a copy of the underlying data.
    """
    data: pd.DataFrame
    target_column: str = "target"
    covariate_columns: Tuple[str, ...] = ()
    lag_columns: Tuple[str, ...] = ()
    feature_columns: Tuple[str, ...] = ()
    scaler: Optional[SplitAwareScaler] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate consistency after initialization."""
        if not isinstance(self.data.index, pd.DatetimeIndex):
            raise TypeError("TimeSeriesFrame data must have a DatetimeIndex")
        if self.target_column not in self.data.columns:
            raise KeyError(f"Target column '{self.target_column}' not found")
        missing = [c for c in self.covariate_columns if c not in self.data.columns]
        if missing:
            raise KeyError(f"Covariate columns not found: {missing}")

    @classmethod
    def build(
        cls,
        raw_observations: Union[Sequence[Observation], pd.DataFrame],
        config: Optional[BacktestConfig] = None,
    ) -> "TimeSeriesFrame":
        """
        Build a validated frame from observations.

        Args:
            raw_observations: Sequence of Observation, or a DataFrame with a
                DatetimeIndex (or a 'timestamp' column) holding the target and
                covariate columns
            config: Back-test configuration (target/covariate names, gap tolerance)

        Returns:
            TimeSeriesFrame with raw columns only

        Raises:
            MalformedInputError: If timestamps are non-monotonic, duplicated or
                contain gaps larger than the configured tolerance
        """
        config = config or BacktestConfig()
        target = config.target_column

        if isinstance(raw_observations, pd.DataFrame):
            df = raw_observations.copy()
            if "timestamp" in df.columns:
                df = df.set_index("timestamp")
            df.index = pd.DatetimeIndex(df.index, name="timestamp")
        else:
            df = cls._observations_to_frame(raw_observations, target)

        covariates = config.covariates
        if not covariates:
            covariates = tuple(c for c in df.columns if c != target)

        missing = [c for c in (target,) + tuple(covariates) if c not in df.columns]
        if missing:
            raise KeyError(f"Columns not found in observations: {missing}")

        df = df[[target, *covariates]].astype(float)

        validator = TimestampValidator(
            max_gap_tolerance=config.max_gap_tolerance,
            frequency=config.frequency,
        )
        report = validator.validate(df)
        df, filled = cls._fill_missing_periods(df, report.period)
        logger.info(
            f"Built frame with {report.row_count} observations "
            f"({report.start} to {report.end}, period {report.period})"
        )

        return cls(
            data=df,
            target_column=target,
            covariate_columns=tuple(covariates),
            metadata={"quality": report.to_dict(), "filled_periods": filled},
        )

    @staticmethod
    def _fill_missing_periods(
        df: pd.DataFrame, period: Optional[pd.Timedelta]
    ) -> Tuple[pd.DataFrame, int]:
        """
        Insert an all-null row for every period skipped by a tolerated gap.

        Row positions then equal periods, so lags and seasonal offsets taken by
        position reach the right timestamp; the null rows drop out via valid_mask.
        """
        if period is None or len(df) < 2:
            return df, 0
        grid = pd.date_range(df.index[0], df.index[-1], freq=period, name=df.index.name)
        filled = len(grid) - len(df)
        if filled == 0:
            return df, 0
        logger.warning(f"Inserted {filled} null rows for missing periods")
        return df.reindex(grid), filled

    @staticmethod
    def _observations_to_frame(observations: Iterable[Observation], target: str) -> pd.DataFrame:
        rows = []
        for obs in observations:
            row = {"timestamp": pd.Timestamp(obs.timestamp), target: obs.target}
            row.update(obs.covariates)
            rows.append(row)
        if not rows:
            raise ValueError("No observations provided")
        df = pd.DataFrame(rows).set_index("timestamp")
        df.index = pd.DatetimeIndex(df.index, name="timestamp")
        return df

    def derive_features(
        self,
        config: BacktestConfig,
        fit_range: Optional[range] = None,
    ) -> "TimeSeriesFrame":
        """
        Append lag, calendar and scaled features.

        Args:
            config: Lag orders and columns to scale
            fit_range: Positional rows used to fit the scaling statistics,
                normally a fold's training range

        Returns:
            New TimeSeriesFrame with the derived columns
        """
        raw = self.data[[self.target_column, *self.covariate_columns]]
        engineer = FeatureEngineer()
        derived, definitions, scaler = engineer.engineer_all_features(
            raw,
            target_column=self.target_column,
            lag_orders=config.lag_orders,
            scale_columns=self.covariate_columns if config.scale_columns is None else config.scale_columns,
            fit_range=fit_range,
        )
        metadata = dict(self.metadata)
        metadata["features"] = definitions.to_dict()
        return replace(
            self,
            data=derived,
            lag_columns=tuple(definitions.lag_features),
            feature_columns=tuple(definitions.all_features),
            scaler=scaler,
            metadata=metadata,
        )

    def __len__(self) -> int:
        return len(self.data)

    @property
    def columns(self) -> List[str]:
        return list(self.data.columns)

    @property
    def timestamps(self) -> pd.DatetimeIndex:
        return self.data.index.copy()

    @property
    def target(self) -> pd.Series:
        return self.data[self.target_column].copy()

    def to_dataframe(self, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Copy of the underlying data, optionally restricted to ``columns``."""
        if columns is None:
            return self.data.copy()
        return self.data[list(columns)].copy()

    def window(self, index_range: range) -> "TimeSeriesFrame":
        """Sub-frame of the positional rows in ``index_range``."""
        if index_range.step != 1:
            raise ValueError("Windows must be contiguous")
        return replace(self, data=self.data.iloc[index_range.start:index_range.stop].copy())

    def valid_mask(self, columns: Sequence[str]) -> np.ndarray:
        """Boolean mask of rows where every column in ``columns`` is non-null."""
        if not columns:
            return np.ones(len(self.data), dtype=bool)
        return self.data[list(columns)].notna().all(axis=1).to_numpy()

    def drop_incomplete(self, columns: Sequence[str]) -> "TimeSeriesFrame":
        """Sub-frame without rows that have a null in any of ``columns``."""
        mask = self.valid_mask(columns)
        if mask.all():
            return self
        return replace(self, data=self.data.loc[mask].copy())

    def mask_target(self) -> "TimeSeriesFrame":
        """
        Copy with the target and its lag columns blanked out.

        Used for forecast horizons so a model can only see covariates and
        calendar features of the periods it forecasts.
        """
        data = self.data.copy()
        data[[self.target_column, *self.lag_columns]] = np.nan
        return replace(self, data=data)
