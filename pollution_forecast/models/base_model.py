"""Base adapter interface for all forecasting backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
import copy
import logging

import numpy as np
import pandas as pd

from ..data.structs import TimeSeriesFrame
from ..features.engineering import CALENDAR_FEATURES, lag_column, scaled_column

logger = logging.getLogger(__name__)

CALIBRATION_METHODS = ("auto", "empirical", "normal")


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Opaque state produced by ModelAdapter.fit.

    Only the adapter that produced it reads ``backend``; nothing mutates it
    after fitting.
    """
    model_id: str
    model_type: str
    backend: Any
    feature_names: Tuple[str, ...]
    history: np.ndarray
    training_time: float = 0.0
    n_train: int = 0
    last_timestamp: Optional[pd.Timestamp] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary (excludes the backend object)."""
        return {
            "model_id": self.model_id,
            "model_type": self.model_type,
            "feature_names": list(self.feature_names),
            "training_time": self.training_time,
            "n_train": self.n_train,
            "last_timestamp": self.last_timestamp.isoformat() if self.last_timestamp is not None else None,
            "metadata": self.metadata,
        }


class ModelAdapter(ABC):
    """
    Uniform fit/predict capability over a concrete forecasting backend.

    Adapters hold configuration only. Fitted state lives in the returned
    FittedModel, so one adapter instance never carries state between folds.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        """
        Initialize adapter.

        Args:
            model_id: Unique identifier for the model
            hyperparameters: Backend hyperparameters
            calibration_method: 'empirical' residual quantiles, 'normal'
                approximation, or 'auto' (empirical when enough residuals)
        """
        if calibration_method not in CALIBRATION_METHODS:
            raise ValueError(
                f"Unknown calibration method '{calibration_method}'. "
                f"Supported: {list(CALIBRATION_METHODS)}"
            )
        self.model_id = model_id or self.model_type
        self.hyperparameters = dict(hyperparameters or {})
        self.calibration_method = calibration_method

    @property
    @abstractmethod
    def model_type(self) -> str:
        """Return the model type identifier."""
        pass

    @abstractmethod
    def required_features(self, target_column: str) -> List[str]:
        """
        Names of the frame columns this adapter reads.

        Args:
            target_column: Name of the frame's target column

        Returns:
            List of column names, including the target
        """
        pass

    @abstractmethod
    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        """
        Fit the backend on a training window.

        Args:
            train_frame: Training window; only read, never modified

        Returns:
            FittedModel holding the backend state
        """
        pass

    @abstractmethod
    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        """
        Forecast every timestamp of the horizon.

        The horizon starts immediately after the training window. Its target
        and target lag columns are blank; covariates and calendar features
        are available.

        Args:
            fitted: State returned by ``fit``
            horizon_frame: Frame covering the periods to forecast

        Returns:
            Array of point forecasts, one per horizon timestamp
        """
        pass

    def missing_features(self, frame: TimeSeriesFrame) -> List[str]:
        """Required features absent from ``frame``."""
        available = set(frame.columns)
        return [f for f in self.required_features(frame.target_column) if f not in available]

    def clone(self) -> "ModelAdapter":
        """Independent copy for use on another (model, split) pair."""
        return copy.deepcopy(self)

    def _make_fitted(
        self,
        backend: Any,
        train_frame: TimeSeriesFrame,
        feature_names: Sequence[str],
        started: datetime,
        history_length: int = 0,
        **metadata: Any,
    ) -> FittedModel:
        target = train_frame.target.to_numpy(dtype=float)
        history = target[-history_length:].copy() if history_length > 0 else np.empty(0)
        return FittedModel(
            model_id=self.model_id,
            model_type=self.model_type,
            backend=backend,
            feature_names=tuple(feature_names),
            history=history,
            training_time=(datetime.now() - started).total_seconds(),
            n_train=len(train_frame),
            last_timestamp=train_frame.timestamps[-1] if len(train_frame) else None,
            metadata=dict(metadata),
        )

    def _validate_frame(self, frame: TimeSeriesFrame, min_rows: int = 1) -> None:
        """Validate input frame."""
        if not isinstance(frame, TimeSeriesFrame):
            raise TypeError("Expected a TimeSeriesFrame")
        if len(frame) < min_rows:
            raise ValueError(
                f"{self.model_type} needs at least {min_rows} rows, got {len(frame)}"
            )

    def _require_complete(self, frame: TimeSeriesFrame, columns: Sequence[str]) -> None:
        """Reject windows with null values in ``columns`` (e.g. filled missing periods)."""
        nulls = int(frame.to_dataframe(columns).isna().sum().sum())
        if nulls:
            raise ValueError(
                f"{self.model_type} needs a gap-free training window; "
                f"found {nulls} null values in {list(columns)}"
            )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"model_id='{self.model_id}', "
            f"hyperparameters={self.hyperparameters})"
        )


class LagRegressionAdapter(ModelAdapter):
    """
    Base for regressors on target lags, calendar and scaled covariates.

    Multi-step forecasts are recursive: lags that fall inside the horizon are
    filled with the adapter's own earlier forecasts.
    """

    def __init__(
        self,
        lags: Sequence[int] = (1, 2, 3, 24),
        covariates: Sequence[str] = (),
        use_calendar: bool = True,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        if not lags or any(k < 1 for k in lags):
            raise ValueError(f"lags must be positive integers, got {lags}")
        self.lags = tuple(sorted(set(lags)))
        self.covariates = tuple(covariates)
        self.use_calendar = use_calendar
        super().__init__(model_id, hyperparameters, calibration_method)

    def required_features(self, target_column: str) -> List[str]:
        return [target_column] + self._input_features(target_column)

    def _input_features(self, target_column: str) -> List[str]:
        features = [lag_column(target_column, k) for k in self.lags]
        if self.use_calendar:
            features += CALENDAR_FEATURES
        features += [scaled_column(c) for c in self.covariates]
        return features

    @abstractmethod
    def _fit_backend(self, X: pd.DataFrame, y: pd.Series) -> Any:
        """Fit and return the backend estimator."""
        pass

    @abstractmethod
    def _predict_backend(self, backend: Any, X: pd.DataFrame) -> np.ndarray:
        """Predict with a fitted backend estimator."""
        pass

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        target = train_frame.target_column
        features = self._input_features(target)
        usable = train_frame.drop_incomplete([target] + features)
        self._validate_frame(usable, min_rows=2)

        X = usable.to_dataframe(features)
        y = usable.target
        backend = self._fit_backend(X, y)

        # History is taken from the full window so lags stay contiguous
        return self._make_fitted(
            backend, train_frame, features, started, history_length=max(self.lags)
        )

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        target = horizon_frame.target_column
        lag_names = [lag_column(target, k) for k in self.lags]
        X = horizon_frame.to_dataframe(list(fitted.feature_names))

        n = len(X)
        series = np.concatenate([fitted.history, np.full(n, np.nan)])
        offset = len(fitted.history)
        block = min(self.lags)

        # Rows inside one block only need lags at least `block` periods back
        for start in range(0, n, block):
            stop = min(start + block, n)
            rows = np.arange(start, stop)
            for name, k in zip(lag_names, self.lags):
                X.iloc[start:stop, X.columns.get_loc(name)] = series[offset + rows - k]
            series[offset + start:offset + stop] = self._predict_backend(
                fitted.backend, X.iloc[start:stop]
            )

        return series[offset:]
