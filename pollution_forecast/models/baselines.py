"""Benchmark adapters: training mean, last value and last season."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from ..data.structs import TimeSeriesFrame
from .base_model import FittedModel, ModelAdapter


class MeanAdapter(ModelAdapter):
    """Forecasts the mean of the training window for every horizon step."""

    @property
    def model_type(self) -> str:
        return "mean"

    def required_features(self, target_column: str) -> List[str]:
        return [target_column]

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        self._validate_frame(train_frame)
        target = train_frame.target.dropna()
        if target.empty:
            raise ValueError("Training window has no target values")
        return self._make_fitted(float(target.mean()), train_frame, [], started)

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        return np.full(len(horizon_frame), fitted.backend, dtype=float)


class NaiveAdapter(ModelAdapter):
    """Repeats the last training observation."""

    @property
    def model_type(self) -> str:
        return "naive"

    def required_features(self, target_column: str) -> List[str]:
        return [target_column]

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        self._validate_frame(train_frame)
        return self._make_fitted(None, train_frame, [], started, history_length=1)

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        return np.full(len(horizon_frame), fitted.history[-1], dtype=float)


class SeasonalNaiveAdapter(ModelAdapter):
    """Repeats the last full season of the training window."""

    def __init__(
        self,
        seasonal_period: int = 24,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        if seasonal_period < 1:
            raise ValueError("seasonal_period must be >= 1")
        self.seasonal_period = seasonal_period
        super().__init__(model_id, hyperparameters, calibration_method)

    @property
    def model_type(self) -> str:
        return "seasonal_naive"

    def required_features(self, target_column: str) -> List[str]:
        return [target_column]

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        self._validate_frame(train_frame, min_rows=self.seasonal_period)
        return self._make_fitted(
            None, train_frame, [], started, history_length=self.seasonal_period
        )

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        reps = int(np.ceil(len(horizon_frame) / self.seasonal_period))
        return np.tile(fitted.history, reps)[:len(horizon_frame)].astype(float)
