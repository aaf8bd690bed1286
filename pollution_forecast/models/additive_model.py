"""Additive decomposition model: STL seasonal component plus ARIMA on the remainder."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.forecasting.stl import STLForecast

from ..data.structs import TimeSeriesFrame
from .arima_model import check_convergence
from .base_model import FittedModel, ModelAdapter


class AdditiveAdapter(ModelAdapter):
    """
    Decomposes the target into trend + season + remainder with STL and
    forecasts the seasonally adjusted series with a low-order ARIMA; the last
    seasonal cycle is carried forward over the horizon.
    """

    def __init__(
        self,
        seasonal_period: int = 24,
        order: Tuple[int, int, int] = (1, 0, 0),
        robust: bool = True,
        require_convergence: bool = False,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        if seasonal_period < 2:
            raise ValueError("seasonal_period must be >= 2")
        self.seasonal_period = seasonal_period
        self.order = tuple(order)
        self.robust = robust
        self.require_convergence = require_convergence
        super().__init__(model_id, hyperparameters, calibration_method)

    @property
    def model_type(self) -> str:
        return "additive"

    def required_features(self, target_column: str) -> List[str]:
        return [target_column]

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        self._validate_frame(train_frame, min_rows=2 * self.seasonal_period + 1)
        self._require_complete(train_frame, [train_frame.target_column])
        y = train_frame.target.to_numpy(dtype=float)

        stlf = STLForecast(
            y,
            ARIMA,
            model_kwargs={"order": self.order, "trend": "c"},
            period=self.seasonal_period,
            robust=self.robust,
        )
        result = stlf.fit()
        check_convergence(result.model_result, self.model_id, self.require_convergence)
        return self._make_fitted(
            result, train_frame, [], started,
            seasonal_period=self.seasonal_period,
            order=list(self.order),
        )

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        return np.asarray(fitted.backend.forecast(len(horizon_frame)), dtype=float)
