"""Penalized linear regression on lags, calendar and covariates."""

from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.linear_model import ElasticNet
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from .base_model import LagRegressionAdapter


class PenalizedLinearAdapter(LagRegressionAdapter):
    """
    Elastic-net regression (L1/L2 penalty mix set by ``l1_ratio``).

    Inputs are standardized inside the pipeline with statistics from the
    training rows only, so the penalty treats lags and calendar terms alike.
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
        super().__init__(lags, covariates, use_calendar, model_id, hyperparameters, calibration_method)
        self.hyperparameters.setdefault("alpha", 0.1)
        self.hyperparameters.setdefault("l1_ratio", 0.5)
        self.hyperparameters.setdefault("max_iter", 10000)

    @property
    def model_type(self) -> str:
        return "penalized_linear"

    def _fit_backend(self, X: pd.DataFrame, y: pd.Series) -> Any:
        pipeline = make_pipeline(StandardScaler(), ElasticNet(**self.hyperparameters))
        return pipeline.fit(X.to_numpy(dtype=float), y.to_numpy(dtype=float))

    def _predict_backend(self, backend: Any, X: pd.DataFrame) -> np.ndarray:
        return backend.predict(X.to_numpy(dtype=float))
