"""
Dynamic regression: linear regression on covariates with ARIMA errors.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np
from statsmodels.tsa.statespace.sarimax import SARIMAX

from ..data.structs import TimeSeriesFrame
from ..features.engineering import scaled_column
from .base_model import FittedModel, ModelAdapter

logger = logging.getLogger(__name__)


def check_convergence(result: Any, model_id: str, required: bool) -> None:
    """
    Inspect the optimizer outcome of a statsmodels MLE result.

    Raises:
        RuntimeError: If the optimizer did not converge and convergence is required
    """
    retvals = getattr(result, "mle_retvals", None) or {}
    if retvals.get("converged", True):
        return
    message = f"[{model_id}] maximum likelihood optimization did not converge"
    if required:
        raise RuntimeError(message)
    logger.warning(message)


class DynamicRegressionAdapter(ModelAdapter):
    """
    SARIMAX with the scaled covariates as exogenous regressors.

    Covariates over the horizon are taken from the horizon frame; the target
    over the horizon is never read.
    """

    def __init__(
        self,
        covariates: Sequence[str] = (),
        order: Tuple[int, int, int] = (1, 0, 1),
        seasonal_order: Tuple[int, int, int, int] = (0, 0, 0, 0),
        trend: Optional[str] = "c",
        require_convergence: bool = True,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        """
        Initialize dynamic regression adapter.

        Args:
            covariates: Covariates used as regressors (their scaled copies)
            order: ARIMA (p, d, q) order of the error process
            seasonal_order: Seasonal (P, D, Q, s) order
            trend: Deterministic trend ('c', 't', 'ct' or None)
            require_convergence: Treat optimizer non-convergence as a fit failure
            model_id: Unique identifier
            hyperparameters: Extra arguments to ``SARIMAXResults.fit`` (e.g. maxiter)
            calibration_method: Interval calibration method
        """
        self.covariates = tuple(covariates)
        self.order = tuple(order)
        self.seasonal_order = tuple(seasonal_order)
        self.trend = trend
        self.require_convergence = require_convergence
        super().__init__(model_id, hyperparameters, calibration_method)
        self.hyperparameters.setdefault("maxiter", 200)

    @property
    def model_type(self) -> str:
        return "dynamic_regression"

    def required_features(self, target_column: str) -> List[str]:
        return [target_column] + self._exog_columns()

    def _exog_columns(self) -> List[str]:
        return [scaled_column(c) for c in self.covariates]

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        self._validate_frame(train_frame, min_rows=sum(self.order) + 2)
        exog_cols = self._exog_columns()

        y = train_frame.target.to_numpy(dtype=float)
        exog = train_frame.to_dataframe(exog_cols).to_numpy(dtype=float) if exog_cols else None

        model = SARIMAX(
            y,
            exog=exog,
            order=self.order,
            seasonal_order=self.seasonal_order,
            trend=self.trend,
            enforce_stationarity=False,
            enforce_invertibility=False,
        )
        result = model.fit(disp=False, **self.hyperparameters)
        check_convergence(result, self.model_id, self.require_convergence)

        return self._make_fitted(
            result, train_frame, exog_cols, started,
            aic=float(result.aic),
            order=list(self.order),
            seasonal_order=list(self.seasonal_order),
        )

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        exog_cols = list(fitted.feature_names)
        exog = horizon_frame.to_dataframe(exog_cols).to_numpy(dtype=float) if exog_cols else None
        forecast = fitted.backend.forecast(steps=len(horizon_frame), exog=exog)
        return np.asarray(forecast, dtype=float)
