"""Vector autoregression over the target and its covariates."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from statsmodels.tsa.api import VAR

from ..data.structs import TimeSeriesFrame
from .base_model import FittedModel, ModelAdapter, logger


class VARAdapter(ModelAdapter):
    """
    VAR(p) on the target and the raw covariate columns.

    The covariates are forecast jointly with the target, so covariate values
    over the horizon are not needed.
    """

    def __init__(
        self,
        covariates: Sequence[str] = (),
        maxlags: int = 24,
        ic: Optional[str] = None,
        trend: str = "c",
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        """
        Initialize VAR adapter.

        Args:
            covariates: Series modeled jointly with the target (at least one)
            maxlags: Lag order, or the largest order searched when ``ic`` is set
            ic: Information criterion for order selection ('aic', 'bic', 'hqic', 'fpe')
            trend: Deterministic terms ('c', 'ct', 'ctt', 'n')
            model_id: Unique identifier
            hyperparameters: Unused; accepted for a uniform constructor
            calibration_method: Interval calibration method
        """
        if not covariates:
            raise ValueError("VAR needs at least one covariate besides the target")
        if maxlags < 1:
            raise ValueError("maxlags must be >= 1")
        self.covariates = tuple(covariates)
        self.maxlags = maxlags
        self.ic = ic
        self.trend = trend
        super().__init__(model_id, hyperparameters, calibration_method)

    @property
    def model_type(self) -> str:
        return "var"

    def required_features(self, target_column: str) -> List[str]:
        return [target_column, *self.covariates]

    def fit(self, train_frame: TimeSeriesFrame) -> FittedModel:
        started = datetime.now()
        columns = self.required_features(train_frame.target_column)
        self._validate_frame(train_frame, min_rows=self.maxlags + len(columns) + 1)
        self._require_complete(train_frame, columns)

        endog = train_frame.to_dataframe(columns).to_numpy(dtype=float)
        result = VAR(endog).fit(maxlags=self.maxlags, ic=self.ic, trend=self.trend)
        k_ar = result.k_ar
        logger.debug(f"[{self.model_id}] fitted VAR({k_ar}) on {len(columns)} series")

        # Last k_ar rows seed the forecast recursion
        seed = endog[len(endog) - k_ar:].copy()
        return self._make_fitted(
            (result, seed), train_frame, columns, started, k_ar=int(k_ar)
        )

    def predict(self, fitted: FittedModel, horizon_frame: TimeSeriesFrame) -> np.ndarray:
        result, seed = fitted.backend
        forecast = result.forecast(y=seed, steps=len(horizon_frame))
        # First column is the target
        return np.asarray(forecast, dtype=float)[:, 0]
