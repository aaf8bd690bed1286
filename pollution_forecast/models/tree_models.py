"""Tree-ensemble regression adapter."""

from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor

from .base_model import LagRegressionAdapter


class RandomForestAdapter(LagRegressionAdapter):
    """Random forest on target lags, calendar features and scaled covariates."""

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
        self.hyperparameters.setdefault("n_estimators", 100)
        self.hyperparameters.setdefault("min_samples_leaf", 2)
        # Fixed seed keeps folds reproducible
        self.hyperparameters.setdefault("random_state", 0)
        self.hyperparameters.setdefault("n_jobs", 1)

    @property
    def model_type(self) -> str:
        return "random_forest"

    def _fit_backend(self, X: pd.DataFrame, y: pd.Series) -> Any:
        model = RandomForestRegressor(**self.hyperparameters)
        return model.fit(X, y)

    def _predict_backend(self, backend: Any, X: pd.DataFrame) -> np.ndarray:
        return backend.predict(X)

    def get_feature_importance(self, fitted) -> Dict[str, float]:
        """Impurity-based importance per input feature."""
        return dict(zip(fitted.feature_names, fitted.backend.feature_importances_.tolist()))
