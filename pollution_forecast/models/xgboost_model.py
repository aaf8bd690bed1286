"""
Gradient-boosted tree adapter with optional Optuna hyperparameter search.
"""

from typing import Any, Dict, Optional, Sequence
import logging

import numpy as np
import optuna
import pandas as pd
import xgboost as xgb
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import TimeSeriesSplit

from .base_model import LagRegressionAdapter

logger = logging.getLogger(__name__)


class XGBoostAdapter(LagRegressionAdapter):
    """
    XGBoost regressor on target lags, calendar features and scaled covariates.

    With ``optimize=True`` each fit first searches hyperparameters with
    time-series cross-validation inside the training window it was given,
    then refits on that whole window.
    """

    def __init__(
        self,
        lags: Sequence[int] = (1, 2, 3, 24),
        covariates: Sequence[str] = (),
        use_calendar: bool = True,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
        optimize: bool = False,
        optimization_params: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize XGBoost adapter.

        Args:
            lags: Target lags used as inputs
            covariates: Covariates whose scaled copies are used as inputs
            use_calendar: Whether calendar features are inputs
            model_id: Unique identifier
            hyperparameters: XGBRegressor parameters
            calibration_method: Interval calibration method
            optimize: Run Optuna search on every fit
            optimization_params: n_trials (default 20), n_splits (default 3)
        """
        super().__init__(lags, covariates, use_calendar, model_id, hyperparameters, calibration_method)
        self.optimize = optimize
        self.optimization_params = dict(optimization_params or {})

        # Default params
        self.hyperparameters.setdefault("n_estimators", 100)
        self.hyperparameters.setdefault("max_depth", 6)
        self.hyperparameters.setdefault("learning_rate", 0.1)
        self.hyperparameters.setdefault("objective", "reg:squarederror")
        self.hyperparameters.setdefault("n_jobs", 1)

    @property
    def model_type(self) -> str:
        return "xgboost"

    def _fit_backend(self, X: pd.DataFrame, y: pd.Series) -> Any:
        params = dict(self.hyperparameters)
        if self.optimize:
            logger.info(f"[{self.model_id}] Starting hyperparameter optimization...")
            best_params = self.optimize_hyperparameters(X, y, self.optimization_params)
            logger.info(f"[{self.model_id}] Optimization complete. Best params: {best_params}")
            params.update(best_params)

        model = xgb.XGBRegressor(**params)
        model.fit(X, y, verbose=False)
        return model

    def _predict_backend(self, backend: Any, X: pd.DataFrame) -> np.ndarray:
        return backend.predict(X)

    def get_feature_importance(self, fitted, importance_type: str = "gain") -> Dict[str, float]:
        """
        Get feature importance of a fitted model.

        Args:
            fitted: FittedModel returned by ``fit``
            importance_type: 'weight', 'gain', 'cover', 'total_gain', 'total_cover'
        """
        scores = fitted.backend.get_booster().get_score(importance_type=importance_type)
        return {feat: scores.get(feat, 0.0) for feat in fitted.feature_names}

    def optimize_hyperparameters(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        params: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Run Optuna optimization on the training rows only.

        Args:
            X, y: Training data of one fold
            params: Optimization config
                - n_trials: Number of trials (default: 20)
                - n_splits: CV splits (default: 3)

        Returns:
            Best hyperparameters
        """
        n_trials = params.get("n_trials", 20)
        n_splits = params.get("n_splits", 3)

        def objective(trial):
            param = {
                "max_depth": trial.suggest_int("max_depth", 3, 10),
                "learning_rate": trial.suggest_float("learning_rate", 1e-3, 0.3, log=True),
                "n_estimators": trial.suggest_int("n_estimators", 50, 500),
                "subsample": trial.suggest_float("subsample", 0.5, 1.0),
                "colsample_bytree": trial.suggest_float("colsample_bytree", 0.5, 1.0),
                "min_child_weight": trial.suggest_int("min_child_weight", 1, 10),
                "objective": self.hyperparameters["objective"],
            }

            tscv = TimeSeriesSplit(n_splits=n_splits)
            scores = []
            for train_idx, val_idx in tscv.split(X):
                X_train, X_val = X.iloc[train_idx], X.iloc[val_idx]
                y_train, y_val = y.iloc[train_idx], y.iloc[val_idx]

                model = xgb.XGBRegressor(**param, n_jobs=1)  # Single job per trial to avoid oversubscription
                model.fit(X_train, y_train, verbose=False)
                preds = model.predict(X_val)
                scores.append(np.sqrt(mean_squared_error(y_val, preds)))

            return np.mean(scores)

        study = optuna.create_study(direction="minimize")
        study.optimize(objective, n_trials=n_trials)
        return study.best_params
