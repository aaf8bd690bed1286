"""
Tests for XGBoost adapter.
"""

import pytest
import numpy as np
import pandas as pd
from unittest.mock import MagicMock, patch
from hypothesis import given, settings, strategies as st
from sklearn.model_selection import TimeSeriesSplit

from pollution_forecast.models.xgboost_model import XGBoostAdapter

# --- Fixtures ---

@pytest.fixture
def train(fold_frame, first_split):
    return fold_frame.window(first_split.train_range)

@pytest.fixture
def horizon(fold_frame, first_split):
    return fold_frame.window(first_split.test_range).mask_target()

# --- Unit Tests ---

def test_xgboost_fit_predict(train, horizon):
    adapter = XGBoostAdapter(
        lags=(1, 2, 24),
        covariates=("DEWP", "TEMP"),
        hyperparameters={"n_estimators": 20, "max_depth": 3},
    )
    fitted = adapter.fit(train)
    preds = adapter.predict(fitted, horizon)

    assert len(preds) == len(horizon)
    assert isinstance(preds, np.ndarray)
    assert np.all(np.isfinite(preds))

    imps = adapter.get_feature_importance(fitted)
    assert set(imps) == set(fitted.feature_names)

def test_xgboost_defaults():
    adapter = XGBoostAdapter()
    assert adapter.model_id == "xgboost"
    assert adapter.hyperparameters["objective"] == "reg:squarederror"
    assert adapter.hyperparameters["n_jobs"] == 1

@patch("pollution_forecast.models.xgboost_model.optuna.create_study")
def test_xgboost_optimization(mock_create_study, train, horizon):
    adapter = XGBoostAdapter(
        lags=(1, 24),
        optimize=True,
        optimization_params={"n_trials": 1},
        hyperparameters={"n_estimators": 10},
    )

    # Mock study and optimization
    mock_study = MagicMock()
    mock_study.best_params = {"learning_rate": 0.05, "max_depth": 4}
    mock_create_study.return_value = mock_study

    fitted = adapter.fit(train)

    mock_study.optimize.assert_called_once()
    assert fitted.backend.get_params()["learning_rate"] == 0.05
    assert fitted.backend.get_params()["max_depth"] == 4
    # Tuned values are per fit, the adapter's configuration is unchanged
    assert adapter.hyperparameters["max_depth"] == 6
    assert len(adapter.predict(fitted, horizon)) == len(horizon)

def test_optimize_hyperparameters_uses_given_rows_only():
    X = pd.DataFrame({"a": np.arange(60, dtype=float), "b": np.random.default_rng(0).normal(size=60)})
    y = pd.Series(2 * X["a"] + 1)
    adapter = XGBoostAdapter()

    seen_lengths = []
    class SpySplit(TimeSeriesSplit):
        def split(self, X_, *args, **kwargs):
            seen_lengths.append(len(X_))
            return super().split(X_, *args, **kwargs)

    with patch("pollution_forecast.models.xgboost_model.TimeSeriesSplit", SpySplit):
        best = adapter.optimize_hyperparameters(X, y, {"n_trials": 2, "n_splits": 2})

    assert seen_lengths == [60, 60]
    assert {"max_depth", "learning_rate", "n_estimators"} <= set(best)

# --- Property Test ---

@settings(max_examples=10, deadline=None) # Limited examples for heavy model test
@given(st.lists(st.floats(min_value=-100, max_value=100, allow_nan=False, allow_infinity=False), min_size=40, max_size=80))
def test_xgboost_forecast_length(values):
    """Forecasts always cover the horizon and stay finite."""
    from pollution_forecast.data.structs import TimeSeriesFrame
    from pollution_forecast.utils.config_manager import BacktestConfig

    index = pd.date_range("2014-01-01", periods=len(values) + 10, freq="h")
    df = pd.DataFrame({"target": values + [0.0] * 10}, index=index)
    config = BacktestConfig(lag_orders=(1, 2))
    frame = TimeSeriesFrame.build(df, config).derive_features(config)

    adapter = XGBoostAdapter(lags=(1, 2), hyperparameters={"n_estimators": 5})
    fitted = adapter.fit(frame.window(range(0, len(values))))
    preds = adapter.predict(fitted, frame.window(range(len(values), len(values) + 10)).mask_target())

    assert preds.shape == (10,)
    assert np.all(np.isfinite(preds))
