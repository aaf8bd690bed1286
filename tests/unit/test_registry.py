"""
Unit tests for the adapter registry.
"""

import pytest

from pollution_forecast.models.additive_model import AdditiveAdapter
from pollution_forecast.models.arima_model import DynamicRegressionAdapter
from pollution_forecast.models.baselines import MeanAdapter, SeasonalNaiveAdapter
from pollution_forecast.models.linear_model import PenalizedLinearAdapter
from pollution_forecast.models.registry import MODEL_MAP, available_models, build_adapter, build_adapters
from pollution_forecast.models.var_model import VARAdapter
from pollution_forecast.models.xgboost_model import XGBoostAdapter
from pollution_forecast.utils.config_manager import BacktestConfig


def test_available_models():
    assert available_models() == sorted(MODEL_MAP)
    assert "dynamic_regression" in available_models()


def test_build_adapter_splits_arguments_and_hyperparameters():
    adapter = build_adapter("penalized_linear", lags=[1, 24], alpha=0.5, calibration_method="normal")
    assert isinstance(adapter, PenalizedLinearAdapter)
    assert adapter.lags == (1, 24)
    assert adapter.hyperparameters["alpha"] == 0.5
    assert adapter.calibration_method == "normal"


def test_build_adapter_explicit_hyperparameters():
    adapter = build_adapter("xgboost", hyperparameters={"max_depth": 3}, learning_rate=0.2, optimize=False)
    assert isinstance(adapter, XGBoostAdapter)
    assert adapter.hyperparameters["max_depth"] == 3
    assert adapter.hyperparameters["learning_rate"] == 0.2
    assert adapter.optimize is False


def test_build_adapter_unknown():
    with pytest.raises(ValueError, match="Unknown model"):
        build_adapter("prophet")


def test_build_adapters_injects_context():
    config = BacktestConfig(
        lag_orders=(1, 2, 24),
        covariates=("DEWP", "TEMP"),
        seasonal_period=12,
        models=(
            {"name": "mean"},
            {"name": "seasonal_naive"},
            {"name": "penalized_linear", "model_id": "enet", "params": {"alpha": 0.2}},
            {"name": "additive"},
            {"name": "var", "params": {"maxlags": 3}},
            {"name": "dynamic_regression", "params": {"order": [2, 0, 1], "calibration_method": "normal"}},
        ),
    )
    adapters = build_adapters(config)
    by_id = {a.model_id: a for a in adapters}

    assert [a.model_id for a in adapters] == [
        "mean", "seasonal_naive", "enet", "additive", "var", "dynamic_regression"
    ]
    assert isinstance(by_id["mean"], MeanAdapter)
    assert isinstance(by_id["seasonal_naive"], SeasonalNaiveAdapter)
    assert by_id["seasonal_naive"].seasonal_period == 12
    assert by_id["enet"].lags == (1, 2, 24)
    assert by_id["enet"].covariates == ("DEWP", "TEMP")
    assert isinstance(by_id["additive"], AdditiveAdapter)
    assert isinstance(by_id["var"], VARAdapter)
    assert by_id["var"].maxlags == 3
    assert isinstance(by_id["dynamic_regression"], DynamicRegressionAdapter)
    assert by_id["dynamic_regression"].order == (2, 0, 1)
    assert by_id["dynamic_regression"].calibration_method == "normal"


def test_build_adapters_covariate_override():
    config = BacktestConfig(models=({"name": "random_forest"},))
    (adapter,) = build_adapters(config, covariates=["TEMP"])
    assert adapter.covariates == ("TEMP",)


def test_build_adapters_duplicate_ids():
    config = BacktestConfig(models=({"name": "mean"}, {"name": "mean"}))
    with pytest.raises(ValueError, match="Duplicate"):
        build_adapters(config)
