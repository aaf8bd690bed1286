"""
Tests for statsmodels-backed adapters: additive decomposition, VAR and dynamic regression.
"""

from dataclasses import replace
from types import SimpleNamespace

import numpy as np
import pytest

from pollution_forecast.data.structs import TimeSeriesFrame
from pollution_forecast.models.additive_model import AdditiveAdapter
from pollution_forecast.models.arima_model import DynamicRegressionAdapter, check_convergence
from pollution_forecast.models.var_model import VARAdapter


@pytest.fixture
def train(fold_frame, first_split):
    return fold_frame.window(first_split.train_range)


@pytest.fixture
def horizon(fold_frame, first_split):
    return fold_frame.window(first_split.test_range).mask_target()


class TestAdditiveAdapter:

    def test_fit_predict(self, train, horizon):
        adapter = AdditiveAdapter(seasonal_period=24)
        fitted = adapter.fit(train)
        preds = adapter.predict(fitted, horizon)

        assert preds.shape == (len(horizon),)
        assert np.all(np.isfinite(preds))
        assert fitted.metadata["seasonal_period"] == 24
        assert adapter.required_features("pm2.5") == ["pm2.5"]

    def test_needs_two_seasons(self, fold_frame):
        with pytest.raises(ValueError):
            AdditiveAdapter(seasonal_period=24).fit(fold_frame.window(range(0, 40)))

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            AdditiveAdapter(seasonal_period=1)


@pytest.mark.parametrize("adapter", [
    AdditiveAdapter(seasonal_period=24),
    VARAdapter(covariates=("DEWP", "TEMP"), maxlags=2),
])
def test_rejects_window_with_missing_period(adapter, hourly_df, backtest_config):
    config = replace(backtest_config, max_gap_tolerance=2)
    frame = TimeSeriesFrame.build(hourly_df.drop(hourly_df.index[150]), config)

    with pytest.raises(ValueError, match="gap-free"):
        adapter.fit(frame.window(range(0, 200)))


class TestVARAdapter:

    def test_fit_predict(self, train, horizon):
        adapter = VARAdapter(covariates=("DEWP", "TEMP"), maxlags=2)
        fitted = adapter.fit(train)
        preds = adapter.predict(fitted, horizon)

        assert preds.shape == (len(horizon),)
        assert np.all(np.isfinite(preds))
        assert fitted.metadata["k_ar"] == 2
        assert fitted.feature_names == ("pm2.5", "DEWP", "TEMP")

    def test_ignores_horizon_values(self, train, fold_frame, first_split):
        adapter = VARAdapter(covariates=("DEWP", "TEMP"), maxlags=2)
        fitted = adapter.fit(train)
        horizon = fold_frame.window(first_split.test_range)
        np.testing.assert_allclose(
            adapter.predict(fitted, horizon),
            adapter.predict(fitted, horizon.mask_target()),
        )

    def test_order_selection(self, train, horizon):
        adapter = VARAdapter(covariates=("TEMP",), maxlags=6, ic="aic")
        fitted = adapter.fit(train)
        assert 0 <= fitted.metadata["k_ar"] <= 6
        assert len(adapter.predict(fitted, horizon)) == len(horizon)

    def test_requires_covariates(self):
        with pytest.raises(ValueError):
            VARAdapter(covariates=())

    def test_required_features(self):
        assert VARAdapter(covariates=("TEMP",)).required_features("pm2.5") == ["pm2.5", "TEMP"]


class TestDynamicRegressionAdapter:

    def test_fit_predict(self, train, horizon):
        adapter = DynamicRegressionAdapter(
            covariates=("DEWP", "TEMP"),
            order=(1, 0, 0),
            require_convergence=False,
        )
        fitted = adapter.fit(train)
        preds = adapter.predict(fitted, horizon)

        assert preds.shape == (len(horizon),)
        assert np.all(np.isfinite(preds))
        assert fitted.feature_names == ("DEWP_scaled", "TEMP_scaled")
        assert "aic" in fitted.metadata

    def test_without_covariates(self, train, horizon):
        adapter = DynamicRegressionAdapter(order=(1, 0, 0), require_convergence=False)
        fitted = adapter.fit(train)
        assert adapter.required_features("pm2.5") == ["pm2.5"]
        assert len(adapter.predict(fitted, horizon)) == len(horizon)

    def test_default_maxiter(self):
        assert DynamicRegressionAdapter().hyperparameters["maxiter"] == 200


class TestConvergenceCheck:

    def test_converged(self):
        check_convergence(SimpleNamespace(mle_retvals={"converged": True}), "m", required=True)

    def test_not_converged_required(self):
        with pytest.raises(RuntimeError, match="did not converge"):
            check_convergence(SimpleNamespace(mle_retvals={"converged": False}), "m", required=True)

    def test_not_converged_tolerated(self, caplog):
        check_convergence(SimpleNamespace(mle_retvals={"converged": False}), "m", required=False)
        assert "did not converge" in caplog.text

    def test_result_without_retvals(self):
        check_convergence(SimpleNamespace(), "m", required=True)
