"""Pytest configuration and shared fixtures."""

import numpy as np
import pandas as pd
import pytest

from pollution_forecast.data.splitters import Split
from pollution_forecast.data.structs import TimeSeriesFrame
from pollution_forecast.utils.config_manager import BacktestConfig


def make_hourly_df(n: int = 400, seed: int = 42, start: str = "2014-01-01") -> pd.DataFrame:
    """Synthetic hourly PM2.5 series with a daily cycle driven by two covariates."""
    rng = np.random.default_rng(seed)
    index = pd.date_range(start=start, periods=n, freq="h", name="timestamp")
    hour = index.hour.to_numpy()
    temp = 10 + 5 * np.sin(2 * np.pi * hour / 24) + rng.normal(0, 0.5, n)
    dewp = -5 + 0.3 * temp + rng.normal(0, 0.5, n)
    pm25 = 80 + 20 * np.sin(2 * np.pi * (hour - 6) / 24) - 1.5 * dewp + rng.normal(0, 3, n)
    return pd.DataFrame({"pm2.5": pm25, "DEWP": dewp, "TEMP": temp}, index=index)


@pytest.fixture
def hourly_df():
    """400 hourly observations of pm2.5, DEWP and TEMP."""
    return make_hourly_df()


@pytest.fixture
def backtest_config():
    """Small rolling-origin configuration suited to the synthetic series."""
    return BacktestConfig(
        initial_window=200,
        assess_window=24,
        step=24,
        max_splits=3,
        confidence_level=0.95,
        lag_orders=(1, 2, 24),
        calibration_fraction=0.2,
        target_column="pm2.5",
        covariates=("DEWP", "TEMP"),
        frequency="h",
        min_empirical_residuals=30,
        seasonal_period=24,
    )


@pytest.fixture
def hourly_frame(hourly_df, backtest_config):
    """Validated raw frame."""
    return TimeSeriesFrame.build(hourly_df, backtest_config)


@pytest.fixture
def first_split():
    return Split(split_id=0, train_range=range(0, 200), test_range=range(200, 224))


@pytest.fixture
def fold_frame(hourly_frame, backtest_config, first_split):
    """Feature frame scaled on the first split's training range."""
    return hourly_frame.derive_features(backtest_config, fit_range=first_split.train_range)
