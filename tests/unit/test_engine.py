"""
Unit tests for the per-pair forecast engine.
"""

import numpy as np
import pandas as pd
import pytest

from pollution_forecast.data.splitters import Split
from pollution_forecast.data.structs import TimeSeriesFrame
from pollution_forecast.evaluation.engine import ForecastEngine, ForecastRecord, PairResult
from pollution_forecast.evaluation.metrics import MetricsCalculator
from pollution_forecast.models.base_model import ModelAdapter
from pollution_forecast.models.baselines import MeanAdapter, NaiveAdapter
from pollution_forecast.models.linear_model import PenalizedLinearAdapter
from pollution_forecast.utils.config_manager import BacktestConfig
from pollution_forecast.utils.error_handling import LeakageViolationError, MissingFeatureError


class ConstantAdapter(ModelAdapter):
    """Returns a fixed forecast array, for alignment tests."""

    def __init__(self, output, **kwargs):
        self.output = output
        super().__init__(**kwargs)

    @property
    def model_type(self):
        return "constant"

    def required_features(self, target_column):
        return [target_column]

    def fit(self, train_frame):
        return self._make_fitted(None, train_frame, [], pd.Timestamp.now().to_pydatetime())

    def predict(self, fitted, horizon_frame):
        return self.output(len(horizon_frame)) if callable(self.output) else self.output


class ExplodingAdapter(MeanAdapter):

    def fit(self, train_frame):
        raise np.linalg.LinAlgError("Singular matrix")


@pytest.fixture
def engine(backtest_config):
    return ForecastEngine(backtest_config)


class TestCalibrationSplit:

    def test_fraction(self, engine):
        fit_range, cal_range = engine.calibration_split(range(0, 200))
        assert cal_range == range(160, 200)
        assert fit_range == range(0, 160)

    def test_at_least_one_on_each_side(self):
        engine = ForecastEngine(BacktestConfig(calibration_fraction=0.01))
        fit_range, cal_range = engine.calibration_split(range(10, 20))
        assert len(cal_range) == 1
        assert fit_range == range(10, 19)

        engine = ForecastEngine(BacktestConfig(calibration_fraction=0.99))
        fit_range, cal_range = engine.calibration_split(range(0, 10))
        assert len(fit_range) == 1

    def test_too_short(self, engine):
        with pytest.raises(ValueError):
            engine.calibration_split(range(0, 1))


class TestRun:

    def test_successful_pair(self, engine, fold_frame, first_split):
        result = engine.run(MeanAdapter(), fold_frame, first_split)

        assert isinstance(result, PairResult)
        assert result.succeeded
        assert len(result.records) == len(first_split.test_range)
        assert len(result.residuals) == 40
        assert result.calibration.method == "empirical"

        test_times = fold_frame.timestamps[first_split.test_range.start:first_split.test_range.stop]
        assert [r.timestamp for r in result.records] == list(test_times)
        actuals = fold_frame.window(first_split.test_range).target.to_numpy()
        for record, actual in zip(result.records, actuals):
            assert isinstance(record, ForecastRecord)
            assert record.lower_bound <= record.point_forecast <= record.upper_bound
            assert record.upper_bound - record.point_forecast == pytest.approx(result.calibration.half_width)
            assert record.actual == pytest.approx(actual)

    def test_calibration_uses_training_tail_only(self, engine, fold_frame, first_split):
        result = engine.run(NaiveAdapter(), fold_frame, first_split)
        target = fold_frame.target.to_numpy()
        # Naive fitted on rows 0..159 forecasts row 159 over the calibration tail
        expected = target[160:200] - target[159]
        np.testing.assert_allclose(result.residuals, expected)

    def test_point_forecast_refit_on_full_window(self, engine, fold_frame, first_split):
        result = engine.run(MeanAdapter(), fold_frame, first_split)
        expected = fold_frame.target.iloc[:200].mean()
        assert result.records[0].point_forecast == pytest.approx(expected)

    def test_constant_series_exact(self):
        index = pd.date_range("2014-01-01", periods=60, freq="h")
        frame = TimeSeriesFrame.build(pd.DataFrame({"target": np.full(60, 7.0)}, index=index), BacktestConfig())
        engine = ForecastEngine(BacktestConfig(initial_window=48, assess_window=12))
        result = engine.run(MeanAdapter(), frame, Split(0, range(0, 48), range(48, 60)))

        assert result.succeeded
        assert result.calibration.half_width == 0.0
        assert all(r.point_forecast == 7.0 == r.lower_bound == r.upper_bound for r in result.records)

        metrics = MetricsCalculator().calculate_record_metrics(result.records)
        assert metrics["rmse"] == 0.0
        assert metrics["mape"] == 0.0

    def test_missing_actuals_become_none(self, backtest_config, hourly_df, first_split):
        df = hourly_df.copy()
        df.iloc[205, 0] = np.nan
        frame = TimeSeriesFrame.build(df, backtest_config).derive_features(
            backtest_config, fit_range=first_split.train_range
        )
        result = ForecastEngine(backtest_config).run(MeanAdapter(), frame, first_split)
        assert result.records[5].actual is None
        assert result.records[5].lower_bound < result.records[5].upper_bound

    def test_input_frame_untouched(self, engine, fold_frame, first_split):
        before = fold_frame.to_dataframe()
        engine.run(PenalizedLinearAdapter(lags=(1, 24), covariates=("TEMP",)), fold_frame, first_split)
        pd.testing.assert_frame_equal(fold_frame.to_dataframe(), before)

    def test_calibration_method_per_adapter(self, engine, fold_frame, first_split):
        result = engine.run(MeanAdapter(calibration_method="normal"), fold_frame, first_split)
        assert result.calibration.method == "normal"


class TestFailures:

    def test_fit_error_captured(self, engine, fold_frame, first_split):
        result = engine.run(ExplodingAdapter(model_id="bad"), fold_frame, first_split)

        assert not result.succeeded
        assert result.records == []
        assert result.error.exception_type == "FitError"
        assert "Singular matrix" in result.error.exception_message
        assert "LinAlgError" in result.error.stack_trace

    def test_missing_feature_captured(self, engine, fold_frame, first_split):
        adapter = PenalizedLinearAdapter(covariates=("PRES",))
        with pytest.raises(MissingFeatureError):
            engine.check_features(adapter, fold_frame)

        result = engine.run(adapter, fold_frame, first_split)
        assert result.error.exception_type == "MissingFeatureError"

    @pytest.mark.parametrize("output,reason", [
        (lambda n: np.ones(n - 1), "expected"),
        (lambda n: np.ones((n, 2)), "shape"),
        (lambda n: np.full(n, np.nan), "non-finite"),
    ])
    def test_misaligned_forecast(self, engine, fold_frame, first_split, output, reason):
        result = engine.run(ConstantAdapter(output), fold_frame, first_split)
        assert result.error.exception_type == "PredictionAlignmentError"
        assert reason in result.error.exception_message

    def test_failure_logged_with_context(self, engine, fold_frame, first_split, caplog):
        engine.run(ExplodingAdapter(model_id="bad"), fold_frame, first_split)
        record = next(r for r in caplog.records if "failed" in r.getMessage())
        assert record.levelname == "WARNING"
        assert record.props["model_id"] == "bad"
        assert record.props["split_id"] == 0

    def test_leakage_raises(self, engine, hourly_frame, backtest_config, first_split):
        leaky = hourly_frame.derive_features(backtest_config, fit_range=range(0, 224))
        with pytest.raises(LeakageViolationError):
            engine.run(MeanAdapter(), leaky, first_split)
