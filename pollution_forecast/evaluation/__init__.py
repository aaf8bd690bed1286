"""Forecast engine, calibration, accuracy aggregation and reporting."""

from pollution_forecast.evaluation.calibration import CalibrationResult, ResidualCalibrator
from pollution_forecast.evaluation.engine import ForecastEngine, ForecastRecord, PairResult
from pollution_forecast.evaluation.metrics import MetricsCalculator
from pollution_forecast.evaluation.aggregation import AccuracyAggregator, AccuracyRecord, ModelSummary
from pollution_forecast.evaluation.report import ForecastReport
from pollution_forecast.evaluation.comparison import CrossValidationRunner, run_backtest

__all__ = [
    "CalibrationResult",
    "ResidualCalibrator",
    "ForecastEngine",
    "ForecastRecord",
    "PairResult",
    "MetricsCalculator",
    "AccuracyAggregator",
    "AccuracyRecord",
    "ModelSummary",
    "ForecastReport",
    "CrossValidationRunner",
    "run_backtest",
]
