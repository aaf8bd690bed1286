"""Forecast accuracy metrics."""

from typing import Dict, Iterable, Optional
import logging

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

logger = logging.getLogger(__name__)

METRIC_NAMES = ("mape", "rmse", "mae", "coverage", "mean_interval_width")


class MetricsCalculator:
    """Calculate point and interval accuracy of forecasts."""

    def calculate_forecast_metrics(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        lower: Optional[np.ndarray] = None,
        upper: Optional[np.ndarray] = None,
    ) -> Dict[str, Optional[float]]:
        """
        Calculate forecast metrics over observations with a known actual.

        Args:
            y_true: Actual values (NaN where unknown)
            y_pred: Point forecasts
            lower: Lower interval bounds (optional)
            upper: Upper interval bounds (optional)

        Returns:
            Dictionary of metric names to values; a metric that is undefined
            for the given data is None
        """
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        if y_true.shape != y_pred.shape:
            raise ValueError(f"Shape mismatch: {y_true.shape} vs {y_pred.shape}")

        known = ~np.isnan(y_true)
        n = int(known.sum())
        metrics: Dict[str, Optional[float]] = {name: None for name in METRIC_NAMES}
        metrics["n_observations"] = n
        if n == 0:
            return metrics

        actual = y_true[known]
        pred = y_pred[known]

        metrics["rmse"] = float(np.sqrt(mean_squared_error(actual, pred)))
        metrics["mae"] = float(mean_absolute_error(actual, pred))
        metrics["mape"] = self.mape(actual, pred)

        if lower is not None and upper is not None:
            lo = np.asarray(lower, dtype=float)[known]
            hi = np.asarray(upper, dtype=float)[known]
            metrics["coverage"] = float(np.mean((actual >= lo) & (actual <= hi)))
            metrics["mean_interval_width"] = float(np.mean(hi - lo))

        return metrics

    @staticmethod
    def mape(y_true: np.ndarray, y_pred: np.ndarray) -> Optional[float]:
        """Mean absolute percentage error in percent; zero actuals are excluded."""
        nonzero = y_true != 0
        if not nonzero.any():
            return None
        return float(np.mean(np.abs((y_true[nonzero] - y_pred[nonzero]) / y_true[nonzero])) * 100)

    def calculate_record_metrics(self, records: Iterable) -> Dict[str, Optional[float]]:
        """Metrics over ForecastRecords (records without an actual are skipped)."""
        records = list(records)
        actual = np.array([np.nan if r.actual is None else r.actual for r in records], dtype=float)
        return self.calculate_forecast_metrics(
            actual,
            np.array([r.point_forecast for r in records], dtype=float),
            np.array([r.lower_bound for r in records], dtype=float),
            np.array([r.upper_bound for r in records], dtype=float),
        )
