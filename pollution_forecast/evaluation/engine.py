"""
Fit -> predict -> calibrate -> interval construction for one (model, split) pair.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np
import pandas as pd

from ..data.splitters import Split
from ..data.structs import TimeSeriesFrame
from ..models.base_model import FittedModel, ModelAdapter
from ..utils.config_manager import BacktestConfig
from ..utils.error_handling import (
    FitError,
    MissingFeatureError,
    PairFailure,
    PredictionAlignmentError,
)
from ..utils.logging_config import pair_context
from .calibration import CalibrationResult, ResidualCalibrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastRecord:
    """One forecast for one (model, split, horizon step)."""
    model_id: str
    split_id: int
    timestamp: pd.Timestamp
    point_forecast: float
    lower_bound: float
    upper_bound: float
    actual: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "split_id": self.split_id,
            "timestamp": self.timestamp,
            "point_forecast": self.point_forecast,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "actual": self.actual,
        }


@dataclass
class PairResult:
    """
    Outcome of one (model, split) pair.

    Either ``records`` holds one ForecastRecord per test timestamp, or
    ``error`` describes why the pair produced nothing.
    """
    model_id: str
    split_id: int
    records: List[ForecastRecord] = field(default_factory=list)
    residuals: np.ndarray = field(default_factory=lambda: np.empty(0))
    calibration: Optional[CalibrationResult] = None
    error: Optional[PairFailure] = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, model_id: str, split_id: int, exc: BaseException) -> "PairResult":
        return cls(model_id=model_id, split_id=split_id, error=PairFailure.from_exception(model_id, split_id, exc))


class ForecastEngine:
    """Drives one adapter over one split of a feature-derived frame."""

    def __init__(self, config: Optional[BacktestConfig] = None):
        self.config = config or BacktestConfig()
        self.calibrator = ResidualCalibrator(
            confidence_level=self.config.confidence_level,
            min_empirical_residuals=self.config.min_empirical_residuals,
        )

    def check_features(self, adapter: ModelAdapter, frame: TimeSeriesFrame) -> None:
        """
        Raises:
            MissingFeatureError: If the frame lacks a feature the adapter declares
        """
        missing = adapter.missing_features(frame)
        if missing:
            raise MissingFeatureError(adapter.model_id, missing)

    def calibration_split(self, train_range: range) -> Tuple[range, range]:
        """
        Split a training range into a fit part and a calibration tail.

        Both parts hold at least one observation.
        """
        n = len(train_range)
        if n < 2:
            raise ValueError("Training window too short to hold out a calibration tail")
        n_cal = int(round(n * self.config.calibration_fraction))
        n_cal = min(max(n_cal, 1), n - 1)
        boundary = train_range.stop - n_cal
        return range(train_range.start, boundary), range(boundary, train_range.stop)

    def run(self, adapter: ModelAdapter, frame: TimeSeriesFrame, split: Split) -> PairResult:
        """
        Produce calibrated forecasts for the split's test window.

        Per-pair errors (missing features, fit failures, misaligned forecasts)
        are captured on the returned PairResult. Leakage violations propagate.

        Args:
            adapter: Adapter for this pair (not shared with other pairs)
            frame: Frame whose scaled features were fitted on ``split.train_range``
            split: The fold

        Returns:
            PairResult
        """
        started = datetime.now()
        if frame.scaler is not None:
            frame.scaler.assert_no_leakage(split.test_range)

        try:
            result = self._run(adapter, frame, split)
        except (MissingFeatureError, FitError, PredictionAlignmentError) as e:
            logger.warning(
                f"Pair ({adapter.model_id}, split {split.split_id}) failed: {e}",
                extra=pair_context(adapter.model_id, split.split_id, error_type=type(e).__name__),
            )
            result = PairResult.failed(adapter.model_id, split.split_id, e)

        result.duration = (datetime.now() - started).total_seconds()
        return result

    def _run(self, adapter: ModelAdapter, frame: TimeSeriesFrame, split: Split) -> PairResult:
        self.check_features(adapter, frame)
        try:
            fit_range, calibration_range = self.calibration_split(split.train_range)
        except ValueError as e:
            raise FitError(str(e), adapter.model_id, split.split_id) from e

        # Residuals on the training tail, from a model that never saw it
        calibration_preds = self._fit_predict(adapter, frame, fit_range, calibration_range, split.split_id)
        calibration_actuals = frame.window(calibration_range).target.to_numpy(dtype=float)
        residuals = calibration_actuals - calibration_preds
        try:
            calibration = self.calibrator.calibrate(residuals, adapter.calibration_method)
        except ValueError as e:
            raise FitError(f"Calibration failed: {e}", adapter.model_id, split.split_id) from e

        # Refit on the full training window for the test forecast
        point = self._fit_predict(adapter, frame, split.train_range, split.test_range, split.split_id)

        test = frame.window(split.test_range)
        actuals = test.target.to_numpy(dtype=float)
        records = [
            ForecastRecord(
                model_id=adapter.model_id,
                split_id=split.split_id,
                timestamp=ts,
                point_forecast=float(p),
                lower_bound=float(p - calibration.half_width),
                upper_bound=float(p + calibration.half_width),
                actual=None if np.isnan(a) else float(a),
            )
            for ts, p, a in zip(test.timestamps, point, actuals)
        ]

        logger.debug(
            f"[{adapter.model_id}] split {split.split_id}: {len(records)} records, "
            f"{calibration.method} half-width {calibration.half_width:.4f}"
        )
        return PairResult(
            model_id=adapter.model_id,
            split_id=split.split_id,
            records=records,
            residuals=residuals,
            calibration=calibration,
        )

    def _fit_predict(
        self,
        adapter: ModelAdapter,
        frame: TimeSeriesFrame,
        train_range: range,
        horizon_range: range,
        split_id: int,
    ) -> np.ndarray:
        train = frame.window(train_range)
        horizon = frame.window(horizon_range).mask_target()

        fitted = self._fit(adapter, train, split_id)
        try:
            forecast = adapter.predict(fitted, horizon)
        except (MissingFeatureError, PredictionAlignmentError):
            raise
        except Exception as e:
            raise FitError(
                f"Forecast failed: {type(e).__name__}: {e}", adapter.model_id, split_id
            ) from e

        return self._check_alignment(adapter.model_id, forecast, len(horizon))

    def _fit(self, adapter: ModelAdapter, train: TimeSeriesFrame, split_id: int) -> FittedModel:
        try:
            return adapter.fit(train)
        except MissingFeatureError:
            raise
        except Exception as e:
            raise FitError(
                f"Fit failed: {type(e).__name__}: {e}", adapter.model_id, split_id
            ) from e

    @staticmethod
    def _check_alignment(model_id: str, forecast: Any, expected: int) -> np.ndarray:
        forecast = np.asarray(forecast, dtype=float)
        if forecast.ndim != 1:
            raise PredictionAlignmentError(model_id, expected, forecast.size, reason=f"has shape {forecast.shape}")
        if len(forecast) != expected:
            raise PredictionAlignmentError(model_id, expected, len(forecast))
        if not np.all(np.isfinite(forecast)):
            raise PredictionAlignmentError(
                model_id, expected, int(np.isfinite(forecast).sum()), reason="has non-finite values"
            )
        return forecast
