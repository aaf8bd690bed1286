"""Prediction interval calibration from held-out residuals."""

from dataclasses import dataclass
from typing import Any, Dict
import logging

import numpy as np
from scipy import stats

from ..models.base_model import CALIBRATION_METHODS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationResult:
    """Container for a calibrated interval half-width."""
    half_width: float
    method: str
    confidence_level: float
    n_residuals: int
    residual_mean: float
    residual_std: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "half_width": self.half_width,
            "method": self.method,
            "confidence_level": self.confidence_level,
            "n_residuals": self.n_residuals,
            "residual_mean": self.residual_mean,
            "residual_std": self.residual_std,
        }


class ResidualCalibrator:
    """Size symmetric prediction intervals from calibration residuals."""

    def __init__(self, confidence_level: float = 0.95, min_empirical_residuals: int = 30):
        """
        Initialize ResidualCalibrator.

        Args:
            confidence_level: Nominal interval coverage in (0, 1)
            min_empirical_residuals: Smallest residual count for which 'auto'
                uses empirical quantiles
        """
        if not 0.0 < confidence_level < 1.0:
            raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}")
        self.confidence_level = confidence_level
        self.min_empirical_residuals = min_empirical_residuals

    def calibrate(self, residuals: np.ndarray, method: str = "auto") -> CalibrationResult:
        """
        Compute the interval half-width.

        Args:
            residuals: actual - predicted on the calibration subset
            method: 'empirical', 'normal' or 'auto'

        Returns:
            CalibrationResult
        """
        if method not in CALIBRATION_METHODS:
            raise ValueError(f"Unknown calibration method '{method}'")

        residuals = np.asarray(residuals, dtype=float)
        residuals = residuals[np.isfinite(residuals)]
        n = len(residuals)
        if n == 0:
            raise ValueError("No finite calibration residuals")

        resolved = method
        if method == "auto":
            resolved = "empirical" if n >= self.min_empirical_residuals else "normal"

        if resolved == "empirical":
            half_width = self.empirical_half_width(residuals)
        else:
            half_width = self.normal_half_width(residuals)

        return CalibrationResult(
            half_width=float(half_width),
            method=resolved,
            confidence_level=self.confidence_level,
            n_residuals=n,
            residual_mean=float(residuals.mean()),
            residual_std=float(residuals.std(ddof=1)) if n > 1 else 0.0,
        )

    def empirical_half_width(self, residuals: np.ndarray) -> float:
        """Quantile of absolute residuals at the confidence level."""
        return float(np.quantile(np.abs(residuals), self.confidence_level))

    def normal_half_width(self, residuals: np.ndarray) -> float:
        """z * std half-width under a zero-mean normal residual model."""
        if len(residuals) < 2:
            # A single residual has no spread estimate
            return float(abs(residuals[0]))
        z = stats.norm.ppf((1.0 + self.confidence_level) / 2.0)
        return float(z * np.std(residuals, ddof=1))
