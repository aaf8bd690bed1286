"""Forecasting model adapters."""

from pollution_forecast.models.base_model import (
    CALIBRATION_METHODS,
    FittedModel,
    LagRegressionAdapter,
    ModelAdapter,
)
from pollution_forecast.models.baselines import MeanAdapter, NaiveAdapter, SeasonalNaiveAdapter
from pollution_forecast.models.registry import MODEL_MAP, available_models, build_adapter, build_adapters

__all__ = [
    "CALIBRATION_METHODS",
    "FittedModel",
    "LagRegressionAdapter",
    "ModelAdapter",
    "MeanAdapter",
    "NaiveAdapter",
    "SeasonalNaiveAdapter",
    "MODEL_MAP",
    "available_models",
    "build_adapter",
    "build_adapters",
]
