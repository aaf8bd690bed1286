"""Feature derivation: target lags, calendar fields and split-aware scaling."""

from pollution_forecast.features.engineering import (
    CALENDAR_FEATURES,
    FeatureDefinitions,
    FeatureEngineer,
    SplitAwareScaler,
    lag_column,
    scaled_column,
)

__all__ = [
    "CALENDAR_FEATURES",
    "FeatureDefinitions",
    "FeatureEngineer",
    "SplitAwareScaler",
    "lag_column",
    "scaled_column",
]
