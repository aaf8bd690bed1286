"""Configuration, logging, error taxonomy and serialization helpers."""

from pollution_forecast.utils.config_manager import BacktestConfig, ConfigManager
from pollution_forecast.utils.logging_config import JSONFormatter, pair_context, setup_logging

__all__ = ["BacktestConfig", "ConfigManager", "JSONFormatter", "pair_context", "setup_logging"]
