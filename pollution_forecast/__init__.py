"""Rolling-origin back-testing of hourly pollution forecasts."""

__version__ = "0.1.0"
