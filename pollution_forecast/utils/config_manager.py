"""
Back-test configuration: the BacktestConfig options and the YAML/JSON loader
that validates them against the JSON schema in ``config/schemas``.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import jsonschema
import yaml

logger = logging.getLogger(__name__)

# Resolved against the working directory, normally the project root
DEFAULT_CONFIG_DIR = Path("config")


@dataclass(frozen=True)
class BacktestConfig:
    """
    Recognized options for a rolling-origin back-test.

    Attributes:
        initial_window: Training observations per fold
        assess_window: Test observations per fold
        step: Fold advance in observations
        max_splits: Upper bound on the number of folds
        confidence_level: Nominal coverage of the prediction intervals
        lag_orders: Target lags derived as features
        calibration_fraction: Share of each training window held out for residual calibration
        target_column: Name of the target column
        covariates: Covariate columns passed to the models
        scale_columns: Numeric columns centered/scaled per training window (default: covariates)
        max_gap_tolerance: Largest allowed gap between timestamps, in periods
        frequency: Expected sampling frequency (inferred when None)
        min_empirical_residuals: Below this residual count intervals use the normal approximation
        seasonal_period: Season length used by seasonal models
        n_jobs: Worker threads for the (model, split) pairs
        pair_timeout: Seconds before an in-flight pair is abandoned (None waits forever)
        models: Model specifications ({"name": ..., "model_id": ..., "params": {...}})
    """
    initial_window: int = 1440
    assess_window: int = 168
    step: int = 168
    max_splits: int = 4
    confidence_level: float = 0.95
    lag_orders: Tuple[int, ...] = (1, 2, 3, 24)
    calibration_fraction: float = 0.1
    target_column: str = "target"
    covariates: Tuple[str, ...] = ()
    scale_columns: Optional[Tuple[str, ...]] = None
    max_gap_tolerance: int = 1
    frequency: Optional[str] = None
    min_empirical_residuals: int = 30
    seasonal_period: int = 24
    n_jobs: int = 1
    pair_timeout: Optional[float] = None
    models: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    def __post_init__(self):
        """Validate option ranges."""
        for name in ("initial_window", "assess_window", "step", "max_splits", "max_gap_tolerance",
                     "min_empirical_residuals", "seasonal_period", "n_jobs"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if not 0.0 < self.confidence_level < 1.0:
            raise ValueError(f"confidence_level must be in (0, 1), got {self.confidence_level}")
        if not 0.0 < self.calibration_fraction < 1.0:
            raise ValueError(f"calibration_fraction must be in (0, 1), got {self.calibration_fraction}")
        if any(not isinstance(k, int) or k < 1 for k in self.lag_orders):
            raise ValueError(f"lag_orders must be positive integers, got {self.lag_orders}")
        if self.pair_timeout is not None and self.pair_timeout <= 0:
            raise ValueError(f"pair_timeout must be positive, got {self.pair_timeout}")
        # Normalize collections to tuples in a fixed order
        object.__setattr__(self, "lag_orders", tuple(sorted(set(self.lag_orders))))
        object.__setattr__(self, "covariates", tuple(self.covariates))
        if self.scale_columns is not None:
            object.__setattr__(self, "scale_columns", tuple(self.scale_columns))
        object.__setattr__(self, "models", tuple(dict(m) for m in self.models))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BacktestConfig":
        """Create from a (possibly nested) configuration dictionary."""
        section = data.get("backtest", data)
        known = set(cls.__dataclass_fields__)
        unknown = set(section) - known
        if unknown:
            logger.warning(f"Ignoring unknown backtest options: {sorted(unknown)}")
        kwargs = {k: v for k, v in section.items() if k in known}
        for key in ("lag_orders", "covariates", "scale_columns", "models"):
            if kwargs.get(key) is not None:
                kwargs[key] = tuple(kwargs[key])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        for key in ("lag_orders", "covariates", "scale_columns", "models"):
            if data[key] is not None:
                data[key] = list(data[key])
        return data


class ConfigManager:
    """
    Reads configuration files from ``config_dir`` and checks them against the
    JSON schemas in ``schema_dir`` (default: ``<config_dir>/schemas``).
    """

    def __init__(self, config_dir: Optional[str] = None, schema_dir: Optional[str] = None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.schema_dir = Path(schema_dir) if schema_dir else self.config_dir / "schemas"

    def load_config(self, config_name: str, schema_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Parse a YAML (.yaml/.yml) or JSON file from the config directory.

        Args:
            config_name: File name, e.g. 'backtest_config.yaml'
            schema_name: Schema to validate the parsed contents against

        Returns:
            Parsed configuration
        """
        config_path = self.config_dir / config_name
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parsers = {".yaml": yaml.safe_load, ".yml": yaml.safe_load, ".json": json.load}
        parser = parsers.get(config_path.suffix)
        if parser is None:
            raise ValueError(f"Unsupported configuration format: {config_path.suffix}")
        with open(config_path, "r") as f:
            config = parser(f) or {}

        if schema_name:
            self.validate_config(config, schema_name)
        return config

    def load_backtest_config(
        self,
        config_name: str = "backtest_config.yaml",
        overrides: Optional[Dict[str, Any]] = None,
    ) -> BacktestConfig:
        """
        Load, validate and materialize a BacktestConfig.

        Args:
            config_name: Name of the config file in config_dir
            overrides: Values deep-merged over the file contents before
                validation; dotted keys ('backtest.n_jobs') address one option

        Returns:
            BacktestConfig instance
        """
        config = self.load_config(config_name)
        if overrides:
            config = self.merge_configs(config, {k: v for k, v in overrides.items() if "." not in k})
            for path, value in overrides.items():
                if "." in path:
                    self.set_value(config, path, value)
        self.validate_config(config, "backtest_config_schema.json")
        return BacktestConfig.from_dict(config)

    def validate_config(self, config: Dict[str, Any], schema_name: str) -> None:
        """
        Raises:
            FileNotFoundError: If the schema file does not exist
            ValueError: Naming the offending option path when validation fails
        """
        schema_path = self.schema_dir / schema_name
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")
        with open(schema_path, "r") as f:
            schema = json.load(f)

        try:
            jsonschema.validate(instance=config, schema=schema)
        except jsonschema.exceptions.ValidationError as e:
            location = " -> ".join(str(p) for p in e.path) or "root"
            message = f"Invalid configuration at '{location}': {e.message}"
            logger.error(message)
            raise ValueError(message) from e

        logger.debug(f"Configuration valid against {schema_name}")

    def merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursive merge; nested dicts are merged, any other override value replaces the base one."""
        merged = dict(base)
        for key, value in override.items():
            if isinstance(merged.get(key), dict) and isinstance(value, dict):
                merged[key] = self.merge_configs(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get_value(self, config: Dict[str, Any], path: str, default: Any = None) -> Any:
        """Value at a dotted path such as 'backtest.initial_window', or ``default``."""
        node = config
        for key in path.split("."):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """Write ``value`` at a dotted path in place, replacing non-dict intermediates with dicts."""
        *parents, leaf = path.split(".")
        node = config
        for key in parents:
            if not isinstance(node.get(key), dict):
                node[key] = {}
            node = node[key]
        node[leaf] = value
