"""Map configuration names to adapter classes."""

from typing import Any, Dict, List, Optional, Sequence, Type
import inspect
import logging

from ..utils.config_manager import BacktestConfig
from .additive_model import AdditiveAdapter
from .arima_model import DynamicRegressionAdapter
from .base_model import ModelAdapter
from .baselines import MeanAdapter, NaiveAdapter, SeasonalNaiveAdapter
from .linear_model import PenalizedLinearAdapter
from .nnar_model import NNARAdapter
from .tree_models import RandomForestAdapter
from .var_model import VARAdapter
from .xgboost_model import XGBoostAdapter

logger = logging.getLogger(__name__)

MODEL_MAP: Dict[str, Type[ModelAdapter]] = {
    "mean": MeanAdapter,
    "naive": NaiveAdapter,
    "seasonal_naive": SeasonalNaiveAdapter,
    "penalized_linear": PenalizedLinearAdapter,
    "random_forest": RandomForestAdapter,
    "xgboost": XGBoostAdapter,
    "nnar": NNARAdapter,
    "additive": AdditiveAdapter,
    "var": VARAdapter,
    "dynamic_regression": DynamicRegressionAdapter,
}

# Options filled from the back-test configuration when an adapter accepts them
_CONTEXT_ARGS = ("lags", "covariates", "seasonal_period")


def available_models() -> List[str]:
    return sorted(MODEL_MAP)


def build_adapter(name: str, **params: Any) -> ModelAdapter:
    """
    Instantiate an adapter by configuration name.

    Parameters matching the adapter's constructor are passed as arguments;
    everything else is collected into ``hyperparameters`` for the backend.

    Args:
        name: Key in MODEL_MAP
        **params: Constructor arguments and backend hyperparameters

    Returns:
        Configured ModelAdapter

    Raises:
        ValueError: If the name is unknown
    """
    model_cls = MODEL_MAP.get(name)
    if model_cls is None:
        raise ValueError(f"Unknown model '{name}'. Supported: {available_models()}")

    accepted = set(inspect.signature(model_cls.__init__).parameters) - {"self"}
    kwargs = {k: v for k, v in params.items() if k in accepted and k != "hyperparameters"}
    hyperparameters = dict(params.get("hyperparameters") or {})
    hyperparameters.update({k: v for k, v in params.items() if k not in accepted})
    if hyperparameters:
        kwargs["hyperparameters"] = hyperparameters

    return model_cls(**kwargs)


def build_adapters(
    config: BacktestConfig,
    covariates: Optional[Sequence[str]] = None,
) -> List[ModelAdapter]:
    """
    Build every adapter listed in ``config.models``.

    Args:
        config: Back-test configuration
        covariates: Covariate names to inject (default: ``config.covariates``)

    Returns:
        Adapters in configuration order

    Raises:
        ValueError: On unknown names or duplicate model ids
    """
    context = {
        "lags": config.lag_orders,
        "covariates": tuple(config.covariates if covariates is None else covariates),
        "seasonal_period": config.seasonal_period,
    }

    adapters = []
    seen = set()
    for entry in config.models:
        name = entry["name"]
        params = dict(entry.get("params") or {})
        if entry.get("model_id"):
            params["model_id"] = entry["model_id"]

        accepted = inspect.signature(MODEL_MAP[name].__init__).parameters if name in MODEL_MAP else {}
        for key in _CONTEXT_ARGS:
            if key in accepted and key not in params:
                params[key] = context[key]

        adapter = build_adapter(name, **params)
        if adapter.model_id in seen:
            raise ValueError(f"Duplicate model_id '{adapter.model_id}' in configuration")
        seen.add(adapter.model_id)
        adapters.append(adapter)

    logger.info(f"Built {len(adapters)} adapters: {[a.model_id for a in adapters]}")
    return adapters
