"""Property tests for configuration loading helpers."""

import json
import logging

import pytest
from hypothesis import given, settings, strategies as st

from pollution_forecast.utils.config_manager import BacktestConfig, ConfigManager

option_names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=12)
option_values = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=False),
    st.text(max_size=10),
    st.lists(st.integers(), max_size=4),
)
nested_configs = st.recursive(
    option_values,
    lambda children: st.dictionaries(option_names, children, max_size=4),
    max_leaves=12,
)
config_dicts = st.dictionaries(option_names, nested_configs, max_size=5)
dotted_paths = st.lists(option_names, min_size=1, max_size=4).map(".".join)

manager = ConfigManager()


def walk(config, path):
    node = config
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return False, None
        node = node[key]
    return True, node


@st.composite
def backtest_sections(draw):
    return {
        "initial_window": draw(st.integers(min_value=1, max_value=5000)),
        "assess_window": draw(st.integers(min_value=1, max_value=500)),
        "step": draw(st.integers(min_value=1, max_value=500)),
        "max_splits": draw(st.integers(min_value=1, max_value=20)),
        "confidence_level": draw(st.floats(min_value=0.5, max_value=0.99)),
        "lag_orders": draw(st.lists(st.integers(min_value=1, max_value=168), min_size=1, max_size=5, unique=True)),
        "covariates": draw(st.lists(st.sampled_from(["DEWP", "TEMP", "PRES", "Iws"]), unique=True)),
    }


@given(config_dicts, dotted_paths)
@settings(max_examples=100)
def test_get_value_follows_dotted_path(config, path):
    """Property: get_value returns the nested value, or the default when the path is absent."""
    found, expected = walk(config, path)
    if found:
        assert manager.get_value(config, path) == expected
    else:
        assert manager.get_value(config, path, default="<absent>") == "<absent>"


@given(config_dicts, dotted_paths, option_values)
@settings(max_examples=100)
def test_set_then_get(config, path, value):
    """Property: a value written at a dotted path is read back from it."""
    config = json.loads(json.dumps(config))
    manager.set_value(config, path, value)
    assert manager.get_value(config, path) == value


@given(config_dicts, config_dicts)
@settings(max_examples=100)
def test_merge_keeps_keys_and_prefers_override(base, override):
    """Property: merging keeps every key and override leaves win."""
    merged = manager.merge_configs(base, override)

    assert set(merged) == set(base) | set(override)
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            assert manager.merge_configs(base[key], value) == merged[key]
        else:
            assert merged[key] == value


@given(backtest_sections())
@settings(max_examples=50)
def test_backtest_config_from_valid_section(section):
    """
    Property: a section within the option ranges materializes into a
    BacktestConfig with sorted lag orders.
    """
    config = BacktestConfig.from_dict({"backtest": section})

    assert config.initial_window == section["initial_window"]
    assert config.lag_orders == tuple(sorted(section["lag_orders"]))
    assert config.covariates == tuple(section["covariates"])
    assert BacktestConfig.from_dict(config.to_dict()) == config


def test_validation_error_names_the_option(tmp_path):
    schema = {
        "type": "object",
        "properties": {
            "backtest": {"type": "object", "properties": {"step": {"type": "integer"}}}
        },
    }
    (tmp_path / "test_schema.json").write_text(json.dumps(schema))
    local = ConfigManager(config_dir=str(tmp_path), schema_dir=str(tmp_path))

    with pytest.raises(ValueError) as excinfo:
        local.validate_config({"backtest": {"step": "weekly"}}, "test_schema.json")

    assert "backtest -> step" in str(excinfo.value)


def test_unknown_options_logged(caplog):
    with caplog.at_level(logging.WARNING):
        BacktestConfig.from_dict({"initial_window": 10, "horizon": 5})
    assert "horizon" in caplog.text
