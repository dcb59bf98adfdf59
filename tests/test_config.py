"""Tests for bridge configuration and custom parameter reconciliation."""

from __future__ import annotations

import copy
from pathlib import Path

import pytest

from nuheat2mqtt import config as config_module
from nuheat2mqtt.config import (
    DEFAULT_CONFIG,
    DEFAULT_PARAMS,
    ENV_MAPPINGS,
    load_config,
    reconcile_params,
    validate_config,
)

PARAM_INPUTS = [
    {},
    {"Username": "me@example.com"},
    {"Username": "me@example.com", "Password": "pw", "Scale": "Celsius"},
    {"Username": "me@example.com", "Password": "pw", "Scale": "Celsius", "Legacy": "x"},
    {"Legacy": "x", "Other": "y"},
    {"Username": "", "Password": "pw", "Region": "EU"},
]


@pytest.mark.parametrize("current", PARAM_INPUTS)
def test_reconcile_is_idempotent(current: dict) -> None:
    """Test reconciling twice gives the same parameters."""
    once = reconcile_params(current, DEFAULT_PARAMS).params
    twice = reconcile_params(once, DEFAULT_PARAMS).params

    assert twice == once


@pytest.mark.parametrize("current", PARAM_INPUTS)
def test_rewrite_covers_exactly_the_default_keys(current: dict) -> None:
    """Test a rewrite never keeps orphans nor misses a default key."""
    result = reconcile_params(current, DEFAULT_PARAMS)

    if result.needs_save:
        assert set(result.params) == set(DEFAULT_PARAMS)
    else:
        assert set(current) == set(DEFAULT_PARAMS)


def test_orphans_dropped_and_values_kept() -> None:
    """Test old schema keys go away while current values survive."""
    current = {"Username": "me@example.com", "Password": "pw", "Scale": "Celsius", "Legacy": "x"}

    params, needs_save = reconcile_params(current, DEFAULT_PARAMS)

    assert needs_save is True
    assert params == {"Username": "me@example.com", "Password": "pw", "Scale": "Celsius"}


def test_missing_keys_take_defaults() -> None:
    """Test defaults fill every missing key."""
    params, needs_save = reconcile_params({"Username": "me@example.com"}, DEFAULT_PARAMS)

    assert needs_save is True
    assert params == {**DEFAULT_PARAMS, "Username": "me@example.com"}


def test_empty_value_takes_default_on_rewrite() -> None:
    """Test an empty value is replaced when the key set is rewritten."""
    params, _ = reconcile_params({"Username": "", "Region": "EU"}, DEFAULT_PARAMS)

    assert params["Username"] == DEFAULT_PARAMS["Username"]


def test_matching_key_set_left_untouched() -> None:
    """Test values differing from defaults do not trigger a rewrite."""
    current = {"Username": "me@example.com", "Password": "", "Scale": "Celsius"}

    params, needs_save = reconcile_params(current, DEFAULT_PARAMS)

    assert needs_save is False
    assert params == current
    assert params is not current


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every override variable and the default search paths."""
    for env_var in ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setattr(config_module, "CONFIG_SEARCH_PATHS", [])


def test_load_config_defaults(clean_env: None) -> None:
    """Test defaults apply when no file is found."""
    config = load_config()

    assert config["mqtt"]["host"] == "localhost"
    assert config["options"]["short_poll"] == 60
    assert config["options"]["poll_lock_timeout"] == 0.5
    assert "_config_path" not in config


def test_load_config_from_yaml(clean_env: None, tmp_path: Path) -> None:
    """Test a YAML file is deep-merged over the defaults."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "mqtt:\n  host: broker.local\n"
        "params:\n  Username: me@example.com\n  Scale: Celsius\n"
        "options:\n  short_poll: 15\n"
    )

    config = load_config(str(path))

    assert config["mqtt"]["host"] == "broker.local"
    assert config["mqtt"]["port"] == 1883
    assert config["params"] == {"Username": "me@example.com", "Scale": "Celsius"}
    assert config["options"]["short_poll"] == 15
    assert config["options"]["long_poll"] == 300
    assert config["_config_path"] == str(path)


def test_env_overrides(clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test environment variables win over defaults and are converted."""
    monkeypatch.setenv("MQTT_PORT", "8883")
    monkeypatch.setenv("NUHEAT_USERNAME", "env@example.com")
    monkeypatch.setenv("SHORT_POLL", "20")

    config = load_config()

    assert config["mqtt"]["port"] == 8883
    assert config["params"]["Username"] == "env@example.com"
    assert config["options"]["short_poll"] == 20


def test_load_config_does_not_mutate_defaults(clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test overrides never leak into DEFAULT_CONFIG."""
    before = copy.deepcopy(DEFAULT_CONFIG)
    monkeypatch.setenv("MQTT_HOST", "elsewhere")
    monkeypatch.setenv("NUHEAT_SCALE", "Celsius")

    load_config()

    assert DEFAULT_CONFIG == before


def test_validate_config_ok(clean_env: None) -> None:
    """Test the default configuration is valid."""
    assert validate_config(load_config()) == []


def test_validate_config_errors() -> None:
    """Test invalid values are reported."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["mqtt"]["host"] = None
    config["options"]["short_poll"] = 0
    config["options"]["poll_lock_timeout"] = -1
    config["params"] = {"Scale": "Kelvin"}

    errors = validate_config(config)

    assert "mqtt.host is required" in errors
    assert any("short_poll" in error for error in errors)
    assert any("poll_lock_timeout" in error for error in errors)
    assert any("Scale" in error for error in errors)
