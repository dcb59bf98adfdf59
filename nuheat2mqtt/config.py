"""Configuration management for nuheat2mqtt."""

import copy
import os
from pathlib import Path
from typing import Any, NamedTuple, Optional

import yaml

PARAM_USERNAME = "Username"
PARAM_PASSWORD = "Password"
PARAM_SCALE = "Scale"

SCALE_FAHRENHEIT = "Fahrenheit"
SCALE_CELSIUS = "Celsius"

# Custom parameters shown to the user, with their defaults
DEFAULT_PARAMS = {
    PARAM_USERNAME: "john@doe.net",
    PARAM_PASSWORD: "password",
    PARAM_SCALE: SCALE_FAHRENHEIT,
}

DEFAULT_CONFIG = {
    "mqtt": {
        "host": "localhost",
        "port": 1883,
        "username": None,
        "password": None,
        "client_id": "nuheat2mqtt",
        "base_topic": "nuheat2mqtt",
    },
    # User-supplied custom parameters (Username, Password, Scale)
    "params": {},
    "options": {
        "short_poll": 60,
        "long_poll": 300,
        "poll_lock_timeout": 0.5,
        "discovery_delay": 1.0,
        "state_dir": "./storage",
        "reconnect_interval": 30,
        "log_level": "INFO",
    },
}

CONFIG_SEARCH_PATHS = [
    Path("config.yaml"),
    Path("/app/config.yaml"),
    Path.home() / ".config" / "nuheat2mqtt" / "config.yaml",
    Path("/etc/nuheat2mqtt/config.yaml"),
]

# Format: "ENV_VAR": ("section", "key", converter)
ENV_MAPPINGS = {
    "MQTT_HOST": ("mqtt", "host", str),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_USERNAME": ("mqtt", "username", str),
    "MQTT_PASSWORD": ("mqtt", "password", str),
    "NUHEAT_USERNAME": ("params", PARAM_USERNAME, str),
    "NUHEAT_PASSWORD": ("params", PARAM_PASSWORD, str),
    "NUHEAT_SCALE": ("params", PARAM_SCALE, str),
    "SHORT_POLL": ("options", "short_poll", int),
    "LONG_POLL": ("options", "long_poll", int),
    "STATE_DIR": ("options", "state_dir", str),
    "LOG_LEVEL": ("options", "log_level", str),
}


class ParamsReconciliation(NamedTuple):
    """Outcome of reconciling persisted custom parameters with the defaults."""

    params: dict[str, str]
    needs_save: bool


def reconcile_params(current: dict, defaults: dict) -> ParamsReconciliation:
    """Canonicalize the custom parameter key set against the defaults.

    Keys present in exactly one of the two mappings are orphans. When there
    are any, the result covers exactly the default keys, keeping each current
    value when it is set and falling back to the default otherwise. When the
    key sets already match, values are left untouched.

    Args:
        current: Persisted custom parameters
        defaults: Canonical parameters with default values

    Returns:
        ParamsReconciliation with the parameters and whether to persist them
    """
    orphans = set(current) ^ set(defaults)
    if not orphans:
        return ParamsReconciliation(dict(current), False)

    merged = {
        key: current[key] if current.get(key) else default
        for key, default in defaults.items()
    }
    return ParamsReconciliation(merged, True)


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, searches default locations.

    Returns:
        Merged configuration dict
    """
    search_paths = []
    if config_path:
        search_paths.append(Path(config_path))
    search_paths.extend(CONFIG_SEARCH_PATHS)

    config = copy.deepcopy(DEFAULT_CONFIG)

    for path in search_paths:
        if path.exists():
            with open(path) as f:
                user_config = yaml.safe_load(f) or {}
            config = deep_merge(config, user_config)
            config["_config_path"] = str(path)
            break

    for env_var, (section, key, convert) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            config.setdefault(section, {})[key] = convert(value)

    return config


def validate_config(config: dict) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    if not config.get("mqtt", {}).get("host"):
        errors.append("mqtt.host is required")

    options = config.get("options", {})
    for key in ("short_poll", "long_poll"):
        value = options.get(key)
        if not isinstance(value, (int, float)) or value <= 0:
            errors.append(f"options.{key} must be a positive number of seconds")

    timeout = options.get("poll_lock_timeout")
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append("options.poll_lock_timeout must be positive")

    params = config.get("params") or {}
    if not isinstance(params, dict):
        errors.append("params must be a mapping")
    else:
        scale = params.get(PARAM_SCALE)
        if scale is not None and scale not in (SCALE_FAHRENHEIT, SCALE_CELSIUS):
            errors.append(f"params.{PARAM_SCALE} must be {SCALE_FAHRENHEIT} or {SCALE_CELSIUS}")

    return errors


def get_state_dir(config: dict) -> Path:
    """Directory holding the session token and hub state."""
    return Path(config.get("options", {}).get("state_dir", "./storage"))
