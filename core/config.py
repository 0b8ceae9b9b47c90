"""
⚙️ Config - YAML configuration with built-in defaults

config/config.yaml is deep-merged over DEFAULT_CONFIG, then the
environment (CLIENT_ID, CLIENT_SECRET, BOT_USER_ID, BOT_USER_NAME) wins.
"""
import copy
import logging
import os
import pathlib
from typing import Any, Dict, Mapping, Optional

import yaml

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "twitch": {"client_id": None, "client_secret": None},
    "bot": {"user_id": None, "name": None},
    "storage": {"bot": "data/bot.json", "channels": "data/channels.json"},
    "token_guardian": {"interval": 60.0, "refresh_threshold": 3600.0},
    "command_router": {"poll_interval": 0.1},
    "chat_events": {"enabled": True, "poll_interval": 0.1},
    "broadcast": {"capacity": 8},
    "announcements": {
        "message": "!donation_received {amount}",
        "announcement": "A donation of ${amount} has been made by {donor}!",
        "color": "orange",
        "anonymous_name": "an anonymous user",
    },
}

ENV_OVERRIDES = {
    "CLIENT_ID": ("twitch", "client_id"),
    "CLIENT_SECRET": ("twitch", "client_secret"),
    "BOT_USER_ID": ("bot", "user_id"),
    "BOT_USER_NAME": ("bot", "name"),
}


class ConfigError(Exception):
    """Configuration file missing or inconsistent"""


def deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return base updated recursively with override (inputs untouched)"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_env_overrides(config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            config.setdefault(section, {})[key] = value
            LOGGER.debug(f"Config override from env: {var}")
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Raises:
        ConfigError: non-positive interval/capacity or threshold <= interval
    """
    guardian = config["token_guardian"]
    try:
        interval = float(guardian["interval"])
        threshold = float(guardian["refresh_threshold"])
        router_poll = float(config["command_router"]["poll_interval"])
        chat_poll = float(config["chat_events"]["poll_interval"])
        capacity = int(config["broadcast"]["capacity"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    if interval <= 0:
        raise ConfigError("token_guardian.interval must be > 0")
    if threshold <= interval:
        raise ConfigError(
            f"token_guardian.refresh_threshold ({threshold}) must be greater than interval ({interval})"
        )
    if router_poll <= 0 or chat_poll <= 0:
        raise ConfigError("poll_interval must be > 0")
    if capacity <= 0:
        raise ConfigError("broadcast.capacity must be > 0")


def load_config(config_path: str = DEFAULT_CONFIG_PATH, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Charge config.yaml

    Args:
        config_path: YAML file
        environ: Environment mapping (os.environ by default)

    Returns:
        Merged configuration dict

    Raises:
        ConfigError: file missing, not a mapping, or invalid values
    """
    config_file = pathlib.Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file {config_path} not found")

    with open(config_file, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    config = apply_env_overrides(deep_merge(DEFAULT_CONFIG, raw), environ)
    validate_config(config)
    LOGGER.info(f"⚙️ Config loaded from {config_path}")
    return config
