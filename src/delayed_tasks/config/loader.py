"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr, ValidationError

from delayed_tasks.config.models import AppConfig, ConfigError
from delayed_tasks.config.paths import LOCAL_CONFIG_NAME, get_config_path

REDIS_URL_ENV = "DELAYED_TASKS_REDIS_URL"
REDIS_PASSWORD_ENV = "DELAYED_TASKS_REDIS_PASSWORD"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path(LOCAL_CONFIG_NAME),  # Current directory
        get_config_path(),  # ~/.delayed-tasks/config.toml (or DELAYED_TASKS_HOME)
    ]


def _resolve_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Fill Redis url/password from the environment where not set in config."""
    section = config.get("redis")
    if section is None:
        section = config["redis"] = {}
    elif not isinstance(section, dict):
        # Not a table; left for model validation to reject
        return config

    if section.get("url") is None and (url := os.environ.get(REDIS_URL_ENV)):
        section["url"] = url

    if section.get("password") is None and (
        password := os.environ.get(REDIS_PASSWORD_ENV)
    ):
        section["password"] = SecretStr(password)

    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to built-in defaults when none exist.

    Returns:
        Validated AppConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _resolve_env_overrides(raw_config)

    try:
        return AppConfig.model_validate(raw_config)
    except ValidationError as e:
        source = config_path or "environment"
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e
