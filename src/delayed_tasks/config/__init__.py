"""Configuration module."""

from delayed_tasks.config.loader import load_config
from delayed_tasks.config.models import (
    DEFAULT_POLL_INTERVAL_MS,
    AppConfig,
    ConfigError,
    DelayedTasksOptions,
    RedisSettings,
)
from delayed_tasks.config.paths import get_config_path, get_home

__all__ = [
    "DEFAULT_POLL_INTERVAL_MS",
    "AppConfig",
    "ConfigError",
    "DelayedTasksOptions",
    "RedisSettings",
    "get_config_path",
    "get_home",
    "load_config",
]
