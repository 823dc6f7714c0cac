"""Centralized path management.

The base directory can be overridden with the DELAYED_TASKS_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.delayed-tasks
- Windows: %USERPROFILE%\\.delayed-tasks
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "DELAYED_TASKS_HOME"
LOCAL_CONFIG_NAME = "delayed-tasks.toml"


@lru_cache(maxsize=1)
def get_home() -> Path:
    """Get the base directory for delayed-tasks files.

    Resolution order:
    1. DELAYED_TASKS_HOME environment variable (if set)
    2. ~/.delayed-tasks
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".delayed-tasks"


def get_config_path() -> Path:
    """Get the path to the user configuration file."""
    return get_home() / "config.toml"
