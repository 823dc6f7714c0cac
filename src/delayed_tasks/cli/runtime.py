"""Shared bootstrap helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer

from delayed_tasks.cli.console import error
from delayed_tasks.config import AppConfig, ConfigError, DelayedTasksOptions, load_config
from delayed_tasks.scheduler import DelayedTasks, TaskCallback


def resolve_config(
    config_path: Path | None,
    redis_url: str | None = None,
    poll_interval_ms: float | None = None,
) -> AppConfig:
    """Load config and apply command-line overrides, exiting on failure."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    if redis_url:
        config.redis = config.redis.model_copy(update={"url": redis_url})
    if poll_interval_ms is not None:
        config.options = DelayedTasksOptions.model_validate(
            {"poll_interval_ms": poll_interval_ms}
        )
    return config


def resolve_queue(queue: str | None, config: AppConfig) -> str:
    """Pick the queue id from the argument, then the config file."""
    queue_id = queue or config.queue
    if not queue_id:
        error("A queue id is required (argument or `queue` in config)")
        raise typer.Exit(1)
    return queue_id


def build_engine(
    queue_id: str,
    config: AppConfig,
    callback: TaskCallback,
) -> DelayedTasks:
    """Create an engine that owns its Redis connection."""
    return DelayedTasks(queue_id, config.redis, callback, config.options)


def ignore_task(data: object, task_id: str, due: float) -> None:
    """Callback for commands that never poll."""
