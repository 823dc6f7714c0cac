"""Long-running worker command."""

import asyncio
import contextlib
import json
import logging
import signal
from typing import Annotated, Any

import typer

from delayed_tasks.cli.commands.queue import ConfigOption, QueueArgument, RedisUrlOption
from delayed_tasks.cli.console import error
from delayed_tasks.cli.runtime import build_engine, resolve_config, resolve_queue
from delayed_tasks.errors import DelayedTasksError
from delayed_tasks.logging import configure_logging

logger = logging.getLogger(__name__)


def emit_task(data: Any, task_id: str, due: float) -> None:
    """Write one delivered task to stdout as a JSON line."""
    typer.echo(json.dumps({"id": task_id, "due": due, "data": data}))


def register(app: typer.Typer) -> None:
    """Register the run command."""

    @app.command()
    def run(
        queue: QueueArgument = None,
        poll_interval: Annotated[
            float | None,
            typer.Option(
                "--poll-interval",
                "-i",
                help="Poll interval in milliseconds (overrides config)",
            ),
        ] = None,
        config: ConfigOption = None,
        redis_url: RedisUrlOption = None,
    ) -> None:
        """Poll a queue and print each due task as a JSON line.

        Logs go to stderr, tasks to stdout, so the output can be piped.
        Stops on Ctrl+C or SIGTERM.
        """
        app_config = resolve_config(config, redis_url, poll_interval)
        queue_id = resolve_queue(queue, app_config)
        configure_logging(app_config.log_level, use_rich=True)

        try:
            asyncio.run(_run_worker(queue_id, app_config))
        except DelayedTasksError as e:
            error(str(e))
            raise typer.Exit(1) from None


async def _run_worker(queue_id: str, app_config) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    async with build_engine(queue_id, app_config, emit_task) as engine:
        engine.start()
        logger.info(
            "worker_started",
            extra={
                "queue.key": engine.redis_key,
                "redis.target": app_config.redis.describe(),
            },
        )
        await stop_event.wait()
        logger.info("worker_stopping", extra={"queue.key": engine.redis_key})
