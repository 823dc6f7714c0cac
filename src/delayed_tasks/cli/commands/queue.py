"""Queue inspection and one-shot commands: add, poll, pending, clear."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer

from delayed_tasks.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    success,
    warning,
)
from delayed_tasks.cli.runtime import (
    build_engine,
    ignore_task,
    resolve_config,
    resolve_queue,
)
from delayed_tasks.errors import DelayedTasksError
from delayed_tasks.scheduler import now_ms

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file"),
]
RedisUrlOption = Annotated[
    str | None,
    typer.Option("--redis-url", help="Redis URL (overrides config)"),
]
QueueArgument = Annotated[
    str | None,
    typer.Argument(help="Queue id (defaults to `queue` from config)"),
]


def parse_data(raw: str) -> Any:
    """Parse DATA as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def format_countdown(due_ms: float, now: float) -> str:
    """Format a countdown string for a due timestamp in epoch ms."""
    if due_ms <= now:
        return "[green]now[/green]"

    total_seconds = int((due_ms - now) / 1000)

    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours < 24:
        if minutes:
            return f"in {hours}h {minutes}m"
        return f"in {hours}h"

    days = hours // 24
    hours = hours % 24
    if hours:
        return f"in {days}d {hours}h"
    return f"in {days}d"


def _preview(data: Any, width: int = 40) -> str:
    text = json.dumps(data)
    return text[:width] + "..." if len(text) > width else text


def register(app: typer.Typer) -> None:
    """Register the queue commands."""

    @app.command()
    def add(
        queue: Annotated[str, typer.Argument(help="Queue id")],
        data: Annotated[str, typer.Argument(help="Payload (JSON, or a plain string)")],
        delay: Annotated[
            int,
            typer.Option("--delay", "-d", help="Delay in milliseconds"),
        ] = 1000,
        config: ConfigOption = None,
        redis_url: RedisUrlOption = None,
    ) -> None:
        """Schedule a task.

        Examples:
            delayed-tasks add emails '{"user": 42}' -d 60000
            delayed-tasks add greetings hello
        """
        app_config = resolve_config(config, redis_url)
        queue_id = resolve_queue(queue, app_config)
        payload = parse_data(data)

        async def do_add() -> str:
            async with build_engine(queue_id, app_config, ignore_task) as engine:
                return await engine.add(delay, payload)

        try:
            task_id = asyncio.run(do_add())
        except DelayedTasksError as e:
            error(str(e))
            raise typer.Exit(1) from None

        console.print(task_id)

    @app.command()
    def poll(
        queue: QueueArgument = None,
        config: ConfigOption = None,
        redis_url: RedisUrlOption = None,
    ) -> None:
        """Run one poll cycle and print the claimed tasks."""
        app_config = resolve_config(config, redis_url)
        queue_id = resolve_queue(queue, app_config)
        claimed: list[tuple[str, float, Any]] = []

        def collect(data: Any, task_id: str, due: float) -> None:
            claimed.append((task_id, due, data))

        async def do_poll() -> int:
            async with build_engine(queue_id, app_config, collect) as engine:
                return await engine.poll()

        try:
            count = asyncio.run(do_poll())
        except DelayedTasksError as e:
            error(str(e))
            raise typer.Exit(1) from None

        for task_id, _due, data in claimed:
            console.print(f"{task_id}  {_preview(data)}", markup=False)
        success(f"Claimed {count} task(s)")

    @app.command()
    def pending(
        queue: QueueArgument = None,
        limit: Annotated[
            int,
            typer.Option("--limit", "-n", help="Maximum rows to show"),
        ] = 50,
        config: ConfigOption = None,
        redis_url: RedisUrlOption = None,
    ) -> None:
        """List tasks still waiting in a queue."""
        app_config = resolve_config(config, redis_url)
        queue_id = resolve_queue(queue, app_config)

        async def do_list():
            async with build_engine(queue_id, app_config, ignore_task) as engine:
                return await engine.pending()

        try:
            records = asyncio.run(do_list())
        except DelayedTasksError as e:
            error(str(e))
            raise typer.Exit(1) from None

        if not records:
            warning(f"No pending tasks in {queue_id}")
            return

        now = now_ms()
        table = create_table(
            f"Pending: {queue_id}",
            [
                ("ID", "dim"),
                ("Due (ms)", ""),
                ("Fires", ""),
                ("Data", ""),
            ],
        )
        for record in records[:limit]:
            table.add_row(
                record.id,
                str(record.due),
                format_countdown(record.due, now),
                _preview(record.data),
            )

        console.print(table)
        dim(f"Total: {len(records)} task(s)")

    @app.command()
    def clear(
        queue: QueueArgument = None,
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Skip confirmation"),
        ] = False,
        config: ConfigOption = None,
        redis_url: RedisUrlOption = None,
    ) -> None:
        """Delete every task in a queue."""
        app_config = resolve_config(config, redis_url)
        queue_id = resolve_queue(queue, app_config)

        async def do_count() -> int:
            async with build_engine(queue_id, app_config, ignore_task) as engine:
                return await engine.count()

        async def do_clear() -> int:
            async with build_engine(queue_id, app_config, ignore_task) as engine:
                return await engine.clear()

        try:
            total = asyncio.run(do_count())
            if total == 0:
                warning(f"No tasks to clear in {queue_id}")
                return
            if not confirm_or_cancel(
                f"This will delete {total} task(s) from {queue_id}. Continue?", force
            ):
                return
            removed = asyncio.run(do_clear())
        except DelayedTasksError as e:
            error(str(e))
            raise typer.Exit(1) from None

        success(f"Cleared {removed} task(s)")
