"""Main CLI application."""

import typer

from delayed_tasks.cli.commands import queue, run

app = typer.Typer(
    name="delayed-tasks",
    help="delayed-tasks - Redis-backed delayed task queue",
    no_args_is_help=True,
)

queue.register(app)
run.register(app)


if __name__ == "__main__":
    app()
