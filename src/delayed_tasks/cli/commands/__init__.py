"""CLI command modules."""

from delayed_tasks.cli.commands import queue, run

__all__ = [
    "queue",
    "run",
]
