"""Task identifier generation."""

import uuid
from collections.abc import Callable

IdFactory = Callable[[], str]


def new_task_id() -> str:
    """Return a new time-based UUID string.

    UUID1 mixes the host node id with a 100ns timestamp and a clock
    sequence, so ids stay unique across processes sharing a queue.
    """
    return str(uuid.uuid1())
