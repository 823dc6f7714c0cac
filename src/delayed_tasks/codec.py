"""Task record encoding.

Each record is stored as one sorted-set member holding a JSON object:

    {"id": "<uuid>", "due": <epoch ms>, "data": <payload>}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from delayed_tasks.errors import CodecError


@dataclass(frozen=True, slots=True)
class TaskRecord:
    """A scheduled unit of work."""

    id: str
    due: int | float  # Epoch milliseconds; also the sorted-set score
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "due": self.due, "data": self.data}


def encode_record(record: TaskRecord) -> str:
    """Serialize a record to its stored JSON form.

    Raises:
        CodecError: If the payload is not JSON-representable (cycles,
            unsupported types, NaN/Infinity).
    """
    try:
        return json.dumps(record.to_dict(), allow_nan=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise CodecError(f"Task data is not JSON-serializable: {e}") from e


def decode_record(text: str | bytes) -> TaskRecord:
    """Parse a stored member back into a TaskRecord.

    Raises:
        CodecError: If the text is not valid JSON or is missing fields.
    """
    try:
        raw = json.loads(text)
    except (TypeError, ValueError) as e:
        raise CodecError(f"Task record is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise CodecError("Task record must be a JSON object")

    missing = [name for name in ("id", "due", "data") if name not in raw]
    if missing:
        raise CodecError(f"Task record is missing fields: {', '.join(missing)}")

    task_id = raw["id"]
    due = raw["due"]
    if not isinstance(task_id, str):
        raise CodecError("Task record id must be a string")
    if isinstance(due, bool) or not isinstance(due, int | float):
        raise CodecError("Task record due must be a number")

    return TaskRecord(id=task_id, due=due, data=raw["data"])
