"""Redis-backed delayed task scheduling.

Public API:
- DelayedTasks: Engine that enqueues payloads and polls for due ones
- TaskRecord: A decoded task (id, due, data)

Configuration:
- DelayedTasksOptions: Engine options (poll interval)
- RedisSettings: Connection parameters for an engine-owned client

Errors:
- DelayedTasksError and its subclasses
"""

from delayed_tasks.codec import TaskRecord, decode_record, encode_record
from delayed_tasks.config.models import DelayedTasksOptions, RedisSettings
from delayed_tasks.errors import (
    CodecError,
    ConfigurationError,
    DelayedTasksError,
    InvalidDataError,
    InvalidDelayError,
    StoreError,
)
from delayed_tasks.ids import new_task_id
from delayed_tasks.scheduler import (
    ConnectionOwnership,
    DelayedTasks,
    EngineState,
    TaskCallback,
)

__all__ = [
    "CodecError",
    "ConfigurationError",
    "ConnectionOwnership",
    "DelayedTasks",
    "DelayedTasksError",
    "DelayedTasksOptions",
    "EngineState",
    "InvalidDataError",
    "InvalidDelayError",
    "RedisSettings",
    "StoreError",
    "TaskCallback",
    "TaskRecord",
    "decode_record",
    "encode_record",
    "new_task_id",
]
