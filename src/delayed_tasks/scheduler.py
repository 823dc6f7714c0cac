"""Delayed task engine: enqueue, poll and the recurring poll lifecycle.

Tasks live in one Redis sorted set per queue (``delayed:<queue_id>``),
scored by due time in epoch milliseconds. Any number of processes may share
a queue; claiming is coordinated with WATCH/MULTI/EXEC only.

Example:
    async def handle(data, task_id, due):
        ...

    async with DelayedTasks("emails", "redis://localhost:6379/0", handle) as dt:
        await dt.add(5_000, {"to": "someone@example.com"})
        dt.start()
        ...
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from delayed_tasks.codec import TaskRecord, decode_record, encode_record
from delayed_tasks.config.models import (
    DelayedTasksOptions,
    RedisSettings,
    is_positive_number,
)
from delayed_tasks.errors import (
    CodecError,
    ConfigurationError,
    DelayedTasksError,
    InvalidDataError,
    InvalidDelayError,
)
from delayed_tasks.ids import IdFactory, new_task_id
from delayed_tasks.store import RedisTaskStore, create_redis_client, looks_like_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "delayed:"

TaskCallback = Callable[[Any, str, int | float], Awaitable[None] | None]
Clock = Callable[[], int | float]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class ConnectionOwnership(StrEnum):
    """Who is responsible for closing the Redis client."""

    OWNED = "owned"  # Built by the engine from connection parameters
    BORROWED = "borrowed"  # Supplied live by the caller


class EngineState(StrEnum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    POLLING = "polling"
    CLOSED = "closed"


class DelayedTasks:
    """Schedules payloads for delivery to a callback after a delay.

    Delivery is at-least-once under normal operation. A poll that races
    another client on the same queue claims nothing and leaves the due
    tasks for the next cycle; it never retries.
    """

    def __init__(
        self,
        queue_id: str,
        redis: Any,
        callback: TaskCallback,
        options: DelayedTasksOptions | Mapping[str, Any] | None = None,
        *,
        clock: Clock | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        if not isinstance(queue_id, str) or not queue_id:
            raise ConfigurationError("Invalid queue ID specified")
        if not callable(callback):
            raise ConfigurationError("Invalid callback function specified")

        self._queue_id = queue_id
        self._redis_key = f"{KEY_PREFIX}{queue_id}"
        self._callback = callback
        self._options = _resolve_options(options)
        self._clock: Clock = clock or now_ms
        self._id_factory: IdFactory = id_factory or new_task_id

        if looks_like_client(redis):
            self._ownership = ConnectionOwnership.BORROWED
            self._store = RedisTaskStore(redis)
            self._settings: RedisSettings | None = None
            self._connected = True
            self._state = EngineState.CONNECTED
        else:
            settings = _resolve_settings(redis)
            try:
                client = create_redis_client(settings)
            except ValueError as e:
                raise ConfigurationError(f"Invalid redis connection options: {e}") from e
            self._ownership = ConnectionOwnership.OWNED
            self._store = RedisTaskStore(client)
            self._settings = settings
            self._connected = False
            self._state = EngineState.UNCONNECTED

        self._timer: asyncio.Task[None] | None = None
        # Polls started by the timer; they outlive stop() until delivered
        self._inflight: set[asyncio.Task[None]] = set()

    def __repr__(self) -> str:
        return (
            f"DelayedTasks(queue_id={self._queue_id!r}, "
            f"ownership={self._ownership.value}, state={self._state.value})"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def queue_id(self) -> str:
        return self._queue_id

    @property
    def redis_key(self) -> str:
        return self._redis_key

    @property
    def poll_interval_ms(self) -> int | float:
        return self._options.poll_interval_ms

    @property
    def ownership(self) -> ConnectionOwnership:
        return self._ownership

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_polling(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Establish the engine-owned connection.

        No-op when already connected or when the client was supplied by the
        caller.

        Raises:
            DelayedTasksError: If the engine has been closed.
            StoreError: If Redis cannot be reached.
        """
        if self._state is EngineState.CLOSED:
            raise DelayedTasksError("Cannot connect a closed engine")
        if self._connected:
            return

        await self._store.ping()
        self._connected = True
        self._state = EngineState.CONNECTED
        target = self._settings.describe() if self._settings else "borrowed"
        logger.info(
            "delayed_tasks_connected",
            extra={"queue.key": self._redis_key, "redis.target": target},
        )

    def start(self) -> bool:
        """Begin polling every ``poll_interval_ms``.

        Restarts the timer when already polling. Must be called from a
        running event loop.

        Returns:
            False (and no timer is created) if the connection is not yet
            established or the engine is closed; True otherwise.
        """
        if not self._connected or self._state is EngineState.CLOSED:
            logger.debug(
                "delayed_tasks_start_refused",
                extra={"queue.key": self._redis_key, "engine.state": self._state.value},
            )
            return False

        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._timer = loop.create_task(
            self._poll_loop(), name=f"delayed-tasks:{self._queue_id}"
        )
        self._state = EngineState.POLLING
        logger.info(
            "delayed_tasks_polling_started",
            extra={
                "queue.key": self._redis_key,
                "poll.interval_ms": self._options.poll_interval_ms,
            },
        )
        return True

    def stop(self) -> None:
        """Cancel recurring polling. The connection stays open."""
        if self._timer is None:
            return
        self._cancel_timer()
        if self._state is EngineState.POLLING:
            self._state = EngineState.CONNECTED
        logger.info("delayed_tasks_polling_stopped", extra={"queue.key": self._redis_key})

    async def close(self) -> None:
        """Stop polling and close the connection if the engine owns it.

        Closing an owned client aborts in-flight commands. Borrowed clients
        are left open for the caller to manage.
        """
        self.stop()
        if self._state is EngineState.CLOSED:
            return

        self._state = EngineState.CLOSED
        was_connected = self._connected
        self._connected = False
        if self._ownership is ConnectionOwnership.OWNED:
            await self._store.close()
        logger.info(
            "delayed_tasks_closed",
            extra={
                "queue.key": self._redis_key,
                "connection.ownership": self._ownership.value,
                "connection.was_connected": was_connected,
            },
        )

    async def __aenter__(self) -> DelayedTasks:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _poll_loop(self) -> None:
        interval = self._options.poll_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            # Shielded so stop() never interrupts a batch mid-delivery
            task = asyncio.get_running_loop().create_task(self._timer_poll())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            await asyncio.shield(task)

    async def _timer_poll(self) -> None:
        try:
            await self.poll()
        except Exception:
            logger.exception("delayed_tasks_poll_failed", extra={"queue.key": self._redis_key})

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def add(self, delay_ms: int | float, data: Any) -> str:
        """Schedule ``data`` for delivery ``delay_ms`` milliseconds from now.

        Returns:
            The task id, once Redis has acknowledged the insert.

        Raises:
            InvalidDelayError: If delay_ms is not a positive, finite number.
            InvalidDataError: If data is None.
            CodecError: If data is not JSON-serializable.
            StoreError: If the insert fails.
        """
        if not is_positive_number(delay_ms):
            raise InvalidDelayError("`delay_ms` must be a positive number")
        if data is None:
            raise InvalidDataError("No value provided for `data`")

        due = self._clock() + delay_ms
        task_id = self._id_factory()
        member = encode_record(TaskRecord(id=task_id, due=due, data=data))

        await self._store.insert(self._redis_key, due, member)
        logger.debug(
            "delayed_task_added",
            extra={"queue.key": self._redis_key, "task.id": task_id, "task.due": due},
        )
        return task_id

    async def poll(self) -> int:
        """Claim every due task and deliver it to the callback.

        Returns:
            Number of tasks claimed. Zero when nothing was due or when
            another client modified the queue between the read and the
            commit; in that case the due tasks stay queued.

        Raises:
            StoreError: If Redis fails; no callback runs for this cycle.
        """
        now = self._clock()

        async with self._store.watch(self._redis_key) as txn:
            members = await txn.range_by_score("-inf", now)
            if not members:
                await txn.release()
                return 0

            txn.remove_range_by_score("-inf", now)
            outcome = await txn.commit()

        if not outcome.committed:
            logger.debug(
                "delayed_tasks_poll_aborted",
                extra={"queue.key": self._redis_key, "tasks.deferred": len(members)},
            )
            return 0

        removed = int(outcome.results[0])
        logger.info(
            "delayed_tasks_claimed",
            extra={"queue.key": self._redis_key, "tasks.count": removed},
        )
        await self._deliver(members)
        return removed

    async def _deliver(self, members: list[str]) -> None:
        # Claimed records are already gone from Redis: a failing callback is
        # logged and the rest of the batch is still delivered.
        for member in members:
            try:
                record = decode_record(member)
            except CodecError as e:
                logger.warning(
                    "undecodable_task_record",
                    extra={"queue.key": self._redis_key, "error.message": str(e)},
                )
                continue

            try:
                result = self._callback(record.data, record.id, record.due)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "delayed_task_callback_failed",
                    extra={"queue.key": self._redis_key, "task.id": record.id},
                )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def pending(self, until_ms: int | float | None = None) -> list[TaskRecord]:
        """Records still queued, ascending by due time.

        Args:
            until_ms: Only include records due at or before this time.
        """
        max_score: int | float | str = "+inf" if until_ms is None else until_ms
        members = await self._store.range_by_score(self._redis_key, "-inf", max_score)
        records: list[TaskRecord] = []
        for member in members:
            try:
                records.append(decode_record(member))
            except CodecError as e:
                logger.warning(
                    "undecodable_task_record",
                    extra={"queue.key": self._redis_key, "error.message": str(e)},
                )
        return records

    async def count(self) -> int:
        return await self._store.count(self._redis_key)

    async def clear(self) -> int:
        """Remove every queued record. Returns the number removed."""
        removed = await self._store.remove_range_by_score(self._redis_key, "-inf", "+inf")
        logger.info(
            "delayed_tasks_cleared",
            extra={"queue.key": self._redis_key, "tasks.count": removed},
        )
        return removed


def _resolve_options(
    options: DelayedTasksOptions | Mapping[str, Any] | None,
) -> DelayedTasksOptions:
    if options is None:
        return DelayedTasksOptions()
    if isinstance(options, DelayedTasksOptions):
        return options
    if isinstance(options, Mapping):
        return DelayedTasksOptions.model_validate(dict(options))
    raise ConfigurationError("Invalid options specified")


def _resolve_settings(spec: Any) -> RedisSettings:
    """Turn connection parameters into RedisSettings.

    Accepts a RedisSettings, a URL string or a mapping of RedisSettings
    fields (an empty mapping means localhost defaults).
    """
    if isinstance(spec, RedisSettings):
        return spec
    if isinstance(spec, str) and spec:
        return RedisSettings(url=spec)
    if isinstance(spec, Mapping):
        try:
            return RedisSettings.model_validate(dict(spec))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid redis connection options: {e}") from e
    if callable(getattr(spec, "zadd", None)):
        raise ConfigurationError("Redis client must be a redis.asyncio client")
    raise ConfigurationError("Invalid redis connection options")
