"""Redis sorted-set adapter for delayed task records.

The engine talks to Redis only through this module. Transport failures are
re-raised as StoreError; an optimistic transaction abort (WatchError) is not
an error and surfaces as ``CommitResult(committed=False)``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, WatchError

from delayed_tasks.config.models import RedisSettings
from delayed_tasks.errors import StoreError

logger = logging.getLogger(__name__)

Score = int | float | str


def create_redis_client(settings: RedisSettings) -> Redis:
    """Build an (unconnected) async Redis client from settings.

    redis-py connects lazily; nothing touches the network until the first
    command.
    """
    kwargs = settings.client_kwargs()
    if settings.url:
        return redis.from_url(settings.url, **kwargs)
    return Redis(host=settings.host, port=settings.port, db=settings.db, **kwargs)


def looks_like_client(candidate: Any) -> bool:
    """Whether an object is a live asyncio Redis client.

    Synchronous ``redis.Redis`` clients share the command surface but
    return plain values, so they are rejected here.
    """
    return isinstance(candidate, Redis)


@dataclass
class CommitResult:
    """Outcome of a conditional MULTI/EXEC."""

    committed: bool
    results: list[Any] = field(default_factory=list)


class WatchedKey:
    """A key under WATCH, with the reads and queued writes of one transaction.

    Reads run immediately (between WATCH and MULTI). Writes are buffered
    and only sent by commit().
    """

    def __init__(self, pipe: Pipeline, key: str) -> None:
        self._pipe = pipe
        self._key = key
        self._queued = 0

    @property
    def key(self) -> str:
        return self._key

    async def range_by_score(self, min_score: Score, max_score: Score) -> list[str]:
        try:
            return list(await self._pipe.zrangebyscore(self._key, min_score, max_score))
        except RedisError as e:
            raise StoreError(f"ZRANGEBYSCORE {self._key} failed: {e}") from e

    def remove_range_by_score(self, min_score: Score, max_score: Score) -> None:
        if self._queued == 0:
            self._pipe.multi()
        self._pipe.zremrangebyscore(self._key, min_score, max_score)
        self._queued += 1

    async def commit(self) -> CommitResult:
        """Execute the queued operations.

        Returns ``committed=False`` when a watched key changed since WATCH.
        """
        try:
            results = await self._pipe.execute()
        except WatchError:
            return CommitResult(committed=False)
        except RedisError as e:
            raise StoreError(f"EXEC on {self._key} failed: {e}") from e
        finally:
            self._queued = 0
        return CommitResult(committed=True, results=list(results))

    async def release(self) -> None:
        """Drop the watch without running a transaction."""
        try:
            await self._pipe.reset()
        except RedisError as e:
            raise StoreError(f"UNWATCH {self._key} failed: {e}") from e


class RedisTaskStore:
    """Sorted-set operations over a borrowed or owned async Redis client."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @property
    def client(self) -> Redis:
        return self._client

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as e:
            raise StoreError(f"PING failed: {e}") from e

    async def close(self) -> None:
        """Close the client and its pool, aborting in-flight commands."""
        try:
            await self._client.aclose(close_connection_pool=True)
        except RedisError as e:
            raise StoreError(f"Closing Redis client failed: {e}") from e

    async def insert(self, key: str, score: int | float, member: str) -> int:
        try:
            return await self._client.zadd(key, {member: score})
        except RedisError as e:
            raise StoreError(f"ZADD {key} failed: {e}") from e

    async def range_by_score(
        self, key: str, min_score: Score, max_score: Score
    ) -> list[str]:
        try:
            return list(await self._client.zrangebyscore(key, min_score, max_score))
        except RedisError as e:
            raise StoreError(f"ZRANGEBYSCORE {key} failed: {e}") from e

    async def remove_range_by_score(
        self, key: str, min_score: Score, max_score: Score
    ) -> int:
        try:
            return await self._client.zremrangebyscore(key, min_score, max_score)
        except RedisError as e:
            raise StoreError(f"ZREMRANGEBYSCORE {key} failed: {e}") from e

    async def pop_min_batch(self, key: str, count: int) -> list[str]:
        """Pop up to ``count`` lowest-scored members, ignoring due time."""
        try:
            popped = await self._client.zpopmin(key, count)
        except RedisError as e:
            raise StoreError(f"ZPOPMIN {key} failed: {e}") from e
        return [member for member, _score in popped]

    async def count(self, key: str) -> int:
        try:
            return await self._client.zcard(key)
        except RedisError as e:
            raise StoreError(f"ZCARD {key} failed: {e}") from e

    @asynccontextmanager
    async def watch(self, key: str) -> AsyncIterator[WatchedKey]:
        """WATCH ``key`` on a dedicated pipeline connection.

        The pipeline is reset on exit, which also releases the watch if the
        caller neither committed nor released.
        """
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
            except RedisError as e:
                raise StoreError(f"WATCH {key} failed: {e}") from e
            yield WatchedKey(pipe, key)
