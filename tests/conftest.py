"""Shared test fixtures and factories."""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import fakeredis
import pytest

from delayed_tasks import DelayedTasks
from delayed_tasks.config.paths import get_home

QUEUE_ID = "test"

# =============================================================================
# Helpers
# =============================================================================


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class Recorder:
    """Task callback that records every delivery."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, str, float]] = []

    def __call__(self, data: Any, task_id: str, due: float) -> None:
        self.calls.append((data, task_id, due))

    @property
    def payloads(self) -> list[Any]:
        return [data for data, _task_id, _due in self.calls]

    @property
    def ids(self) -> list[str]:
        return [task_id for _data, task_id, _due in self.calls]


# =============================================================================
# Redis Fixtures
# =============================================================================


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """In-memory Redis server shared by every client in a test."""
    return fakeredis.FakeServer()


@pytest.fixture
async def redis_client(
    redis_server: fakeredis.FakeServer,
) -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """A live client, as a caller would hand to the engine."""
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def owned_clients(monkeypatch, redis_server) -> list[fakeredis.FakeAsyncRedis]:
    """Route engine-owned clients to the fake server.

    Returns the list of clients the engine created, in order.
    """
    created: list[fakeredis.FakeAsyncRedis] = []

    def factory(settings):
        client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
        created.append(client)
        return client

    monkeypatch.setattr("delayed_tasks.scheduler.create_redis_client", factory)
    return created


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
async def engine(
    redis_client, recorder: Recorder, clock: FakeClock
) -> AsyncGenerator[DelayedTasks, None]:
    """Engine on a borrowed client with a controllable clock."""
    dt = DelayedTasks(QUEUE_ID, redis_client, recorder, clock=clock)
    yield dt
    await dt.close()


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point config discovery at an empty temp directory."""
    monkeypatch.setenv("DELAYED_TASKS_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("DELAYED_TASKS_REDIS_URL", raising=False)
    monkeypatch.delenv("DELAYED_TASKS_REDIS_PASSWORD", raising=False)
    monkeypatch.delenv("DELAYED_TASKS_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    get_home.cache_clear()
    yield tmp_path
    get_home.cache_clear()


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})
