"""Tests for CLI commands."""

import json

import fakeredis
import pytest

from delayed_tasks.cli.app import app
from delayed_tasks.cli.commands.queue import format_countdown, parse_data
from delayed_tasks.cli.commands.run import emit_task


@pytest.fixture
def redis_view(redis_server) -> fakeredis.FakeRedis:
    """Synchronous client for inspecting what commands wrote."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


def put_task(view, queue: str, task_id: str, due: int, data) -> None:
    member = json.dumps({"id": task_id, "due": due, "data": data})
    view.zadd(f"delayed:{queue}", {member: due})


@pytest.fixture
def cli_env(isolated_home, owned_clients, redis_view):
    return redis_view


class TestAddCommand:
    """Tests for `delayed-tasks add`."""

    def test_add_json_payload(self, cli_runner, cli_env):
        result = cli_runner.invoke(app, ["add", "emails", '{"user": 42}', "-d", "60000"])

        assert result.exit_code == 0, result.output
        [(member, score)] = cli_env.zrange("delayed:emails", 0, -1, withscores=True)
        stored = json.loads(member)
        assert stored["data"] == {"user": 42}
        assert stored["id"] in result.output
        assert score == stored["due"]

    def test_add_plain_string(self, cli_runner, cli_env):
        result = cli_runner.invoke(app, ["add", "greetings", "hello"])

        assert result.exit_code == 0, result.output
        [member] = cli_env.zrange("delayed:greetings", 0, -1)
        assert json.loads(member)["data"] == "hello"

    def test_add_rejects_zero_delay(self, cli_runner, cli_env):
        result = cli_runner.invoke(app, ["add", "emails", "x", "--delay", "0"])

        assert result.exit_code == 1
        assert "must be a positive number" in result.output
        assert cli_env.zcard("delayed:emails") == 0

    def test_add_unreachable_redis(self, cli_runner, cli_env, redis_server):
        redis_server.connected = False
        result = cli_runner.invoke(app, ["add", "emails", "x"])
        assert result.exit_code == 1


class TestPollCommand:
    """Tests for `delayed-tasks poll`."""

    def test_poll_claims_due_tasks(self, cli_runner, cli_env):
        put_task(cli_env, "emails", "t1", 1000, {"a": 1})
        put_task(cli_env, "emails", "t2", 2000, "b")

        result = cli_runner.invoke(app, ["poll", "emails"])

        assert result.exit_code == 0, result.output
        assert "t1" in result.output
        assert "t2" in result.output
        assert "Claimed 2 task(s)" in result.output
        assert cli_env.zcard("delayed:emails") == 0

    def test_poll_leaves_future_tasks(self, cli_runner, cli_env):
        put_task(cli_env, "emails", "future", 99_999_999_999_999, "later")

        result = cli_runner.invoke(app, ["poll", "emails"])

        assert result.exit_code == 0
        assert "Claimed 0 task(s)" in result.output
        assert cli_env.zcard("delayed:emails") == 1

    def test_poll_uses_queue_from_config(self, cli_runner, cli_env, isolated_home):
        (isolated_home / "delayed-tasks.toml").write_text('queue = "configured"\n')
        put_task(cli_env, "configured", "t1", 1000, 1)

        result = cli_runner.invoke(app, ["poll"])

        assert result.exit_code == 0, result.output
        assert "Claimed 1 task(s)" in result.output

    def test_poll_requires_queue(self, cli_runner, cli_env):
        result = cli_runner.invoke(app, ["poll"])
        assert result.exit_code == 1
        assert "queue id is required" in result.output

    def test_poll_invalid_config(self, cli_runner, cli_env, isolated_home):
        path = isolated_home / "bad.toml"
        path.write_text("queue = [\n")

        result = cli_runner.invoke(app, ["poll", "emails", "--config", str(path)])

        assert result.exit_code == 1
        assert "Invalid TOML" in result.output


class TestPendingCommand:
    """Tests for `delayed-tasks pending`."""

    def test_pending_lists_tasks(self, cli_runner, cli_env):
        put_task(cli_env, "emails", "t1", 99_999_999_999_999, {"a": 1})

        result = cli_runner.invoke(app, ["pending", "emails"])

        assert result.exit_code == 0, result.output
        assert "Pending: emails" in result.output
        assert "t1" in result.output
        assert "Total: 1 task(s)" in result.output
        assert cli_env.zcard("delayed:emails") == 1

    def test_pending_empty(self, cli_runner, cli_env):
        result = cli_runner.invoke(app, ["pending", "emails"])

        assert result.exit_code == 0
        assert "No pending tasks in emails" in result.output


class TestClearCommand:
    """Tests for `delayed-tasks clear`."""

    def test_clear_with_force(self, cli_runner, cli_env):
        put_task(cli_env, "emails", "t1", 1000, 1)
        put_task(cli_env, "emails", "t2", 99_999_999_999_999, 2)

        result = cli_runner.invoke(app, ["clear", "emails", "--force"])

        assert result.exit_code == 0, result.output
        assert "Cleared 2 task(s)" in result.output
        assert cli_env.zcard("delayed:emails") == 0

    def test_clear_declined(self, cli_runner, cli_env):
        put_task(cli_env, "emails", "t1", 1000, 1)

        result = cli_runner.invoke(app, ["clear", "emails"], input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert cli_env.zcard("delayed:emails") == 1

    def test_clear_empty(self, cli_runner, cli_env):
        result = cli_runner.invoke(app, ["clear", "emails", "-f"])

        assert result.exit_code == 0
        assert "No tasks to clear in emails" in result.output


class TestRunCommand:
    """Tests for `delayed-tasks run`."""

    def test_run_help(self, cli_runner):
        result = cli_runner.invoke(app, ["run", "--help"])
        assert result.exit_code == 0
        assert "--poll-interval" in result.output

    def test_emit_task_writes_json_line(self, capsys):
        emit_task({"a": 1}, "t1", 1500)

        line = capsys.readouterr().out.strip()
        assert json.loads(line) == {"id": "t1", "due": 1500, "data": {"a": 1}}


class TestHelpers:
    """Tests for CLI formatting helpers."""

    @pytest.mark.parametrize(
        ("delta_ms", "expected"),
        [
            (0, "[green]now[/green]"),
            (-5000, "[green]now[/green]"),
            (45_000, "in 45s"),
            (5 * 60_000, "in 5m"),
            (2 * 3_600_000, "in 2h"),
            (2 * 3_600_000 + 15 * 60_000, "in 2h 15m"),
            (3 * 86_400_000, "in 3d"),
            (3 * 86_400_000 + 4 * 3_600_000, "in 3d 4h"),
        ],
    )
    def test_format_countdown(self, delta_ms, expected):
        now = 1_700_000_000_000
        assert format_countdown(now + delta_ms, now) == expected

    def test_parse_data(self):
        assert parse_data('{"a": 1}') == {"a": 1}
        assert parse_data("42") == 42
        assert parse_data("hello") == "hello"
