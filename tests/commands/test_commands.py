"""Tests for command construction and disposal."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import psycopg
import pytest
from structlog.testing import capture_logs

from pgshape.cancellation import CancellationToken
from pgshape.commands import CommandDisposer, build_command, build_command_async
from pgshape.core.errors import OperationCancelledError, ResourceCleanupError
from pgshape.statements import Statement, TemporaryTable
from pgshape.temporary_tables import TemporaryTableDisposer
from tests._support.fakes import AsyncFakeConnection, FakeConnection, FakeCursor


def recording_disposer(calls: list[str], *, fail_on: set[str] = frozenset()):
    def step(name):
        def run():
            calls.append(name)
            if name in fail_on:
                raise RuntimeError(f"{name} failed")

        return run

    cursor = Mock()
    cursor.close.side_effect = step("cursor")
    registration = Mock()
    registration.close.side_effect = step("registration")
    tables = [TemporaryTableDisposer(name, drop=step(name)) for name in ("first", "second")]
    return CommandDisposer(cursor, tables, registration)


class TestCommandDisposer:
    """Teardown order and failure collection."""

    def test_order(self):
        calls: list[str] = []
        recording_disposer(calls).close()
        assert calls == ["registration", "second", "first", "cursor"]

    def test_every_step_runs_when_some_fail(self):
        calls: list[str] = []
        disposer = recording_disposer(calls, fail_on={"registration", "second"})

        with pytest.raises(ResourceCleanupError, match="2 resources") as info:
            disposer.close()

        assert calls == ["registration", "second", "first", "cursor"]
        assert [str(e) for e in info.value.errors] == ["registration failed", "second failed"]
        assert info.value.cause is info.value.errors[0]

    def test_second_close_is_a_no_op(self):
        calls: list[str] = []
        disposer = recording_disposer(calls)
        disposer.close()
        disposer.close()
        assert calls == ["registration", "second", "first", "cursor"]
        assert disposer.disposed

    def test_original_error_wins(self):
        calls: list[str] = []
        disposer = recording_disposer(calls, fail_on={"cursor"})

        with pytest.raises(ValueError) as info:
            with disposer:
                raise ValueError("query failed")

        assert "Disposing the command also failed" in info.value.__notes__[0]

    def test_guard_only_disposes_on_error(self):
        calls: list[str] = []
        disposer = recording_disposer(calls)
        with disposer.guard():
            pass
        assert calls == []

        with pytest.raises(KeyError):
            with disposer.guard():
                raise KeyError("x")
        assert calls == ["registration", "second", "first", "cursor"]

    @pytest.mark.asyncio
    async def test_aclose_order(self):
        calls: list[str] = []
        await recording_disposer(calls).aclose()
        assert calls == ["registration", "second", "first", "cursor"]


class TestBuildCommand:
    def test_builds_tables_in_declaration_order(self):
        connection = FakeConnection()
        statement = Statement(
            "SELECT * FROM {a} JOIN {b} USING (x)",
            a=TemporaryTable([1]),
            b=TemporaryTable([2]),
        )
        with build_command(connection, statement) as command:
            names = [table.name for table in command.disposer.table_disposers]
            assert [s.split('"')[1] for s in connection.statements("copy")] == names

        assert [s.split('"')[1] for s in connection.statements() if s.startswith("DROP")] == (
            names[::-1]
        )
        assert isinstance(command.cursor, FakeCursor)
        assert command.cursor.closed

    def test_cancel_hook_is_registered_while_the_command_lives(self):
        connection = FakeConnection()
        token = CancellationToken()
        with build_command(connection, "SELECT 1", cancellation_token=token):
            token.cancel()
        assert connection.cancel_calls == 1

    def test_cancel_hook_is_released_on_dispose(self):
        connection = FakeConnection()
        token = CancellationToken()
        with build_command(connection, "SELECT 1", cancellation_token=token):
            pass
        token.cancel()
        assert connection.cancel_calls == 0

    def test_already_cancelled_token(self):
        connection = FakeConnection()
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError):
            build_command(connection, "SELECT 1", cancellation_token=token)
        assert connection.cursors == []

    def test_failing_hook_on_a_late_cancel_closes_the_cursor(self, monkeypatch):
        connection = FakeConnection(fail_on={"cancel": psycopg.OperationalError("no route")})
        token = CancellationToken()
        token.cancel()
        # Cancelled after the up-front check, so register runs the hook itself.
        monkeypatch.setattr(token, "raise_if_cancellation_requested", lambda: None)

        with pytest.raises(psycopg.OperationalError, match="no route"):
            build_command(connection, "SELECT 1", cancellation_token=token)

        assert connection.cancel_calls == 1
        assert connection.cursors[0].closed

    def test_partial_failure_drops_built_tables(self):
        connection = FakeConnection(fail_on={"bad_": psycopg.OperationalError("lost")})
        statement = Statement(
            "SELECT * FROM {good} JOIN {bad} USING (x)",
            good=TemporaryTable([1]),
            bad=TemporaryTable([2]),
        )
        with pytest.raises(psycopg.OperationalError):
            build_command(connection, statement)

        created = connection.statements("copy")[0].split('"')[1]
        assert created.startswith("good_")
        assert f'DROP TABLE IF EXISTS pg_temp."{created}"' in connection.statements()
        assert connection.cursors[0].closed

    def test_execute_binds_parameters(self):
        connection = FakeConnection()
        command = build_command(connection, Statement("SELECT {n}", n=5))
        command.execute()
        assert connection.log[-1] == ("execute", "SELECT %(n)s", {"n": 5})
        command.disposer.close()

    @pytest.mark.asyncio
    async def test_async_partial_failure_drops_built_tables(self):
        connection = AsyncFakeConnection(fail_on={"bad_": psycopg.OperationalError("lost")})
        statement = Statement(
            "SELECT * FROM {good} JOIN {bad} USING (x)",
            good=TemporaryTable([1]),
            bad=TemporaryTable([2]),
        )
        with pytest.raises(psycopg.OperationalError):
            await build_command_async(connection, statement)

        assert any(s.startswith("DROP TABLE") for s in connection.statements())
        assert connection.cursors[0].closed


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestAsyncCancelHook:
    """On asyncio connections the hook schedules ``cancel_safe`` on the loop."""

    @pytest.mark.asyncio
    async def test_cancel_schedules_cancel_safe(self):
        connection = AsyncFakeConnection()
        token = CancellationToken()
        async with await build_command_async(connection, "SELECT 1", cancellation_token=token):
            token.cancel()
            await settle()
            assert connection.cancel_calls == 1

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self):
        connection = AsyncFakeConnection()
        token = CancellationToken()
        async with await build_command_async(connection, "SELECT 1", cancellation_token=token):
            await asyncio.to_thread(token.cancel)
            await settle()
            assert connection.cancel_calls == 1

    @pytest.mark.asyncio
    async def test_failed_cancel_request_is_logged(self):
        connection = AsyncFakeConnection(fail_on={"cancel": psycopg.OperationalError("no route")})
        token = CancellationToken()
        with capture_logs() as logs:
            async with await build_command_async(
                connection, "SELECT 1", cancellation_token=token
            ):
                token.cancel()
                await settle()
        assert connection.cancel_calls == 1
        assert any(
            entry["event"] == "cancel_request_failed" and "no route" in entry["error"]
            for entry in logs
        )

    @pytest.mark.asyncio
    async def test_hook_is_released_on_dispose(self):
        connection = AsyncFakeConnection()
        token = CancellationToken()
        async with await build_command_async(connection, "SELECT 1", cancellation_token=token):
            pass
        token.cancel()
        await settle()
        assert connection.cancel_calls == 0
