"""Tests for provisioning and disposing ephemeral tables."""

from __future__ import annotations

import psycopg
import pytest
from psycopg.pq import TransactionStatus

from pgshape.cancellation import CancellationToken
from pgshape.core.errors import OperationCancelledError
from pgshape.temporary_tables import (
    TemporaryTableDisposer,
    TemporaryTableRequest,
    build_temporary_table,
    build_temporary_table_async,
    provision_temporary_table,
    provision_temporary_table_async,
)
from pgshape.types import Int32
from tests._support.fakes import AsyncFakeConnection, FakeConnection, query_canceled


def drops(connection) -> list[str]:
    return [s for s in connection.statements("execute") if s.startswith("DROP TABLE")]


class TestProvisionTemporaryTable:
    def test_creates_and_loads_scalar_values(self):
        connection = FakeConnection()
        disposer = provision_temporary_table(connection, [3, 5, 8], Int32, name="ids")

        assert disposer.name.startswith("ids_")
        create = [s for s in connection.statements() if s.startswith("CREATE TEMP TABLE")]
        assert create == [f'CREATE TEMP TABLE "{disposer.name}" ("Value" INTEGER)']
        assert connection.copied[disposer.name] == [(3,), (5,), (8,)]
        assert drops(connection) == []

    def test_empty_sequence_still_creates_the_table(self):
        connection = FakeConnection()
        disposer = provision_temporary_table(connection, [])

        assert connection.statements("copy") == [f'COPY "{disposer.name}" ("Value") FROM STDIN']
        assert connection.copied[disposer.name] == []
        create = next(s for s in connection.statements() if s.startswith("CREATE"))
        assert 'VARCHAR(1) COLLATE "en_US.utf8"' in create

    def test_records(self, sample_products):
        connection = FakeConnection()
        disposer = provision_temporary_table(
            connection, sample_products, enum_serialization_mode="integers"
        )
        assert connection.copied[disposer.name] == [
            (1, 1, "Kite", 12),
            (2, 2, "Atlas", None),
            (3, 3, "Rake", 4),
        ]

    def test_context_manager_drops_once(self):
        connection = FakeConnection()
        with provision_temporary_table(connection, [1]) as disposer:
            pass
        disposer.close()

        assert disposer.disposed
        assert drops(connection) == [f'DROP TABLE IF EXISTS pg_temp."{disposer.name}"']

    def test_registration_is_released(self):
        connection = FakeConnection()
        token = CancellationToken()
        provision_temporary_table(connection, [1], cancellation_token=token)
        token.cancel()
        assert connection.cancel_calls == 0


class TestBuildFailures:
    def test_failure_during_copy_drops_the_table(self):
        error = psycopg.errors.DataException("bad row")
        connection = FakeConnection(fail_on={"write_row": error})
        request = TemporaryTableRequest("values_x", [1, 2])

        with pytest.raises(psycopg.errors.DataException):
            build_temporary_table(connection, request)

        assert drops(connection) == ['DROP TABLE IF EXISTS pg_temp."values_x"']

    def test_failure_before_create_drops_nothing(self):
        connection = FakeConnection(fail_on={"CREATE TEMP TABLE": psycopg.OperationalError("down")})
        with pytest.raises(psycopg.OperationalError):
            build_temporary_table(connection, TemporaryTableRequest("values_x", [1]))
        assert drops(connection) == []

    def test_failed_drop_is_noted_on_the_original_error(self):
        connection = FakeConnection(
            fail_on={
                "write_row": psycopg.errors.DataException("bad row"),
                "DROP TABLE": psycopg.OperationalError("gone"),
            }
        )
        with pytest.raises(psycopg.errors.DataException) as info:
            build_temporary_table(connection, TemporaryTableRequest("values_x", [1]))
        assert any("values_x" in note for note in info.value.__notes__)

    def test_server_abort_after_cancel_is_cancellation(self):
        token = CancellationToken()
        token.cancel()
        connection = FakeConnection(fail_on={"COPY": query_canceled()})

        with pytest.raises(OperationCancelledError) as info:
            build_temporary_table(connection, TemporaryTableRequest("values_x", [1]), token=token)

        assert isinstance(info.value.cause, psycopg.errors.QueryCanceled)
        assert drops(connection) == ['DROP TABLE IF EXISTS pg_temp."values_x"']

    def test_server_abort_without_cancel_propagates(self):
        connection = FakeConnection(fail_on={"COPY": query_canceled()})
        with pytest.raises(psycopg.errors.QueryCanceled):
            build_temporary_table(
                connection, TemporaryTableRequest("values_x", [1]), token=CancellationToken()
            )

    def test_cancelled_token_stops_the_load(self):
        token = CancellationToken()
        token.cancel()
        connection = FakeConnection()

        with pytest.raises(OperationCancelledError):
            build_temporary_table(connection, TemporaryTableRequest("values_x", [1, 2]), token=token)

        assert connection.copied["values_x"] == []
        assert drops(connection) == ['DROP TABLE IF EXISTS pg_temp."values_x"']


class TestDropConditions:
    def test_skipped_when_transaction_failed(self):
        connection = FakeConnection()
        disposer = provision_temporary_table(connection, [1])
        connection.info.transaction_status = TransactionStatus.INERROR
        disposer.close()
        assert drops(connection) == []
        assert disposer.disposed

    def test_skipped_when_connection_closed(self):
        connection = FakeConnection()
        disposer = provision_temporary_table(connection, [1])
        connection.closed = True
        disposer.close()
        assert drops(connection) == []


class TestTemporaryTableDisposer:
    def test_close_is_idempotent(self):
        calls = []
        disposer = TemporaryTableDisposer("t", drop=lambda: calls.append("drop"))
        disposer.close()
        disposer.close()
        assert calls == ["drop"]

    def test_async_handle_refuses_blocking_close(self):
        async def adrop():
            return None

        with pytest.raises(TypeError, match="use aclose"):
            TemporaryTableDisposer("t", adrop=adrop).close()

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self):
        calls = []

        async def adrop():
            calls.append("drop")

        disposer = TemporaryTableDisposer("t", adrop=adrop)
        await disposer.aclose()
        await disposer.aclose()
        assert calls == ["drop"]


class TestAsyncProvisioning:
    @pytest.mark.asyncio
    async def test_provision_and_drop(self):
        connection = AsyncFakeConnection()
        async with await provision_temporary_table_async(connection, ["a", "bc"]) as disposer:
            assert connection.copied[disposer.name] == [("a",), ("bc",)]
        assert drops(connection) == [f'DROP TABLE IF EXISTS pg_temp."{disposer.name}"']

    @pytest.mark.asyncio
    async def test_failure_during_copy_drops_the_table(self):
        connection = AsyncFakeConnection(fail_on={"write_row": psycopg.errors.DataException("x")})
        with pytest.raises(psycopg.errors.DataException):
            await build_temporary_table_async(connection, TemporaryTableRequest("values_x", [1]))
        assert drops(connection) == ['DROP TABLE IF EXISTS pg_temp."values_x"']
