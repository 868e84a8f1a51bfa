"""Tests for ``pgshape.postgres`` - readers, cancellation classification, collation."""

from __future__ import annotations

import datetime
import uuid

import psycopg
import pytest

from pgshape.cancellation import CancellationToken
from pgshape.core.errors import OperationCancelledError
from pgshape.postgres import (
    AsyncCursorDataReader,
    CursorDataReader,
    database_collation,
    database_collation_async,
    describe_columns,
    field_type_for_oid,
    is_cancellation_error,
    translate_cancellation,
)
from pgshape.postgres.collation import database_collations
from pgshape.types import DateTimeOffset, Int32, Int64
from tests._support.fakes import (
    INT4,
    INT8,
    JSONB,
    TEXT,
    TIMESTAMPTZ,
    UUID,
    AsyncFakeConnection,
    FakeConnection,
    FakeResult,
    query_canceled,
)


def executed_cursor(result: FakeResult, connection: FakeConnection | None = None):
    connection = connection or FakeConnection(results={"SELECT": result})
    cursor = connection.cursor()
    cursor.execute("SELECT 1")
    return cursor


class TestDescribeColumns:
    def test_maps_oids_to_field_types(self):
        cursor = executed_cursor(
            FakeResult([("id", INT8), ("qty", INT4), ("at", TIMESTAMPTZ), ("doc", JSONB)])
        )
        columns = describe_columns(cursor)
        assert [c.field_type for c in columns] == [Int64, Int32, DateTimeOffset, None]
        assert [c.type_name for c in columns] == ["int8", "int4", "timestamptz", "jsonb"]

    def test_anonymous_column_has_no_name(self):
        columns = describe_columns(executed_cursor(FakeResult([("?column?", TEXT)])))
        assert columns[0].name == ""

    def test_no_result_set(self):
        connection = FakeConnection()
        cursor = connection.cursor()
        cursor.execute("UPDATE product SET name = 'x'")
        assert describe_columns(cursor) == ()

    def test_unknown_oid(self):
        assert field_type_for_oid(999999) is None


class TestCursorDataReader:
    def test_reads_rows_through_typed_getters(self):
        row_id = uuid.uuid4()
        cursor = executed_cursor(
            FakeResult([("id", UUID), ("name", TEXT)], [(row_id, "Kite"), (row_id, None)])
        )
        reader = CursorDataReader(cursor)

        assert reader.field_count == 2
        assert reader.read()
        assert reader.get_uuid(0) == row_id
        assert reader.get_string(1) == "Kite"
        assert reader.read()
        assert reader.is_null(1)
        assert not reader.read()

    def test_getter_before_read(self):
        reader = CursorDataReader(executed_cursor(FakeResult([("id", INT8)], [(1,)])))
        with pytest.raises(RuntimeError, match="Call read\\(\\) first"):
            reader.get_int64(0)

    def test_typed_getter_checks_the_value(self):
        reader = CursorDataReader(executed_cursor(FakeResult([("id", INT8)], [("1",)])))
        reader.read()
        with pytest.raises(TypeError, match="of the type str"):
            reader.get_int64(0)

    @pytest.mark.asyncio
    async def test_async_reader(self):
        stamp = datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc)
        connection = AsyncFakeConnection(results={"SELECT": FakeResult([("at", TIMESTAMPTZ)], [(stamp,)])})
        cursor = connection.cursor()
        await cursor.execute("SELECT now()")
        reader = AsyncCursorDataReader(cursor)
        assert await reader.read()
        assert reader.get_value(0) == stamp
        assert not await reader.read()


class TestCancellationClassification:
    def test_requires_a_cancelled_token(self):
        token = CancellationToken()
        assert not is_cancellation_error(query_canceled(), token)
        token.cancel()
        assert is_cancellation_error(query_canceled(), token)

    def test_no_token(self):
        assert not is_cancellation_error(query_canceled(), None)

    def test_other_errors_are_not_cancellation(self):
        token = CancellationToken()
        token.cancel()
        assert not is_cancellation_error(psycopg.errors.UniqueViolation("dup"), token)
        assert not is_cancellation_error(RuntimeError("boom"), token)

    def test_translate_reclassifies(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError) as info:
            with translate_cancellation(token):
                raise query_canceled()
        assert isinstance(info.value.cause, psycopg.errors.QueryCanceled)
        assert info.value.token is token

    def test_translate_keeps_unrequested_abort(self):
        # statement_timeout produces the same error without a cancel request
        with pytest.raises(psycopg.errors.QueryCanceled):
            with translate_cancellation(CancellationToken()):
                raise query_canceled()


class TestDatabaseCollation:
    def test_loaded_once_per_database(self):
        connection = FakeConnection()
        assert database_collation(connection) == "en_US.utf8"
        assert database_collation(connection) == "en_US.utf8"
        assert len([s for s in connection.statements("execute") if "pg_collation" in s]) == 1
        assert database_collations.size() == 1

    def test_other_database_is_queried_separately(self):
        first, second = FakeConnection(), FakeConnection()
        second.info.dbname = "warehouse"
        database_collation(first)
        database_collation(second)
        assert database_collations.size() == 2

    @pytest.mark.asyncio
    async def test_async_shares_the_cache(self):
        database_collation(FakeConnection())
        connection = AsyncFakeConnection()
        assert await database_collation_async(connection) == "en_US.utf8"
        assert connection.statements() == []
