"""
Provisioning of ephemeral tables: create, bulk-load, hand back a disposer.

Architecture:
    ::

        build_temporary_table(conn, request)
            │
            ├── infer_schema(request, mode)          (columns, wire types)
            ├── database_collation(conn)             (cached per database)
            ├── CREATE TEMP TABLE ...                (cancellable)
            ├── COPY ... FROM STDIN                  (columns by name)
            │     └── failure → drop the table, re-raise
            └── TemporaryTableDisposer               (DROP TABLE IF EXISTS)

The drop is skipped, and logged, when the connection is closed or its
transaction has failed: the session end or the rollback removes the table
and a DROP would only raise InFailedSqlTransaction.

Cancellation: a server abort observed while the caller's token is cancelled
surfaces as OperationCancelledError; the COPY loop also checks the token
between rows.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import psycopg
from psycopg import AsyncConnection, Connection
from psycopg.pq import TransactionStatus

from pgshape.cancellation import CancellationToken
from pgshape.core.errors import OperationCancelledError
from pgshape.core.logging import get_logger
from pgshape.core.settings import resolve_enum_serialization_mode
from pgshape.postgres.collation import database_collation, database_collation_async
from pgshape.postgres.errors import (
    async_cancel_callback,
    cancel_callback,
    is_cancellation_error,
)
from pgshape.temporary_tables.disposer import TemporaryTableDisposer
from pgshape.temporary_tables.schema import (
    TemporaryTableRequest,
    TemporaryTableSchema,
    generate_table_name,
    infer_schema,
    iter_rows,
    render_copy,
    render_create,
    render_drop,
)
from pgshape.types import EnumSerializationMode

logger = get_logger(__name__)


def _can_drop(connection: Connection[Any] | AsyncConnection[Any], name: str) -> bool:
    if connection.closed:
        logger.debug("temporary_table_drop_skipped", table=name, reason="connection_closed")
        return False
    if connection.info.transaction_status == TransactionStatus.INERROR:
        logger.info("temporary_table_drop_skipped", table=name, reason="transaction_failed")
        return False
    return True


def _note_cleanup_failure(error: BaseException, name: str, cleanup_error: Exception) -> None:
    logger.warning("temporary_table_drop_failed", table=name, error=str(cleanup_error))
    error.add_note(f"Dropping the temporary table {name} also failed: {cleanup_error!r}")


def _cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.is_cancellation_requested


def _log_created(schema: TemporaryTableSchema, rows: int) -> None:
    logger.debug(
        "temporary_table_created",
        table=schema.name,
        columns=list(schema.column_names),
        rows=rows,
    )


def build_temporary_table(
    connection: Connection[Any],
    request: TemporaryTableRequest,
    *,
    token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> TemporaryTableDisposer:
    """Create and fill the table for ``request`` on a blocking connection.

    The caller owns cancellation registration; ``token`` is only used to
    classify a server abort.

    Raises:
        OperationCancelledError: ``token`` was cancelled during creation or load.
        UnsupportedTypeError: The element type has no column mapping.
    """
    mode = resolve_enum_serialization_mode(enum_serialization_mode)
    schema = infer_schema(request, mode)
    collation = database_collation(connection) if schema.needs_collation else None
    drop_statement = render_drop(schema.name)

    def drop() -> None:
        if _can_drop(connection, schema.name):
            connection.execute(drop_statement)

    disposer = TemporaryTableDisposer(schema.name, drop=drop)
    created = False
    try:
        with connection.cursor() as cursor:
            cursor.execute(render_create(schema, collation))
            created = True
            rows = 0
            with cursor.copy(render_copy(schema)) as copy:
                for row in iter_rows(schema, request.values):
                    if _cancelled(token):
                        raise OperationCancelledError(token)
                    copy.write_row(row)
                    rows += 1
    except BaseException as exc:
        if created:
            try:
                disposer.close()
            except Exception as cleanup_error:
                _note_cleanup_failure(exc, schema.name, cleanup_error)
        if isinstance(exc, psycopg.Error) and is_cancellation_error(exc, token):
            raise OperationCancelledError(token, cause=exc) from exc
        raise

    _log_created(schema, rows)
    return disposer


async def build_temporary_table_async(
    connection: AsyncConnection[Any],
    request: TemporaryTableRequest,
    *,
    token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> TemporaryTableDisposer:
    """Asyncio variant of ``build_temporary_table``."""
    mode = resolve_enum_serialization_mode(enum_serialization_mode)
    schema = infer_schema(request, mode)
    collation = await database_collation_async(connection) if schema.needs_collation else None
    drop_statement = render_drop(schema.name)

    async def adrop() -> None:
        if _can_drop(connection, schema.name):
            await connection.execute(drop_statement)

    disposer = TemporaryTableDisposer(schema.name, adrop=adrop)
    created = False
    try:
        async with connection.cursor() as cursor:
            await cursor.execute(render_create(schema, collation))
            created = True
            rows = 0
            async with cursor.copy(render_copy(schema)) as copy:
                for row in iter_rows(schema, request.values):
                    if _cancelled(token):
                        raise OperationCancelledError(token)
                    await copy.write_row(row)
                    rows += 1
    except BaseException as exc:
        if created:
            try:
                await disposer.aclose()
            except Exception as cleanup_error:
                _note_cleanup_failure(exc, schema.name, cleanup_error)
        if isinstance(exc, psycopg.Error) and is_cancellation_error(exc, token):
            raise OperationCancelledError(token, cause=exc) from exc
        raise

    _log_created(schema, rows)
    return disposer


def provision_temporary_table(
    connection: Connection[Any],
    values: Sequence[Any],
    element_type: Any = None,
    *,
    name: str | None = None,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> TemporaryTableDisposer:
    """Create an ephemeral table holding ``values`` and return its disposer.

    The table is named ``<name>_<32 hex digits>`` (``name`` defaults to the
    configured prefix); ``disposer.name`` is the generated name.

    Example:
        with provision_temporary_table(conn, [3, 5, 8], name="ids") as ids:
            conn.execute(sql.SQL('SELECT * FROM product WHERE id IN (SELECT "Value" FROM {})')
                         .format(sql.Identifier(ids.name)))
    """
    request = TemporaryTableRequest(generate_table_name(name), list(values), element_type)
    token = cancellation_token or CancellationToken.none()
    with token.register(cancel_callback(connection)):
        return build_temporary_table(
            connection, request, token=token, enum_serialization_mode=enum_serialization_mode
        )


async def provision_temporary_table_async(
    connection: AsyncConnection[Any],
    values: Sequence[Any],
    element_type: Any = None,
    *,
    name: str | None = None,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> TemporaryTableDisposer:
    """Asyncio variant of ``provision_temporary_table``."""
    request = TemporaryTableRequest(generate_table_name(name), list(values), element_type)
    token = cancellation_token or CancellationToken.none()
    with token.register(async_cancel_callback(connection)):
        return await build_temporary_table_async(
            connection, request, token=token, enum_serialization_mode=enum_serialization_mode
        )
