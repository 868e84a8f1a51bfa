"""
Read operations: shaped row streams, scalars, existence and raw readers.

Every operation builds a command (provisioning the statement's ephemeral
tables), executes it, and disposes it when done. Streaming operations are
lazy: nothing touches the database until the first row is requested, and
the command is disposed when the iterator is exhausted, closed or fails.

Manifesto:
    - **Lazy:** Rows are converted one at a time, in cursor order
    - **Compile once:** One materializer lookup per executed statement
    - **Uniform cancellation:** Execution, advance and bulk load all surface
      OperationCancelledError when the caller's token was cancelled

Architecture:
    ::

        query_entities / query_tuples / query_scalars
            │
            ├── build_command(conn, statement)
            ├── command.execute()
            ├── converter = get_materializer(shape, reader)   (or scalar coercion)
            └── loop: reader.read() → yield converter(reader)
                        └── QueryCanceled while cancelled → OperationCancelledError

        execute_scalar / exists / execute_non_query / execute_reader

Examples:
    >>> for product in query_entities(conn, "SELECT * FROM product", Product):
    ...     print(product.name)
    >>> execute_scalar(conn, "SELECT count(*) FROM product", Int64)
    77

Guardrails:
    ❌ DON'T: Leave a streaming iterator half-consumed without closing it
    ✅ DO: Exhaust it, ``close()`` it, or wrap it in ``contextlib.closing``

Tags:
    query, streaming, materialization, scalar, asyncio
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator
from typing import Any, TypeVar

from psycopg import AsyncConnection, Connection

from pgshape.cancellation import CancellationToken
from pgshape.commands.builder import (
    AsyncCommandReader,
    CommandReader,
    StatementLike,
    build_command,
    build_command_async,
)
from pgshape.converters.values import convert_value
from pgshape.core.errors import (
    CoercionError,
    NullViolationError,
    ShapeMismatchError,
    TypedCastError,
)
from pgshape.core.formatting import debug_string
from pgshape.core.protocols import DataRecord
from pgshape.materializers import get_entity_materializer, get_tuple_materializer
from pgshape.types import EnumSerializationMode, type_name

T = TypeVar("T")

Converter = Callable[[DataRecord], Any]


# =============================================================================
# SCALAR COERCION
# =============================================================================


def _first_value(record: DataRecord) -> Any:
    return None if record.is_null(0) else record.get_value(0)


def _coerce_scalar(value: Any, target_type: Any, where: str) -> Any:
    try:
        return convert_value(value, target_type)
    except TypedCastError as exc:
        found = "NULL" if value is None else f"the value {debug_string(value)}"
        error_type = NullViolationError if isinstance(exc, NullViolationError) else CoercionError
        raise error_type(
            f"{where} contains {found}, which could not be converted to the type "
            f"{type_name(target_type)}. See the cause for details.",
            cause=exc,
        ).with_context(ordinal=0) from exc


def _scalar_converter(target_type: Any) -> Callable[[DataRecord], Converter]:
    def make(reader: DataRecord) -> Converter:
        if not reader.columns:
            raise ShapeMismatchError("The SQL statement did not return any columns.")

        def convert(record: DataRecord) -> Any:
            return _coerce_scalar(
                _first_value(record),
                target_type,
                "The first column returned by the SQL statement",
            )

        return convert

    return make


# =============================================================================
# BLOCKING
# =============================================================================


def _stream(
    connection: Connection[Any],
    statement: StatementLike,
    make_converter: Callable[[DataRecord], Converter],
    cancellation_token: CancellationToken | None,
    enum_serialization_mode: EnumSerializationMode | str | None,
) -> Iterator[Any]:
    with build_command(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    ) as command:
        command.execute()
        reader = command.reader()
        convert = make_converter(reader)
        while reader.read():
            yield convert(reader)


def query_entities(
    connection: Connection[Any],
    statement: StatementLike,
    entity_type: type[T],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> Iterator[T]:
    """Lazily materialize each row as an ``entity_type`` instance (columns by name).

    Raises:
        ShapeMismatchError: A column has no settable field or an incompatible type.
        NullViolationError: A NULL reached a non-nullable field (per row).
        CoercionError: A value could not be converted (per row).
        OperationCancelledError: ``cancellation_token`` was cancelled.
    """
    return _stream(
        connection,
        statement,
        lambda reader: get_entity_materializer(entity_type, reader),
        cancellation_token,
        enum_serialization_mode,
    )


def query_tuples(
    connection: Connection[Any],
    statement: StatementLike,
    tuple_type: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> Iterator[Any]:
    """Lazily materialize each row as a ``tuple_type`` value (columns by position)."""
    return _stream(
        connection,
        statement,
        lambda reader: get_tuple_materializer(tuple_type, reader),
        cancellation_token,
        enum_serialization_mode,
    )


def query_scalars(
    connection: Connection[Any],
    statement: StatementLike,
    target_type: type[T],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> Iterator[T]:
    """Lazily yield the first column of each row, converted to ``target_type``."""
    return _stream(
        connection,
        statement,
        _scalar_converter(target_type),
        cancellation_token,
        enum_serialization_mode,
    )


def execute_scalar(
    connection: Connection[Any],
    statement: StatementLike,
    target_type: Any = object,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> Any:
    """First column of the first row converted to ``target_type``.

    Returns None when the statement yields no row, no columns, or NULL.
    """
    with build_command(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    ) as command:
        command.execute()
        reader = command.reader()
        if not reader.columns or not reader.read() or reader.is_null(0):
            return None
        return _coerce_scalar(
            reader.get_value(0),
            target_type,
            "The first column of the first row in the result set returned by the SQL statement",
        )


def execute_non_query(
    connection: Connection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Execute ``statement`` and return the number of affected rows."""
    with build_command(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    ) as command:
        command.execute()
        return command.cursor.rowcount


def exists(
    connection: Connection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> bool:
    """Whether ``statement`` yields at least one row."""
    with build_command(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    ) as command:
        command.execute()
        reader = command.reader()
        return bool(reader.columns) and reader.read()


def execute_reader(
    connection: Connection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> CommandReader:
    """Execute ``statement`` and hand back a reader that owns the command.

    Example:
        with execute_reader(conn, "SELECT id, name FROM product") as reader:
            while reader.read():
                print(reader.get_int64(0), reader.get_string(1))
    """
    command = build_command(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )
    with command.disposer.guard():
        command.execute()
        return command.reader()


# =============================================================================
# ASYNCIO
# =============================================================================


async def _stream_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    make_converter: Callable[[DataRecord], Converter],
    cancellation_token: CancellationToken | None,
    enum_serialization_mode: EnumSerializationMode | str | None,
) -> AsyncIterator[Any]:
    command = await build_command_async(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )
    async with command:
        await command.execute()
        reader = command.reader()
        convert = make_converter(reader)
        while await reader.read():
            yield convert(reader)


def query_entities_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    entity_type: type[T],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> AsyncIterator[T]:
    """Asyncio variant of ``query_entities``; use with ``async for``."""
    return _stream_async(
        connection,
        statement,
        lambda reader: get_entity_materializer(entity_type, reader),
        cancellation_token,
        enum_serialization_mode,
    )


def query_tuples_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    tuple_type: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> AsyncIterator[Any]:
    """Asyncio variant of ``query_tuples``."""
    return _stream_async(
        connection,
        statement,
        lambda reader: get_tuple_materializer(tuple_type, reader),
        cancellation_token,
        enum_serialization_mode,
    )


def query_scalars_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    target_type: type[T],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> AsyncIterator[T]:
    """Asyncio variant of ``query_scalars``."""
    return _stream_async(
        connection,
        statement,
        _scalar_converter(target_type),
        cancellation_token,
        enum_serialization_mode,
    )


async def execute_scalar_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    target_type: Any = object,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> Any:
    """Asyncio variant of ``execute_scalar``."""
    command = await build_command_async(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )
    async with command:
        await command.execute()
        reader = command.reader()
        if not reader.columns or not await reader.read() or reader.is_null(0):
            return None
        return _coerce_scalar(
            reader.get_value(0),
            target_type,
            "The first column of the first row in the result set returned by the SQL statement",
        )


async def execute_non_query_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Asyncio variant of ``execute_non_query``."""
    command = await build_command_async(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )
    async with command:
        await command.execute()
        return command.cursor.rowcount


async def exists_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> bool:
    """Asyncio variant of ``exists``."""
    command = await build_command_async(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )
    async with command:
        await command.execute()
        reader = command.reader()
        return bool(reader.columns) and await reader.read()


async def execute_reader_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> AsyncCommandReader:
    """Asyncio variant of ``execute_reader``; use with ``async with``."""
    command = await build_command_async(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )
    async with command.disposer.aguard():
        await command.execute()
        return command.reader()


__all__ = [
    "query_entities",
    "query_tuples",
    "query_scalars",
    "execute_scalar",
    "execute_non_query",
    "exists",
    "execute_reader",
    "query_entities_async",
    "query_tuples_async",
    "query_scalars_async",
    "execute_scalar_async",
    "execute_non_query_async",
    "exists_async",
    "execute_reader_async",
]
