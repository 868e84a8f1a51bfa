"""
Command construction: statement, cursor, ephemeral tables, cancel hook.

Architecture:
    ::

        build_command(conn, statement, cancellation_token=token)
            │
            ├── Statement.coerce(statement).render()     (query + parameters)
            ├── token.raise_if_cancellation_requested()
            ├── conn.cursor()
            ├── token.register(cancel_callback(conn))
            ├── build_temporary_table(...)  × N         (declared order)
            │     └── failure → dispose what was built, re-raise
            └── Command(cursor, query, params, CommandDisposer)

        command.execute()          → cursor.execute(query, params)
        command.disposer.close()   → registration, tables (newest first), cursor

Examples:
    >>> with build_command(conn, statement) as command:
    ...     command.execute()
    ...     reader = command.reader()
    ...     while reader.read():
    ...         ...

Guardrails:
    ❌ DON'T: Execute on a command after its disposer ran
    ✅ DO: Keep the command inside its ``with`` block (or the iterator that owns it)

Tags:
    command, temporary-tables, cancellation, disposal
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from psycopg import AsyncConnection, AsyncCursor, Connection, Cursor, sql

from pgshape.cancellation import CancellationToken
from pgshape.commands.disposer import CommandDisposer
from pgshape.core.logging import get_logger
from pgshape.core.settings import resolve_enum_serialization_mode
from pgshape.postgres.errors import (
    async_cancel_callback,
    cancel_callback,
    translate_cancellation,
)
from pgshape.postgres.readers import AsyncCursorDataReader, CursorDataReader
from pgshape.statements import Statement
from pgshape.temporary_tables.builder import build_temporary_table, build_temporary_table_async
from pgshape.temporary_tables.disposer import TemporaryTableDisposer
from pgshape.types import EnumSerializationMode

logger = get_logger(__name__)

StatementLike = str | sql.Composable | Statement


def _note_cleanup_failure(error: BaseException, cleanup_error: Exception) -> None:
    logger.warning("command_build_cleanup_failed", error=str(cleanup_error))
    error.add_note(f"Disposing the partially built command also failed: {cleanup_error!r}")


class CommandReader(CursorDataReader):
    """Reader that classifies cancellation on advance and owns its command.

    Closing the reader disposes the command: its cancel hook, its ephemeral
    tables and its cursor.
    """

    def __init__(self, command: Command):
        super().__init__(command.cursor)
        self.command = command

    def read(self) -> bool:
        self.command.token.raise_if_cancellation_requested()
        with translate_cancellation(self.command.token):
            return super().read()

    def close(self) -> None:
        self.command.disposer.close()

    def __enter__(self) -> CommandReader:
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        self.command.disposer.__exit__(exc_type, exc, tb)


class AsyncCommandReader(AsyncCursorDataReader):
    """Asyncio variant of ``CommandReader``."""

    def __init__(self, command: AsyncCommand):
        super().__init__(command.cursor)
        self.command = command

    async def read(self) -> bool:
        self.command.token.raise_if_cancellation_requested()
        with translate_cancellation(self.command.token):
            return await super().read()

    async def aclose(self) -> None:
        await self.command.disposer.aclose()

    async def __aenter__(self) -> AsyncCommandReader:
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        await self.command.disposer.__aexit__(exc_type, exc, tb)


class Command:
    """A blocking command ready to execute; owns its disposer."""

    def __init__(
        self,
        cursor: Cursor[Any],
        query: sql.Composable,
        params: dict[str, Any] | None,
        disposer: CommandDisposer,
        token: CancellationToken,
    ):
        self.cursor = cursor
        self.query = query
        self.params = params
        self.disposer = disposer
        self.token = token

    def execute(self) -> Cursor[Any]:
        self.token.raise_if_cancellation_requested()
        with translate_cancellation(self.token):
            return self.cursor.execute(self.query, self.params)

    def execute_many(self, params_seq: Sequence[Mapping[str, Any]]) -> Cursor[Any]:
        """Execute the query once per parameter mapping; rowcount is the total."""
        self.token.raise_if_cancellation_requested()
        with translate_cancellation(self.token):
            self.cursor.executemany(self.query, params_seq)
        return self.cursor

    def reader(self) -> CommandReader:
        """Reader over the executed command's result set."""
        return CommandReader(self)

    def __enter__(self) -> Command:
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        self.disposer.__exit__(exc_type, exc, tb)


class AsyncCommand:
    """Asyncio variant of ``Command``."""

    def __init__(
        self,
        cursor: AsyncCursor[Any],
        query: sql.Composable,
        params: dict[str, Any] | None,
        disposer: CommandDisposer,
        token: CancellationToken,
    ):
        self.cursor = cursor
        self.query = query
        self.params = params
        self.disposer = disposer
        self.token = token

    async def execute(self) -> AsyncCursor[Any]:
        self.token.raise_if_cancellation_requested()
        with translate_cancellation(self.token):
            return await self.cursor.execute(self.query, self.params)

    async def execute_many(self, params_seq: Sequence[Mapping[str, Any]]) -> AsyncCursor[Any]:
        self.token.raise_if_cancellation_requested()
        with translate_cancellation(self.token):
            await self.cursor.executemany(self.query, params_seq)
        return self.cursor

    def reader(self) -> AsyncCommandReader:
        return AsyncCommandReader(self)

    async def __aenter__(self) -> AsyncCommand:
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        await self.disposer.__aexit__(exc_type, exc, tb)


def build_command(
    connection: Connection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> Command:
    """Prepare ``statement`` on ``connection``, provisioning its ephemeral tables.

    If provisioning fails or is cancelled partway through, the tables built
    so far are dropped before the error propagates.

    Raises:
        OperationCancelledError: The token was cancelled before or during provisioning.
    """
    statement = Statement.coerce(statement)
    query = statement.render()
    mode = resolve_enum_serialization_mode(enum_serialization_mode)
    params = statement.bound_parameters(mode)
    token = cancellation_token or CancellationToken.none()
    token.raise_if_cancellation_requested()

    cursor = connection.cursor()
    try:
        registration = token.register(cancel_callback(connection))
    except BaseException as exc:
        # An already-cancelled token runs the callback inside register.
        try:
            cursor.close()
        except Exception as cleanup_error:
            _note_cleanup_failure(exc, cleanup_error)
        raise
    tables: list[TemporaryTableDisposer] = []
    try:
        for request in statement.temporary_tables:
            tables.append(
                build_temporary_table(
                    connection, request, token=token, enum_serialization_mode=mode
                )
            )
    except BaseException as exc:
        try:
            CommandDisposer(cursor, tables, registration).close()
        except Exception as cleanup_error:
            _note_cleanup_failure(exc, cleanup_error)
        raise

    logger.debug("command_built", temporary_tables=len(tables), parameters=len(params or {}))
    return Command(cursor, query, params, CommandDisposer(cursor, tables, registration), token)


async def build_command_async(
    connection: AsyncConnection[Any],
    statement: StatementLike,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> AsyncCommand:
    """Asyncio variant of ``build_command``."""
    statement = Statement.coerce(statement)
    query = statement.render()
    mode = resolve_enum_serialization_mode(enum_serialization_mode)
    params = statement.bound_parameters(mode)
    token = cancellation_token or CancellationToken.none()
    token.raise_if_cancellation_requested()

    cursor = connection.cursor()
    try:
        registration = token.register(async_cancel_callback(connection))
    except BaseException as exc:
        try:
            await cursor.close()
        except Exception as cleanup_error:
            _note_cleanup_failure(exc, cleanup_error)
        raise
    tables: list[TemporaryTableDisposer] = []
    try:
        for request in statement.temporary_tables:
            tables.append(
                await build_temporary_table_async(
                    connection, request, token=token, enum_serialization_mode=mode
                )
            )
    except BaseException as exc:
        try:
            await CommandDisposer(cursor, tables, registration).aclose()
        except Exception as cleanup_error:
            _note_cleanup_failure(exc, cleanup_error)
        raise

    logger.debug("command_built", temporary_tables=len(tables), parameters=len(params or {}))
    return AsyncCommand(cursor, query, params, CommandDisposer(cursor, tables, registration), token)


__all__ = [
    "Command",
    "AsyncCommand",
    "CommandReader",
    "AsyncCommandReader",
    "StatementLike",
    "build_command",
    "build_command_async",
]
