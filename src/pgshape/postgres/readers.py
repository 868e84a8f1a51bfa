"""DataRecord adapters over psycopg cursors."""

from __future__ import annotations

import datetime
import decimal
import uuid
from typing import Any

from psycopg import AsyncCursor, Cursor

from pgshape.core.protocols import ColumnDescriptor
from pgshape.postgres.types import ANONYMOUS_COLUMN, field_type_for_oid


def describe_columns(cursor: Cursor[Any] | AsyncCursor[Any]) -> tuple[ColumnDescriptor, ...]:
    """Column descriptors for the cursor's current result set."""
    description = cursor.description
    if not description:
        return ()
    columns = []
    for ordinal, column in enumerate(description):
        oid = column.type_code
        info = cursor.adapters.types.get(oid)
        columns.append(
            ColumnDescriptor(
                ordinal=ordinal,
                name="" if column.name == ANONYMOUS_COLUMN else column.name,
                field_type=field_type_for_oid(oid),
                type_name=info.name if info is not None else f"oid {oid}",
            )
        )
    return tuple(columns)


class _CursorRecord:
    """Current-row access shared by the blocking and asyncio readers."""

    def __init__(self, cursor: Cursor[Any] | AsyncCursor[Any]):
        self.cursor = cursor
        self._row: tuple[Any, ...] | None = None
        self._columns = describe_columns(cursor)

    @property
    def columns(self) -> tuple[ColumnDescriptor, ...]:
        return self._columns

    @property
    def field_count(self) -> int:
        return len(self._columns)

    def _current(self) -> tuple[Any, ...]:
        if self._row is None:
            raise RuntimeError("The reader is not positioned on a row. Call read() first.")
        return self._row

    def _typed(self, ordinal: int, expected: type | tuple[type, ...]) -> Any:
        value = self._current()[ordinal]
        if not isinstance(value, expected):
            raise TypeError(
                f"The value of the column at ordinal {ordinal} is of the type "
                f"{type(value).__name__}, not {expected}."
            )
        return value

    def is_null(self, ordinal: int) -> bool:
        return self._current()[ordinal] is None

    def get_value(self, ordinal: int) -> Any:
        return self._current()[ordinal]

    def get_boolean(self, ordinal: int) -> bool:
        return self._typed(ordinal, bool)

    def get_int16(self, ordinal: int) -> int:
        return self._typed(ordinal, int)

    def get_int32(self, ordinal: int) -> int:
        return self._typed(ordinal, int)

    def get_int64(self, ordinal: int) -> int:
        return self._typed(ordinal, int)

    def get_float(self, ordinal: int) -> float:
        return self._typed(ordinal, float)

    def get_double(self, ordinal: int) -> float:
        return self._typed(ordinal, float)

    def get_decimal(self, ordinal: int) -> decimal.Decimal:
        return self._typed(ordinal, decimal.Decimal)

    def get_string(self, ordinal: int) -> str:
        return self._typed(ordinal, str)

    def get_datetime(self, ordinal: int) -> datetime.datetime:
        return self._typed(ordinal, datetime.datetime)

    def get_date(self, ordinal: int) -> datetime.date:
        return self._typed(ordinal, datetime.date)

    def get_time(self, ordinal: int) -> datetime.time:
        return self._typed(ordinal, datetime.time)

    def get_uuid(self, ordinal: int) -> uuid.UUID:
        return self._typed(ordinal, uuid.UUID)


class CursorDataReader(_CursorRecord):
    """Blocking forward-only reader over an executed psycopg cursor."""

    cursor: Cursor[Any]

    def read(self) -> bool:
        self._row = self.cursor.fetchone()
        return self._row is not None


class AsyncCursorDataReader(_CursorRecord):
    """Asyncio forward-only reader over an executed psycopg async cursor."""

    cursor: AsyncCursor[Any]

    async def read(self) -> bool:
        self._row = await self.cursor.fetchone()
        return self._row is not None
