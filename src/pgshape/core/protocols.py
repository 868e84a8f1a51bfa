"""
Canonical protocol definitions for pgshape.

The materializer never talks to psycopg directly. It reads rows through the
DataRecord protocol below: ordinal-indexed null checks, one typed getter per
supported column type, and an untyped ``get_value`` for the types that have
no narrow getter. The PostgreSQL adapters in ``pgshape.postgres.readers``
implement it over psycopg cursors; tests implement it over plain lists.

Architecture:
    ::

        protocols.py (YOU ARE HERE)
        ├── ColumnDescriptor   : ordinal, name, field type, type name
        ├── DataRecord         : the current row (null check + getters)
        ├── DataReader         : DataRecord + blocking read()
        └── AsyncDataReader    : DataRecord + awaitable read()

Guardrails:
    ❌ DON'T: Add per-row validation to implementations
    ✅ DO: Keep getters thin; all shape reasoning happens at compile time

    ❌ DON'T: Return sentinel values for NULL from typed getters
    ✅ DO: Call is_null() first; typed getters assume a non-NULL value

Tags:
    protocol, result-cursor, data-reader, async

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """One result column.

    ``field_type`` is the Python type (or width marker) the column's values
    are fetched as, or None when no typed fetch path exists for it.
    ``type_name`` is the database's own name for the type, for messages.
    """

    ordinal: int
    name: str
    field_type: Any
    type_name: str


@runtime_checkable
class DataRecord(Protocol):
    """The row a reader is currently positioned on."""

    @property
    def columns(self) -> Sequence[ColumnDescriptor]: ...

    @property
    def field_count(self) -> int: ...

    def is_null(self, ordinal: int) -> bool: ...

    def get_value(self, ordinal: int) -> Any: ...

    def get_boolean(self, ordinal: int) -> bool: ...

    def get_int16(self, ordinal: int) -> int: ...

    def get_int32(self, ordinal: int) -> int: ...

    def get_int64(self, ordinal: int) -> int: ...

    def get_float(self, ordinal: int) -> float: ...

    def get_double(self, ordinal: int) -> float: ...

    def get_decimal(self, ordinal: int) -> decimal.Decimal: ...

    def get_string(self, ordinal: int) -> str: ...

    def get_datetime(self, ordinal: int) -> datetime.datetime: ...

    def get_date(self, ordinal: int) -> datetime.date: ...

    def get_time(self, ordinal: int) -> datetime.time: ...

    def get_uuid(self, ordinal: int) -> uuid.UUID: ...


@runtime_checkable
class DataReader(DataRecord, Protocol):
    """Forward-only blocking reader. ``read()`` advances to the next row."""

    def read(self) -> bool: ...


@runtime_checkable
class AsyncDataReader(DataRecord, Protocol):
    """Forward-only asyncio reader. ``await read()`` advances to the next row."""

    async def read(self) -> bool: ...


__all__ = [
    "ColumnDescriptor",
    "DataRecord",
    "DataReader",
    "AsyncDataReader",
]
