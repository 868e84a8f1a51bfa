"""
Schema inference for ephemeral tables.

A sequence of scalars becomes a one-column table named ``Value``; a sequence
of records becomes one column per mapped field, ordered by field name. Text
and text-encoded enum columns carry the database collation so that joins
against regular tables compare text the same way.

Type map:
    ::

        bool      BOOLEAN           Float32         REAL
        Int16     SMALLINT          float           DOUBLE PRECISION
        Int32     INTEGER           Decimal         NUMERIC
        int/Int64 BIGINT            Char            CHAR(1)
        str       VARCHAR(n)/TEXT   bytes           BYTEA
        datetime  TIMESTAMP         DateTimeOffset  TIMESTAMPTZ
        date      DATE              time            TIME
        timedelta INTERVAL          UUID            UUID
        Enum      VARCHAR(200) (strings mode) / INTEGER (integers mode)

Scalar ``str`` sequences are sized from their longest value: VARCHAR(1)
when every value is empty or None, VARCHAR(n) up to the configured maximum,
TEXT above it. Record fields of type ``str`` are always TEXT.
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, get_type_hints

from psycopg import sql

from pgshape.converters.compatibility import is_enum_type, unwrap_optional
from pgshape.converters.serialization import serialize_value
from pgshape.core.errors import UnsupportedTypeError
from pgshape.core.settings import MAX_TABLE_PREFIX_LENGTH, get_settings
from pgshape.shapes import named_shape
from pgshape.types import (
    Char,
    DateTimeOffset,
    EnumSerializationMode,
    Float32,
    Int16,
    Int32,
    Int64,
    type_name,
)

SCALAR_COLUMN = "Value"

WIRE_TYPES: dict[Any, str] = {
    bool: "BOOLEAN",
    Int16: "SMALLINT",
    Int32: "INTEGER",
    Int64: "BIGINT",
    int: "BIGINT",
    Float32: "REAL",
    float: "DOUBLE PRECISION",
    decimal.Decimal: "NUMERIC",
    Char: "CHAR(1)",
    str: "TEXT",
    bytes: "BYTEA",
    datetime.datetime: "TIMESTAMP",
    DateTimeOffset: "TIMESTAMPTZ",
    datetime.date: "DATE",
    datetime.time: "TIME",
    datetime.timedelta: "INTERVAL",
    uuid.UUID: "UUID",
}

ENUM_TEXT_WIRE_TYPE = "VARCHAR(200)"
ENUM_INTEGER_WIRE_TYPE = "INTEGER"


@dataclass(frozen=True)
class TemporaryTableRequest:
    """One ephemeral table a statement refers to."""

    name: str
    values: Sequence[Any]
    element_type: Any = None


@dataclass(frozen=True)
class ColumnDefinition:
    name: str
    wire_type: str
    needs_collation: bool


@dataclass(frozen=True)
class TemporaryTableSchema:
    name: str
    columns: tuple[ColumnDefinition, ...]
    element_type: Any
    is_scalar: bool
    enum_serialization_mode: EnumSerializationMode

    @property
    def needs_collation(self) -> bool:
        return any(column.needs_collation for column in self.columns)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)


def is_scalar_type(tp: Any) -> bool:
    tp = unwrap_optional(tp)
    return tp in WIRE_TYPES or is_enum_type(tp)


def infer_element_type(values: Sequence[Any]) -> Any:
    """Element type of an untyped sequence: the first non-None value's class.

    Aware datetimes are treated as ``DateTimeOffset``; an empty or all-None
    sequence is treated as ``str``.
    """
    for value in values:
        if value is None:
            continue
        if isinstance(value, datetime.datetime) and value.tzinfo is not None:
            return DateTimeOffset
        return type(value)
    return str


def _enum_column(name: str, mode: EnumSerializationMode) -> ColumnDefinition:
    if mode is EnumSerializationMode.STRINGS:
        return ColumnDefinition(name, ENUM_TEXT_WIRE_TYPE, needs_collation=True)
    return ColumnDefinition(name, ENUM_INTEGER_WIRE_TYPE, needs_collation=False)


def _text_width(values: Sequence[Any], max_varchar_length: int) -> str:
    longest = max((len(value) for value in values if value is not None), default=0)
    if longest == 0:
        return "VARCHAR(1)"
    if longest <= max_varchar_length:
        return f"VARCHAR({longest})"
    return "TEXT"


def _record_fields(record_type: Any) -> list[tuple[str, Any]]:
    """(name, type) of every column a record contributes, ordered by name."""
    if isinstance(record_type, type) and issubclass(record_type, tuple) and hasattr(
        record_type, "_fields"
    ):
        hints = get_type_hints(record_type)
        return sorted((name, hints.get(name, Any)) for name in record_type._fields)
    return [(field.name, field.field_type) for field in named_shape(record_type).readable_fields]


def infer_schema(
    request: TemporaryTableRequest,
    mode: EnumSerializationMode,
    *,
    max_varchar_length: int | None = None,
) -> TemporaryTableSchema:
    """Column definitions for ``request``.

    Raises:
        UnsupportedTypeError: The element type, or one of its fields, has no
            column type.
    """
    if max_varchar_length is None:
        max_varchar_length = get_settings().max_varchar_length
    element_type = request.element_type
    if element_type is None:
        element_type = infer_element_type(request.values)
    effective = unwrap_optional(element_type)

    if is_scalar_type(effective):
        if is_enum_type(effective):
            column = _enum_column(SCALAR_COLUMN, mode)
        elif effective is str:
            column = ColumnDefinition(
                SCALAR_COLUMN,
                _text_width(request.values, max_varchar_length),
                needs_collation=True,
            )
        else:
            column = ColumnDefinition(SCALAR_COLUMN, WIRE_TYPES[effective], needs_collation=False)
        return TemporaryTableSchema(request.name, (column,), effective, True, mode)

    columns = []
    for name, declared_type in _record_fields(effective):
        field_type = unwrap_optional(declared_type)
        if is_enum_type(field_type):
            columns.append(_enum_column(name, mode))
        elif field_type in WIRE_TYPES:
            columns.append(
                ColumnDefinition(
                    name, WIRE_TYPES[field_type], needs_collation=field_type is str
                )
            )
        else:
            raise UnsupportedTypeError(
                f"The type {type_name(declared_type)} of the field '{name}' of the "
                f"type {type_name(effective)} is not supported in temporary tables."
            ).with_context(shape=type_name(effective), column=name, table=request.name)

    if not columns:
        raise UnsupportedTypeError(
            f"The type {type_name(effective)} has no mapped fields to create temporary table "
            "columns from."
        ).with_context(shape=type_name(effective), table=request.name)

    return TemporaryTableSchema(request.name, tuple(columns), effective, False, mode)


def render_create(schema: TemporaryTableSchema, collation: str | None) -> sql.Composed:
    """``CREATE TEMP TABLE`` statement for ``schema``."""
    definitions = []
    for column in schema.columns:
        definition = sql.SQL("{} {}").format(sql.Identifier(column.name), sql.SQL(column.wire_type))
        if column.needs_collation and collation:
            definition = sql.SQL("{} COLLATE {}").format(definition, sql.Identifier(collation))
        definitions.append(definition)
    return sql.SQL("CREATE TEMP TABLE {} ({})").format(
        sql.Identifier(schema.name), sql.SQL(", ").join(definitions)
    )


def render_copy(schema: TemporaryTableSchema) -> sql.Composed:
    """``COPY ... FROM STDIN`` naming every column, so rows map by name."""
    return sql.SQL("COPY {} ({}) FROM STDIN").format(
        sql.Identifier(schema.name),
        sql.SQL(", ").join(sql.Identifier(name) for name in schema.column_names),
    )


def render_drop(name: str) -> sql.Composed:
    return sql.SQL("DROP TABLE IF EXISTS pg_temp.{}").format(sql.Identifier(name))


def iter_rows(schema: TemporaryTableSchema, values: Sequence[Any]) -> Iterator[tuple[Any, ...]]:
    """Rows for the bulk load, exposing exactly the schema's columns."""
    mode = schema.enum_serialization_mode
    if schema.is_scalar:
        for value in values:
            yield (serialize_value(value, mode),)
        return
    names = schema.column_names
    for record in values:
        yield tuple(serialize_value(getattr(record, name), mode) for name in names)


def generate_table_name(prefix: str | None = None) -> str:
    """Unique ephemeral table name: ``<prefix>_<32 hex digits>``, at most 63 bytes."""
    if not prefix:
        prefix = get_settings().temporary_table_prefix
    prefix = prefix.encode("utf-8")[:MAX_TABLE_PREFIX_LENGTH].decode("utf-8", errors="ignore")
    return f"{prefix}_{uuid.uuid4().hex}"
