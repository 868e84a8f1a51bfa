"""Per-column converters, compiled once per materializer.

Each converter reads one column of the current row: one null check, at most
one typed fetch, then the enum or single-character coercion its field needs.
All decisions (getter, nullability, coercion) are taken here, at compile
time; the returned closures only branch on the row's data.
"""

from __future__ import annotations

from collections.abc import Callable
from operator import methodcaller
from typing import Any

from pgshape.converters.compatibility import (
    Compatibility,
    fetcher_name,
    is_nullable,
    unwrap_optional,
)
from pgshape.converters.enums import convert_to_enum
from pgshape.core.errors import CoercionError, NullViolationError
from pgshape.core.formatting import describe_column
from pgshape.core.protocols import ColumnDescriptor, DataRecord
from pgshape.types import type_name

ColumnConverter = Callable[[DataRecord], Any]


def compile_column(
    column: ColumnDescriptor,
    field_type: Any,
    compatibility: Compatibility,
    owner: str,
) -> ColumnConverter:
    """Build the converter for one validated (column, field) pair.

    Args:
        column: The result column.
        field_type: Annotation of the field the column populates.
        compatibility: Outcome of ``check_compatibility`` for the pair.
        owner: Phrase naming the shape for messages, e.g. ``the type Product``.
    """
    ordinal = column.ordinal
    where = describe_column(column.name, ordinal)
    is_null = methodcaller("is_null", ordinal)
    fetch = methodcaller(fetcher_name(column.field_type), ordinal)
    effective = unwrap_optional(field_type)
    context = {"column": column.name or None, "ordinal": ordinal, "shape": owner}

    if is_nullable(field_type):
        def on_null() -> Any:
            return None
    else:
        def on_null() -> Any:
            raise NullViolationError(
                f"The {where} returned by the SQL statement contains a NULL "
                f"value, but the corresponding field of {owner} is non-nullable."
            ).with_context(**context)

    if compatibility is Compatibility.ENUM:
        enum_type = effective

        def convert_enum(record: DataRecord) -> Any:
            if is_null(record):
                return on_null()
            value = fetch(record)
            try:
                return convert_to_enum(value, enum_type)
            except CoercionError as exc:
                raise CoercionError(
                    f"The {where} returned by the SQL statement contains a "
                    f"value that could not be converted to the enum type {type_name(enum_type)} "
                    f"of the corresponding field of {owner}. See the cause for details.",
                    cause=exc,
                ).with_context(**context) from exc

        return convert_enum

    if compatibility is Compatibility.CHAR_FROM_STRING:
        def convert_char(record: DataRecord) -> Any:
            if is_null(record):
                return on_null()
            value = fetch(record)
            if len(value) != 1:
                raise CoercionError(
                    f"The {where} returned by the SQL statement contains the "
                    f"string '{value}', which could not be converted to the type "
                    f"{type_name(field_type)} of the corresponding field of {owner}. The string "
                    "must be exactly one character long."
                ).with_context(**context)
            return value

        return convert_char

    def convert(record: DataRecord) -> Any:
        if is_null(record):
            return on_null()
        return fetch(record)

    return convert
