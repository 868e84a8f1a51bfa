"""
Type compatibility between result columns and target fields.

Two independent questions are answered here, both once per query rather than
once per row:

1. Can a column whose values are fetched as ``column_type`` populate a field
   annotated ``field_type``? (``check_compatibility``)
2. Does any typed fetch path exist for ``column_type`` at all?
   (``fetcher_name``)

Rules for (1), after stripping ``Optional``:
    - ``Any``/``object`` fields accept every column
    - a field accepts its own type and every width marker wrapping it
      (``int`` accepts ``Int16``/``Int32``/``Int64``; ``Int32`` only ``Int32``)
    - enum fields accept any column; the value is converted per row
    - ``Char`` fields accept text columns; the length is checked per row
"""

from __future__ import annotations

import datetime
import decimal
import types
import uuid
from enum import Enum
from typing import Annotated, Any, Union, get_args, get_origin

from pgshape.types import Char, DateTimeOffset, Float32, Int16, Int32, Int64


class Compatibility(str, Enum):
    DIRECT = "direct"
    UNWRAP_NULLABLE = "unwrap_nullable"
    ENUM = "enum"
    CHAR_FROM_STRING = "char_from_string"
    INCOMPATIBLE = "incompatible"


# Column type -> DataRecord getter. bytes, DateTimeOffset and timedelta have
# no narrow getter and are fetched untyped.
FETCHERS: dict[Any, str] = {
    bool: "get_boolean",
    Int16: "get_int16",
    Int32: "get_int32",
    Int64: "get_int64",
    Float32: "get_float",
    float: "get_double",
    decimal.Decimal: "get_decimal",
    str: "get_string",
    Char: "get_string",
    datetime.datetime: "get_datetime",
    datetime.date: "get_date",
    datetime.time: "get_time",
    uuid.UUID: "get_uuid",
    bytes: "get_value",
    DateTimeOffset: "get_value",
    datetime.timedelta: "get_value",
}


def strip_annotated(tp: Any) -> Any:
    while get_origin(tp) is Annotated:
        tp = get_args(tp)[0]
    return tp


def is_optional(tp: Any) -> bool:
    origin = get_origin(tp)
    return (origin is Union or origin is types.UnionType) and type(None) in get_args(tp)


def unwrap_optional(tp: Any) -> Any:
    """``Optional[T]`` -> ``T``; anything else is returned unchanged."""
    tp = strip_annotated(tp)
    if not is_optional(tp):
        return tp
    args = [arg for arg in get_args(tp) if arg is not type(None)]
    if len(args) == 1:
        return args[0]
    return Union[tuple(args)]


def is_any(tp: Any) -> bool:
    return tp is Any or tp is object


def is_nullable(tp: Any) -> bool:
    """Only ``Optional``/``T | None`` and ``Any``/``object`` accept NULL."""
    tp = strip_annotated(tp)
    return is_any(tp) or is_optional(tp)


def is_enum_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, Enum)


def _widens_to(column_type: Any, field_type: Any) -> bool:
    current = column_type
    while True:
        if current == field_type:
            return True
        current = getattr(current, "__supertype__", None)
        if current is None:
            return False


def check_compatibility(column_type: Any, field_type: Any) -> Compatibility:
    """Decide how (or whether) ``column_type`` can populate ``field_type``."""
    field_type = strip_annotated(field_type)
    if is_any(field_type):
        return Compatibility.DIRECT

    effective = unwrap_optional(field_type)
    unwrapped = effective is not field_type

    if is_enum_type(effective):
        return Compatibility.ENUM

    if column_type is not None and _widens_to(column_type, effective):
        return Compatibility.UNWRAP_NULLABLE if unwrapped else Compatibility.DIRECT

    if effective is Char and column_type is str:
        return Compatibility.CHAR_FROM_STRING

    return Compatibility.INCOMPATIBLE


def fetcher_name(column_type: Any) -> str | None:
    """Name of the DataRecord getter for ``column_type``, or None if unsupported."""
    if column_type is None:
        return None
    return FETCHERS.get(column_type)
