"""Boxed-value coercion for single-value queries.

``convert_value`` turns an untyped fetched value into the requested type.
It is only used where no compiled materializer exists (``query_scalars`` and
``execute_scalar``); shaped queries go through the compiled converters.
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from collections.abc import Callable
from typing import Any

from pgshape.converters.compatibility import (
    is_any,
    is_enum_type,
    is_nullable,
    strip_annotated,
    unwrap_optional,
)
from pgshape.converters.enums import convert_to_enum
from pgshape.core.errors import CoercionError, NullViolationError, PgShapeError
from pgshape.core.formatting import debug_string
from pgshape.types import Char, Int16, Int32, Int64, runtime_type, type_name

_INTEGER_RANGES: dict[Any, tuple[int, int]] = {
    Int16: (-(2**15), 2**15 - 1),
    Int32: (-(2**31), 2**31 - 1),
    Int64: (-(2**63), 2**63 - 1),
}


def _to_int(value: Any) -> int:
    if isinstance(value, (float, decimal.Decimal)) and value != int(value):
        raise ValueError(f"{value!r} is not an integral number")
    return int(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        folded = value.strip().casefold()
        if folded in ("true", "false"):
            return folded == "true"
        raise ValueError(f"String '{value}' was not recognized as a valid boolean")
    if isinstance(value, (int, float, decimal.Decimal)):
        return value != 0
    raise TypeError(f"{type(value).__name__} cannot be converted to bool")


def _to_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, float):
        return decimal.Decimal(repr(value))
    return decimal.Decimal(value)


def _to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    raise TypeError(f"{type(value).__name__} cannot be converted to datetime")


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, str):
        return datetime.date.fromisoformat(value)
    raise TypeError(f"{type(value).__name__} cannot be converted to date")


def _to_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.datetime):
        return value.timetz()
    if isinstance(value, str):
        return datetime.time.fromisoformat(value)
    raise TypeError(f"{type(value).__name__} cannot be converted to time")


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, (bytes, bytearray)):
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(str(value))


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, uuid.UUID):
        return value.bytes
    raise TypeError(f"{type(value).__name__} cannot be converted to bytes")


_CONVERSIONS: dict[Any, Callable[[Any], Any]] = {
    int: _to_int,
    float: float,
    str: str,
    bool: _to_bool,
    decimal.Decimal: _to_decimal,
    datetime.datetime: _to_datetime,
    datetime.date: _to_date,
    datetime.time: _to_time,
    uuid.UUID: _to_uuid,
    bytes: _to_bytes,
}


def _needs_conversion(value: Any, runtime: Any) -> bool:
    if not isinstance(value, runtime):
        return True
    if isinstance(value, bool):
        return runtime is not bool
    # datetime is a date subclass
    return runtime is datetime.date and isinstance(value, datetime.datetime)


def _change_type(value: Any, target: Any) -> Any:
    runtime = runtime_type(target)
    if _needs_conversion(value, runtime):
        conversion = _CONVERSIONS.get(runtime)
        if conversion is None:
            if not isinstance(runtime, type):
                raise TypeError(f"{type_name(target)} is not a convertible type")
            conversion = runtime
        value = conversion(value)
    bounds = _INTEGER_RANGES.get(target)
    if bounds is not None and not bounds[0] <= value <= bounds[1]:
        raise OverflowError(f"Value was either too large or too small for {type_name(target)}")
    return value


def _to_char(value: Any, target_type: Any) -> str:
    # Integers are code points; everything else must already be one character.
    if isinstance(value, str):
        if len(value) != 1:
            raise CoercionError(
                f"Could not convert the string '{value}' to the target type "
                f"{type_name(target_type)}. The string must be exactly one character long."
            )
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return chr(value)
        except (ValueError, OverflowError) as exc:
            raise CoercionError(
                f"Could not convert the value {debug_string(value)} to the target type "
                f"{type_name(target_type)}. See the cause for details.",
                cause=exc,
            ) from exc
    raise CoercionError(
        f"Could not convert the value {debug_string(value)} to the target type "
        f"{type_name(target_type)}. Only strings of one character and integer code "
        "points can be converted to a character."
    )


def convert_value(value: Any, target_type: Any) -> Any:
    """Convert ``value`` to ``target_type``.

    None is returned for nullable targets and rejected otherwise; a value
    already of the target type is returned unchanged; ``Char`` targets take a
    single-character string or an integer code point; enum targets go through
    ``convert_to_enum``; everything else uses the general conversion table.

    Raises:
        NullViolationError: None for a non-nullable target.
        CoercionError: The value cannot be converted; the cause says why.
    """
    target_type = strip_annotated(target_type)
    if is_any(target_type):
        return value

    if value is None:
        if is_nullable(target_type):
            return None
        raise NullViolationError(
            f"Could not convert the value {debug_string(value)} to the target type "
            f"{type_name(target_type)}, because the target type is non-nullable."
        )

    effective = unwrap_optional(target_type)

    if effective is Char:
        return _to_char(value, target_type)

    try:
        if is_enum_type(effective):
            return convert_to_enum(value, effective)
        if isinstance(effective, type) and type(value) is effective:
            return value
        return _change_type(value, effective)
    except (PgShapeError, TypeError, ValueError, ArithmeticError) as exc:
        raise CoercionError(
            f"Could not convert the value {debug_string(value)} to the target type "
            f"{type_name(target_type)}. See the cause for details.",
            cause=exc,
        ) from exc
