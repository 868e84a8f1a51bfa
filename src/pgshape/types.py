"""Width-carrying type markers and the enum serialization mode.

Python's ``int``, ``float``, ``str`` and ``datetime`` do not say how wide a
database column is. The markers below do, so a result column of type
``integer`` is described as ``Int32`` and an ``Int32`` field accepts only
``integer`` columns while an ``int`` field accepts every integer width.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import NewType

Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
Float32 = NewType("Float32", float)
Char = NewType("Char", str)
DateTimeOffset = NewType("DateTimeOffset", datetime)


class EnumSerializationMode(str, Enum):
    """How enum values are written to parameters and ephemeral tables."""

    STRINGS = "strings"  # member name, stored as text
    INTEGERS = "integers"  # member value, stored as integer


def runtime_type(tp: object) -> object:
    """Follow a NewType marker down to the class it wraps."""
    while hasattr(tp, "__supertype__"):
        tp = tp.__supertype__
    return tp


def type_name(tp: object) -> str:
    """Readable name for a type or marker, used in error messages."""
    name = getattr(tp, "__qualname__", None) or getattr(tp, "__name__", None)
    if isinstance(name, str) and not hasattr(tp, "__args__"):
        return name
    return repr(tp).replace("typing.", "")


__all__ = [
    "Int16",
    "Int32",
    "Int64",
    "Float32",
    "Char",
    "DateTimeOffset",
    "EnumSerializationMode",
    "runtime_type",
    "type_name",
]
