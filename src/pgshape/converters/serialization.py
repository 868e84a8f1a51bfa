"""Enum serialization for parameters and ephemeral-table rows."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pgshape.core.settings import resolve_enum_serialization_mode
from pgshape.types import EnumSerializationMode, type_name


def serialize_enum(
    member: Enum,
    mode: EnumSerializationMode | str | None = None,
) -> str | int:
    """Member name in STRINGS mode, integer member value in INTEGERS mode."""
    mode = resolve_enum_serialization_mode(mode)
    if mode is EnumSerializationMode.STRINGS:
        return member.name
    value = member.value
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(
            f"The enum member {type_name(type(member))}.{member.name} cannot be "
            f"serialized as an integer, because its value {value!r} is not an integer."
        )
    return int(value)


def serialize_value(value: Any, mode: EnumSerializationMode | str | None = None) -> Any:
    """Serialize enum members; every other value passes through unchanged."""
    if isinstance(value, Enum):
        return serialize_enum(value, mode)
    return value
