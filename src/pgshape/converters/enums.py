"""Conversion of database values to enum members."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Any, TypeVar

from pgshape.core.errors import CoercionError, NullViolationError
from pgshape.core.formatting import debug_string
from pgshape.types import type_name

E = TypeVar("E", bound=Enum)


@lru_cache(maxsize=None)
def _members_by_folded_name(enum_type: type[Enum]) -> dict[str, Enum]:
    # Aliases share a member, so the first declared name wins on a clash.
    members: dict[str, Enum] = {}
    for name, member in enum_type.__members__.items():
        members.setdefault(name.casefold(), member)
    return members


def _member_for_integer(enum_type: type[E], value: int) -> E | None:
    try:
        member = enum_type(value)
    except ValueError:
        return None
    # IntFlag and friends synthesize pseudo-members for undeclared values.
    if member.name is None or member.name not in enum_type.__members__:
        return None
    return member


def convert_to_enum(value: Any, enum_type: type[E], *, nullable: bool = False) -> E | None:
    """Convert ``value`` to a member of ``enum_type``.

    Accepts a member of ``enum_type`` as is, an integer equal to a declared
    member value, or a string naming a member (case-insensitive). A string of
    digits is tried as an integer value first.

    Raises:
        NullViolationError: ``value`` is None and ``nullable`` is false.
        CoercionError: No member matches, or the value kind is unsupported.
    """
    if not (isinstance(enum_type, type) and issubclass(enum_type, Enum)):
        raise TypeError(
            f"Could not convert the value {debug_string(value)} to an enum member of the "
            f"type {type_name(enum_type)}, because {type_name(enum_type)} is not an enum type."
        )

    if value is None:
        if nullable:
            return None
        raise NullViolationError(
            f"Could not convert {{null}} to an enum member of the type {type_name(enum_type)}."
        )

    if isinstance(value, enum_type):
        return value

    if isinstance(value, str):
        if not value.strip():
            raise CoercionError(
                "Could not convert an empty string or a string that consists only of "
                f"white-space characters to an enum member of the type {type_name(enum_type)}."
            )
        text = value.strip()
        if text.lstrip("+-").isdigit():
            member = _member_for_integer(enum_type, int(text))
            if member is not None:
                return member
        member = _members_by_folded_name(enum_type).get(text.casefold())
        if member is None:
            raise CoercionError(
                f"Could not convert the string '{value}' to an enum member of the type "
                f"{type_name(enum_type)}. That string does not match any of the names of "
                "the enum's members."
            )
        return member

    if isinstance(value, int) and not isinstance(value, bool):
        member = _member_for_integer(enum_type, value)
        if member is None:
            raise CoercionError(
                f"Could not convert the value {debug_string(value)} to an enum member of the "
                f"type {type_name(enum_type)}. That value does not match any of the values of "
                "the enum's members."
            )
        return member

    raise CoercionError(
        f"Could not convert the value {debug_string(value)} to an enum member of the type "
        f"{type_name(enum_type)}. The value must either be an enum value of that type or a "
        "string or an integer."
    )
