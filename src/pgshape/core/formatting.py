"""Message helpers shared by the converters and the materializer."""

from __future__ import annotations

from typing import Any

from pgshape.types import type_name


def ordinalize(number: int) -> str:
    """Render ``number`` with its English ordinal suffix (1st, 2nd, 11th)."""
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


def debug_string(value: Any) -> str:
    """Render a value with its type for error messages: ``'42' (int)``."""
    if value is None:
        return "{null}"
    return f"'{value}' ({type_name(type(value))})"


def describe_column(name: str, ordinal: int) -> str:
    """``column 'Id'`` when the column has a name, else ``2nd column``."""
    if name:
        return f"column '{name}'"
    return f"{ordinalize(ordinal + 1)} column"


def quantity(count: int, noun: str) -> str:
    """``1 column``, ``3 columns``."""
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"
