"""
Row materialization: compile once per result shape, reuse forever.

``get_materializer(shape_type, record)`` returns a function converting the
reader's current row into one instance of ``shape_type``. The function is
compiled on the first query with a given (shape type, column names, column
types) key and served from an append-only cache afterwards.

Validation always runs against the query's actual columns before the cache
is consulted, so a shape error is reported for this query's columns and is
never cached. Null and coercion errors are raised by the compiled function
for the offending row only; the cached function stays valid.

Architecture:
    ::

        get_materializer(Product, reader)
            │
            ├── named_shape(Product) / positional_shape(tuple[...])
            ├── validate columns           → ShapeMismatchError / UnsupportedTypeError
            ├── MaterializerKey(type, names, types)
            └── cache.get_or_add(key, compile)
                   └── compile_entity_materializer / compile_tuple_materializer

Examples:
    >>> materialize = get_materializer(tuple[Int64, Int32], reader)
    >>> while reader.read():
    ...     product_id, units_in_stock = materialize(reader)

Guardrails:
    ❌ DON'T: Compile per query by hand
    ✅ DO: Call get_materializer once per executed statement

Tags:
    materializer, row-mapping, cache, compile-once
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pgshape.core.cache import AppendOnlyCache
from pgshape.core.protocols import DataRecord
from pgshape.materializers.entities import bind_entity_columns, compile_entity_materializer
from pgshape.materializers.tuples import check_tuple_columns, compile_tuple_materializer
from pgshape.shapes import is_positional_type, named_shape, positional_shape

Materializer = Callable[[DataRecord], Any]


@dataclass(frozen=True)
class MaterializerKey:
    """Structural identity of a (shape, result columns) pair."""

    shape_type: Any
    column_names: tuple[str, ...]
    column_types: tuple[Any, ...]


entity_materializers: AppendOnlyCache[MaterializerKey, Materializer] = AppendOnlyCache(
    name="entity_materializers"
)
tuple_materializers: AppendOnlyCache[MaterializerKey, Materializer] = AppendOnlyCache(
    name="tuple_materializers"
)


def _key(shape_type: Any, record: DataRecord) -> MaterializerKey:
    columns = record.columns
    return MaterializerKey(
        shape_type=shape_type,
        column_names=tuple(column.name for column in columns),
        column_types=tuple(column.field_type for column in columns),
    )


def get_entity_materializer(entity_type: type, record: DataRecord) -> Materializer:
    """Materializer for a named shape over ``record``'s columns."""
    shape = named_shape(entity_type)
    bindings = bind_entity_columns(shape, record.columns)
    key = _key(entity_type, record)
    return entity_materializers.get_or_add(
        key, lambda _: compile_entity_materializer(shape, bindings)
    )


def get_tuple_materializer(tuple_type: Any, record: DataRecord) -> Materializer:
    """Materializer for a positional shape over ``record``'s columns."""
    shape = positional_shape(tuple_type)
    columns = tuple(record.columns)
    compatibilities = check_tuple_columns(shape, columns)
    key = _key(tuple_type, record)
    return tuple_materializers.get_or_add(
        key, lambda _: compile_tuple_materializer(shape, columns, compatibilities)
    )


def get_materializer(shape_type: Any, record: DataRecord) -> Materializer:
    """Materializer for ``shape_type``; tuples are positional, everything else named."""
    if is_positional_type(shape_type):
        return get_tuple_materializer(shape_type, record)
    return get_entity_materializer(shape_type, record)


def clear_materializer_caches() -> None:
    """Forget every compiled materializer (test isolation only)."""
    entity_materializers.clear()
    tuple_materializers.clear()


__all__ = [
    "Materializer",
    "MaterializerKey",
    "get_materializer",
    "get_entity_materializer",
    "get_tuple_materializer",
    "clear_materializer_caches",
]
