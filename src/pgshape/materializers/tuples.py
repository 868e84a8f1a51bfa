"""Materializers for positional shapes (tuple aliases and NamedTuples)."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from pgshape.converters.compatibility import Compatibility, check_compatibility, fetcher_name
from pgshape.core.errors import ShapeMismatchError, UnsupportedTypeError
from pgshape.core.formatting import describe_column, quantity
from pgshape.core.logging import get_logger
from pgshape.core.protocols import ColumnDescriptor, DataRecord
from pgshape.materializers.columns import compile_column
from pgshape.shapes import PositionalShape
from pgshape.types import type_name

logger = get_logger(__name__)


def check_tuple_columns(
    shape: PositionalShape, columns: Sequence[ColumnDescriptor]
) -> list[Compatibility]:
    """Validate the columns against ``shape`` position by position.

    Raises:
        ShapeMismatchError: No columns, a column count different from the
            arity, or an incompatible column type.
        UnsupportedTypeError: No typed fetch path for a column's type.
    """
    shape_name = type_name(shape.type)
    if not columns:
        raise ShapeMismatchError("The SQL statement did not return any columns.").with_context(
            shape=shape_name
        )

    if len(columns) != shape.arity:
        raise ShapeMismatchError(
            f"The SQL statement returned {quantity(len(columns), 'column')}, but the tuple type "
            f"{shape_name} has {quantity(shape.arity, 'field')}. Make sure that the SQL statement "
            "returns the same number of columns as the number of fields in the tuple type."
        ).with_context(shape=shape_name)

    result = []
    for column, field_type in zip(columns, shape.field_types):
        where = describe_column(column.name, column.ordinal)
        compatibility = check_compatibility(column.field_type, field_type)
        if compatibility is Compatibility.INCOMPATIBLE:
            raise ShapeMismatchError(
                f"The data type {column.type_name} of the {where} returned by the SQL statement "
                f"does not match the field type {type_name(field_type)} of the corresponding "
                f"field of the tuple type {shape_name}."
            ).with_context(shape=shape_name, column=column.name or None, ordinal=column.ordinal)

        if fetcher_name(column.field_type) is None:
            raise UnsupportedTypeError(
                f"The data type {column.type_name} of the {where} returned by the SQL statement "
                "is not supported."
            ).with_context(shape=shape_name, column=column.name or None, ordinal=column.ordinal)

        result.append(compatibility)
    return result


def compile_tuple_materializer(
    shape: PositionalShape,
    columns: Sequence[ColumnDescriptor],
    compatibilities: Sequence[Compatibility],
) -> Callable[[DataRecord], Any]:
    """Compile the row -> tuple function for validated columns."""
    owner = f"the tuple type {type_name(shape.type)}"
    converters = tuple(
        compile_column(column, field_type, compatibility, owner)
        for column, field_type, compatibility in zip(columns, shape.field_types, compatibilities)
    )
    factory = shape.factory

    def materialize(record: DataRecord) -> Any:
        return factory([convert(record) for convert in converters])

    logger.debug(
        "materializer_compiled",
        shape=type_name(shape.type),
        kind="positional",
        columns=[column.name for column in columns],
    )
    return materialize
