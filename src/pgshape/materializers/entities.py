"""Materializers for named shapes (dataclasses, pydantic models, plain classes)."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pgshape.converters.compatibility import Compatibility, check_compatibility, fetcher_name
from pgshape.core.errors import CoercionError, ShapeMismatchError, UnsupportedTypeError
from pgshape.core.formatting import ordinalize
from pgshape.core.logging import get_logger
from pgshape.core.protocols import ColumnDescriptor, DataRecord
from pgshape.materializers.columns import compile_column
from pgshape.shapes import FieldDescriptor, NamedShape
from pgshape.types import type_name

logger = get_logger(__name__)


@dataclass(frozen=True)
class ColumnBinding:
    column: ColumnDescriptor
    field: FieldDescriptor
    compatibility: Compatibility


def bind_entity_columns(
    shape: NamedShape, columns: Sequence[ColumnDescriptor]
) -> list[ColumnBinding]:
    """Validate the columns against ``shape`` and pair each with its field.

    Raises:
        ShapeMismatchError: No columns, an unnamed column, a column without a
            settable field, an incompatible column type, or a required
            constructor field without a column.
        UnsupportedTypeError: No typed fetch path for a column's type.
    """
    shape_name = type_name(shape.type)
    if not columns:
        raise ShapeMismatchError("The SQL statement did not return any columns.").with_context(
            shape=shape_name
        )

    bindings = []
    for column in columns:
        if not column.name:
            raise ShapeMismatchError(
                f"The {ordinalize(column.ordinal + 1)} column returned by the SQL statement does "
                "not have a name. Make sure that all columns the SQL statement returns have a name."
            ).with_context(shape=shape_name, ordinal=column.ordinal)

        field = shape.find_field(column.name)
        if field is None or not field.settable:
            raise ShapeMismatchError(
                f"Could not map the column '{column.name}' returned by the SQL statement to a "
                f"field (that can be set) of the type {shape_name}. Make sure the type has a "
                "corresponding field."
            ).with_context(shape=shape_name, column=column.name, ordinal=column.ordinal)

        compatibility = check_compatibility(column.field_type, field.field_type)
        if compatibility is Compatibility.INCOMPATIBLE:
            raise ShapeMismatchError(
                f"The data type {column.type_name} of the column '{column.name}' returned by the "
                f"SQL statement does not match the field type {type_name(field.field_type)} of "
                f"the corresponding field of the type {shape_name}."
            ).with_context(shape=shape_name, column=column.name, ordinal=column.ordinal)

        if fetcher_name(column.field_type) is None:
            raise UnsupportedTypeError(
                f"The data type {column.type_name} of the column '{column.name}' returned by the "
                "SQL statement is not supported."
            ).with_context(shape=shape_name, column=column.name, ordinal=column.ordinal)

        bindings.append(ColumnBinding(column, field, compatibility))

    mapped = {binding.field.name for binding in bindings}
    missing = [f.name for f in shape.required_constructor_fields if f.name not in mapped]
    if missing:
        raise ShapeMismatchError(
            f"The type {shape_name} cannot be constructed from the columns returned by the SQL "
            f"statement, because no column maps to its required field(s) {', '.join(missing)}."
        ).with_context(shape=shape_name, missing=missing)

    return bindings


def compile_entity_materializer(
    shape: NamedShape, bindings: Sequence[ColumnBinding]
) -> Callable[[DataRecord], Any]:
    """Compile the row -> instance function for validated ``bindings``."""
    cls = shape.type
    owner = f"the type {type_name(cls)}"
    converters = tuple(
        compile_column(b.column, b.field.field_type, b.compatibility, owner) for b in bindings
    )
    names = tuple(b.field.name for b in bindings)

    if shape.constructor_kind == "setattr":
        def materialize(record: DataRecord) -> Any:
            values = [convert(record) for convert in converters]
            instance = cls()
            for name, value in zip(names, values):
                setattr(instance, name, value)
            return instance

    else:
        ctor = tuple(i for i, b in enumerate(bindings) if b.field.via_constructor)
        post = tuple(i for i, b in enumerate(bindings) if not b.field.via_constructor)

        def materialize(record: DataRecord) -> Any:
            values = [convert(record) for convert in converters]
            try:
                instance = cls(**{names[i]: values[i] for i in ctor})
            except (TypeError, ValueError) as exc:
                raise CoercionError(
                    f"Could not construct an instance of {owner} from the row returned by the "
                    "SQL statement. See the cause for details.",
                    cause=exc,
                ).with_context(shape=type_name(cls)) from exc
            for i in post:
                setattr(instance, names[i], values[i])
            return instance

    logger.debug(
        "materializer_compiled",
        shape=type_name(cls),
        kind="named",
        columns=[b.column.name for b in bindings],
    )
    return materialize
