"""Ephemeral tables: schema inference, provisioning and disposal."""

from pgshape.temporary_tables.builder import (
    build_temporary_table,
    build_temporary_table_async,
    provision_temporary_table,
    provision_temporary_table_async,
)
from pgshape.temporary_tables.disposer import TemporaryTableDisposer
from pgshape.temporary_tables.schema import (
    SCALAR_COLUMN,
    ColumnDefinition,
    TemporaryTableRequest,
    TemporaryTableSchema,
    generate_table_name,
    infer_schema,
)

__all__ = [
    "build_temporary_table",
    "build_temporary_table_async",
    "provision_temporary_table",
    "provision_temporary_table_async",
    "TemporaryTableDisposer",
    "SCALAR_COLUMN",
    "ColumnDefinition",
    "TemporaryTableRequest",
    "TemporaryTableSchema",
    "generate_table_name",
    "infer_schema",
]
