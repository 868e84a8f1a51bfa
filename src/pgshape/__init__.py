"""
pgshape - shaped results and ephemeral tables for psycopg 3.

Run ad-hoc SQL and get back dataclasses, pydantic models or tuples without
per-query mapping code; pass in-memory sequences as joinable tables.

Examples:
    >>> from pgshape import Statement, TemporaryTable, query_entities
    >>> statement = Statement(
    ...     'SELECT * FROM product WHERE id IN (SELECT "Value" FROM {ids})',
    ...     ids=TemporaryTable([3, 5, 8]),
    ... )
    >>> products = list(query_entities(conn, statement, Product))
"""

__version__ = "0.1.0"

from pgshape.cancellation import CancellationRegistration, CancellationToken
from pgshape.core.errors import (
    CoercionError,
    ConfigError,
    DatabaseError,
    ErrorCategory,
    InvalidConfigError,
    NullViolationError,
    OperationCancelledError,
    PgShapeError,
    ResourceCleanupError,
    ShapeMismatchError,
    TypedCastError,
    UnsupportedTypeError,
)
from pgshape.core.logging import configure_logging
from pgshape.core.settings import PgShapeSettings, configure, get_settings, reset_settings
from pgshape.materializers import clear_materializer_caches, get_materializer
from pgshape.operations import *  # noqa: F403
from pgshape.operations import __all__ as _operations
from pgshape.shapes import Key, NotMapped
from pgshape.statements import Parameter, Statement, TemporaryTable
from pgshape.temporary_tables import (
    TemporaryTableDisposer,
    provision_temporary_table,
    provision_temporary_table_async,
)
from pgshape.types import (
    Char,
    DateTimeOffset,
    EnumSerializationMode,
    Float32,
    Int16,
    Int32,
    Int64,
)

__all__ = [
    "__version__",
    "CancellationRegistration",
    "CancellationToken",
    "CoercionError",
    "ConfigError",
    "DatabaseError",
    "ErrorCategory",
    "InvalidConfigError",
    "NullViolationError",
    "OperationCancelledError",
    "PgShapeError",
    "ResourceCleanupError",
    "ShapeMismatchError",
    "TypedCastError",
    "UnsupportedTypeError",
    "configure_logging",
    "PgShapeSettings",
    "configure",
    "get_settings",
    "reset_settings",
    "clear_materializer_caches",
    "get_materializer",
    "Key",
    "NotMapped",
    "Parameter",
    "Statement",
    "TemporaryTable",
    "TemporaryTableDisposer",
    "provision_temporary_table",
    "provision_temporary_table_async",
    "Char",
    "DateTimeOffset",
    "EnumSerializationMode",
    "Float32",
    "Int16",
    "Int32",
    "Int64",
    *_operations,
]
