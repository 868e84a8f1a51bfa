"""PostgreSQL (psycopg 3) adapters: readers, type map, collation, cancellation."""

from pgshape.postgres.collation import database_collation, database_collation_async
from pgshape.postgres.errors import (
    async_cancel_callback,
    cancel_callback,
    is_cancellation_error,
    translate_cancellation,
)
from pgshape.postgres.readers import AsyncCursorDataReader, CursorDataReader, describe_columns
from pgshape.postgres.types import OID_FIELD_TYPES, field_type_for_oid

__all__ = [
    "database_collation",
    "database_collation_async",
    "async_cancel_callback",
    "cancel_callback",
    "is_cancellation_error",
    "translate_cancellation",
    "AsyncCursorDataReader",
    "CursorDataReader",
    "describe_columns",
    "OID_FIELD_TYPES",
    "field_type_for_oid",
]
