"""Ambient infrastructure: errors, logging, settings and protocols."""

from pgshape.core.errors import (
    CoercionError,
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    NullViolationError,
    OperationCancelledError,
    PgShapeError,
    ResourceCleanupError,
    ShapeMismatchError,
    TypedCastError,
    UnsupportedTypeError,
)
from pgshape.core.logging import configure_logging, get_logger
from pgshape.core.settings import PgShapeSettings, configure, get_settings

__all__ = [
    "CoercionError",
    "ConfigError",
    "DatabaseError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "NullViolationError",
    "OperationCancelledError",
    "PgShapeError",
    "ResourceCleanupError",
    "ShapeMismatchError",
    "TypedCastError",
    "UnsupportedTypeError",
    "configure_logging",
    "get_logger",
    "PgShapeSettings",
    "configure",
    "get_settings",
]
