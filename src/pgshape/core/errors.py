"""
Structured error types for pgshape.

Every failure the library raises is a PgShapeError carrying a category, a
structured context (shape, column, ordinal, table) and, where one exists, the
underlying exception as its cause. Callers can branch on the exception class
or on the category without parsing messages.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure kind in the pipeline
    - **Deterministic vs per-row:** Shape errors are raised before a
      materializer is compiled; cast errors are raised by the row converter
    - **Rich Context:** Column name or ordinal, shape and offending value
    - **Error Chaining:** Coercion failures keep the conversion error as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        PgShapeError                              │
        │                 (category, context, cause)                       │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ShapeMismatchError      TypedCastError     OperationCancelled   │
        │  (SHAPE)                 (CAST)             (CANCELLATION)       │
        │       │                    │                                     │
        │  UnsupportedTypeError   NullViolationError                       │
        │                         CoercionError                            │
        │                                                                  │
        │  DatabaseError           ConfigError                             │
        │  (DATABASE)              (CONFIG)                                │
        │       │                     │                                    │
        │  ResourceCleanupError    InvalidConfigError                      │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NullViolationError("The column 'Id' ... is non-nullable.")
    >>> error.category
    <ErrorCategory.CAST: 'CAST'>
    >>> error.with_context(column="Id", shape="Product").context.column
    'Id'

Guardrails:
    ❌ DON'T: Catch TypedCastError to retry the same row
    ✅ DO: Fix the shape or the query; the cached materializer stays valid

    ❌ DON'T: Swallow ResourceCleanupError
    ✅ DO: Inspect ``errors`` to see every teardown step that failed

Tags:
    error-handling, exception-hierarchy, materialization, cancellation

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pgshape.cancellation import CancellationToken


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification.

    Attributes:
        SHAPE: Result columns do not fit the requested shape
        CAST: A single value could not be converted for a field
        CANCELLATION: The caller requested cancellation
        DATABASE: Provider or teardown failures
        CONFIG: Invalid settings
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    SHAPE = "SHAPE"
    CAST = "CAST"
    CANCELLATION = "CANCELLATION"
    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        shape: Name of the target shape type
        column: Column name as returned by the statement
        ordinal: Zero-based column ordinal
        table: Ephemeral table name
        statement: Rendered statement text (may be truncated by callers)
        metadata: Additional key-value pairs
    """

    shape: str | None = None
    column: str | None = None
    ordinal: int | None = None
    table: str | None = None
    statement: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["shape", "column", "ordinal", "table", "statement"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PgShapeError(Exception):
    """
    Base exception for all pgshape errors.

    Subclasses set ``default_category``; instances carry a message, an
    ErrorContext and an optional cause that is also chained as ``__cause__``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PgShapeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ShapeMismatchError("...").with_context(shape="Product", column="Id")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SHAPE ERRORS (Raised Before Compilation)
# =============================================================================


class ShapeMismatchError(PgShapeError):
    """
    The statement's columns cannot populate the requested shape.

    Raised eagerly, before any materializer is compiled or looked up, and
    never cached: a later call with corrected columns succeeds.
    """

    default_category = ErrorCategory.SHAPE


class UnsupportedTypeError(ShapeMismatchError):
    """No typed fetch path exists for a column or field type."""

    pass


# =============================================================================
# CAST ERRORS (Raised Per Row)
# =============================================================================


class TypedCastError(PgShapeError):
    """A single value could not be converted to the requested type."""

    default_category = ErrorCategory.CAST


class NullViolationError(TypedCastError):
    """A NULL value met a non-nullable target."""

    pass


class CoercionError(TypedCastError):
    """
    A narrow coercion failed.

    Covers single-character strings of the wrong length, enum values or
    names with no matching member, and boxed values the general conversion
    routine rejects. The underlying conversion error, if any, is the cause.
    """

    pass


# =============================================================================
# CANCELLATION
# =============================================================================


class OperationCancelledError(PgShapeError):
    """The caller's cancellation token aborted the operation."""

    default_category = ErrorCategory.CANCELLATION

    def __init__(
        self,
        token: CancellationToken | None = None,
        message: str = "The operation was cancelled.",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.token = token


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(PgShapeError):
    """Database command or teardown error."""

    default_category = ErrorCategory.DATABASE


class ResourceCleanupError(DatabaseError):
    """
    One or more owned resources failed to dispose.

    Every resource of the unit still got a disposal attempt; ``errors`` holds
    each failure in the order it happened and the first one is the cause.
    """

    def __init__(self, message: str, errors: list[BaseException], **kwargs: Any):
        kwargs.setdefault("cause", errors[0] if errors else None)
        super().__init__(message, **kwargs)
        self.errors = list(errors)


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(PgShapeError):
    """Configuration error."""

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, PgShapeError):
        return error.category
    if isinstance(error, (TypeError, ValueError)):
        return ErrorCategory.CAST
    return ErrorCategory.UNKNOWN


def is_cancellation(error: BaseException) -> bool:
    """Check if an error is the uniform cancellation outcome."""
    return isinstance(error, OperationCancelledError)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PgShapeError",
    "ShapeMismatchError",
    "UnsupportedTypeError",
    "TypedCastError",
    "NullViolationError",
    "CoercionError",
    "OperationCancelledError",
    "DatabaseError",
    "ResourceCleanupError",
    "ConfigError",
    "InvalidConfigError",
    "categorize_error",
    "is_cancellation",
]
