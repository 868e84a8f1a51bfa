"""
pgshape logging - structlog setup for the library and its callers.

Every module logs through a structlog bound logger, with snake_case event
names and keyword fields:

    temporary_table_created    table, columns, rows
    temporary_table_dropped    table
    temporary_table_drop_skipped / temporary_table_drop_failed
    materializer_compiled      shape, kind, columns
    command_built              temporary_tables, parameters
    command_disposal_failed    resource, error
    cancellation_requested     callbacks
    cancel_request_failed      error

Nothing is configured on import. An application that never calls
``configure_logging`` gets structlog's defaults; one that wants JSON lines or
a service name calls it once at start-up.

Architecture:
    ::

        configure_logging(level=None, json_format=None, service="orders-api")
            │
            ├── level / json_format fall back to PGSHAPE_LOG_LEVEL / PGSHAPE_LOG_JSON
            ├── _build_processors(...)
            │     ├── TimeStamper(fmt="iso")              (add_timestamp)
            │     ├── merge_contextvars, log level, logger name
            │     ├── StackInfoRenderer, set_exc_info
            │     ├── _add_service_metadata
            │     ├── _expand_library_errors               (PgShapeError → dict)
            │     ├── _truncate_statements                 (long SQL text)
            │     └── JSONRenderer | ConsoleRenderer
            └── stdlib logging.basicConfig (same level)

Examples:
    >>> configure_logging(level="DEBUG", service="orders-api")
    >>> logger = get_logger(__name__)
    >>> with LogContext(request_id="abc123"):
    ...     products = list(query_entities(conn, statement, Product))

Guardrails:
    ❌ DON'T: Format values into the event name
    ✅ DO: Pass them as keyword fields

Tags:
    logging, structlog, observability, json-logging

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from pgshape.core.errors import PgShapeError
from pgshape.core.settings import get_settings

# Longest SQL text kept in a log event.
STATEMENT_LOG_LIMIT = 500

_service_name = "pgshape"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", _service_name)
    return event_dict


def _expand_library_errors(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Render a PgShapeError passed as ``error=`` with its category and context."""
    error = event_dict.get("error")
    if isinstance(error, PgShapeError):
        event_dict["error"] = error.to_dict()
    return event_dict


def _truncate_statements(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    statement = event_dict.get("statement")
    if isinstance(statement, str) and len(statement) > STATEMENT_LOG_LIMIT:
        event_dict["statement"] = statement[:STATEMENT_LOG_LIMIT] + "..."
    return event_dict


def _build_processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        _expand_library_errors,
        _truncate_statements,
    ]
    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "pgshape",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Defaults to ``PGSHAPE_LOG_LEVEL``.
        json_format: JSON lines (True) or console output (False). Defaults to
            ``PGSHAPE_LOG_JSON``, and when that is unset to JSON unless stdout
            is a terminal.
        service: Value of the ``service`` field on every event.
        add_timestamp: Prefix events with an ISO timestamp.
    """
    global _service_name
    _service_name = service

    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = not sys.stdout.isatty()
    numeric_level = getattr(logging, level)

    structlog.configure(
        processors=_build_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """structlog bound logger for ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every event logged from this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` or ``async with`` block.

    Example:
        async with LogContext(request_id="abc123"):
            await insert_entities_async(conn, products)
    """

    def __init__(self, **fields: Any):
        self._fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self._fields)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._fields)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    "STATEMENT_LOG_LIMIT",
]
