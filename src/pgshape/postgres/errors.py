"""
Recognizing a server-side abort caused by the caller's cancellation.

``connection.cancel_safe()`` makes the server abort the running statement with
SQLSTATE 57014 (``query_canceled``), severity ERROR. The same signature is
produced by ``statement_timeout`` and by other sessions calling
``pg_cancel_backend``, so the error alone does not prove the caller asked
for it. It is reclassified as OperationCancelledError only when the caller's
token has been cancelled at the time the error is observed; otherwise the
original error propagates untouched.

This is a best-effort heuristic. A cancel request that races with statement
completion can abort the *next* statement on the connection, and a timeout
firing just after the caller cancelled is reported as a cancellation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Any

import psycopg

from pgshape.cancellation import CancellationToken
from pgshape.core.errors import OperationCancelledError
from pgshape.core.logging import get_logger

logger = get_logger(__name__)

QUERY_CANCELED_SQLSTATE = "57014"
QUERY_CANCELED_SEVERITY = "ERROR"


def is_cancellation_error(error: BaseException, token: CancellationToken | None) -> bool:
    """True if ``error`` is the server abort and ``token`` requested it."""
    if token is None or not token.is_cancellation_requested:
        return False
    if not isinstance(error, psycopg.errors.QueryCanceled):
        return False
    if error.sqlstate not in (None, QUERY_CANCELED_SQLSTATE):
        return False
    severity = error.diag.severity_nonlocalized or error.diag.severity
    return severity in (None, QUERY_CANCELED_SEVERITY)


@contextmanager
def translate_cancellation(token: CancellationToken | None) -> Iterator[None]:
    """Re-raise a caller-requested server abort as OperationCancelledError.

    Wraps one provider call (execute, fetch, copy). Usable around ``await``
    expressions as well.
    """
    try:
        yield
    except psycopg.Error as exc:
        if is_cancellation_error(exc, token):
            raise OperationCancelledError(token, cause=exc) from exc
        raise


def cancel_callback(connection: psycopg.Connection[Any]) -> Callable[[], None]:
    """Token callback that asks the server to abort ``connection``'s statement."""
    return connection.cancel_safe


def _log_cancel_failure(future: Future[None]) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.warning("cancel_request_failed", error=str(future.exception()))


def async_cancel_callback(connection: psycopg.AsyncConnection[Any]) -> Callable[[], None]:
    """Token callback for an asyncio connection.

    ``AsyncConnection.cancel_safe`` is a coroutine, so the callback schedules
    it on the running loop and returns at once. It may fire from any thread;
    a failed request is logged, the statement then simply runs on.
    """
    loop = asyncio.get_running_loop()

    def cancel() -> None:
        future = asyncio.run_coroutine_threadsafe(connection.cancel_safe(), loop)
        future.add_done_callback(_log_cancel_failure)

    return cancel
