"""
Cooperative cancellation for blocking and asyncio operations.

A ``CancellationToken`` is handed to an operation by the caller and
cancelled from anywhere (another thread, a signal handler, a timer). The
operation registers a callback on it (``connection.cancel_safe``) for as
long as its command runs; cancelling the token fires the callback, which
asks the server to abort the in-flight statement.

Examples:
    >>> token = CancellationToken()
    >>> registration = token.register(conn.cancel_safe)
    >>> token.cancel()          # conn.cancel_safe() runs now
    >>> registration.close()    # no-op once fired

Guardrails:
    ❌ DON'T: Rely on the server error alone to detect cancellation
    ✅ DO: Check ``is_cancellation_requested`` as well (see postgres.errors)

Tags:
    cancellation, threading, asyncio
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable

from pgshape.core.errors import OperationCancelledError
from pgshape.core.logging import get_logger

logger = get_logger(__name__)


class CancellationRegistration:
    """Handle for one registered callback; closing it unregisters."""

    def __init__(self, token: CancellationToken | None, registration_id: int | None):
        self._token = token
        self._id = registration_id

    def close(self) -> None:
        if self._token is not None and self._id is not None:
            self._token._unregister(self._id)
        self._token = None

    def __enter__(self) -> CancellationRegistration:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class CancellationToken:
    """A one-way cancellation flag with callbacks."""

    def __init__(self, *, cancellable: bool = True):
        self._cancellable = cancellable
        self._requested = False
        self._callbacks: dict[int, Callable[[], object]] = {}
        self._ids = itertools.count()
        self._lock = threading.Lock()

    @classmethod
    def none(cls) -> CancellationToken:
        """A token that can never be cancelled."""
        return cls(cancellable=False)

    @property
    def can_be_cancelled(self) -> bool:
        return self._cancellable

    @property
    def is_cancellation_requested(self) -> bool:
        return self._requested

    def cancel(self) -> None:
        """Request cancellation and run every registered callback once.

        Every callback runs even if an earlier one fails; failures are raised
        together afterwards as an ExceptionGroup.
        """
        if not self._cancellable:
            raise RuntimeError("This cancellation token cannot be cancelled.")
        with self._lock:
            if self._requested:
                return
            self._requested = True
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        logger.debug("cancellation_requested", callbacks=len(callbacks))
        errors: list[Exception] = []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.warning("cancellation_callback_failed", error=str(exc))
                errors.append(exc)
        if errors:
            raise ExceptionGroup("One or more cancellation callbacks failed.", errors)

    def register(self, callback: Callable[[], object]) -> CancellationRegistration:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        if not self._cancellable:
            return CancellationRegistration(None, None)
        with self._lock:
            if not self._requested:
                registration_id = next(self._ids)
                self._callbacks[registration_id] = callback
                return CancellationRegistration(self, registration_id)
        callback()
        return CancellationRegistration(None, None)

    def raise_if_cancellation_requested(self) -> None:
        if self._requested:
            raise OperationCancelledError(self)

    def _unregister(self, registration_id: int) -> None:
        with self._lock:
            self._callbacks.pop(registration_id, None)

    def __repr__(self) -> str:
        return f"CancellationToken(requested={self._requested})"


__all__ = ["CancellationToken", "CancellationRegistration"]
