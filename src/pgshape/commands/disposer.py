"""
Teardown of everything one statement execution owns.

Order:
    1. the cancellation registration (a late cancel must not hit the next
       statement on the connection)
    2. the ephemeral tables, newest first
    3. the cursor

Every step gets an attempt even when an earlier one fails. Failures are
logged and raised together as a ResourceCleanupError once all steps ran.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from psycopg import AsyncCursor, Cursor

from pgshape.cancellation import CancellationRegistration
from pgshape.core.errors import ResourceCleanupError
from pgshape.core.formatting import quantity
from pgshape.core.logging import get_logger
from pgshape.temporary_tables.disposer import TemporaryTableDisposer

logger = get_logger(__name__)


class CommandDisposer:
    """Idempotent owner of a cursor, its ephemeral tables and its cancel hook."""

    def __init__(
        self,
        cursor: Cursor[Any] | AsyncCursor[Any],
        table_disposers: Sequence[TemporaryTableDisposer] = (),
        registration: CancellationRegistration | None = None,
    ):
        self.cursor = cursor
        self.table_disposers = tuple(table_disposers)
        self.registration = registration
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _failed(self, errors: list[BaseException], resource: str, error: Exception) -> None:
        logger.warning("command_disposal_failed", resource=resource, error=str(error))
        errors.append(error)

    def _raise_collected(self, errors: list[BaseException]) -> None:
        if errors:
            raise ResourceCleanupError(
                f"Disposing the command failed for {quantity(len(errors), 'resource')}. "
                "Every owned resource was still given a disposal attempt.",
                errors,
            )

    def close(self) -> None:
        """Release everything in order; a second call is a no-op."""
        if self._disposed:
            return
        if isinstance(self.cursor, AsyncCursor):
            raise TypeError("The command belongs to an async connection; use aclose().")
        self._disposed = True

        errors: list[BaseException] = []
        if self.registration is not None:
            try:
                self.registration.close()
            except Exception as exc:
                self._failed(errors, "cancellation_registration", exc)
        for table in reversed(self.table_disposers):
            try:
                table.close()
            except Exception as exc:
                self._failed(errors, table.name, exc)
        try:
            self.cursor.close()
        except Exception as exc:
            self._failed(errors, "cursor", exc)
        self._raise_collected(errors)

    async def aclose(self) -> None:
        """Asyncio variant of ``close``."""
        if self._disposed:
            return
        self._disposed = True

        errors: list[BaseException] = []
        if self.registration is not None:
            try:
                self.registration.close()
            except Exception as exc:
                self._failed(errors, "cancellation_registration", exc)
        for table in reversed(self.table_disposers):
            try:
                await table.aclose()
            except Exception as exc:
                self._failed(errors, table.name, exc)
        try:
            result = self.cursor.close()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self._failed(errors, "cursor", exc)
        self._raise_collected(errors)

    @contextmanager
    def guard(self) -> Iterator[None]:
        """Dispose only if the block raises; otherwise ownership moves on."""
        try:
            yield
        except BaseException as exc:
            self.__exit__(type(exc), exc, exc.__traceback__)
            raise

    @asynccontextmanager
    async def aguard(self) -> AsyncIterator[None]:
        try:
            yield
        except BaseException as exc:
            await self.__aexit__(type(exc), exc, exc.__traceback__)
            raise

    def __enter__(self) -> CommandDisposer:
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        if exc is None:
            self.close()
            return
        try:
            self.close()
        except Exception as cleanup_error:
            exc.add_note(f"Disposing the command also failed: {cleanup_error!r}")

    async def __aenter__(self) -> CommandDisposer:
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        if exc is None:
            await self.aclose()
            return
        try:
            await self.aclose()
        except Exception as cleanup_error:
            exc.add_note(f"Disposing the command also failed: {cleanup_error!r}")

    def __repr__(self) -> str:
        return (
            f"CommandDisposer(tables={[t.name for t in self.table_disposers]}, "
            f"disposed={self._disposed})"
        )


__all__ = ["CommandDisposer"]
