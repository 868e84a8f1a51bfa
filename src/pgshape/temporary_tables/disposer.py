"""Handle that drops one ephemeral table exactly once."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from pgshape.core.logging import get_logger

logger = get_logger(__name__)


class TemporaryTableDisposer:
    """Drops its table on the first ``close()``/``aclose()``; later calls are no-ops.

    A blocking handle carries ``drop``; an asyncio handle carries ``adrop``.
    The drop statement is ``DROP TABLE IF EXISTS``, so a table that is
    already gone is not an error.
    """

    def __init__(
        self,
        name: str,
        *,
        drop: Callable[[], None] | None = None,
        adrop: Callable[[], Awaitable[None]] | None = None,
    ):
        self.name = name
        self._drop = drop
        self._adrop = adrop
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def close(self) -> None:
        if self._disposed:
            return
        if self._drop is None:
            raise TypeError(f"The temporary table {self.name} belongs to an async connection; use aclose().")
        self._disposed = True
        self._drop()
        logger.debug("temporary_table_dropped", table=self.name)

    async def aclose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._adrop is not None:
            await self._adrop()
        elif self._drop is not None:
            self._drop()
        logger.debug("temporary_table_dropped", table=self.name)

    def __enter__(self) -> TemporaryTableDisposer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    async def __aenter__(self) -> TemporaryTableDisposer:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"TemporaryTableDisposer({self.name!r}, disposed={self._disposed})"
