"""The text collation of the connected database, read once per database."""

from __future__ import annotations

from typing import Any

from psycopg import AsyncConnection, Connection, sql

from pgshape.core.cache import AppendOnlyCache
from pgshape.core.logging import get_logger

logger = get_logger(__name__)

COLLATION_QUERY = sql.SQL(
    "SELECT COALESCE(("
    "SELECT c.collname FROM pg_catalog.pg_collation c, pg_catalog.pg_database d "
    "WHERE d.datname = current_database() "
    "AND c.collcollate = d.datcollate AND c.collctype = d.datctype "
    "AND c.collencoding IN (-1, d.encoding) "
    "ORDER BY c.collencoding DESC, c.collname LIMIT 1"
    "), 'default')"
)

DatabaseKey = tuple[str, int, str]

database_collations: AppendOnlyCache[DatabaseKey, str] = AppendOnlyCache(
    name="database_collations"
)


def database_key(connection: Connection[Any] | AsyncConnection[Any]) -> DatabaseKey:
    info = connection.info
    return (info.host, info.port, info.dbname)


def database_collation(connection: Connection[Any]) -> str:
    """Collation name for text columns of ephemeral tables on ``connection``."""

    def load(key: DatabaseKey) -> str:
        with connection.cursor() as cursor:
            cursor.execute(COLLATION_QUERY)
            row = cursor.fetchone()
        collation = row[0] if row else "default"
        logger.debug("database_collation_loaded", database=key[2], collation=collation)
        return collation

    return database_collations.get_or_add(database_key(connection), load)


async def database_collation_async(connection: AsyncConnection[Any]) -> str:
    """Asyncio variant of ``database_collation``."""
    key = database_key(connection)
    cached = database_collations.get(key)
    if cached is not None:
        return cached
    async with connection.cursor() as cursor:
        await cursor.execute(COLLATION_QUERY)
        row = await cursor.fetchone()
    collation = row[0] if row else "default"
    logger.debug("database_collation_loaded", database=key[2], collation=collation)
    return database_collations.add(key, collation)
