"""
Entity writes driven by shape metadata.

Table name comes from ``__table_name__`` (else the class name), the key from
the field annotated with ``Key``; ``NotMapped`` fields are left out. Enum
values are serialized with the operation's enum serialization mode.

    INSERT INTO "product" ("id", "name") VALUES (%(id)s, %(name)s)
    UPDATE "product" SET "name" = %(name)s WHERE "id" = %(id)s
    DELETE FROM "product" WHERE "id" = %(id)s
    DELETE FROM "product" WHERE "id" IN (SELECT "Value" FROM "keys_<hex>")

Every operation returns the number of affected rows.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from psycopg import AsyncConnection, Connection, sql

from pgshape.cancellation import CancellationToken
from pgshape.commands.builder import build_command, build_command_async
from pgshape.converters.serialization import serialize_value
from pgshape.core.errors import ShapeMismatchError
from pgshape.core.logging import get_logger
from pgshape.core.settings import resolve_enum_serialization_mode
from pgshape.operations.queries import execute_non_query, execute_non_query_async
from pgshape.shapes import FieldDescriptor, NamedShape, named_shape
from pgshape.statements import Statement, TemporaryTable
from pgshape.temporary_tables.schema import SCALAR_COLUMN
from pgshape.types import EnumSerializationMode, type_name

logger = get_logger(__name__)


# =============================================================================
# STATEMENT SHAPES
# =============================================================================


def _columns(shape: NamedShape) -> tuple[FieldDescriptor, ...]:
    fields = shape.readable_fields
    if not fields:
        raise ShapeMismatchError(
            f"The type {type_name(shape.type)} does not have any fields that can be written "
            "to the database."
        ).with_context(shape=type_name(shape.type))
    return fields


def _insert_query(shape: NamedShape) -> sql.Composed:
    fields = _columns(shape)
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
        table=sql.Identifier(shape.table_name),
        columns=sql.SQL(", ").join(sql.Identifier(f.name) for f in fields),
        values=sql.SQL(", ").join(sql.Placeholder(f.name) for f in fields),
    )


def _update_query(shape: NamedShape) -> sql.Composed:
    key = shape.key
    assignments = [f for f in _columns(shape) if f.name != key.name]
    if not assignments:
        raise ShapeMismatchError(
            f"The type {type_name(shape.type)} does not have any fields besides its key "
            f"field '{key.name}', so there is nothing to update."
        ).with_context(shape=type_name(shape.type))
    return sql.SQL("UPDATE {table} SET {assignments} WHERE {key} = {key_value}").format(
        table=sql.Identifier(shape.table_name),
        assignments=sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(f.name), sql.Placeholder(f.name))
            for f in assignments
        ),
        key=sql.Identifier(key.name),
        key_value=sql.Placeholder(key.name),
    )


def _delete_query(shape: NamedShape) -> sql.Composed:
    key = shape.key
    return sql.SQL("DELETE FROM {table} WHERE {key} = {key_value}").format(
        table=sql.Identifier(shape.table_name),
        key=sql.Identifier(key.name),
        key_value=sql.Placeholder(key.name),
    )


def _delete_many_statement(shape: NamedShape, entities: Sequence[Any]) -> Statement:
    key = shape.key
    return Statement(
        "DELETE FROM {table} WHERE {key} IN (SELECT {column} FROM {keys})",
        table=sql.Identifier(shape.table_name),
        key=sql.Identifier(key.name),
        column=sql.Identifier(SCALAR_COLUMN),
        keys=TemporaryTable(
            [getattr(entity, key.name) for entity in entities],
            element_type=key.field_type,
            name="keys",
        ),
    )


def _row(
    entity: Any, fields: Sequence[FieldDescriptor], mode: EnumSerializationMode
) -> dict[str, Any]:
    return {f.name: serialize_value(getattr(entity, f.name), mode) for f in fields}


def _shape_of(entities: Sequence[Any]) -> NamedShape:
    entity_type = type(entities[0])
    for entity in entities:
        if type(entity) is not entity_type:
            raise TypeError(
                f"All entities must be of the same type; got {type_name(entity_type)} and "
                f"{type_name(type(entity))}."
            )
    return named_shape(entity_type)


def _plan(
    kind: str,
    entities: Sequence[Any],
    mode: EnumSerializationMode | str | None,
) -> tuple[sql.Composed, list[dict[str, Any]]]:
    shape = _shape_of(entities)
    mode = resolve_enum_serialization_mode(mode)
    if kind == "insert":
        query, fields = _insert_query(shape), _columns(shape)
    elif kind == "update":
        query, fields = _update_query(shape), _columns(shape)
    else:
        query, fields = _delete_query(shape), (shape.key,)
    return query, [_row(entity, fields, mode) for entity in entities]


# =============================================================================
# BLOCKING
# =============================================================================


def _write_many(
    kind: str,
    connection: Connection[Any],
    entities: Sequence[Any],
    cancellation_token: CancellationToken | None,
    enum_serialization_mode: EnumSerializationMode | str | None,
) -> int:
    entities = list(entities)
    if not entities:
        return 0
    query, rows = _plan(kind, entities, enum_serialization_mode)
    with build_command(connection, query, cancellation_token=cancellation_token) as command:
        affected = command.execute_many(rows).rowcount
    logger.debug("entities_written", operation=kind, entities=len(rows), affected=affected)
    return affected


def insert_entity(
    connection: Connection[Any],
    entity: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Insert one entity into its table."""
    return _write_many(
        "insert", connection, [entity], cancellation_token, enum_serialization_mode
    )


def insert_entities(
    connection: Connection[Any],
    entities: Sequence[Any],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Insert every entity (all of one type) with a single prepared statement."""
    return _write_many("insert", connection, entities, cancellation_token, enum_serialization_mode)


def update_entity(
    connection: Connection[Any],
    entity: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Update the row whose key equals the entity's key.

    Raises:
        ShapeMismatchError: The entity type has no ``Key`` field.
    """
    return _write_many(
        "update", connection, [entity], cancellation_token, enum_serialization_mode
    )


def update_entities(
    connection: Connection[Any],
    entities: Sequence[Any],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    return _write_many("update", connection, entities, cancellation_token, enum_serialization_mode)


def delete_entity(
    connection: Connection[Any],
    entity: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Delete the row whose key equals the entity's key."""
    return _write_many(
        "delete", connection, [entity], cancellation_token, enum_serialization_mode
    )


def delete_entities(
    connection: Connection[Any],
    entities: Sequence[Any],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    """Delete every entity in one statement; the keys travel as an ephemeral table."""
    entities = list(entities)
    if not entities:
        return 0
    statement = _delete_many_statement(_shape_of(entities), entities)
    return execute_non_query(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )


# =============================================================================
# ASYNCIO
# =============================================================================


async def _write_many_async(
    kind: str,
    connection: AsyncConnection[Any],
    entities: Sequence[Any],
    cancellation_token: CancellationToken | None,
    enum_serialization_mode: EnumSerializationMode | str | None,
) -> int:
    entities = list(entities)
    if not entities:
        return 0
    query, rows = _plan(kind, entities, enum_serialization_mode)
    command = await build_command_async(
        connection, query, cancellation_token=cancellation_token
    )
    async with command:
        affected = (await command.execute_many(rows)).rowcount
    logger.debug("entities_written", operation=kind, entities=len(rows), affected=affected)
    return affected


async def insert_entity_async(
    connection: AsyncConnection[Any],
    entity: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    return await _write_many_async(
        "insert", connection, [entity], cancellation_token, enum_serialization_mode
    )


async def insert_entities_async(
    connection: AsyncConnection[Any],
    entities: Sequence[Any],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    return await _write_many_async(
        "insert", connection, entities, cancellation_token, enum_serialization_mode
    )


async def update_entity_async(
    connection: AsyncConnection[Any],
    entity: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    return await _write_many_async(
        "update", connection, [entity], cancellation_token, enum_serialization_mode
    )


async def update_entities_async(
    connection: AsyncConnection[Any],
    entities: Sequence[Any],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    return await _write_many_async(
        "update", connection, entities, cancellation_token, enum_serialization_mode
    )


async def delete_entity_async(
    connection: AsyncConnection[Any],
    entity: Any,
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    return await _write_many_async(
        "delete", connection, [entity], cancellation_token, enum_serialization_mode
    )


async def delete_entities_async(
    connection: AsyncConnection[Any],
    entities: Sequence[Any],
    *,
    cancellation_token: CancellationToken | None = None,
    enum_serialization_mode: EnumSerializationMode | str | None = None,
) -> int:
    entities = list(entities)
    if not entities:
        return 0
    statement = _delete_many_statement(_shape_of(entities), entities)
    return await execute_non_query_async(
        connection,
        statement,
        cancellation_token=cancellation_token,
        enum_serialization_mode=enum_serialization_mode,
    )


__all__ = [
    "insert_entity",
    "insert_entities",
    "update_entity",
    "update_entities",
    "delete_entity",
    "delete_entities",
    "insert_entity_async",
    "insert_entities_async",
    "update_entity_async",
    "update_entities_async",
    "delete_entity_async",
    "delete_entities_async",
]
