"""Public database operations (blocking and ``_async`` variants)."""

from pgshape.operations.entities import (
    delete_entities,
    delete_entities_async,
    delete_entity,
    delete_entity_async,
    insert_entities,
    insert_entities_async,
    insert_entity,
    insert_entity_async,
    update_entities,
    update_entities_async,
    update_entity,
    update_entity_async,
)
from pgshape.operations.queries import (
    execute_non_query,
    execute_non_query_async,
    execute_reader,
    execute_reader_async,
    execute_scalar,
    execute_scalar_async,
    exists,
    exists_async,
    query_entities,
    query_entities_async,
    query_scalars,
    query_scalars_async,
    query_tuples,
    query_tuples_async,
)

__all__ = [
    "query_entities",
    "query_entities_async",
    "query_tuples",
    "query_tuples_async",
    "query_scalars",
    "query_scalars_async",
    "execute_scalar",
    "execute_scalar_async",
    "execute_non_query",
    "execute_non_query_async",
    "exists",
    "exists_async",
    "execute_reader",
    "execute_reader_async",
    "insert_entity",
    "insert_entity_async",
    "insert_entities",
    "insert_entities_async",
    "update_entity",
    "update_entity_async",
    "update_entities",
    "update_entities_async",
    "delete_entity",
    "delete_entity_async",
    "delete_entities",
    "delete_entities_async",
]
