"""
Statements: SQL templates with named parameters and ephemeral tables.

A ``Statement`` is a template with ``{name}`` placeholders plus the values
that fill them. How a value is rendered depends on what it is:

    ================================  =========================================
    value                             rendered as
    ================================  =========================================
    ``TemporaryTable(values, ...)``   quoted identifier of a generated table
    ``psycopg.sql.Composable``        embedded as-is
    ``Parameter(value)`` / anything   ``%(name)s``, bound by name
    ================================  =========================================

Enum members bound as parameters are serialized with the enum serialization
mode in effect for the operation (member name or integer value).

Examples:
    >>> statement = Statement(
    ...     'SELECT id, name FROM product WHERE id IN (SELECT "Value" FROM {ids}) '
    ...     "AND category = {category}",
    ...     ids=TemporaryTable([3, 5, 8]),
    ...     category=Category.TOYS,
    ... )
    >>> [request.name[:4] for request in statement.temporary_tables]
    ['ids_']
    >>> statement.bound_parameters(EnumSerializationMode.STRINGS)
    {'category': 'TOYS'}

Guardrails:
    ❌ DON'T: Format values into the template with f-strings
    ✅ DO: Pass them as keyword values so they are bound or quoted

    ❌ DON'T: Write a literal ``{`` or ``}`` in a template that has values
    ✅ DO: Double it (``{{``), as with ``str.format``; a literal ``%`` is ``%%``

Tags:
    sql, templating, parameters, temporary-tables
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from psycopg import sql

from pgshape.converters.serialization import serialize_value
from pgshape.temporary_tables.schema import TemporaryTableRequest, generate_table_name
from pgshape.types import EnumSerializationMode


@dataclass(frozen=True)
class Parameter:
    """Explicit bound parameter (any non-table, non-SQL value is one implicitly)."""

    value: Any


@dataclass(frozen=True)
class TemporaryTable:
    """A sequence exposed to the statement as an ephemeral table.

    ``name`` is the prefix of the generated table name; it defaults to the
    placeholder name.
    """

    values: Sequence[Any]
    element_type: Any = None
    name: str | None = None


class Statement:
    """A SQL template together with its parameters and ephemeral tables."""

    def __init__(self, template: str | sql.Composable, /, **values: Any):
        if values and not isinstance(template, (str, sql.SQL)):
            raise TypeError(
                "Only a str or psycopg.sql.SQL template can take placeholder values; "
                f"got {type(template).__name__}."
            )
        self.template = template
        self._parameters: list[tuple[str, Any]] = []
        self._tables: list[TemporaryTableRequest] = []
        self._fragments: dict[str, sql.Composable] = {}

        for name, value in values.items():
            if isinstance(value, TemporaryTable):
                request = TemporaryTableRequest(
                    name=generate_table_name(value.name or name),
                    values=list(value.values),
                    element_type=value.element_type,
                )
                self._tables.append(request)
                self._fragments[name] = sql.Identifier(request.name)
            elif isinstance(value, sql.Composable):
                self._fragments[name] = value
            else:
                if isinstance(value, Parameter):
                    value = value.value
                self._parameters.append((name, value))
                self._fragments[name] = sql.Placeholder(name)

    @classmethod
    def coerce(cls, statement: str | sql.Composable | Statement) -> Statement:
        """Accept a Statement, a plain SQL string or a composed psycopg query."""
        if isinstance(statement, Statement):
            return statement
        if isinstance(statement, (str, sql.Composable)):
            return cls(statement)
        raise TypeError(
            f"Expected a Statement, str or psycopg.sql.Composable, got {type(statement).__name__}."
        )

    @property
    def parameters(self) -> tuple[tuple[str, Any], ...]:
        """Bound parameters as (name, value) pairs in declaration order."""
        return tuple(self._parameters)

    @property
    def temporary_tables(self) -> tuple[TemporaryTableRequest, ...]:
        """Ephemeral tables in declaration order."""
        return tuple(self._tables)

    def bound_parameters(
        self, mode: EnumSerializationMode | str | None = None
    ) -> dict[str, Any] | None:
        """Parameter mapping for ``cursor.execute``; None when there is none."""
        if not self._parameters:
            return None
        return {name: serialize_value(value, mode) for name, value in self._parameters}

    def render(self) -> sql.Composable:
        """The query text with every placeholder replaced by its fragment."""
        template = self.template
        if isinstance(template, str):
            template = sql.SQL(template)
        if not self._fragments:
            return template
        return template.format(**self._fragments)

    def __repr__(self) -> str:
        return (
            f"Statement({self.template!r}, parameters={len(self._parameters)}, "
            f"temporary_tables={len(self._tables)})"
        )


__all__ = ["Statement", "Parameter", "TemporaryTable"]
