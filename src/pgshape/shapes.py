"""
Shape descriptors: how a Python type receives one result row.

A shape is either *named* (an object whose fields are populated by column
name) or *positional* (a tuple of 1 to 7 fields populated by column order).
Descriptors are derived once per type, cached, and never mutated.

Named shapes:
    - dataclasses: init fields are passed to the constructor, non-init fields
      are assigned afterwards (unless the dataclass is frozen)
    - pydantic models: every field is passed to the constructor
    - plain annotated classes: default-constructed, then every annotated
      field is assigned

Positional shapes:
    - ``tuple[int, str]`` style aliases
    - ``typing.NamedTuple`` classes

Field markers (``typing.Annotated`` metadata):
    - ``Key``: the entity's key, used by update/delete
    - ``NotMapped``: ignored by materialization, ephemeral tables and DML

Table name: ``__table_name__`` on the class, else the class name.

Examples:
    >>> @dataclass
    ... class Product:
    ...     __table_name__ = "product"
    ...     id: Annotated[int, Key]
    ...     name: str
    ...     units_in_stock: int | None = None
    >>> named_shape(Product).key.name
    'id'
    >>> positional_shape(tuple[Int64, Int32]).arity
    2
"""

from __future__ import annotations

import dataclasses
import inspect
from dataclasses import dataclass
from enum import Enum
from functools import cached_property, lru_cache
from typing import Annotated, Any, Callable, ClassVar, get_args, get_origin, get_type_hints

from pydantic import BaseModel

from pgshape.core.errors import ShapeMismatchError
from pgshape.types import type_name

MAX_TUPLE_ARITY = 7


class Key:
    """Annotated marker for an entity's key field."""


class NotMapped:
    """Annotated marker for fields that never touch the database."""


def _has_marker(metadata: tuple[Any, ...], marker: type) -> bool:
    return any(item is marker or isinstance(item, marker) for item in metadata)


def _split_annotated(tp: Any) -> tuple[Any, tuple[Any, ...]]:
    # Nested Annotated aliases are flattened by typing itself.
    if get_origin(tp) is Annotated:
        args = get_args(tp)
        return args[0], tuple(args[1:])
    return tp, ()


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    field_type: Any
    settable: bool
    via_constructor: bool
    required: bool
    is_key: bool = False


@dataclass(frozen=True)
class NamedShape:
    """Object-like target: ordered fields matched to columns by name."""

    type: type
    fields: tuple[FieldDescriptor, ...]
    table_name: str
    constructor_kind: str  # "kwargs" or "setattr"

    @cached_property
    def _by_folded_name(self) -> dict[str, FieldDescriptor]:
        result: dict[str, FieldDescriptor] = {}
        for descriptor in self.fields:
            result.setdefault(descriptor.name.casefold(), descriptor)
        return result

    def find_field(self, column_name: str) -> FieldDescriptor | None:
        """Case-insensitive lookup of the field a column maps to."""
        return self._by_folded_name.get(column_name.casefold())

    @property
    def readable_fields(self) -> tuple[FieldDescriptor, ...]:
        """Mapped fields ordered by name, as used for tables and DML."""
        return tuple(sorted(self.fields, key=lambda f: f.name))

    @property
    def key(self) -> FieldDescriptor:
        for descriptor in self.fields:
            if descriptor.is_key:
                return descriptor
        raise ShapeMismatchError(
            f"Could not get the key field of the type {type_name(self.type)}. Make sure that "
            "one field of that type is annotated with Annotated[..., Key]."
        ).with_context(shape=type_name(self.type))

    @property
    def required_constructor_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.fields if f.via_constructor and f.required)


@dataclass(frozen=True)
class PositionalShape:
    """Tuple-like target: fields matched to columns by position."""

    type: Any
    field_types: tuple[Any, ...]
    factory: Callable[[list[Any]], Any]

    @property
    def arity(self) -> int:
        return len(self.field_types)


def table_name_of(cls: type) -> str:
    return getattr(cls, "__table_name__", None) or cls.__name__


def _dataclass_fields(cls: type, hints: dict[str, Any]) -> list[FieldDescriptor]:
    frozen = cls.__dataclass_params__.frozen
    result = []
    for f in dataclasses.fields(cls):
        field_type, metadata = _split_annotated(hints.get(f.name, f.type))
        if _has_marker(metadata, NotMapped):
            continue
        has_default = (
            f.default is not dataclasses.MISSING
            or f.default_factory is not dataclasses.MISSING
        )
        result.append(
            FieldDescriptor(
                name=f.name,
                field_type=field_type,
                settable=f.init or not frozen,
                via_constructor=f.init,
                required=f.init and not has_default,
                is_key=_has_marker(metadata, Key),
            )
        )
    return result


def _pydantic_fields(cls: type[BaseModel]) -> list[FieldDescriptor]:
    result = []
    for name, info in cls.model_fields.items():
        metadata = tuple(info.metadata)
        if _has_marker(metadata, NotMapped):
            continue
        result.append(
            FieldDescriptor(
                name=name,
                field_type=info.annotation,
                settable=True,
                via_constructor=True,
                required=info.is_required(),
                is_key=_has_marker(metadata, Key),
            )
        )
    return result


def _plain_fields(cls: type, hints: dict[str, Any]) -> list[FieldDescriptor]:
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        signature = None
    if signature is not None and any(
        p.default is inspect.Parameter.empty
        and p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
        for p in signature.parameters.values()
    ):
        raise ShapeMismatchError(
            f"The type {type_name(cls)} cannot be used as an entity type. It must either be "
            "a dataclass, a pydantic model or a class that can be constructed without arguments."
        ).with_context(shape=type_name(cls))

    result = []
    for name, hint in hints.items():
        if name.startswith("_") or get_origin(hint) is ClassVar or hint is ClassVar:
            continue
        field_type, metadata = _split_annotated(hint)
        if _has_marker(metadata, NotMapped):
            continue
        result.append(
            FieldDescriptor(
                name=name,
                field_type=field_type,
                settable=not isinstance(getattr(cls, name, None), property),
                via_constructor=False,
                required=False,
                is_key=_has_marker(metadata, Key),
            )
        )
    return result


def is_positional_type(tp: Any) -> bool:
    if get_origin(tp) is tuple:
        return True
    return isinstance(tp, type) and issubclass(tp, tuple)


@lru_cache(maxsize=None)
def named_shape(cls: type) -> NamedShape:
    """Derive (and cache) the named shape of ``cls``."""
    if not isinstance(cls, type) or is_positional_type(cls) or issubclass(cls, Enum):
        raise ShapeMismatchError(
            f"The type {type_name(cls)} cannot be used as an entity type."
        ).with_context(shape=type_name(cls))

    if issubclass(cls, BaseModel):
        fields = _pydantic_fields(cls)
        kind = "kwargs"
    elif dataclasses.is_dataclass(cls):
        fields = _dataclass_fields(cls, get_type_hints(cls, include_extras=True))
        kind = "kwargs"
    else:
        fields = _plain_fields(cls, get_type_hints(cls, include_extras=True))
        kind = "setattr"

    return NamedShape(
        type=cls,
        fields=tuple(fields),
        table_name=table_name_of(cls),
        constructor_kind=kind,
    )


def _not_a_tuple(tp: Any) -> ShapeMismatchError:
    return ShapeMismatchError(
        f"The specified type {type_name(tp)} is not a tuple type or it is a tuple type "
        f"with more than {MAX_TUPLE_ARITY} fields."
    ).with_context(shape=type_name(tp))


@lru_cache(maxsize=None)
def positional_shape(tp: Any) -> PositionalShape:
    """Derive (and cache) the positional shape of a tuple alias or NamedTuple."""
    if get_origin(tp) is tuple:
        field_types = get_args(tp)
        if Ellipsis in field_types:
            raise _not_a_tuple(tp)
        factory: Callable[[list[Any]], Any] = tuple
    elif isinstance(tp, type) and issubclass(tp, tuple) and hasattr(tp, "_fields"):
        hints = get_type_hints(tp)
        field_types = tuple(hints.get(name, Any) for name in tp._fields)
        factory = tp._make
    else:
        raise _not_a_tuple(tp)

    if not 1 <= len(field_types) <= MAX_TUPLE_ARITY:
        raise _not_a_tuple(tp)

    return PositionalShape(
        type=tp,
        field_types=tuple(_split_annotated(t)[0] for t in field_types),
        factory=factory,
    )


__all__ = [
    "Key",
    "NotMapped",
    "FieldDescriptor",
    "NamedShape",
    "PositionalShape",
    "MAX_TUPLE_ARITY",
    "named_shape",
    "positional_shape",
    "is_positional_type",
    "table_name_of",
]
