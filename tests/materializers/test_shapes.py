"""Tests for ``pgshape.shapes`` - shape descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, ClassVar, NamedTuple

import pytest
from pydantic import BaseModel

from pgshape.core.errors import ShapeMismatchError
from pgshape.shapes import Key, NotMapped, named_shape, positional_shape
from pgshape.types import Int32, Int64
from tests._support.models import Category, Product, StockLevel


class Supplier(BaseModel):
    id: Annotated[int, Key]
    name: str
    rating: float | None = None
    internal: Annotated[str, NotMapped] = ""


class Customer:
    id: Annotated[int, Key]
    email: str | None
    kind: ClassVar[str] = "customer"

    @property
    def display(self) -> str:
        return self.email or ""


class NeedsArguments:
    id: int

    def __init__(self, id: int):
        self.id = id


@dataclass(frozen=True)
class Frozen:
    id: int
    derived: int = field(init=False, default=0)


class TestNamedShape:
    def test_dataclass_fields(self):
        shape = named_shape(Product)
        assert [f.name for f in shape.fields] == ["id", "name", "units_in_stock", "category"]
        assert shape.table_name == "product"
        assert shape.constructor_kind == "kwargs"
        assert shape.key.name == "id"
        assert [f.name for f in shape.required_constructor_fields] == ["id", "name"]

    def test_readable_fields_are_sorted_by_name(self):
        names = [f.name for f in named_shape(Product).readable_fields]
        assert names == ["category", "id", "name", "units_in_stock"]

    def test_find_field_is_case_insensitive(self):
        shape = named_shape(Product)
        assert shape.find_field("UnitsInStock") is None
        assert shape.find_field("UNITS_IN_STOCK").name == "units_in_stock"

    def test_pydantic_model(self):
        shape = named_shape(Supplier)
        assert [f.name for f in shape.fields] == ["id", "name", "rating"]
        assert shape.key.name == "id"
        assert shape.table_name == "Supplier"
        assert all(f.via_constructor for f in shape.fields)

    def test_plain_class(self):
        shape = named_shape(Customer)
        assert shape.constructor_kind == "setattr"
        assert [f.name for f in shape.fields] == ["id", "email"]

    def test_plain_class_needs_no_arg_constructor(self):
        with pytest.raises(ShapeMismatchError, match="constructed without arguments"):
            named_shape(NeedsArguments)

    def test_frozen_dataclass_non_init_field_is_not_settable(self):
        derived = named_shape(Frozen).find_field("derived")
        assert derived.settable is False

    def test_missing_key(self):
        with pytest.raises(ShapeMismatchError, match="key field"):
            named_shape(Frozen).key

    @pytest.mark.parametrize("tp", [Category, tuple[int, str], StockLevel])
    def test_rejects_non_entities(self, tp):
        with pytest.raises(ShapeMismatchError):
            named_shape(tp)

    def test_is_cached(self):
        assert named_shape(Product) is named_shape(Product)


class Pair(NamedTuple):
    left: int
    right: str


class TestPositionalShape:
    def test_tuple_alias(self):
        shape = positional_shape(tuple[Int64, Int32])
        assert shape.arity == 2
        assert shape.factory([1, 2]) == (1, 2)

    def test_named_tuple(self):
        shape = positional_shape(StockLevel)
        assert shape.field_types == (Int64, Int32)
        assert shape.factory([1, 2]) == StockLevel(1, 2)

    def test_plain_named_tuple(self):
        assert positional_shape(Pair).factory([1, "a"]) == Pair(1, "a")

    @pytest.mark.parametrize(
        "tp",
        [tuple[int, ...], tuple[int, int, int, int, int, int, int, int], int, Product],
    )
    def test_rejects(self, tp):
        with pytest.raises(ShapeMismatchError, match="more than 7 fields"):
            positional_shape(tp)

    def test_seven_fields_is_the_limit(self):
        assert positional_shape(tuple[int, int, int, int, int, int, int]).arity == 7
