"""Tests for ``pgshape.converters.enums`` and ``pgshape.converters.serialization``."""

from __future__ import annotations

from enum import Enum, IntFlag

import pytest

from pgshape.converters.enums import convert_to_enum
from pgshape.converters.serialization import serialize_enum, serialize_value
from pgshape.core.errors import CoercionError, NullViolationError
from pgshape.core.settings import configure
from pgshape.types import EnumSerializationMode
from tests._support.models import Category, Priority


class Color(Enum):
    RED = "r"
    GREEN = "g"


class Permission(IntFlag):
    READ = 1
    WRITE = 2


class TestConvertToEnum:
    """Names match case-insensitively, integers match declared values."""

    @pytest.mark.parametrize("name", ["BOOKS", "books", "Books", "  books "])
    def test_member_name(self, name):
        assert convert_to_enum(name, Category) is Category.BOOKS

    def test_integer_value(self):
        assert convert_to_enum(2, Category) is Category.BOOKS

    def test_integer_value_of_int_enum(self):
        assert convert_to_enum(20, Priority) is Priority.HIGH

    def test_digit_string_is_tried_as_value_first(self):
        assert convert_to_enum("3", Category) is Category.GARDEN

    def test_member_passes_through(self):
        assert convert_to_enum(Category.TOYS, Category) is Category.TOYS

    @pytest.mark.parametrize("value", ["", "   ", "\t"])
    def test_blank_string(self, value):
        with pytest.raises(CoercionError, match="white-space"):
            convert_to_enum(value, Category)

    def test_unknown_name(self):
        with pytest.raises(CoercionError, match="does not match any of the names"):
            convert_to_enum("Tools", Category)

    def test_unknown_integer(self):
        with pytest.raises(CoercionError, match="does not match any of the values"):
            convert_to_enum(99, Category)

    def test_flag_pseudo_member_rejected(self):
        with pytest.raises(CoercionError):
            convert_to_enum(3, Permission)

    def test_unsupported_value_kind(self):
        with pytest.raises(CoercionError, match="must either be an enum value"):
            convert_to_enum(2.0, Category)

    def test_bool_is_not_an_integer(self):
        with pytest.raises(CoercionError):
            convert_to_enum(True, Category)

    def test_none(self):
        assert convert_to_enum(None, Category, nullable=True) is None
        with pytest.raises(NullViolationError):
            convert_to_enum(None, Category)

    def test_non_enum_target(self):
        with pytest.raises(TypeError):
            convert_to_enum("x", int)


class TestSerializeEnum:
    def test_strings_mode(self):
        assert serialize_enum(Category.BOOKS, EnumSerializationMode.STRINGS) == "BOOKS"

    def test_integers_mode(self):
        assert serialize_enum(Category.BOOKS, "integers") == 2

    def test_integers_mode_needs_integer_values(self):
        with pytest.raises(TypeError, match="not an integer"):
            serialize_enum(Color.RED, "integers")

    def test_default_comes_from_settings(self):
        assert serialize_enum(Priority.LOW) == "LOW"
        configure(enum_serialization_mode="integers")
        assert serialize_enum(Priority.LOW) == 10

    def test_non_enum_values_pass_through(self):
        assert serialize_value(5, "integers") == 5
        assert serialize_value(None) is None
