"""Tests for ``pgshape.converters.values`` and ``pgshape.converters.compatibility``."""

from __future__ import annotations

import datetime
import decimal
import uuid
from typing import Annotated, Any, Optional

import pytest

from pgshape.converters.compatibility import (
    Compatibility,
    check_compatibility,
    fetcher_name,
    is_nullable,
    unwrap_optional,
)
from pgshape.converters.values import convert_value
from pgshape.core.errors import CoercionError, NullViolationError
from pgshape.types import Char, DateTimeOffset, Float32, Int16, Int32, Int64
from tests._support.models import Category


class TestCheckCompatibility:
    @pytest.mark.parametrize(
        ("column_type", "field_type", "expected"),
        [
            (Int64, int, Compatibility.DIRECT),
            (Int32, int, Compatibility.DIRECT),
            (Int32, Int32, Compatibility.DIRECT),
            (Int32, int | None, Compatibility.UNWRAP_NULLABLE),
            (Int32, Optional[Int32], Compatibility.UNWRAP_NULLABLE),
            (Int64, Int32, Compatibility.INCOMPATIBLE),
            (Float32, float, Compatibility.DIRECT),
            (str, str, Compatibility.DIRECT),
            (Char, str, Compatibility.DIRECT),
            (str, Char, Compatibility.CHAR_FROM_STRING),
            (str, Category, Compatibility.ENUM),
            (Int32, Category | None, Compatibility.ENUM),
            (str, int, Compatibility.INCOMPATIBLE),
            (DateTimeOffset, datetime.datetime, Compatibility.DIRECT),
            (datetime.datetime, DateTimeOffset, Compatibility.INCOMPATIBLE),
            (None, Any, Compatibility.DIRECT),
            (None, int, Compatibility.INCOMPATIBLE),
            (Int64, Annotated[int, "meta"], Compatibility.DIRECT),
        ],
    )
    def test_pairs(self, column_type, field_type, expected):
        assert check_compatibility(column_type, field_type) is expected

    def test_fetcher_names(self):
        assert fetcher_name(Int16) == "get_int16"
        assert fetcher_name(float) == "get_double"
        assert fetcher_name(Char) == "get_string"
        assert fetcher_name(datetime.timedelta) == "get_value"
        assert fetcher_name(None) is None
        assert fetcher_name(list) is None

    def test_nullability(self):
        assert is_nullable(int | None)
        assert is_nullable(Any)
        assert is_nullable(object)
        assert not is_nullable(str)
        assert unwrap_optional(Optional[str]) is str


class TestConvertValue:
    def test_none_for_nullable_target(self):
        assert convert_value(None, int | None) is None
        assert convert_value(None, Any) is None

    def test_none_for_non_nullable_target(self):
        with pytest.raises(NullViolationError, match="non-nullable"):
            convert_value(None, int)

    def test_same_type_passes_through(self):
        value = decimal.Decimal("1.50")
        assert convert_value(value, decimal.Decimal) is value

    @pytest.mark.parametrize(
        ("value", "target", "expected"),
        [
            (decimal.Decimal("42"), int, 42),
            (3.0, Int32, 3),
            (7, float, 7.0),
            (12, str, "12"),
            ("true", bool, True),
            (0, bool, False),
            (1.25, decimal.Decimal, decimal.Decimal("1.25")),
            ("2024-03-01", datetime.date, datetime.date(2024, 3, 1)),
            (datetime.datetime(2024, 3, 1, 8, 30), datetime.date, datetime.date(2024, 3, 1)),
            (datetime.date(2024, 3, 1), datetime.datetime, datetime.datetime(2024, 3, 1)),
            ("08:30:00", datetime.time, datetime.time(8, 30)),
            (
                "12345678-1234-5678-1234-567812345678",
                uuid.UUID,
                uuid.UUID("12345678-1234-5678-1234-567812345678"),
            ),
            (bytearray(b"ab"), bytes, b"ab"),
            ("BOOKS", Category, Category.BOOKS),
            (3, Category | None, Category.GARDEN),
            ("x", Char, "x"),
        ],
    )
    def test_conversions(self, value, target, expected):
        assert convert_value(value, target) == expected

    def test_bool_is_converted_for_int_targets(self):
        result = convert_value(True, int)
        assert result == 1
        assert type(result) is int

    def test_fractional_to_int_fails(self):
        with pytest.raises(CoercionError, match="See the cause") as info:
            convert_value(2.5, int)
        assert isinstance(info.value.cause, ValueError)

    def test_range_of_width_markers(self):
        assert convert_value(32767, Int16) == 32767
        with pytest.raises(CoercionError) as info:
            convert_value(32768, Int16)
        assert isinstance(info.value.cause, OverflowError)

    @pytest.mark.parametrize("value", ["", "xy"])
    def test_char_needs_exactly_one_character(self, value):
        with pytest.raises(CoercionError, match=f"the string '{value}'"):
            convert_value(value, Char)

    def test_char_from_integer_code_point(self):
        assert convert_value(65, Char) == "A"
        assert convert_value(0x20AC, Char | None) == "€"

    @pytest.mark.parametrize("value", [1.5, decimal.Decimal("7"), True, b"x"])
    def test_char_rejects_non_text_values(self, value):
        with pytest.raises(CoercionError, match="one character"):
            convert_value(value, Char)

    def test_char_rejects_out_of_range_code_point(self):
        with pytest.raises(CoercionError) as info:
            convert_value(-1, Char)
        assert isinstance(info.value.cause, ValueError)

    def test_unparseable_string(self):
        with pytest.raises(CoercionError, match=r"'abc' \(str\)"):
            convert_value("abc", int)

    def test_enum_failure_keeps_cause(self):
        with pytest.raises(CoercionError) as info:
            convert_value("Tools", Category)
        assert isinstance(info.value.cause, CoercionError)

    def test_any_target_passes_everything(self):
        marker = object()
        assert convert_value(marker, Any) is marker
