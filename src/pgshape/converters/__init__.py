"""Type compatibility decisions and narrow value coercions."""

from pgshape.converters.compatibility import (
    Compatibility,
    check_compatibility,
    fetcher_name,
    is_nullable,
    unwrap_optional,
)
from pgshape.converters.enums import convert_to_enum
from pgshape.converters.serialization import serialize_enum, serialize_value
from pgshape.converters.values import convert_value

__all__ = [
    "Compatibility",
    "check_compatibility",
    "fetcher_name",
    "is_nullable",
    "unwrap_optional",
    "convert_to_enum",
    "serialize_enum",
    "serialize_value",
    "convert_value",
]
