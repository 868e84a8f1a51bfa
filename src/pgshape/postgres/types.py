"""PostgreSQL type OIDs mapped to the Python types their values are fetched as."""

from __future__ import annotations

import datetime
import decimal
import uuid
from typing import Any

from pgshape.types import Char, DateTimeOffset, Float32, Int16, Int32, Int64

OID_FIELD_TYPES: dict[int, Any] = {
    16: bool,  # bool
    17: bytes,  # bytea
    18: Char,  # "char"
    19: str,  # name
    20: Int64,  # int8
    21: Int16,  # int2
    23: Int32,  # int4
    25: str,  # text
    700: Float32,  # float4
    701: float,  # float8
    1042: str,  # bpchar
    1043: str,  # varchar
    1082: datetime.date,
    1083: datetime.time,
    1114: datetime.datetime,  # timestamp
    1184: DateTimeOffset,  # timestamptz
    1186: datetime.timedelta,  # interval
    1700: decimal.Decimal,  # numeric
    2950: uuid.UUID,
}

# PostgreSQL names columns without an alias "?column?".
ANONYMOUS_COLUMN = "?column?"


def field_type_for_oid(oid: int) -> Any:
    """Python type for ``oid``, or None when no typed fetch path exists."""
    return OID_FIELD_TYPES.get(oid)
