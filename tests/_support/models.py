"""Sample entity types shared by the materializer, table and operation tests."""

from __future__ import annotations

import datetime
import decimal
import uuid
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Annotated, NamedTuple

from pgshape.shapes import Key, NotMapped
from pgshape.types import Char, DateTimeOffset, Float32, Int16, Int32, Int64


class Category(Enum):
    TOYS = 1
    BOOKS = 2
    GARDEN = 3


class Priority(IntEnum):
    LOW = 10
    HIGH = 20


@dataclass
class Product:
    __table_name__ = "product"

    id: Annotated[int, Key]
    name: str
    units_in_stock: int | None = None
    category: Category = Category.TOYS
    note: Annotated[str, NotMapped] = ""


class StockLevel(NamedTuple):
    product_id: Int64
    units_in_stock: Int32


@dataclass
class AllTypes:
    """One field per supported column type."""

    flag: bool
    small: Int16
    medium: Int32
    big: Int64
    single: Float32
    double: float
    amount: decimal.Decimal
    code: Char
    text: str
    blob: bytes
    stamp: datetime.datetime
    stamp_offset: DateTimeOffset
    day: datetime.date
    clock: datetime.time
    duration: datetime.timedelta
    guid: uuid.UUID
    category: Category
    priority: Priority
