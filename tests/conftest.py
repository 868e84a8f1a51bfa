"""
Shared pytest fixtures and configuration for pgshape tests.

This module provides:
- Cache and settings cleanup for test isolation
- Auto-marking of unit tests
- Sample rows shared by the operation tests
"""

from __future__ import annotations

from typing import Generator

import pytest

from pgshape.core.settings import reset_settings
from pgshape.materializers import clear_materializer_caches
from pgshape.postgres.collation import database_collations
from tests._support.models import Category, Product


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Reset process-wide state before and after each test.

    Settings, compiled materializers and cached collations are all global;
    no test may see another test's leftovers.
    """
    for name in ("ENUM_SERIALIZATION_MODE", "TEMPORARY_TABLE_PREFIX", "MAX_VARCHAR_LENGTH"):
        monkeypatch.delenv(f"PGSHAPE_{name}", raising=False)
    reset_settings()
    clear_materializer_caches()
    database_collations.clear()
    yield
    reset_settings()
    clear_materializer_caches()
    database_collations.clear()


@pytest.fixture
def sample_products() -> list[Product]:
    return [
        Product(id=1, name="Kite", units_in_stock=12, category=Category.TOYS),
        Product(id=2, name="Atlas", units_in_stock=None, category=Category.BOOKS),
        Product(id=3, name="Rake", units_in_stock=4, category=Category.GARDEN),
    ]
