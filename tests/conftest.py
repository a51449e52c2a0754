"""
Pytest configuration and fixtures.
"""
from decimal import Decimal
from uuid import UUID

import pytest

from internal.infrastructure.memory import (
    InMemoryCategoryStore,
    InMemoryProductStats,
    ProductRecord,
)
from internal.usecase.category_service import CategoryService


ACTOR = "admin-1"


@pytest.fixture
def actor() -> str:
    """Acting administrator for tests."""
    return ACTOR


@pytest.fixture
def store() -> InMemoryCategoryStore:
    """Empty in-memory category store."""
    return InMemoryCategoryStore()


@pytest.fixture
def product_stats() -> InMemoryProductStats:
    """Empty in-memory product collaborator."""
    return InMemoryProductStats()


@pytest.fixture
def service(store, product_stats) -> CategoryService:
    """Category service recomputing metrics inline."""
    return CategoryService(store=store, product_stats=product_stats)


@pytest.fixture
def add_products(product_stats):
    """Attach products to a category."""

    def _add(
        category_id: UUID,
        count: int,
        manufacturers: tuple = ("m-1",),
        revenue: Decimal = Decimal("0"),
        orders: int = 0,
        price: Decimal = Decimal("100"),
        status: str = "active",
    ) -> list[ProductRecord]:
        added = []
        for i in range(count):
            added.append(
                product_stats.add(
                    ProductRecord(
                        category_id=category_id,
                        manufacturer_id=manufacturers[i % len(manufacturers)],
                        status=status,
                        base_price=price,
                        total_revenue=revenue,
                        total_orders=orders,
                    )
                )
            )
        return added

    return _add
