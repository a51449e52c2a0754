"""
In-memory product statistics.

Stands in for the product collaborator in tests and local runs.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from internal.domain.metrics import ProductAggregate, ProductCounts


@dataclass
class ProductRecord:
    """The product fields the category rollups read."""

    category_id: UUID
    manufacturer_id: str
    id: UUID = field(default_factory=uuid4)
    status: str = "active"
    base_price: Decimal = Decimal("0")
    total_revenue: Decimal = Decimal("0")
    total_orders: int = 0


class InMemoryProductStats:
    """Product statistics computed over an in-memory product list."""

    def __init__(self, products: Optional[list[ProductRecord]] = None) -> None:
        self._products: dict[UUID, ProductRecord] = {p.id: p for p in products or []}

    def add(self, product: ProductRecord) -> ProductRecord:
        self._products[product.id] = product
        return product

    def remove(self, product_id: UUID) -> None:
        self._products.pop(product_id, None)

    def get(self, product_id: UUID) -> Optional[ProductRecord]:
        return self._products.get(product_id)

    def _matching(self, category_ids: list[UUID]) -> list[ProductRecord]:
        wanted = set(category_ids)
        return [p for p in self._products.values() if p.category_id in wanted]

    async def count_by_category_ids(self, category_ids: list[UUID]) -> ProductCounts:
        products = self._matching(category_ids)
        return ProductCounts(
            total=len(products),
            active=sum(1 for p in products if p.status == "active"),
        )

    async def aggregate_by_category_ids(self, category_ids: list[UUID]) -> ProductAggregate:
        products = self._matching(category_ids)
        if not products:
            return ProductAggregate()
        return ProductAggregate(
            average_price=sum((p.base_price for p in products), Decimal("0")) / len(products),
            total_revenue=sum((p.total_revenue for p in products), Decimal("0")),
            total_orders=sum(p.total_orders for p in products),
            distinct_manufacturers=len({p.manufacturer_id for p in products}),
        )
