"""
Rollup metrics value objects.

Metrics are derived data: they are recomputed from product statistics and
never edited by hand.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .errors import DomainValidationError


POPULARITY_MAX = 100

# Weights of the popularity heuristic.
PRODUCT_WEIGHT = 2
REVENUE_DIVISOR = Decimal("1000")
ORDER_WEIGHT = 5


@dataclass(frozen=True)
class ProductCounts:
    """Product counts reported by the product collaborator."""

    total: int = 0
    active: int = 0


@dataclass(frozen=True)
class ProductAggregate:
    """
    Product aggregates reported by the product collaborator.

    Attributes:
        average_price: Average base price, None when there are no products.
        total_revenue: Sum of recorded revenue.
        total_orders: Sum of recorded order counts.
        distinct_manufacturers: Number of distinct manufacturers.
    """

    average_price: Optional[Decimal] = None
    total_revenue: Decimal = Decimal("0")
    total_orders: int = 0
    distinct_manufacturers: int = 0


def compute_popularity_score(
    total_products: int,
    total_revenue: Decimal,
    total_orders: int,
) -> int:
    """
    Compute the bounded popularity score.

    ``min(100, round(products * 2 + revenue / 1000 + orders * 5))``, rounding
    half up and clamped at zero.

    Args:
        total_products: Number of products in the subtree.
        total_revenue: Revenue of the subtree.
        total_orders: Orders of the subtree.

    Returns:
        Integer score in 0..100.
    """
    raw = (
        Decimal(total_products * PRODUCT_WEIGHT)
        + Decimal(total_revenue) / REVENUE_DIVISOR
        + Decimal(total_orders * ORDER_WEIGHT)
    )
    rounded = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(POPULARITY_MAX, rounded))


@dataclass(frozen=True)
class CategoryMetrics:
    """
    Rollup metrics of a category and all of its descendants.

    Attributes:
        total_products: Products in the subtree.
        active_products: Active products in the subtree.
        total_manufacturers: Distinct manufacturers in the subtree.
        total_revenue: Revenue of the subtree.
        average_product_price: Average base price in the subtree.
        total_orders: Orders of the subtree.
        total_subcategories: Direct children of the category.
        popularity_score: Bounded popularity heuristic (0-100).
    """

    total_products: int = 0
    active_products: int = 0
    total_manufacturers: int = 0
    total_revenue: Decimal = Decimal("0")
    average_product_price: Decimal = Decimal("0")
    total_orders: int = 0
    total_subcategories: int = 0
    popularity_score: int = 0

    def __post_init__(self) -> None:
        """Validate metric bounds."""
        if not (0 <= self.popularity_score <= POPULARITY_MAX):
            raise DomainValidationError("Popularity score must be between 0 and 100")
        for name in (
            "total_products",
            "active_products",
            "total_manufacturers",
            "total_orders",
            "total_subcategories",
        ):
            if getattr(self, name) < 0:
                raise DomainValidationError(f"{name} cannot be negative")

    @classmethod
    def from_product_stats(
        cls,
        counts: ProductCounts,
        aggregate: ProductAggregate,
        total_subcategories: int,
    ) -> "CategoryMetrics":
        """
        Build metrics from the product collaborator's answers.

        Args:
            counts: Total and active product counts.
            aggregate: Price, revenue, order and manufacturer aggregates.
            total_subcategories: Number of direct children.

        Returns:
            Fully recomputed metrics.
        """
        revenue = Decimal(aggregate.total_revenue or 0)
        orders = int(aggregate.total_orders or 0)
        average = Decimal(aggregate.average_price) if aggregate.average_price is not None else Decimal("0")
        return cls(
            total_products=counts.total,
            active_products=counts.active,
            total_manufacturers=aggregate.distinct_manufacturers,
            total_revenue=revenue,
            average_product_price=average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            total_orders=orders,
            total_subcategories=total_subcategories,
            popularity_score=compute_popularity_score(counts.total, revenue, orders),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "total_products": self.total_products,
            "active_products": self.active_products,
            "total_manufacturers": self.total_manufacturers,
            "total_revenue": float(self.total_revenue),
            "average_product_price": float(self.average_product_price),
            "total_orders": self.total_orders,
            "total_subcategories": self.total_subcategories,
            "popularity_score": self.popularity_score,
        }
