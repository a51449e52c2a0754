"""
In-memory infrastructure package.
"""
from .category_store import InMemoryCategoryStore
from .product_stats import InMemoryProductStats, ProductRecord

__all__ = ["InMemoryCategoryStore", "InMemoryProductStats", "ProductRecord"]
