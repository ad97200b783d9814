"""Query, statistics and operation result data models."""

import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Generic, List, Optional, TypeVar

from .product import Product
from ..utils.exceptions import CatalogError

T = TypeVar("T")


@dataclass
class SearchResult:
    """A page of products plus the number of matches before paging."""

    products: List[Product]
    total: int
    page: Optional[int] = None
    limit: Optional[int] = None

    @property
    def total_pages(self) -> int:
        """Number of pages for the current limit."""
        if not self.limit:
            return 1
        return math.ceil(self.total / self.limit)

    def pagination(self) -> Dict[str, Any]:
        """Pagination block of a listing response."""
        return {
            "page": self.page or 1,
            "limit": self.limit if self.limit is not None else len(self.products),
            "total": self.total,
            "totalPages": self.total_pages,
        }


@dataclass
class CatalogStatistics:
    """Aggregate figures over the whole collection."""

    total: int = 0
    active: int = 0
    inactive: int = 0
    categories: Dict[str, int] = field(default_factory=dict)
    average_price: float = 0.0
    low_stock_products: List[Product] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total": self.total,
            "active": self.active,
            "inactive": self.inactive,
            "categories": dict(self.categories),
            "averagePrice": self.average_price,
            "lowStockProducts": [p.to_dict() for p in self.low_stock_products],
        }

    def get_summary(self) -> str:
        """Get a human-readable summary."""
        summary_lines = [
            f"Total products: {self.total}",
            f"Active:         {self.active}",
            f"Inactive:       {self.inactive}",
            f"Average price:  {self.average_price:.2f}",
        ]

        if self.categories:
            summary_lines.append("\nCategories:")
            for category, count in sorted(self.categories.items()):
                summary_lines.append(f"  - {category}: {count}")

        if self.low_stock_products:
            summary_lines.append(f"\nLow stock ({len(self.low_stock_products)}):")
            for product in self.low_stock_products:
                summary_lines.append(f"  - {product.name}: {product.stock}")

        return "\n".join(summary_lines)


@dataclass
class OperationResult(Generic[T]):
    """Explicit success/failure value for a catalog operation."""

    success: bool
    data: Optional[T] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: CatalogError) -> "OperationResult[T]":
        return cls(success=False, error=error.to_dict())

    @property
    def error_code(self) -> Optional[str]:
        return self.error["code"] if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = self.data
        if isinstance(data, Product) or isinstance(data, CatalogStatistics):
            data = data.to_dict()
        elif isinstance(data, SearchResult):
            data = [p.to_dict() for p in data.products]
        elif isinstance(data, list):
            data = [item.to_dict() if isinstance(item, Product) else item for item in data]

        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            result["data"] = data
        else:
            result["error"] = self.error
        return result


async def run_operation(operation: Awaitable[T]) -> OperationResult[T]:
    """
    Await a catalog operation and capture its outcome as a result value.

    Catalog errors become failed results; anything else propagates.

    Args:
        operation: Awaitable returned by a ``ProductService`` method

    Returns:
        OperationResult holding the value or the ``{code, message, details?}`` error
    """
    try:
        value = await operation
    except CatalogError as e:
        return OperationResult.fail(e)
    return OperationResult.ok(value)
