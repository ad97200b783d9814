"""Request schemas for catalog operations.

These mirror the JSON bodies and query strings accepted by the HTTP layer.
Field names are snake_case in Python and camelCase on the wire.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from pydantic.alias_generators import to_camel


def format_validation_errors(errors: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten pydantic error entries into ``{field, message}`` pairs."""
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        formatted.append({
            "field": ".".join(loc),
            "message": error.get("msg", "Invalid value"),
        })
    return formatted


class SortField(str, Enum):
    """Fields a product listing can be ordered by."""
    NAME = "name"
    PRICE = "price"
    CREATED_AT = "createdAt"


class SortOrder(str, Enum):
    """Ordering direction."""
    ASC = "asc"
    DESC = "desc"


class StockOperation(str, Enum):
    """Direction of a stock adjustment."""
    ADD = "add"
    SUBTRACT = "subtract"


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class ProductCreate(CamelModel):
    """Input for creating a product."""

    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0)
    image_url: Optional[HttpUrl] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ProductUpdate(CamelModel):
    """Input for a partial update; only fields that are set get applied."""

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    price: Optional[float] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1)
    stock: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[HttpUrl] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class StockAdjustment(CamelModel):
    """Input for a stock adjustment."""

    quantity: int = Field(..., gt=0)
    operation: StockOperation


class ProductQuery(CamelModel):
    """Listing parameters with the API's defaults applied."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    category: Optional[str] = None
    search: Optional[str] = None
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    is_active: Optional[bool] = None
