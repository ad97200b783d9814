"""Product data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO 8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing ``Z``."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Product:
    """A product record in the catalog."""

    id: str
    name: str
    description: str
    price: float
    category: str
    stock: int
    image_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate and normalize data."""
        if not self.id:
            raise ValueError("Product id cannot be empty")

        if not isinstance(self.stock, int) or isinstance(self.stock, bool):
            raise ValueError("Stock must be an integer")

        if self.stock < 0:
            raise ValueError("Stock cannot be negative")

        if self.price <= 0:
            raise ValueError("Price must be greater than zero")

        if self.updated_at is None:
            self.updated_at = self.created_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase representation stored on disk."""
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "category": self.category,
            "stock": self.stock,
        }
        if self.image_url is not None:
            data["imageUrl"] = self.image_url
        data.update({
            "tags": list(self.tags),
            "isActive": self.is_active,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        """Create instance from its stored representation."""
        created_at = data.get("createdAt")
        if isinstance(created_at, str):
            created_at = parse_timestamp(created_at)

        stock = data["stock"]
        # JSON writers may emit whole numbers as 5.0
        if isinstance(stock, float) and stock.is_integer():
            stock = int(stock)

        updated_at = data.get("updatedAt")
        if isinstance(updated_at, str):
            updated_at = parse_timestamp(updated_at)

        return cls(
            id=data["id"],
            name=data["name"],
            description=data["description"],
            price=data["price"],
            category=data["category"],
            stock=stock,
            image_url=data.get("imageUrl"),
            tags=list(data.get("tags") or []),
            is_active=data.get("isActive", True),
            created_at=created_at or utc_now(),
            updated_at=updated_at
        )
