"""Pytest configuration and fixtures."""

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from product_catalog.context import AppContext
from product_catalog.models.product import Product
from product_catalog.services.product_service import ProductService
from product_catalog.services.product_store import ProductStore
from product_catalog.utils.config import get_config

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_product(name: str, **overrides) -> Product:
    """Build a valid product; ``created_at`` defaults to a fixed time."""
    created_at = overrides.pop("created_at", BASE_TIME)
    fields = {
        "id": str(uuid.uuid4()),
        "name": name,
        "description": f"Description of {name}",
        "price": 10.0,
        "category": "Books",
        "stock": 20,
        "tags": [],
        "is_active": True,
        "created_at": created_at,
        "updated_at": created_at,
    }
    fields.update(overrides)
    return Product(**fields)


def write_products(path, products) -> None:
    """Write products to ``path`` in the on-disk format."""
    path.write_text(
        json.dumps([p.to_dict() for p in products], indent=2) + "\n",
        encoding="utf-8"
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_path(tmp_path):
    return tmp_path / "data" / "products.json"


@pytest.fixture
def backup_path(tmp_path):
    return tmp_path / "data" / "products.backup.json"


@pytest.fixture
def store(data_path, backup_path, clock):
    """A store over temporary files with a 5 minute cache."""
    return ProductStore(data_path, backup_path, cache_ttl_seconds=300, clock=clock)


@pytest.fixture
def service(store):
    return ProductService(store)


@pytest.fixture
def sample_products():
    """Three products with distinct prices, categories and ages."""
    return [
        make_product(
            "Wireless Mouse",
            price=10.0,
            category="Electronics",
            stock=5,
            tags=["usb", "wireless"],
            created_at=BASE_TIME,
        ),
        make_product(
            "Espresso Cups",
            price=20.0,
            category="Kitchen",
            stock=50,
            description="Set of porcelain cups",
            created_at=BASE_TIME + timedelta(days=1),
        ),
        make_product(
            "Desk Lamp",
            price=30.0,
            category="Electronics",
            stock=3,
            is_active=False,
            created_at=BASE_TIME + timedelta(days=2),
        ),
    ]


@pytest.fixture
def seeded_store(store, data_path, sample_products):
    """Store whose primary file already holds ``sample_products``."""
    data_path.parent.mkdir(parents=True, exist_ok=True)
    write_products(data_path, sample_products)
    return store


@pytest.fixture
def seeded_service(seeded_store):
    return ProductService(seeded_store)


@pytest.fixture
def app_context(store, service):
    """Context wiring the temporary store into the HTTP layer."""
    return AppContext(config=get_config(), store=store, service=service)


@pytest.fixture
def sample_create_payload():
    """A valid create request body."""
    return {
        "name": "Mechanical Keyboard",
        "description": "Hot-swappable keyboard with brown switches",
        "price": 199.99,
        "category": "Electronics",
        "stock": 15,
        "imageUrl": "https://example.com/images/keyboard.png",
        "tags": ["keyboard", "usb"],
    }
