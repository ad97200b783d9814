"""Process-wide application context.

Built once at startup and handed to the HTTP layer and CLI commands, so
tests can build isolated contexts pointing at temporary files.
"""

from dataclasses import dataclass
from typing import Optional

from .services.product_service import ProductService
from .services.product_store import ProductStore
from .utils.config import AppConfig, get_config


@dataclass
class AppContext:
    """Configuration plus the store and service built from it."""

    config: AppConfig
    store: ProductStore
    service: ProductService

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "AppContext":
        """Build the store and service described by ``config``."""
        config = config or get_config()
        store = ProductStore(
            data_path=config.data_path,
            backup_path=config.backup_path,
            cache_ttl_seconds=config.storage.cache_ttl_seconds
        )
        service = ProductService(
            store,
            max_price=config.catalog.max_price,
            low_stock_threshold=config.catalog.low_stock_threshold
        )
        return cls(config=config, store=store, service=service)
