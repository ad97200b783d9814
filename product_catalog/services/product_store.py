"""JSON file persistence for the product collection.

The whole collection lives in one pretty-printed JSON array. Every write
first copies the current file to a single backup generation, then replaces
the primary file in full. Reads go through a short-lived in-memory cache.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, List, Optional, Tuple, Union

import aiofiles
import aiofiles.os

from .product_cache import ProductCache
from ..models.product import Product
from ..utils.exceptions import StorageError
from ..utils.logger import get_store_logger, get_error_logger

DEFAULT_CACHE_TTL_SECONDS = 5 * 60


def decode_products(raw: Any) -> Tuple[List[Product], List[str]]:
    """
    Turn a parsed JSON document into products.

    Records that do not deserialize, and repeats of an id already seen, are
    left out and described in the returned problem list.

    Returns:
        Tuple of (products, problems)

    Raises:
        ValueError: If the document is not a JSON array
    """
    if not isinstance(raw, list):
        raise ValueError(f"Expected a JSON array, got {type(raw).__name__}")

    products = []
    problems = []
    seen_ids = set()
    for index, item in enumerate(raw):
        try:
            product = Product.from_dict(item)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            problems.append(f"Invalid product record at index {index}: {e!r}")
            continue
        if product.id in seen_ids:
            problems.append(f"Duplicate product id at index {index}: {product.id}")
            continue
        seen_ids.add(product.id)
        products.append(product)
    return products, problems


def encode_products(products: List[Product]) -> str:
    """Serialize products as the pretty-printed on-disk document."""
    return json.dumps([p.to_dict() for p in products], indent=2, ensure_ascii=False) + "\n"


class ProductStore:
    """
    Owns the product file, its backup and the read cache.

    Mutating callers must run their load-modify-persist cycle inside
    ``locked()`` so concurrent mutations cannot overwrite each other.
    Cache misses in ``load_all`` take the same lock, so a read that
    overlaps a write can never put the older collection back in the cache.
    """

    def __init__(
        self,
        data_path: Union[str, Path],
        backup_path: Union[str, Path],
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the store.

        Args:
            data_path: Primary JSON file
            backup_path: File holding the previous generation
            cache_ttl_seconds: Freshness window of the read cache
            clock: Monotonic clock used for cache expiry
        """
        self.data_path = Path(data_path)
        self.backup_path = Path(backup_path)
        self.cache = ProductCache(cache_ttl_seconds, clock)
        self.write_lock = asyncio.Lock()
        self._lock_owner: Optional[asyncio.Task] = None
        self.logger = get_store_logger()
        self.error_logger = get_error_logger()

        self._ensure_data_directory()

    def _ensure_data_directory(self) -> None:
        data_dir = self.data_path.parent
        if not data_dir.exists():
            data_dir.mkdir(parents=True, exist_ok=True)
            self.logger.info(f"Created data directory: {data_dir}")

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[None]:
        """
        Hold ``write_lock`` for the current task.

        ``load_all`` called by the holding task reads without waiting on
        the lock again.
        """
        async with self.write_lock:
            self._lock_owner = asyncio.current_task()
            try:
                yield
            finally:
                self._lock_owner = None

    def holds_lock(self) -> bool:
        """True if the current task is inside ``locked()``."""
        return self._lock_owner is not None and self._lock_owner is asyncio.current_task()

    async def load_all(self) -> List[Product]:
        """
        Return the current collection.

        Served from the cache while it is fresh. Otherwise the primary file
        is read under the write lock; a missing file is initialized empty
        and an unreadable one is recovered from the backup.
        """
        cached = self.cache.get()
        if cached is not None:
            self.logger.debug("Returning products from cache")
            return cached

        if self.holds_lock():
            return await self._read_primary()

        async with self.locked():
            # Another reader may have refilled the cache while we waited.
            cached = self.cache.get()
            if cached is not None:
                return cached
            return await self._read_primary()

    async def persist(self, products: List[Product]) -> None:
        """
        Back up the current file, then replace it with ``products``.

        Raises:
            StorageError: If the new content could not be written
        """
        await self._back_up_primary()
        await self._write(products)

    def invalidate_cache(self) -> None:
        """Force the next ``load_all`` to read from disk."""
        self.cache.invalidate()
        self.logger.debug("Cache cleared")

    async def restore_backup(self) -> List[Product]:
        """
        Promote the backup generation to primary.

        Returns:
            The restored products

        Raises:
            StorageError: If there is no usable backup
        """
        async with self.locked():
            try:
                products = await self._read_file(self.backup_path)
            except FileNotFoundError:
                raise StorageError(
                    "No backup file to restore",
                    details={"path": str(self.backup_path)}
                )
            except (OSError, ValueError) as e:
                raise StorageError(
                    "Backup file is unusable",
                    details={"path": str(self.backup_path), "error": str(e)}
                )

            await self._write(products)
            self.logger.warning(
                f"Restored {len(products)} products from backup {self.backup_path}"
            )
            return products

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _read_primary(self) -> List[Product]:
        if not await aiofiles.os.path.exists(self.data_path):
            self.logger.info(f"Product file not found, creating {self.data_path}")
            return await self._initialize_empty()

        try:
            products = await self._read_file(self.data_path)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to read product file {self.data_path}: {e}")
            return await self._recover_from_backup(e)

        self.cache.fill(products)
        return products

    async def _read_file(self, path: Path) -> List[Product]:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()

        products, problems = decode_products(json.loads(content))
        for problem in problems:
            self.error_logger.error(f"Skipped record in {path}: {problem}")
        if problems:
            self.logger.warning(
                f"Loaded {len(products)} products from {path}, skipped {len(problems)}"
            )
        return products

    async def _recover_from_backup(self, cause: Exception) -> List[Product]:
        try:
            products = await self._read_file(self.backup_path)
        except (OSError, ValueError) as e:
            self.logger.error(f"Backup recovery failed: {e}")
            self.error_logger.error(
                f"DATA LOSS: {self.data_path} is unreadable ({cause}) and no usable "
                f"backup exists; resetting the catalog to an empty collection"
            )
            return await self._initialize_empty()

        # The unreadable primary is not copied over the good backup here.
        await self._write(products)
        self.logger.warning(
            f"Recovered {len(products)} products from backup {self.backup_path}"
        )
        self.error_logger.error(
            f"{self.data_path} was unreadable ({cause}); restored "
            f"{len(products)} products from the backup generation"
        )
        return products

    async def _initialize_empty(self) -> List[Product]:
        products: List[Product] = []
        await self._write(products)
        return products

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def _back_up_primary(self) -> None:
        if not await aiofiles.os.path.exists(self.data_path):
            return

        try:
            async with aiofiles.open(self.data_path, "rb") as src:
                content = await src.read()
            async with aiofiles.open(self.backup_path, "wb") as dst:
                await dst.write(content)
        except OSError as e:
            self.logger.warning(f"Could not back up {self.data_path}: {e}")

    async def _write(self, products: List[Product]) -> None:
        payload = encode_products(products)

        # A write that outlives a cancelled caller must not leave old data cached.
        self.cache.invalidate()
        try:
            await asyncio.shield(self._replace_primary(payload))
        except OSError as e:
            self.logger.error(f"Failed to save product data: {e}")
            self.error_logger.error(f"Failed to save {self.data_path}: {e}")
            raise StorageError(
                "Failed to save product data",
                details={"path": str(self.data_path), "error": str(e)}
            )

        self.cache.fill(products)
        self.logger.debug(f"Saved {len(products)} products")

    async def _replace_primary(self, payload: str) -> None:
        tmp_path = self.data_path.with_name(self.data_path.name + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
        await aiofiles.os.replace(tmp_path, self.data_path)
