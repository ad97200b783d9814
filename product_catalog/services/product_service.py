"""Catalog query engine: lookups, listings, statistics and mutations.

Every mutation is one load-modify-persist cycle over the whole collection,
run under the store's write lock.
"""

import dataclasses
import unicodedata
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from .product_store import ProductStore
from ..models.product import Product, utc_now
from ..models.results import CatalogStatistics, SearchResult
from ..models.schemas import (
    ProductCreate,
    ProductQuery,
    ProductUpdate,
    SortField,
    SortOrder,
    StockOperation,
    format_validation_errors,
)
from ..utils.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from ..utils.logger import get_catalog_logger

MAX_PRICE = 999999.99
LOW_STOCK_THRESHOLD = 10

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Fields an update may not clear by sending null.
NON_NULLABLE_FIELDS = {"name", "description", "price", "category", "stock", "tags", "is_active"}


def _parse(schema: Type[SchemaT], data: Union[SchemaT, Mapping[str, Any], None]) -> SchemaT:
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data or {})
    except SchemaValidationError as e:
        raise ValidationError(
            "Invalid product data",
            details={"errors": format_validation_errors(e.errors())}
        )


def _collation_key(text: str) -> str:
    """Accent- and case-insensitive sort key for names."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


# ----------------------------------------------------------------------
# Pure query steps
# ----------------------------------------------------------------------

def filter_products(
    products: List[Product],
    text: Optional[str] = None,
    category: Optional[str] = None,
    is_active: Optional[bool] = None
) -> List[Product]:
    """Apply the text, category and active-status filters in that order."""
    if text:
        needle = text.lower()
        products = [
            p for p in products
            if needle in p.name.lower()
            or needle in p.description.lower()
            or any(needle in tag.lower() for tag in p.tags)
        ]

    if category:
        wanted = category.lower()
        products = [p for p in products if p.category.lower() == wanted]

    if is_active is not None:
        products = [p for p in products if p.is_active == is_active]

    return products


def sort_products(
    products: List[Product],
    sort_by: Union[SortField, str],
    sort_order: Union[SortOrder, str, None] = None
) -> List[Product]:
    """Stable sort by name, price or creation time."""
    field = SortField(sort_by)
    descending = sort_order is not None and SortOrder(sort_order) == SortOrder.DESC

    if field == SortField.NAME:
        key = lambda p: _collation_key(p.name)
    elif field == SortField.PRICE:
        key = lambda p: p.price
    else:
        key = lambda p: p.created_at

    # reverse=True keeps equal elements in their original order
    return sorted(products, key=key, reverse=descending)


def paginate(products: List[Product], page: int, limit: int) -> List[Product]:
    """Return the 1-based ``page`` of size ``limit``; empty when out of range."""
    if page < 1 or limit < 1:
        raise ValidationError(
            "Page and limit must be positive",
            details={"page": page, "limit": limit}
        )
    start = (page - 1) * limit
    return products[start:start + limit]


class ProductService:
    """
    Business operations over the product collection.

    Enforces name uniqueness, price bounds and stock non-negativity, and
    answers filtered, sorted and paginated queries.
    """

    def __init__(
        self,
        store: ProductStore,
        max_price: float = MAX_PRICE,
        low_stock_threshold: int = LOW_STOCK_THRESHOLD
    ):
        self.store = store
        self.max_price = max_price
        self.low_stock_threshold = low_stock_threshold
        self.logger = get_catalog_logger()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, product_id: str) -> Optional[Product]:
        """Return the product with ``product_id``, or None."""
        products = await self.store.load_all()
        for product in products:
            if product.id == product_id:
                return product
        return None

    async def get_product(self, product_id: str) -> Product:
        """
        Return the product with ``product_id``.

        Raises:
            NotFoundError: If no such product exists
        """
        product = await self.find_by_id(product_id)
        if product is None:
            raise NotFoundError(
                f"Product with ID {product_id} not found",
                details={"id": product_id}
            )

        self.logger.debug(f"Product found: {product_id} ({product.name})")
        return product

    async def search(
        self,
        text: Optional[str] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort_by: Union[SortField, str, None] = None,
        sort_order: Union[SortOrder, str, None] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> SearchResult:
        """
        Filter, sort and paginate the collection.

        ``total`` counts every match before pagination. Sorting only happens
        when ``sort_by`` is given; pagination only when both ``page`` and
        ``limit`` are given.
        """
        products = await self.store.load_all()
        products = filter_products(products, text, category, is_active)
        total = len(products)

        if sort_by:
            try:
                products = sort_products(products, sort_by, sort_order)
            except ValueError as e:
                raise ValidationError(f"Invalid sort option: {e}")

        if page is not None and limit is not None:
            products = paginate(products, page, limit)

        return SearchResult(products=products, total=total, page=page, limit=limit)

    async def list_products(
        self,
        query: Union[ProductQuery, Mapping[str, Any], None] = None
    ) -> SearchResult:
        """Run a listing with the API defaults (page 1, 10 per page, newest first)."""
        query = _parse(ProductQuery, query)
        result = await self.search(
            text=query.search,
            category=query.category,
            is_active=query.is_active,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            page=query.page,
            limit=query.limit
        )

        self.logger.info(
            f"Listed products: total={result.total} page={query.page} "
            f"limit={query.limit} search={query.search!r} "
            f"category={query.category!r} is_active={query.is_active}"
        )
        return result

    async def products_by_category(self, category: str) -> List[Product]:
        """Active products of ``category``, unpaginated."""
        result = await self.search(category=category, is_active=True)
        self.logger.debug(f"Products by category {category!r}: {len(result.products)}")
        return result.products

    async def statistics(self) -> CatalogStatistics:
        """Compute aggregate figures with a full scan of the collection."""
        products = await self.store.load_all()
        stats = CatalogStatistics(total=len(products))

        for product in products:
            if product.is_active:
                stats.active += 1
            else:
                stats.inactive += 1
            stats.categories[product.category] = stats.categories.get(product.category, 0) + 1

        if products:
            mean = sum(p.price for p in products) / len(products)
            stats.average_price = float(
                Decimal(str(mean)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            )

        stats.low_stock_products = [
            p for p in products
            if p.is_active and p.stock < self.low_stock_threshold
        ]
        return stats

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, data: Union[ProductCreate, Mapping[str, Any]]) -> Product:
        """
        Create a product.

        Raises:
            ValidationError: If the input is malformed or out of bounds
            ConflictError: If another product already has this name
        """
        payload = _parse(ProductCreate, data)
        self._validate_price(payload.price)
        self._validate_stock(payload.stock)

        async with self.store.locked():
            products = await self.store.load_all()
            self._ensure_unique_name(products, payload.name)

            existing_ids = {p.id for p in products}
            product_id = str(uuid.uuid4())
            while product_id in existing_ids:
                product_id = str(uuid.uuid4())

            now = utc_now()
            product = Product(
                id=product_id,
                name=payload.name,
                description=payload.description,
                price=payload.price,
                category=payload.category,
                stock=payload.stock,
                image_url=str(payload.image_url) if payload.image_url else None,
                tags=list(payload.tags or []),
                is_active=True if payload.is_active is None else payload.is_active,
                created_at=now,
                updated_at=now
            )

            products.append(product)
            await self.store.persist(products)

        self.logger.info(
            f"Product created: {product.id} ({product.name}, "
            f"category={product.category}, price={product.price})"
        )
        return product

    async def update(
        self,
        product_id: str,
        data: Union[ProductUpdate, Mapping[str, Any]]
    ) -> Product:
        """
        Apply a partial update.

        Only the fields present in ``data`` are validated and changed.

        Raises:
            NotFoundError: If no such product exists
            ValidationError: If a present field is invalid
            ConflictError: If the new name belongs to another product
        """
        payload = _parse(ProductUpdate, data)
        changes = payload.model_dump(exclude_unset=True)

        cleared = sorted(k for k, v in changes.items() if v is None and k in NON_NULLABLE_FIELDS)
        if cleared:
            raise ValidationError(
                "Fields cannot be null",
                details={"fields": cleared}
            )

        async with self.store.locked():
            return await self._apply_update(product_id, changes)

    async def delete(self, product_id: str) -> None:
        """
        Remove a product.

        Raises:
            NotFoundError: If no such product exists
        """
        async with self.store.locked():
            products = await self.store.load_all()
            index = self._index_of(products, product_id)
            removed = products.pop(index)
            await self.store.persist(products)

        self.logger.info(f"Product deleted: {product_id} ({removed.name})")

    async def adjust_stock(
        self,
        product_id: str,
        amount: int,
        direction: Union[StockOperation, str]
    ) -> Product:
        """
        Add to or subtract from a product's stock.

        Raises:
            NotFoundError: If no such product exists
            ValidationError: If ``amount`` or ``direction`` is invalid
            DomainError: If subtracting would leave negative stock
        """
        try:
            direction = StockOperation(direction)
        except ValueError:
            raise ValidationError(
                "Operation must be 'add' or 'subtract'",
                details={"operation": direction}
            )

        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError(
                "Quantity must be a positive integer",
                details={"quantity": amount}
            )

        async with self.store.locked():
            products = await self.store.load_all()
            current = products[self._index_of(products, product_id)]

            if direction == StockOperation.ADD:
                new_stock = current.stock + amount
            else:
                new_stock = current.stock - amount
                if new_stock < 0:
                    raise DomainError(
                        "Stock cannot go negative",
                        details={
                            "id": product_id,
                            "stock": current.stock,
                            "requested": amount,
                        }
                    )

            updated = await self._apply_update(product_id, {"stock": new_stock})

        self.logger.info(
            f"Stock updated: {product_id} {direction.value} {amount} "
            f"({current.stock} -> {new_stock})"
        )
        return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _apply_update(self, product_id: str, changes: Dict[str, Any]) -> Product:
        products = await self.store.load_all()
        index = self._index_of(products, product_id)
        existing = products[index]

        if "name" in changes:
            self._ensure_unique_name(products, changes["name"], exclude_id=product_id)
        if "price" in changes:
            self._validate_price(changes["price"])
        if "stock" in changes:
            self._validate_stock(changes["stock"])
        if changes.get("image_url") is not None:
            changes["image_url"] = str(changes["image_url"])

        # Clock skew must not push updated_at before created_at.
        now = max(utc_now(), existing.created_at)
        updated = dataclasses.replace(existing, **changes, updated_at=now)

        products[index] = updated
        await self.store.persist(products)

        self.logger.info(f"Product updated: {product_id} fields={sorted(changes)}")
        return updated

    @staticmethod
    def _index_of(products: List[Product], product_id: str) -> int:
        for index, product in enumerate(products):
            if product.id == product_id:
                return index
        raise NotFoundError(
            f"Product with ID {product_id} not found",
            details={"id": product_id}
        )

    @staticmethod
    def _ensure_unique_name(
        products: List[Product],
        name: str,
        exclude_id: Optional[str] = None
    ) -> None:
        wanted = name.lower()
        for product in products:
            if product.id != exclude_id and product.name.lower() == wanted:
                raise ConflictError(
                    "A product with this name already exists",
                    details={"name": name, "existing_id": product.id}
                )

    def _validate_price(self, price: float) -> None:
        if price <= 0:
            raise ValidationError(
                "Price must be greater than zero",
                details={"price": price}
            )

        if price > self.max_price:
            raise ValidationError(
                f"Price cannot exceed {self.max_price:.2f}",
                details={"price": price}
            )

    @staticmethod
    def _validate_stock(stock: int) -> None:
        if not isinstance(stock, int) or isinstance(stock, bool):
            raise ValidationError(
                "Stock must be an integer",
                details={"stock": stock}
            )

        if stock < 0:
            raise ValidationError(
                "Stock cannot be negative",
                details={"stock": stock}
            )
