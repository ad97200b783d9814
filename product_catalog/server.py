"""FastAPI server exposing the product catalog.

The store and service live in an ``AppContext`` attached to ``app.state``;
it is built in the lifespan unless one is injected (tests do this).
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .context import AppContext
from .middleware.request_validator import RateLimiter, validate_product_id
from .models.product import Product
from .models.schemas import (
    ProductCreate,
    ProductQuery,
    ProductUpdate,
    SortField,
    SortOrder,
    StockAdjustment,
    StockOperation,
    format_validation_errors,
)
from .services.product_service import ProductService
from .utils.config import AppConfig, get_config
from .utils.exceptions import CatalogError, ValidationError
from .utils.logger import get_api_logger, get_error_logger

VERSION = "1.0.0"

# Transport status for each catalog error code.
STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "DOMAIN_ERROR": 400,
    "STORAGE_ERROR": 500,
    "CONFIGURATION_ERROR": 500,
}

# Paths that bypass rate limiting.
UNLIMITED_PATHS = {"/", "/health"}

logger = get_api_logger()
error_logger = get_error_logger()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Any = None
) -> JSONResponse:
    """Build the standard error envelope."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": _timestamp()}
    )


def _client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Rate-limit key; ``X-Forwarded-For`` is honoured only behind a trusted proxy."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _serialize(products: List[Product]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in products]


# ------------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------------

def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_service(context: AppContext = Depends(get_context)) -> ProductService:
    return context.service


def product_query(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: SortField = Query(SortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
) -> ProductQuery:
    """Collect listing query parameters into a ``ProductQuery``."""
    return ProductQuery(
        page=page,
        limit=limit,
        category=category,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        is_active=is_active,
    )


# ------------------------------------------------------------------
# Product routes
# ------------------------------------------------------------------

def build_product_router(prefix: str) -> APIRouter:
    """Routes for ``{prefix}``; fixed paths are registered before ``/{product_id}``."""
    router = APIRouter(prefix=prefix, tags=["products"])

    @router.get("")
    async def list_products(
        query: ProductQuery = Depends(product_query),
        service: ProductService = Depends(get_service)
    ):
        """List products with filters, sorting and pagination."""
        result = await service.list_products(query)
        return {
            "success": True,
            "data": _serialize(result.products),
            "pagination": result.pagination(),
            "message": f"{len(result.products)} product(s) found",
        }

    @router.get("/statistics")
    async def get_statistics(service: ProductService = Depends(get_service)):
        """Aggregate catalog statistics."""
        stats = await service.statistics()
        return {
            "success": True,
            "data": stats.to_dict(),
            "message": "Statistics retrieved successfully",
        }

    @router.get("/search")
    async def search_products(
        query: ProductQuery = Depends(product_query),
        service: ProductService = Depends(get_service)
    ):
        """Text search; the ``search`` parameter is required."""
        if not query.search:
            raise ValidationError("Search parameter is required", details={"param": "search"})

        result = await service.list_products(query)
        return {
            "success": True,
            "data": _serialize(result.products),
            "pagination": result.pagination(),
            "message": f"{len(result.products)} product(s) found for \"{query.search}\"",
        }

    @router.get("/category/{category}")
    async def get_products_by_category(
        category: str,
        service: ProductService = Depends(get_service)
    ):
        """Active products of a category."""
        products = await service.products_by_category(category)
        return {
            "success": True,
            "data": _serialize(products),
            "pagination": {
                "page": 1,
                "limit": len(products),
                "total": len(products),
                "totalPages": 1,
            },
            "message": f"{len(products)} product(s) found in category {category}",
        }

    @router.get("/{product_id}")
    async def get_product(product_id: str, service: ProductService = Depends(get_service)):
        validate_product_id(product_id)
        product = await service.get_product(product_id)
        return {
            "success": True,
            "data": product.to_dict(),
            "message": "Product found",
        }

    @router.post("", status_code=201)
    async def create_product(
        payload: ProductCreate,
        service: ProductService = Depends(get_service)
    ):
        product = await service.create(payload)
        return {
            "success": True,
            "data": product.to_dict(),
            "message": "Product created successfully",
        }

    @router.put("/{product_id}")
    async def update_product(
        product_id: str,
        payload: ProductUpdate = Body(...),
        service: ProductService = Depends(get_service)
    ):
        validate_product_id(product_id)
        product = await service.update(product_id, payload)
        return {
            "success": True,
            "data": product.to_dict(),
            "message": "Product updated successfully",
        }

    @router.patch("/{product_id}/stock")
    async def update_stock(
        product_id: str,
        payload: StockAdjustment,
        service: ProductService = Depends(get_service)
    ):
        validate_product_id(product_id)
        product = await service.adjust_stock(product_id, payload.quantity, payload.operation)
        verb = "added" if payload.operation == StockOperation.ADD else "subtracted"
        return {
            "success": True,
            "data": product.to_dict(),
            "message": f"Stock {verb} successfully",
        }

    @router.delete("/{product_id}", status_code=204)
    async def delete_product(product_id: str, service: ProductService = Depends(get_service)):
        validate_product_id(product_id)
        await service.delete(product_id)
        return Response(status_code=204)

    return router


# ------------------------------------------------------------------
# Application factory
# ------------------------------------------------------------------

def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        context: Prebuilt context; when omitted one is built from the
            configuration at startup

    Returns:
        Configured FastAPI app
    """
    config: AppConfig = context.config if context else get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup / shutdown of the application."""
        if app.state.context is None:
            app.state.context = AppContext.from_config(config)

        store = app.state.context.store
        logger.info("=" * 60)
        logger.info("Product Catalog API Starting")
        logger.info("=" * 60)
        logger.info(f"Environment:          {config.env.environment}")
        logger.info(f"Port:                 {config.env.port}")
        logger.info(f"API base path:        {config.api_base_path}")
        logger.info(f"Data file:            {store.data_path}")
        logger.info(f"Cache TTL:            {store.cache.ttl_seconds:.0f}s")
        logger.info("=" * 60)

        yield

        logger.info("Product Catalog API shut down.")

    app = FastAPI(
        title="Product Catalog API",
        description="CRUD API for a JSON-file backed product catalog",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.context = context
    app.state.rate_limiter = RateLimiter(
        config.server.rate_limit_requests,
        config.server.rate_limit_window_seconds
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    @app.middleware("http")
    async def guard_and_log(request: Request, call_next):
        """Rate limit, reject oversized bodies and log each request."""
        if request.url.path not in UNLIMITED_PATHS:
            client = _client_ip(request, config.server.trust_proxy_headers)
            if not request.app.state.rate_limiter.hit(client):
                logger.warning(f"Rate limit exceeded for {client}")
                return error_response(
                    429, "TOO_MANY_REQUESTS", "Too many requests, please try again later"
                )

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > config.server.max_body_bytes:
            return error_response(413, "PAYLOAD_TOO_LARGE", "Request body is too large")

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.0f}ms)"
        )
        return response

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Product Catalog API",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "products": f"{config.api_base_path}/products",
            },
            "timestamp": _timestamp(),
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return {
            "status": "ok",
            "timestamp": _timestamp(),
            "version": VERSION,
            "environment": config.env.environment,
        }

    app.include_router(build_product_router(f"{config.api_base_path}/products"))

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        status_code = STATUS_BY_CODE.get(exc.code, 500)
        if status_code >= 500:
            error_logger.error(f"{request.method} {request.url.path}: {exc.message} {exc.details}")
        else:
            logger.warning(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
        return error_response(status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = format_validation_errors(exc.errors())
        logger.warning(f"Request validation failed: {errors}")
        return error_response(422, "VALIDATION_ERROR", "Invalid input data", errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
        if exc.status_code == 404:
            return error_response(
                404, "NOT_FOUND", f"Route {request.method} {request.url.path} not found"
            )
        return error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        error_logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return error_response(
            500,
            "INTERNAL_ERROR",
            "An error occurred" if config.is_production else str(exc)
        )

    return app


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "product_catalog.server:create_app",
        factory=True,
        host=config.env.host,
        port=config.env.port,
        reload=not config.is_production
    )
