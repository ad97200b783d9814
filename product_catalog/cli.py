"""Command-line interface for inspecting and maintaining the catalog."""

import asyncio
import sys
from typing import Optional

import click

from .context import AppContext
from .models.results import OperationResult, run_operation
from .models.schemas import SortField, SortOrder, StockOperation
from .utils.config import get_config
from .utils.exceptions import ConfigurationError


def _build_context() -> AppContext:
    try:
        return AppContext.from_config()
    except ConfigurationError as e:
        click.echo(click.style(f"✗ Configuration error: {e.message}", fg="red"), err=True)
        sys.exit(1)


def _fail(result: OperationResult) -> None:
    error = result.error or {}
    click.echo(
        click.style(f"✗ {error.get('code', 'ERROR')}: {error.get('message', '')}", fg="red"),
        err=True
    )
    for key, value in (error.get("details") or {}).items():
        click.echo(f"  {key}: {value}", err=True)
    sys.exit(1)


def _echo_product(product) -> None:
    status = click.style("active", fg="green") if product.is_active else click.style("inactive", fg="yellow")
    click.echo(f"{product.id}  {product.name}  [{status}]")
    click.echo(f"  Category:    {product.category}")
    click.echo(f"  Price:       {product.price:.2f}")
    click.echo(f"  Stock:       {product.stock}")
    if product.tags:
        click.echo(f"  Tags:        {', '.join(product.tags)}")
    click.echo(f"  Updated:     {product.updated_at.isoformat()}")


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """
    Product Catalog CLI.

    Inspect and maintain the JSON-backed product catalog.
    """
    pass


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to config)")
@click.option("--port", default=None, type=int, help="Port (defaults to config)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "product_catalog.server:create_app",
        factory=True,
        host=host or config.env.host,
        port=port or config.env.port,
        reload=reload
    )


@cli.command("list")
@click.option("--search", default=None, help="Text to look for in name, description and tags")
@click.option("--category", default=None, help="Exact category (case-insensitive)")
@click.option("--active/--inactive", "is_active", default=None, help="Filter by status")
@click.option(
    "--sort-by",
    type=click.Choice([f.value for f in SortField]),
    default=SortField.CREATED_AT.value,
    show_default=True
)
@click.option(
    "--sort-order",
    type=click.Choice([o.value for o in SortOrder]),
    default=SortOrder.DESC.value,
    show_default=True
)
@click.option("--page", default=1, type=int, show_default=True)
@click.option("--limit", default=10, type=int, show_default=True)
def list_products(search, category, is_active, sort_by, sort_order, page, limit):
    """List products with filters, sorting and pagination."""
    context = _build_context()
    query = {
        "search": search,
        "category": category,
        "isActive": is_active,
        "sortBy": sort_by,
        "sortOrder": sort_order,
        "page": page,
        "limit": limit,
    }
    result = asyncio.run(run_operation(context.service.list_products(query)))
    if not result.success:
        _fail(result)

    listing = result.data
    for product in listing.products:
        _echo_product(product)

    click.echo("─" * 60)
    click.echo(
        f"Page {listing.page}/{max(listing.total_pages, 1)} - "
        f"{len(listing.products)} of {listing.total} product(s)"
    )


@cli.command()
@click.argument("product_id")
def show(product_id: str):
    """
    Show a single product.

    PRODUCT_ID: Product UUID
    """
    context = _build_context()
    result = asyncio.run(run_operation(context.service.get_product(product_id)))
    if not result.success:
        _fail(result)

    _echo_product(result.data)
    if result.data.description:
        click.echo(f"  Description: {result.data.description}")


@cli.command()
def stats():
    """Display catalog statistics."""
    context = _build_context()
    result = asyncio.run(run_operation(context.service.statistics()))
    if not result.success:
        _fail(result)

    click.echo("Catalog Statistics:")
    click.echo("=" * 60)
    click.echo(result.data.get_summary())


@cli.command("adjust-stock")
@click.argument("product_id")
@click.argument("quantity", type=int)
@click.option(
    "--operation",
    type=click.Choice([o.value for o in StockOperation]),
    default=StockOperation.ADD.value,
    show_default=True
)
def adjust_stock(product_id: str, quantity: int, operation: str):
    """
    Add to or subtract from a product's stock.

    PRODUCT_ID: Product UUID
    QUANTITY: Positive number of units
    """
    context = _build_context()
    result = asyncio.run(
        run_operation(context.service.adjust_stock(product_id, quantity, operation))
    )
    if not result.success:
        _fail(result)

    click.echo(click.style("✓ Stock updated", fg="green", bold=True))
    _echo_product(result.data)


@cli.command("restore-backup")
@click.confirmation_option(prompt="Replace the product file with its backup?")
def restore_backup():
    """Promote the backup generation to the primary product file."""
    context = _build_context()
    result = asyncio.run(run_operation(context.store.restore_backup()))
    if not result.success:
        _fail(result)

    click.echo(click.style(f"✓ Restored {len(result.data)} product(s) from backup", fg="green", bold=True))


@cli.command()
def config_info():
    """Display current configuration settings."""
    try:
        config = get_config()
    except ConfigurationError as e:
        click.echo(click.style(f"✗ Error loading config: {e.message}", fg="red"), err=True)
        sys.exit(1)

    click.echo("Configuration Settings:")
    click.echo("=" * 60)
    click.echo()

    click.echo("Environment:")
    click.echo(f"  Environment:     {config.env.environment}")
    click.echo(f"  Log level:       {config.logging.level}")
    click.echo()

    click.echo("Server:")
    click.echo(f"  Address:         {config.env.host}:{config.env.port}")
    click.echo(f"  Base path:       {config.api_base_path}")
    click.echo(f"  CORS origins:    {', '.join(config.cors_origins)}")
    click.echo(f"  Rate limit:      {config.server.rate_limit_requests} / "
               f"{config.server.rate_limit_window_seconds}s")
    click.echo()

    click.echo("Storage:")
    click.echo(f"  Data file:       {config.data_path}")
    click.echo(f"  Backup file:     {config.backup_path}")
    click.echo(f"  Cache TTL:       {config.storage.cache_ttl_seconds:.0f}s")
    click.echo()

    click.echo("Catalog:")
    click.echo(f"  Max price:       {config.catalog.max_price:.2f}")
    click.echo(f"  Low stock below: {config.catalog.low_stock_threshold}")
    click.echo()


if __name__ == "__main__":
    cli()
