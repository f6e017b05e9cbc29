#!/usr/bin/env python3
"""
Command line access to the order ledger.

Every command talks to the MinIO-backed store configured through the
environment (see ledger.settings); options given on the command line win
over the environment.
"""

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import click
from pydantic import ValidationError

from ledger import query
from ledger.domain import DeletedOrderRecord, OrderPage, OrderRecord, WriteMode
from ledger.exceptions import (
    LedgerError,
    OrderValidationError,
    PartialArchiveError,
)
from ledger.order_repository import OrderRepository
from ledger.projection import ProjectionSnapshot
from ledger.repos.local import LocalProductCatalog
from ledger.repos.memory import MemoryProductCatalog
from ledger.repos.minio import MinioPersistentStore, create_minio_client
from ledger.service import OrderLedger
from ledger.settings import LedgerSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_repository(settings: LedgerSettings) -> OrderRepository:
    """Wire an OrderRepository against MinIO from settings.

    Exits with status 1 when the configured product catalog cannot be
    loaded.
    """
    try:
        catalog = (
            LocalProductCatalog(settings.catalog_path)
            if settings.catalog_path
            else MemoryProductCatalog()
        )
    except (OSError, ValueError) as e:
        logger.error(f"Cannot load product catalog: {e}", exc_info=True)
        click.echo(f"Cannot load product catalog: {e}", err=True)
        sys.exit(1)

    client = create_minio_client(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
    )
    store = MinioPersistentStore(client, bucket_name=settings.bucket_name)
    return OrderRepository(
        store,
        catalog,
        write_mode=settings.write_mode,
        max_write_attempts=settings.max_write_attempts,
    )


def build_ledger(settings: LedgerSettings) -> OrderLedger:
    return OrderLedger(
        build_repository(settings),
        refresh_interval=settings.refresh_interval,
        page_size=settings.page_size,
        deleted_page_size=settings.deleted_page_size,
    )


def _run(action: Callable[[], Awaitable[T]]) -> T:
    """Run an async action, turning ledger errors into exit code 1."""
    try:
        return asyncio.run(action())
    except OrderValidationError as e:
        for field, message in e.errors.items():
            click.echo(f"{field}: {message}", err=True)
        sys.exit(1)
    except PartialArchiveError as e:
        logger.error(f"Archive incomplete: {e}", exc_info=True)
        click.echo(f"{e}", err=True)
        sys.exit(1)
    except LedgerError as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def format_order(order: OrderRecord) -> str:
    line = (
        f"{order.id}  {order.customer_name} <{order.customer_email}>  "
        f"{order.product_name} x{order.quantity}  ${order.order_value:.2f}"
    )
    if isinstance(order, DeletedOrderRecord):
        line += f"  deleted {order.deleted_at.isoformat()}"
    return line


def echo_page(page: OrderPage, empty_message: str) -> None:
    if not page.items:
        click.echo(empty_message)
    for order in page.items:
        click.echo(format_order(order))
    click.echo()
    click.echo(
        f"Page {page.page} of {max(page.total_pages, 1)}  "
        f"({page.total_count} orders, total ${page.total_value:.2f})"
    )


async def _refreshed(ledger: OrderLedger) -> OrderLedger:
    if not await ledger.refresh():
        raise ledger.reconciler.last_error  # type: ignore[misc]
    return ledger


@click.group()
@click.option("--minio-endpoint", default=None, help="MinIO host:port")
@click.option("--bucket", "bucket_name", default=None, help="Bucket name")
@click.option(
    "--catalog",
    "catalog_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="YAML product catalog (defaults to the built-in catalog)",
)
@click.option(
    "--write-mode",
    type=click.Choice([mode.value for mode in WriteMode]),
    default=None,
    help="Conditional writes or plain last-writer-wins",
)
@click.option("--log-level", default=None, help="Logging level")
@click.pass_context
def cli(ctx: click.Context, **options: Optional[str]) -> None:
    """Create, edit, archive and list orders."""
    try:
        settings = LedgerSettings.from_env(**options)
    except ValidationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = settings


@cli.command()
@click.pass_obj
def products(settings: LedgerSettings) -> None:
    """List the product catalog."""
    repository = build_repository(settings)
    for product in _run(repository.catalog.list_products):
        click.echo(
            f"{product.product_id}  {product.name}  ${product.unit_price:.2f}"
        )


@cli.command()
@click.option("--name", "customer_name", required=True)
@click.option("--email", "customer_email", required=True)
@click.option("--product", "product_id", required=True)
@click.option("--quantity", required=True, type=int)
@click.pass_obj
def create(settings: LedgerSettings, **fields: Any) -> None:
    """Create an order."""
    repository = build_repository(settings)
    order = _run(lambda: repository.create(fields))
    click.echo("Order created successfully!")
    click.echo(format_order(order))


@cli.command()
@click.argument("order_id")
@click.option("--name", "customer_name", default=None)
@click.option("--email", "customer_email", default=None)
@click.option("--product-name", default=None)
@click.option("--quantity", type=int, default=None)
@click.option("--order-value", default=None, help="Override the value")
@click.pass_obj
def update(settings: LedgerSettings, order_id: str, **fields: Any) -> None:
    """Edit an order. Only the given fields change."""
    patch: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    repository = build_repository(settings)
    order = _run(lambda: repository.update(order_id, patch))
    click.echo("Order updated successfully")
    click.echo(format_order(order))


@cli.command()
@click.argument("order_id")
@click.pass_obj
def archive(settings: LedgerSettings, order_id: str) -> None:
    """Delete an order by moving it to the deleted collection."""
    repository = build_repository(settings)
    archived = _run(lambda: repository.archive(order_id))
    click.echo("Order deleted successfully")
    click.echo(format_order(archived))


@cli.command(name="list")
@click.option("--search", default="", help="Filter by name, email, product or id")
@click.option("--page", default=1, type=int)
@click.pass_obj
def list_orders(settings: LedgerSettings, search: str, page: int) -> None:
    """List active orders."""
    ledger = _run(lambda: _refreshed(build_ledger(settings)))
    echo_page(ledger.orders_page(search, page), "No orders found")


@cli.command()
@click.option("--page", default=1, type=int)
@click.pass_obj
def deleted(settings: LedgerSettings, page: int) -> None:
    """List deleted orders, most recent first."""
    ledger = _run(lambda: _refreshed(build_ledger(settings)))
    echo_page(ledger.deleted_page(page), "No deleted orders")


@cli.command()
@click.pass_obj
def repair(settings: LedgerSettings) -> None:
    """Finish archives that were interrupted halfway."""
    repository = build_repository(settings)
    repaired = _run(repository.repair_partial_archives)
    if not repaired:
        click.echo("Nothing to repair")
    for order_id in repaired:
        click.echo(f"Removed archived order {order_id} from active orders")


async def _watch(ledger: OrderLedger, ticks: Optional[int]) -> None:
    def show(snapshot: ProjectionSnapshot) -> None:
        click.echo(
            f"[{snapshot.revision}] {len(snapshot.active)} orders, "
            f"total ${query.total_value(snapshot.active):.2f}, "
            f"{len(snapshot.deleted)} deleted"
        )

    unsubscribe = ledger.cache.subscribe(show)
    try:
        async with ledger:
            while ticks is None or ledger.reconciler.ticks < ticks:
                await asyncio.sleep(min(ledger.reconciler.interval, 0.1))
    finally:
        unsubscribe()


@cli.command()
@click.option(
    "--interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between refreshes (defaults to LEDGER_REFRESH_INTERVAL)",
)
@click.option(
    "--ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after N refreshes",
)
@click.pass_obj
def watch(
    settings: LedgerSettings, interval: Optional[float], ticks: Optional[int]
) -> None:
    """Poll the store and print totals after each refresh."""
    if interval is not None:
        settings = settings.model_copy(update={"refresh_interval": interval})
    ledger = build_ledger(settings)
    try:
        _run(lambda: _watch(ledger, ticks))
    except KeyboardInterrupt:
        click.echo("Stopped")


if __name__ == "__main__":
    cli()
