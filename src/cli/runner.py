# src/cli/runner.py

"""Headless CLI commands over the marketplace service."""

import json
import logging
import sqlite3
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.models.listing import (
    CategoryWithCount,
    LocationAvailability,
    NearbyStore,
    ProductWithPrices,
    SearchSuggestion,
)
from src.models.search_params import ProductSearchParams, StoreSearchParams
from src.services.marketplace import MarketplaceService

logger = logging.getLogger("marketplace.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def _emit_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _emit(items: list[Any], output_format: str, render_table) -> int:
    """Write *items* as JSON or a table; exit code 1 when empty."""
    if not items:
        _err.print("[yellow]No results found.[/yellow]")
        return 1
    if output_format == "table":
        render_table(items)
    else:
        _emit_json([asdict(item) for item in items])
    return 0


# ── Tables ───────────────────────────────────────────────

def _print_stores(stores: list[NearbyStore]) -> None:
    table = Table(title="Nearby Stores", show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Store", style="bold")
    table.add_column("Distance", justify="right", style="green")
    table.add_column("Rating", justify="center")
    table.add_column("Open", justify="center")
    table.add_column("City")
    table.add_column("Delivery", justify="right")

    for idx, s in enumerate(stores, 1):
        delivery = (
            f"${s.delivery_info.delivery_fee:.2f}"
            if s.delivery_info.is_delivery_available
            else "pickup only"
        )
        table.add_row(
            str(idx),
            s.name,
            f"{s.distance_miles:.2f} mi",
            f"{s.rating:.1f}" if s.rating else "-",
            "[green]yes[/green]" if s.is_open else "[red]no[/red]",
            s.address.city,
            delivery,
        )
    Console().print(table)


def _print_products(products: list[ProductWithPrices]) -> None:
    table = Table(title="Products", show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Product", max_width=50)
    table.add_column("Brand", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Stores", justify="right")
    table.add_column("Relevance", justify="right", style="dim")

    for idx, p in enumerate(products, 1):
        table.add_row(
            str(idx),
            p.name[:50],
            p.brand or "-",
            p.price_range_text,
            str(len(p.prices)),
            f"{p.relevance:.3f}" if p.relevance is not None else "-",
        )
    Console().print(table)


def _print_offers(product: ProductWithPrices) -> None:
    table = Table(
        title=f"{product.name} ({product.price_range_text})",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Store", style="bold")
    table.add_column("Location")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Qty", justify="right")
    table.add_column("Delivery", justify="right")
    table.add_column("Coupons", style="magenta")

    for offer in product.prices:
        table.add_row(
            offer.store_name,
            offer.location_name,
            f"${offer.price:.2f}",
            str(offer.quantity),
            f"${offer.delivery_fee:.2f}",
            ", ".join(c.code for c in offer.coupons) or "-",
        )
    Console().print(table)


def _print_suggestions(suggestions: list[SearchSuggestion]) -> None:
    table = Table(title="Suggestions", title_style="bold cyan")
    table.add_column("Suggestion", style="bold")
    table.add_column("Type", style="magenta")
    table.add_column("Count", justify="right")
    for s in suggestions:
        table.add_row(s.suggestion, s.type, str(s.count))
    Console().print(table)


def _print_categories(categories: list[CategoryWithCount]) -> None:
    table = Table(title="Categories", title_style="bold cyan")
    table.add_column("Category", style="bold")
    table.add_column("Slug", style="dim")
    table.add_column("Products", justify="right")
    for c in categories:
        table.add_row(c.name, c.slug, str(c.count))
    Console().print(table)


def _print_locations(locations: list[LocationAvailability]) -> None:
    table = Table(title="Stock Locations", show_lines=True, title_style="bold cyan")
    table.add_column("Location", style="bold")
    table.add_column("City")
    table.add_column("Distance", justify="right", style="green")
    table.add_column("Price", justify="right")
    table.add_column("Qty", justify="right")
    table.add_column("Delivery", justify="center")
    table.add_column("Pickup", justify="center")

    for loc in locations:
        table.add_row(
            loc.location_name,
            loc.address.city,
            f"{loc.distance_miles:.2f} mi"
            if loc.distance_miles is not None else "-",
            f"${loc.price:.2f}",
            str(loc.quantity),
            "[green]yes[/green]"
            if loc.is_delivery_available and loc.is_within_delivery_range
            else "[red]no[/red]",
            "[green]yes[/green]" if loc.is_pickup_available
            else "[red]no[/red]",
        )
    Console().print(table)


# ── Commands ─────────────────────────────────────────────

async def cli_nearby(
    service: MarketplaceService,
    params: StoreSearchParams,
    output_format: str,
) -> int:
    _err.print(
        f"[bold]Stores within {params.radius_miles:g} mi[/bold] "
        f"[dim]of ({params.latitude}, {params.longitude})[/dim]"
    )
    stores = await service.nearby_stores(params)
    return _emit(stores, output_format, _print_stores)


async def cli_store(
    service: MarketplaceService,
    slug: str,
    latitude: float | None,
    longitude: float | None,
    output_format: str,
) -> int:
    details = await service.store_details(slug, latitude, longitude)
    if details is None:
        _err.print(f"[yellow]Store not found: {slug}[/yellow]")
        return 1
    if output_format == "table":
        _print_stores([details])
    else:
        _emit_json(asdict(details))
    return 0


async def cli_search(
    service: MarketplaceService,
    params: ProductSearchParams,
    output_format: str,
) -> int:
    _err.print(f"[bold]Searching:[/bold] {params.query or '(all)'}")
    products = await service.search_products(params)
    if products:
        _err.print(f"[green]✓ {len(products)} products[/green]")
    return _emit(products, output_format, _print_products)


async def cli_suggest(
    service: MarketplaceService,
    query: str,
    limit: int,
    output_format: str,
) -> int:
    suggestions = await service.search_suggestions(query, limit)
    return _emit(suggestions, output_format, _print_suggestions)


async def cli_product(
    service: MarketplaceService,
    id_or_slug: str,
    latitude: float | None,
    longitude: float | None,
    output_format: str,
) -> int:
    product = await service.product_detail(id_or_slug, latitude, longitude)
    if product is None:
        _err.print(f"[yellow]Product not found: {id_or_slug}[/yellow]")
        return 1
    if output_format == "table":
        _print_offers(product)
    else:
        _emit_json(asdict(product))
    return 0


async def cli_catalog(
    service: MarketplaceService,
    store_id: str,
    category: str | None,
    search: str | None,
    page: int,
    limit: int,
    output_format: str,
) -> int:
    products = await service.store_catalog(
        store_id, category, search, page, limit,
    )
    return _emit(products, output_format, _print_products)


async def cli_featured(
    service: MarketplaceService,
    limit: int,
    output_format: str,
) -> int:
    products = await service.featured_products(limit)
    return _emit(products, output_format, _print_products)


async def cli_categories(
    service: MarketplaceService,
    output_format: str,
) -> int:
    categories = await service.categories()
    return _emit(categories, output_format, _print_categories)


async def cli_locations(
    service: MarketplaceService,
    store_id: str,
    product_id: str,
    latitude: float | None,
    longitude: float | None,
    nearest: bool,
    fulfillment_type: str,
    output_format: str,
) -> int:
    if not nearest:
        locations = await service.product_locations(
            store_id, product_id, latitude, longitude,
        )
        return _emit(locations, output_format, _print_locations)

    location = await service.nearest_stocked_location(
        store_id, product_id, latitude, longitude, fulfillment_type,
    )
    if location is None:
        _err.print(
            f"[yellow]No location can fulfil {fulfillment_type} "
            f"for {product_id}[/yellow]"
        )
        return 1
    if output_format == "table":
        Console().print(
            f"[bold]{location.location_name}[/bold] "
            f"[dim]{location.address.city}, qty {location.quantity}[/dim]"
        )
    else:
        _emit_json(asdict(location))
    return 0


def run_load_fixture(path: str, db_path: str | None = None) -> int:
    """Import a JSON fixture into the local SQLite catalog."""
    from src.storage.sqlite_repository import SqliteMarketplaceRepository

    fixture = Path(path)
    if not fixture.exists():
        _err.print(f"[red]Fixture not found: {fixture}[/red]")
        return 1

    target = Path(db_path) if db_path else Settings.CATALOG_DB_PATH
    repository = SqliteMarketplaceRepository(target)
    try:
        count = repository.import_fixture_file(fixture)
    except (ValueError, sqlite3.Error) as exc:
        logger.error("Fixture import failed: %s", exc, exc_info=True)
        _err.print(f"[red]Fixture import failed: {exc}[/red]")
        return 1

    _err.print(f"[green]✓ Imported {count:,} rows into {target}[/green]")
    return 0
