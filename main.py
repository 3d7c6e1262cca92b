# main.py

"""Entry point for the marketplace discovery command-line tool."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings

logger = logging.getLogger("marketplace.main")


def _add_format(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )


def _add_location(
    parser: argparse.ArgumentParser, required: bool = False,
) -> None:
    parser.add_argument(
        "--lat", type=float, default=None, required=required,
        dest="latitude", help="Caller latitude in degrees.",
    )
    parser.add_argument(
        "--lng", type=float, default=None, required=required,
        dest="longitude", help="Caller longitude in degrees.",
    )


def _add_paging(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument(
        "--limit", type=int, default=Settings.DEFAULT_PAGE_SIZE,
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="marketplace",
        description="Multi-vendor marketplace discovery and price comparison.",
    )
    parser.add_argument(
        "--backend",
        choices=["sqlite", "supabase"],
        default=None,
        help=f"Catalog backend (default: {Settings.CATALOG_BACKEND}).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    nearby = sub.add_parser("nearby", help="Stores near a location.")
    _add_location(nearby, required=True)
    nearby.add_argument(
        "-r", "--radius", type=float,
        default=Settings.DEFAULT_STORE_RADIUS_MILES,
        help="Search radius in miles.",
    )
    nearby.add_argument(
        "-q", "--search", default=None,
        help="Filter by store name or city.",
    )
    nearby.add_argument(
        "--sort", choices=["distance", "rating"], default="distance",
    )
    _add_paging(nearby)
    _add_format(nearby)

    store = sub.add_parser("store", help="Details of one store by slug.")
    store.add_argument("slug")
    _add_location(store)
    _add_format(store)

    search = sub.add_parser("search", help="Fuzzy product search.")
    search.add_argument("query", nargs="?", default=None)
    search.add_argument("-c", "--category", default=None)
    search.add_argument("--min-price", type=float, default=None)
    search.add_argument("--max-price", type=float, default=None)
    _add_location(search)
    search.add_argument(
        "-r", "--radius", type=float,
        default=Settings.DEFAULT_SEARCH_RADIUS_MILES,
    )
    search.add_argument(
        "--sort", choices=["relevance", "price", "distance"],
        default="relevance",
    )
    _add_paging(search)
    _add_format(search)

    suggest = sub.add_parser("suggest", help="Autocomplete suggestions.")
    suggest.add_argument("query")
    suggest.add_argument(
        "--limit", type=int, default=Settings.SUGGESTION_LIMIT,
    )
    _add_format(suggest)

    product = sub.add_parser("product", help="Product detail by id or slug.")
    product.add_argument("id_or_slug")
    _add_location(product)
    _add_format(product)

    catalog = sub.add_parser("catalog", help="Products offered by a store.")
    catalog.add_argument("store_id")
    catalog.add_argument("-c", "--category", default=None)
    catalog.add_argument("-q", "--search", default=None)
    _add_paging(catalog)
    _add_format(catalog)

    featured = sub.add_parser("featured", help="Featured products.")
    featured.add_argument(
        "--limit", type=int, default=Settings.FEATURED_LIMIT,
    )
    _add_format(featured)

    locations = sub.add_parser(
        "locations", help="Store locations holding a product.",
    )
    locations.add_argument("store_id")
    locations.add_argument("product_id")
    _add_location(locations)
    locations.add_argument(
        "--nearest", action="store_true",
        help="Only the location that would fulfil an order.",
    )
    locations.add_argument(
        "--fulfillment", choices=["delivery", "pickup"], default="delivery",
    )
    _add_format(locations)

    categories = sub.add_parser(
        "categories", help="Browse categories with product counts.",
    )
    _add_format(categories)

    load = sub.add_parser(
        "load-fixture", help="Import a JSON fixture into the SQLite catalog.",
    )
    load.add_argument("path")
    load.add_argument("--db", default=None, help="Target database file.")

    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected subcommand against a configured service."""
    from src.cli import runner
    from src.models.search_params import (
        ProductSearchParams,
        StoreSearchParams,
    )
    from src.services.marketplace import MarketplaceService

    service = MarketplaceService.from_settings(args.backend)
    fmt = args.output_format

    if args.command == "nearby":
        return await runner.cli_nearby(service, StoreSearchParams(
            latitude=args.latitude,
            longitude=args.longitude,
            radius_miles=args.radius,
            search=args.search,
            sort_by=args.sort,
            page=args.page,
            limit=args.limit,
        ), fmt)
    if args.command == "store":
        return await runner.cli_store(
            service, args.slug, args.latitude, args.longitude, fmt,
        )
    if args.command == "search":
        return await runner.cli_search(service, ProductSearchParams(
            query=args.query,
            category=args.category,
            min_price=args.min_price,
            max_price=args.max_price,
            latitude=args.latitude,
            longitude=args.longitude,
            radius_miles=args.radius,
            sort_by=args.sort,
            page=args.page,
            limit=args.limit,
        ), fmt)
    if args.command == "suggest":
        return await runner.cli_suggest(service, args.query, args.limit, fmt)
    if args.command == "product":
        return await runner.cli_product(
            service, args.id_or_slug, args.latitude, args.longitude, fmt,
        )
    if args.command == "catalog":
        return await runner.cli_catalog(
            service, args.store_id, args.category, args.search,
            args.page, args.limit, fmt,
        )
    if args.command == "featured":
        return await runner.cli_featured(service, args.limit, fmt)
    if args.command == "locations":
        return await runner.cli_locations(
            service, args.store_id, args.product_id,
            args.latitude, args.longitude,
            args.nearest, args.fulfillment, fmt,
        )
    return await runner.cli_categories(service, fmt)


def main() -> None:
    """Parse arguments and run one subcommand."""
    log_file = setup_logging()
    logger.info("marketplace starting, log file: %s", log_file)

    args = _build_parser().parse_args()

    if args.command == "load-fixture":
        from src.cli.runner import run_load_fixture

        sys.exit(run_load_fixture(args.path, args.db))

    try:
        exit_code = asyncio.run(_dispatch(args))
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
