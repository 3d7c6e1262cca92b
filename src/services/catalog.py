# src/services/catalog.py

"""Direct catalog lookups: product detail, store catalog, featured
products, browse categories and per-store stock locations."""

import asyncio
import logging
import re

from src.config.settings import Settings
from src.models.catalog import MasterProduct
from src.models.listing import (
    CategoryWithCount,
    LocationAvailability,
    NearestLocation,
    ProductWithPrices,
)
from src.services.coupons import CouponResolver
from src.services.delivery import DeliverySettingsResolver
from src.services.fail_soft import attempt
from src.services.price_aggregator import (
    DETAIL_PROFILE,
    LISTING_PROFILE,
    aggregate_product,
    build_store_price,
    group_by_product,
)
from src.storage.repository import FULFILLMENT_TYPES, MarketplaceRepository
from src.utils.geo import distance_to
from src.utils.pagination import paginate

logger = logging.getLogger("marketplace.catalog")

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def looks_like_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def _matches_search(product: MasterProduct, needle: str) -> bool:
    return any(
        needle in (text or "").lower()
        for text in (product.name, product.brand, product.description)
    )


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class CatalogService:
    """Product and store lookups that bypass the search pipeline."""

    def __init__(
        self,
        repository: MarketplaceRepository,
        delivery: DeliverySettingsResolver | None = None,
        coupons: CouponResolver | None = None,
    ) -> None:
        self._repository = repository
        self._delivery = delivery or DeliverySettingsResolver(repository)
        self._coupons = coupons or CouponResolver(repository)

    # ── Product detail ───────────────────────────────────

    async def get_product(
        self,
        id_or_slug: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> ProductWithPrices | None:
        """Fully enriched product with every store's offer.

        UUID-shaped keys are looked up by id, anything else by slug.
        Returns ``None`` for an unknown product or one with no offers.
        """
        lookup = (
            self._repository.fetch_product_by_id(id_or_slug)
            if looks_like_uuid(id_or_slug)
            else self._repository.fetch_product_by_slug(id_or_slug)
        )
        product_out = await attempt("Product lookup", lookup, None, logger)
        product = product_out.value
        if product is None:
            return None

        inventory = await attempt(
            "Product inventory lookup",
            self._repository.fetch_product_inventory(product.id),
            [],
            logger,
        )
        rows = group_by_product(inventory.value).get(product.id, [])
        if not rows:
            return None

        store_ids = [r.record.store_id for r in rows]
        settings, coupons = await asyncio.gather(
            self._delivery.resolve(store_ids),
            self._coupons.resolve(store_ids),
        )

        prices = [
            build_store_price(
                row,
                settings.get(row.record.store_id),
                DETAIL_PROFILE,
                distance_to(
                    latitude,
                    longitude,
                    row.location.latitude if row.location else None,
                    row.location.longitude if row.location else None,
                ),
                coupons.get(row.record.store_id, []),
            )
            for row in rows
        ]
        return aggregate_product(product, prices)

    # ── Store catalog ────────────────────────────────────

    async def get_store_products(
        self,
        store_id: str,
        category: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = Settings.DEFAULT_PAGE_SIZE,
    ) -> list[ProductWithPrices]:
        """Products one store currently offers, cheapest offer first."""
        inventory = await attempt(
            "Store inventory lookup",
            self._repository.fetch_store_inventory(store_id),
            [],
            logger,
        )
        grouped = group_by_product(inventory.value)
        if not grouped:
            return []

        settings = await self._delivery.resolve_one(store_id)
        category_key = category.lower() if category else None
        needle = search.lower() if search else None

        results: list[ProductWithPrices] = []
        for rows in grouped.values():
            product = rows[0].product
            if product is None or not product.is_active:
                continue
            if category_key and product.category.lower() != category_key:
                continue
            if needle and not _matches_search(product, needle):
                continue
            aggregated = aggregate_product(product, [
                build_store_price(row, settings, LISTING_PROFILE)
                for row in rows
            ])
            if aggregated is not None:
                results.append(aggregated)

        return paginate(results, page, limit)

    # ── Featured products ────────────────────────────────

    async def get_featured_products(
        self, limit: int = Settings.FEATURED_LIMIT,
    ) -> list[ProductWithPrices]:
        """Cheapest in-stock products drawn from the active catalog."""
        products_out = await attempt(
            "Featured product lookup",
            self._repository.list_active_products(
                Settings.FEATURED_CANDIDATE_LIMIT,
            ),
            [],
            logger,
        )
        products = {p.id: p for p in products_out.value}
        if not products:
            return []

        inventory = await attempt(
            "Featured inventory lookup",
            self._repository.fetch_inventory(list(products)),
            [],
            logger,
        )
        grouped = group_by_product(inventory.value)
        settings = await self._delivery.resolve(
            [r.record.store_id for rows in grouped.values() for r in rows]
        )

        results: list[ProductWithPrices] = []
        for product_id, rows in grouped.items():
            product = products.get(product_id)
            if product is None:
                continue
            aggregated = aggregate_product(product, [
                build_store_price(
                    row, settings.get(row.record.store_id), LISTING_PROFILE,
                )
                for row in rows
            ])
            if aggregated is not None:
                results.append(aggregated)

        results.sort(key=lambda p: p.lowest_price)
        return results[:max(limit, 0)]

    # ── Categories ───────────────────────────────────────

    async def get_categories_with_counts(self) -> list[CategoryWithCount]:
        """Browse categories with active product counts.

        Falls back to the configured default categories (count 0) when
        the category table is unavailable or empty.
        """
        categories_out, names_out = await asyncio.gather(
            attempt(
                "Category lookup",
                self._repository.list_categories(),
                [],
                logger,
            ),
            attempt(
                "Category count lookup",
                self._repository.list_product_category_names(),
                [],
                logger,
            ),
        )
        if not categories_out.value:
            return [
                CategoryWithCount(
                    id=entry["id"],
                    name=entry["name"],
                    slug=entry["id"],
                    description=None,
                    image_url=None,
                    parent_id=None,
                    count=0,
                    sort_order=index,
                )
                for index, entry in enumerate(Settings.DEFAULT_CATEGORIES)
            ]

        counts: dict[str, int] = {}
        for name in names_out.value:
            key = name.lower()
            counts[key] = counts.get(key, 0) + 1

        return [
            CategoryWithCount(
                id=category.id,
                name=category.name,
                slug=category.slug or _slugify(category.name),
                description=category.description,
                image_url=category.image_url,
                parent_id=category.parent_id,
                count=counts.get(category.name.lower(), 0),
                sort_order=category.sort_order,
            )
            for category in sorted(
                categories_out.value, key=lambda c: c.sort_order,
            )
        ]

    # ── Stock locations ──────────────────────────────────

    async def get_nearest_location_with_stock(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None = None,
        longitude: float | None = None,
        fulfillment_type: str = "delivery",
    ) -> NearestLocation | None:
        """The store location that would fulfil an order for a product.

        Returns ``None`` when no location qualifies or the lookup fails.
        """
        if fulfillment_type not in FULFILLMENT_TYPES:
            raise ValueError(f"Unknown fulfillment type: {fulfillment_type}")
        outcome = await attempt(
            "Nearest stocked location lookup",
            self._repository.get_nearest_location_with_stock(
                store_id, product_id, latitude, longitude, fulfillment_type,
            ),
            None,
            logger,
        )
        return outcome.value

    async def get_available_locations(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> list[LocationAvailability]:
        outcome = await attempt(
            "Stocked locations lookup",
            self._repository.get_available_locations_for_product(
                store_id, product_id, latitude, longitude,
            ),
            [],
            logger,
        )
        return outcome.value
