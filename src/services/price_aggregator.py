# src/services/price_aggregator.py

"""Builds per-store offers and folds them into a priced product.

Which optional enrichments an offer carries depends on the call path
and is fixed by an :class:`EnrichmentProfile`:

* ``LISTING_PROFILE`` (search, featured products, store catalog) reports
  rating and review count as 0, the location as the ``"Main Location"``
  sentinel with an empty id, and no coupons.
* ``DETAIL_PROFILE`` (single-product detail) carries the store rating,
  the resolved location and the eligible coupons.

Field precedence when building an offer:

* fee, minimum order, free threshold, estimated times: store settings,
  else the default policy;
* delivery / pickup availability: location flag, else store setting,
  else ``True``;
* store name: store, else ``"Unknown Store"``; slug: store, else id;
* location id: joined location, else the record's location id, else ``""``.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from src.config.settings import Settings
from src.models.catalog import DeliverySettings, InventoryRow, MasterProduct
from src.models.listing import ProductWithPrices, StoreCoupon, StorePrice
from src.services.delivery import coalesce, effective_delivery


@dataclass(frozen=True)
class EnrichmentProfile:
    """Which optional offer fields a call path populates."""

    include_rating: bool
    include_location: bool
    include_coupons: bool


LISTING_PROFILE = EnrichmentProfile(
    include_rating=False,
    include_location=False,
    include_coupons=False,
)
DETAIL_PROFILE = EnrichmentProfile(
    include_rating=True,
    include_location=True,
    include_coupons=True,
)


def format_price_range(lowest: float, highest: float) -> str:
    """``"$12.00"`` for a single price, ``"$9.99 - $14.50"`` otherwise."""
    if lowest == highest:
        return f"${lowest:.2f}"
    return f"${lowest:.2f} - ${highest:.2f}"


def build_store_price(
    row: InventoryRow,
    delivery: DeliverySettings | None,
    profile: EnrichmentProfile = LISTING_PROFILE,
    distance_miles: float = 0.0,
    coupons: list[StoreCoupon] | None = None,
) -> StorePrice:
    """Enrich one inventory row into a shopper-facing offer."""
    record = row.record
    store = row.store
    location = row.location
    policy = effective_delivery(delivery)

    location_delivery = location.is_delivery_available if location else None
    location_pickup = location.is_pickup_available if location else None
    settings_delivery = delivery.is_delivery_enabled if delivery else None
    settings_pickup = delivery.is_pickup_enabled if delivery else None

    rating = 0.0
    review_count = 0
    if profile.include_rating and store is not None:
        rating = float(store.average_rating or 0)
        review_count = int(store.total_reviews or 0)

    if profile.include_location:
        location_id = coalesce(
            location.id if location else None,
            record.store_location_id,
            "",
        )
        location_name = (
            location.name if location and location.name
            else Settings.MAIN_LOCATION_NAME
        )
    else:
        location_id = ""
        location_name = Settings.MAIN_LOCATION_NAME

    return StorePrice(
        inventory_id=record.id,
        store_id=record.store_id,
        store_name=(
            store.name if store and store.name
            else Settings.UNKNOWN_STORE_NAME
        ),
        store_slug=store.slug if store and store.slug else record.store_id,
        store_logo=store.logo_url if store else None,
        store_rating=rating,
        store_review_count=review_count,
        location_id=location_id,
        location_name=location_name,
        distance_miles=round(distance_miles, 2),
        price=record.price,
        original_price=record.compare_at_price,
        in_stock=record.quantity > 0,
        quantity=record.quantity,
        delivery_fee=policy.delivery_fee,
        free_delivery_threshold=policy.free_delivery_threshold,
        minimum_order_amount=policy.minimum_order_amount,
        estimated_delivery=policy.estimated_delivery_time,
        estimated_pickup=policy.estimated_pickup_time,
        is_delivery_available=coalesce(
            location_delivery, settings_delivery, True,
        ),
        is_pickup_available=coalesce(
            location_pickup, settings_pickup, True,
        ),
        coupons=list(coupons or []) if profile.include_coupons else [],
    )


def aggregate_product(
    product: MasterProduct,
    prices: Iterable[StorePrice],
    relevance: float | None = None,
) -> ProductWithPrices | None:
    """Fold offers into a product, cheapest first.

    Returns ``None`` when there are no offers so that a product nobody
    can sell never reaches a listing.
    """
    ordered = sorted(prices, key=lambda p: p.price)
    if not ordered:
        return None
    lowest = ordered[0].price
    highest = ordered[-1].price
    return ProductWithPrices(
        id=product.id,
        name=product.name,
        brand=product.brand,
        category=product.category,
        subcategory=product.subcategory,
        thumbnail_url=product.thumbnail_url,
        images=product.images,
        description=product.description,
        age_restriction=product.age_restriction,
        slug=product.slug,
        prices=ordered,
        lowest_price=lowest,
        highest_price=highest,
        price_range_text=format_price_range(lowest, highest),
        relevance=relevance,
    )


def group_by_product(
    rows: Iterable[InventoryRow],
) -> dict[str, list[InventoryRow]]:
    """Bucket offerable rows by product id; other rows are dropped."""
    grouped: dict[str, list[InventoryRow]] = {}
    for row in rows:
        if not row.is_offerable:
            continue
        grouped.setdefault(row.record.product_id, []).append(row)
    return grouped


def nearest_offer_distance(product: ProductWithPrices) -> float:
    return min(p.distance_miles for p in product.prices)


def sort_products(
    products: list[ProductWithPrices], sort_by: str,
) -> list[ProductWithPrices]:
    """Order products by ``price``, ``distance`` or ``relevance``.

    Products without a relevance score (the substring path) sort by
    ascending lowest price when ``relevance`` is requested.
    """
    if sort_by == "price":
        return sorted(products, key=lambda p: p.lowest_price)
    if sort_by == "distance":
        return sorted(products, key=nearest_offer_distance)
    if all(p.relevance is not None for p in products):
        return sorted(
            products, key=lambda p: p.relevance or 0.0, reverse=True,
        )
    return sorted(products, key=lambda p: p.lowest_price)
