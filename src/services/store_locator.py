# src/services/store_locator.py

"""Finds stores near a shopper and builds single-store detail views."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from src.config.settings import Settings
from src.models.catalog import DeliverySettings, Store, StoreLocation
from src.models.listing import (
    DeliveryInfo,
    NearbyStore,
    StoreAddress,
    StoreDetails,
)
from src.models.search_params import StoreSearchParams
from src.services.delivery import (
    DeliverySettingsResolver,
    coalesce,
    effective_delivery,
)
from src.services.fail_soft import QueryOutcome, attempt
from src.storage.repository import MarketplaceRepository, NearbyStoreRow
from src.utils.geo import distance_to
from src.utils.pagination import paginate
from src.utils.store_hours import is_store_open

logger = logging.getLogger("marketplace.locator")


def _address(location: StoreLocation | None) -> StoreAddress:
    if location is None:
        return StoreAddress()
    return StoreAddress(
        street=location.address_line1 or "",
        city=location.city or "",
        state=location.state or "",
        zip=location.zip_code or "",
    )


def _delivery_info(
    settings: DeliverySettings | None,
    location: StoreLocation | None,
) -> DeliveryInfo:
    policy = effective_delivery(settings)
    return DeliveryInfo(
        minimum_order=policy.minimum_order_amount,
        delivery_fee=policy.delivery_fee,
        estimated_time=policy.estimated_delivery_time,
        is_delivery_available=coalesce(
            location.is_delivery_available if location else None,
            settings.is_delivery_enabled if settings else None,
            True,
        ),
    )


class StoreLocator:
    """Geo-proximity store discovery over a repository."""

    def __init__(
        self,
        repository: MarketplaceRepository,
        delivery: DeliverySettingsResolver | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._repository = repository
        self._delivery = delivery or DeliverySettingsResolver(repository)
        self._now = now

    # ── Geo rows ─────────────────────────────────────────

    async def _geo_rows(
        self, latitude: float, longitude: float, radius_miles: float,
    ) -> QueryOutcome[list[NearbyStoreRow]]:
        return await attempt(
            "Nearby store lookup",
            self._repository.nearby_stores(latitude, longitude, radius_miles),
            [],
            logger,
        )

    async def nearby_distances(
        self, latitude: float, longitude: float, radius_miles: float,
    ) -> QueryOutcome[dict[str, float]]:
        """Map each store within the radius to its nearest distance."""
        outcome = await self._geo_rows(latitude, longitude, radius_miles)
        distances: dict[str, float] = {}
        for row in outcome.value:
            current = distances.get(row.store_id)
            if current is None or row.distance_miles < current:
                distances[row.store_id] = row.distance_miles
        return QueryOutcome(value=distances, error=outcome.error)

    # ── Nearby stores ────────────────────────────────────

    async def find_nearby(
        self, params: StoreSearchParams,
    ) -> list[NearbyStore]:
        """Stores within the radius, one card per geo row.

        Any collaborator failure along the way yields ``[]``.
        """
        geo = await self._geo_rows(
            params.latitude, params.longitude, params.radius_miles,
        )
        if geo.failed or not geo.value:
            return []
        rows = geo.value

        store_ids = list(dict.fromkeys(r.store_id for r in rows))
        location_ids = list(dict.fromkeys(r.location_id for r in rows))

        stores_out, locations_out, settings = await asyncio.gather(
            attempt(
                "Store metadata lookup",
                self._repository.fetch_stores(store_ids),
                [],
                logger,
            ),
            attempt(
                "Store location lookup",
                self._repository.fetch_locations(location_ids),
                [],
                logger,
            ),
            self._delivery.resolve(store_ids),
        )
        if stores_out.failed or locations_out.failed:
            return []

        stores: dict[str, Store] = {s.id: s for s in stores_out.value}
        locations: dict[str, StoreLocation] = {
            loc.id: loc for loc in locations_out.value
        }
        now = self._now()

        results: list[NearbyStore] = []
        for row in rows:
            store = stores.get(row.store_id)
            location = locations.get(row.location_id)
            if store is not None and not store.is_active:
                continue
            if location is not None and not location.is_active:
                continue
            results.append(
                self._nearby_store(row, store, location, settings, now)
            )

        if params.search:
            needle = params.search.lower()
            results = [
                s for s in results
                if needle in s.name.lower()
                or needle in s.address.city.lower()
            ]

        if params.sort_by == "rating":
            results.sort(key=lambda s: s.rating, reverse=True)
        else:
            results.sort(key=lambda s: s.distance_miles)

        return paginate(results, params.page, params.limit)

    @staticmethod
    def _nearby_store(
        row: NearbyStoreRow,
        store: Store | None,
        location: StoreLocation | None,
        settings: dict[str, DeliverySettings],
        now: datetime,
    ) -> NearbyStore:
        return NearbyStore(
            id=row.store_id,
            name=store.name if store and store.name else row.store_name,
            slug=store.slug if store and store.slug else row.store_id,
            logo_url=store.logo_url if store else None,
            thumbnail_url=store.banner_url if store else None,
            distance_miles=round(row.distance_miles, 2),
            rating=float(store.average_rating or 0) if store else 0.0,
            review_count=int(store.total_reviews or 0) if store else 0,
            is_open=is_store_open(
                location.business_hours if location else None, now,
            ),
            location_id=row.location_id,
            location_name=(
                location.name if location and location.name
                else row.location_name
            ),
            address=_address(location),
            delivery_info=_delivery_info(
                settings.get(row.store_id), location,
            ),
        )

    # ── Store details ────────────────────────────────────

    async def get_store_details(
        self,
        slug: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> StoreDetails | None:
        """Storefront view of an active store, or ``None``."""
        store_out = await attempt(
            "Store lookup",
            self._repository.fetch_store_by_slug(slug),
            None,
            logger,
        )
        store = store_out.value
        if store is None:
            return None

        location_out, settings = await asyncio.gather(
            attempt(
                "Primary location lookup",
                self._repository.fetch_primary_location(store.id),
                None,
                logger,
            ),
            self._delivery.resolve_one(store.id),
        )
        location = location_out.value
        hours = location.business_hours if location else None

        return StoreDetails(
            id=store.id,
            name=store.name,
            slug=store.slug,
            logo_url=store.logo_url,
            thumbnail_url=store.banner_url,
            distance_miles=distance_to(
                latitude,
                longitude,
                location.latitude if location else None,
                location.longitude if location else None,
            ),
            rating=float(store.average_rating or 0),
            review_count=int(store.total_reviews or 0),
            is_open=is_store_open(hours, self._now()),
            location_id=location.id if location else "",
            location_name=(
                location.name if location and location.name
                else Settings.MAIN_LOCATION_NAME
            ),
            address=_address(location),
            delivery_info=_delivery_info(settings, location),
            description=store.description,
            email=store.email,
            phone=store.phone,
            website=store.website,
            banner_url=store.banner_url,
            hours=hours,
            is_featured=store.is_featured,
        )
