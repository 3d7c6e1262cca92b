# src/services/marketplace.py

"""Single entry point wiring every discovery component to one repository."""

import logging

from src.config.settings import Settings
from src.models.listing import (
    CategoryWithCount,
    LocationAvailability,
    NearbyStore,
    NearestLocation,
    ProductWithPrices,
    SearchSuggestion,
    StoreDetails,
)
from src.models.search_params import ProductSearchParams, StoreSearchParams
from src.services.catalog import CatalogService
from src.services.coupons import CouponResolver
from src.services.delivery import DeliverySettingsResolver
from src.services.fail_soft import attempt
from src.services.product_search import ProductSearchEngine
from src.services.store_locator import StoreLocator
from src.storage.repository import MarketplaceRepository

logger = logging.getLogger("marketplace.service")


def build_repository(backend: str | None = None) -> MarketplaceRepository:
    """Instantiate the repository named by *backend* (or settings)."""
    name = (backend or Settings.CATALOG_BACKEND).lower()
    if name == "sqlite":
        from src.storage.sqlite_repository import SqliteMarketplaceRepository
        return SqliteMarketplaceRepository(Settings.CATALOG_DB_PATH)
    if name == "supabase":
        from src.storage.supabase_repository import (
            SupabaseMarketplaceRepository,
        )
        return SupabaseMarketplaceRepository.from_settings()
    raise ValueError(f"Unknown catalog backend: {name}")


class MarketplaceService:
    """Discovery and price-aggregation facade.

    No public method raises: failures are logged and surface as ``[]``
    or ``None``.
    """

    def __init__(self, repository: MarketplaceRepository) -> None:
        self.repository = repository
        self.delivery = DeliverySettingsResolver(repository)
        self.coupons = CouponResolver(repository)
        self.locator = StoreLocator(repository, self.delivery)
        self.search = ProductSearchEngine(
            repository, self.locator, self.delivery,
        )
        self.catalog = CatalogService(
            repository, self.delivery, self.coupons,
        )

    @classmethod
    def from_settings(
        cls, backend: str | None = None,
    ) -> "MarketplaceService":
        return cls(build_repository(backend))

    # ── Stores ───────────────────────────────────────────

    async def nearby_stores(
        self, params: StoreSearchParams,
    ) -> list[NearbyStore]:
        outcome = await attempt(
            "nearby_stores", self.locator.find_nearby(params), [], logger,
        )
        return outcome.value

    async def store_details(
        self,
        slug: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> StoreDetails | None:
        outcome = await attempt(
            "store_details",
            self.locator.get_store_details(slug, latitude, longitude),
            None,
            logger,
        )
        return outcome.value

    async def store_catalog(
        self,
        store_id: str,
        category: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = Settings.DEFAULT_PAGE_SIZE,
    ) -> list[ProductWithPrices]:
        outcome = await attempt(
            "store_catalog",
            self.catalog.get_store_products(
                store_id, category, search, page, limit,
            ),
            [],
            logger,
        )
        return outcome.value

    # ── Products ─────────────────────────────────────────

    async def search_products(
        self, params: ProductSearchParams,
    ) -> list[ProductWithPrices]:
        outcome = await attempt(
            "search_products", self.search.search(params), [], logger,
        )
        return outcome.value

    async def search_suggestions(
        self, query: str, limit: int = Settings.SUGGESTION_LIMIT,
    ) -> list[SearchSuggestion]:
        outcome = await attempt(
            "search_suggestions",
            self.search.suggest(query, limit),
            [],
            logger,
        )
        return outcome.value

    async def product_detail(
        self,
        id_or_slug: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> ProductWithPrices | None:
        outcome = await attempt(
            "product_detail",
            self.catalog.get_product(id_or_slug, latitude, longitude),
            None,
            logger,
        )
        return outcome.value

    async def featured_products(
        self, limit: int = Settings.FEATURED_LIMIT,
    ) -> list[ProductWithPrices]:
        outcome = await attempt(
            "featured_products",
            self.catalog.get_featured_products(limit),
            [],
            logger,
        )
        return outcome.value

    async def nearest_stocked_location(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None = None,
        longitude: float | None = None,
        fulfillment_type: str = "delivery",
    ) -> NearestLocation | None:
        outcome = await attempt(
            "nearest_stocked_location",
            self.catalog.get_nearest_location_with_stock(
                store_id, product_id, latitude, longitude, fulfillment_type,
            ),
            None,
            logger,
        )
        return outcome.value

    async def product_locations(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> list[LocationAvailability]:
        outcome = await attempt(
            "product_locations",
            self.catalog.get_available_locations(
                store_id, product_id, latitude, longitude,
            ),
            [],
            logger,
        )
        return outcome.value

    async def categories(self) -> list[CategoryWithCount]:
        outcome = await attempt(
            "categories",
            self.catalog.get_categories_with_counts(),
            [],
            logger,
        )
        return outcome.value
