# src/storage/repository.py

"""Abstract collaborator interface consumed by the discovery engine.

A repository wraps one backing store.  The engine receives it by
injection and never reaches for a global client.  Implementations may
raise on any failure; the engine converts every failure into an empty
result at the call site (see :mod:`src.services.fail_soft`).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from src.models.catalog import (
    Coupon,
    DeliverySettings,
    InventoryRow,
    MasterProduct,
    ProductCategory,
    Store,
    StoreLocation,
)
from src.models.listing import (
    LocationAvailability,
    NearestLocation,
    SearchSuggestion,
)
from src.models.search_params import FuzzyQuery

FULFILLMENT_TYPES: tuple[str, ...] = ("delivery", "pickup")


class CatalogQueryError(Exception):
    """Raised when a backing store returns a structured query error."""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(
            str(value).replace("Z", "+00:00")
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class NearbyStoreRow:
    """One active store location inside a radius."""

    store_id: str
    store_name: str
    location_id: str
    location_name: str
    distance_miles: float


@dataclass
class FuzzyMatchRow:
    """One product matched by the fuzzy-match collaborator."""

    product_id: str
    product_name: str
    product_brand: str | None
    product_category: str
    product_subcategory: str | None
    thumbnail_url: str | None
    images: list[str] | None
    description: str | None
    age_restriction: int | None
    slug: str | None
    min_price: float
    max_price: float
    store_count: int
    relevance_score: float

    def to_product(self) -> MasterProduct:
        """Rebuild the denormalised product fields as a MasterProduct."""
        return MasterProduct(
            id=self.product_id,
            name=self.product_name,
            brand=self.product_brand,
            category=self.product_category,
            subcategory=self.product_subcategory,
            thumbnail_url=self.thumbnail_url,
            images=self.images,
            description=self.description,
            age_restriction=self.age_restriction,
            slug=self.slug,
        )


class MarketplaceRepository(ABC):
    """Read-only access to the marketplace's backing collections."""

    # ── Geospatial / text-match capabilities ────────────

    @abstractmethod
    async def nearby_stores(
        self,
        latitude: float,
        longitude: float,
        radius_miles: float,
    ) -> list[NearbyStoreRow]:
        """Active store locations within *radius_miles* of a point."""

    @abstractmethod
    async def fuzzy_search_products(
        self, query: FuzzyQuery,
    ) -> list[FuzzyMatchRow]:
        """Products whose similarity to the query meets the threshold."""

    @abstractmethod
    async def search_suggestions(
        self, query: str, limit: int,
    ) -> list[SearchSuggestion]:
        """Product-name and brand completions for *query*."""

    # ── Master catalog ───────────────────────────────────

    @abstractmethod
    async def find_products_by_terms(
        self,
        terms: list[str],
        category: str | None,
        limit: int,
    ) -> list[MasterProduct]:
        """Active products whose name or brand contains any term.

        Matching is case-insensitive; an empty *terms* list applies no
        text filter.  *category* matches case-insensitively.
        """

    @abstractmethod
    async def fetch_product_by_id(
        self, product_id: str,
    ) -> MasterProduct | None:
        """An active product by id."""

    @abstractmethod
    async def fetch_product_by_slug(
        self, slug: str,
    ) -> MasterProduct | None:
        """An active product by slug."""

    @abstractmethod
    async def list_active_products(
        self, limit: int,
    ) -> list[MasterProduct]:
        """Up to *limit* active products."""

    # ── Stores ───────────────────────────────────────────

    @abstractmethod
    async def fetch_stores(
        self, store_ids: list[str],
    ) -> list[Store]:
        """Stores by id, active or not."""

    @abstractmethod
    async def fetch_store_by_slug(self, slug: str) -> Store | None:
        """An active store by slug."""

    @abstractmethod
    async def fetch_locations(
        self, location_ids: list[str],
    ) -> list[StoreLocation]:
        """Locations by id, active or not."""

    @abstractmethod
    async def fetch_primary_location(
        self, store_id: str,
    ) -> StoreLocation | None:
        """The primary location of a store."""

    # ── Inventory ────────────────────────────────────────

    @abstractmethod
    async def fetch_inventory(
        self,
        product_ids: list[str],
        store_ids: list[str] | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
    ) -> list[InventoryRow]:
        """Available, in-stock inventory for products, store joined."""

    @abstractmethod
    async def fetch_product_inventory(
        self, product_id: str,
    ) -> list[InventoryRow]:
        """Available inventory for one product, store and location joined."""

    @abstractmethod
    async def fetch_store_inventory(
        self, store_id: str,
    ) -> list[InventoryRow]:
        """Available inventory of one store, store and product joined."""

    # ── Store policy ─────────────────────────────────────

    @abstractmethod
    async def fetch_delivery_settings(
        self, store_ids: list[str],
    ) -> list[DeliverySettings]:
        """Configured delivery settings rows for the given stores."""

    @abstractmethod
    async def fetch_active_coupons(
        self, store_ids: list[str], now: datetime,
    ) -> list[Coupon]:
        """Active coupons whose date window contains *now*."""

    # ── Taxonomy ─────────────────────────────────────────

    @abstractmethod
    async def list_categories(self) -> list[ProductCategory]:
        """Active categories ordered by ``sort_order``."""

    @abstractmethod
    async def list_product_category_names(self) -> list[str]:
        """The category name of every active product."""

    # ── Fulfilment ───────────────────────────────────────

    @abstractmethod
    async def get_nearest_location_with_stock(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
        fulfillment_type: str,
    ) -> NearestLocation | None:
        """The closest active location of a store holding the product.

        For ``delivery`` the location must offer delivery and the caller
        must be inside the store's delivery radius; for ``pickup`` it
        must offer pickup.  Without caller coordinates the primary
        location wins.
        """

    @abstractmethod
    async def get_available_locations_for_product(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
    ) -> list[LocationAvailability]:
        """Active locations of a store holding the product, nearest first."""
