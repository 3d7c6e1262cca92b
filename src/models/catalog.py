# src/models/catalog.py

"""Backing-store records read by the discovery engine.

These mirror the relational collections the engine consumes.  Every
nullable column is ``X | None`` where ``None`` means *absent*, which is
what the per-field coalescing defaults key on.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

# {"monday": {"open": "09:00", "close": "17:00"}, ...}; loosely typed
# because it arrives as raw JSON from the backing store.
BusinessHours = Any


@dataclass
class MasterProduct:
    """Catalog-wide product definition (price lives in inventory)."""

    id: str
    name: str
    category: str = ""
    brand: str | None = None
    subcategory: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    images: list[str] | None = None
    age_restriction: int | None = None
    slug: str | None = None
    is_active: bool = True


@dataclass
class Store:
    """A vendor on the marketplace."""

    id: str
    name: str
    slug: str
    logo_url: str | None = None
    banner_url: str | None = None
    description: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    average_rating: float | None = None
    total_reviews: int | None = None
    is_active: bool = True
    is_featured: bool = False


@dataclass
class StoreLocation:
    """A physical location of a store."""

    id: str
    store_id: str
    name: str
    address_line1: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    business_hours: BusinessHours = None
    is_delivery_available: bool | None = None
    is_pickup_available: bool | None = None
    is_primary: bool = False
    is_active: bool = True


@dataclass
class InventoryRecord:
    """A store's stock of one product: the only home of price."""

    id: str
    product_id: str
    store_id: str
    price: float
    quantity: int
    store_location_id: str | None = None
    compare_at_price: float | None = None
    is_available: bool = True


@dataclass
class InventoryRow:
    """An inventory record with whichever joins the collaborator supplied."""

    record: InventoryRecord
    store: Store | None = None
    location: StoreLocation | None = None
    product: MasterProduct | None = None

    @property
    def is_offerable(self) -> bool:
        """Available, in stock, and not sold by an inactive store.

        A row whose store join came back empty stays offerable.
        """
        return (
            self.record.is_available
            and self.record.quantity > 0
            and (self.store is None or self.store.is_active)
        )


@dataclass
class DeliverySettings:
    """Per-store delivery policy; any field may be unconfigured."""

    store_id: str
    is_delivery_enabled: bool | None = None
    is_pickup_enabled: bool | None = None
    base_delivery_fee: float | None = None
    minimum_order_amount: float | None = None
    free_delivery_threshold: float | None = None
    delivery_radius_miles: float | None = None
    estimated_delivery_time: str | None = None
    estimated_pickup_time: str | None = None


@dataclass
class Coupon:
    """A store-scoped, time-windowed discount."""

    id: str
    store_id: str
    code: str
    type: str  # "percentage" or "fixed"
    value: float
    description: str | None = None
    minimum_order_amount: float | None = None
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass
class ProductCategory:
    """A taxonomy entry used for browse navigation."""

    id: str
    name: str
    slug: str
    description: str | None = None
    image_url: str | None = None
    parent_id: str | None = None
    sort_order: int = 0
