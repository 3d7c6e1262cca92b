# src/models/listing.py

"""Shopper-facing records computed per request and never persisted."""

from dataclasses import dataclass, field

from src.models.catalog import BusinessHours


@dataclass
class StoreAddress:
    """Flattened street address of a store location."""

    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


@dataclass
class DeliveryInfo:
    """Resolved delivery summary shown on a store card."""

    minimum_order: float
    delivery_fee: float
    estimated_time: str
    is_delivery_available: bool


@dataclass
class NearbyStore:
    """A store within the search radius, at its nearest location."""

    id: str
    name: str
    slug: str
    logo_url: str | None
    thumbnail_url: str | None
    distance_miles: float
    rating: float
    review_count: int
    is_open: bool
    location_id: str
    location_name: str
    address: StoreAddress
    delivery_info: DeliveryInfo


@dataclass
class StoreDetails(NearbyStore):
    """Full storefront view of a single store."""

    description: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    banner_url: str | None = None
    hours: BusinessHours = None
    is_featured: bool = False


@dataclass
class StoreCoupon:
    """An eligible coupon attached to an offer."""

    id: str
    code: str
    type: str
    value: float
    description: str | None = None
    minimum_order_amount: float | None = None


@dataclass
class StorePrice:
    """One store's fully enriched offer on one product."""

    inventory_id: str
    store_id: str
    store_name: str
    store_slug: str
    store_logo: str | None
    store_rating: float
    store_review_count: int
    location_id: str
    location_name: str
    distance_miles: float
    price: float
    original_price: float | None
    in_stock: bool
    quantity: int
    delivery_fee: float
    free_delivery_threshold: float | None
    minimum_order_amount: float
    estimated_delivery: str
    estimated_pickup: str
    is_delivery_available: bool
    is_pickup_available: bool
    coupons: list[StoreCoupon] = field(
        default_factory=lambda: list[StoreCoupon]()
    )


@dataclass
class ProductWithPrices:
    """A product plus every store offering it, cheapest first.

    ``relevance`` is only set on fuzzy-search results; the substring
    fallback and direct lookups leave it ``None``.
    """

    id: str
    name: str
    brand: str | None
    category: str
    subcategory: str | None
    thumbnail_url: str | None
    images: list[str] | None
    description: str | None
    age_restriction: int | None
    slug: str | None
    prices: list[StorePrice]
    lowest_price: float
    highest_price: float
    price_range_text: str
    relevance: float | None = None


@dataclass
class SearchSuggestion:
    """An autocomplete entry."""

    suggestion: str
    type: str  # "product" or "brand"
    count: int


@dataclass
class CategoryWithCount:
    """A browse category with its active product count."""

    id: str
    name: str
    slug: str
    description: str | None
    image_url: str | None
    parent_id: str | None
    count: int
    sort_order: int


@dataclass
class NearestLocation:
    """The location of one store that would fulfil an order for a product."""

    location_id: str
    location_name: str
    inventory_id: str
    distance_miles: float | None
    quantity: int
    address: StoreAddress


@dataclass
class LocationAvailability(NearestLocation):
    """One stocked location of a store, as shown on a product page."""

    price: float
    is_delivery_available: bool
    is_pickup_available: bool
    is_within_delivery_range: bool
