# src/storage/supabase_repository.py

"""Supabase (PostgREST) marketplace repository.

Relational reads go through the table API; the geospatial, fuzzy-match
and suggestion collaborators are the ``get_nearby_stores``,
``fuzzy_search_products`` and ``get_search_suggestions`` database
functions called over RPC.  The client is synchronous, so every call is
pushed onto a worker thread.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any

from supabase import Client, create_client

from src.config.settings import Settings
from src.models.catalog import (
    Coupon,
    DeliverySettings,
    InventoryRecord,
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
    StoreAddress,
)
from src.models.search_params import FuzzyQuery
from src.storage.repository import (
    CatalogQueryError,
    FuzzyMatchRow,
    MarketplaceRepository,
    NearbyStoreRow,
    parse_timestamp,
)

logger = logging.getLogger("marketplace.storage")

_PRODUCT_SELECT = (
    "id, name, brand, category, subcategory, thumbnail_url, images, "
    "description, age_restriction, slug, is_active"
)
_STORE_SELECT = (
    "id, name, slug, logo_url, banner_url, description, email, phone, "
    "website, average_rating, total_reviews, is_active, is_featured"
)
_LOCATION_SELECT = (
    "id, store_id, name, address_line1, city, state, zip_code, "
    "latitude, longitude, business_hours, is_delivery_available, "
    "is_pickup_available, is_primary, is_active"
)
_INVENTORY_SELECT = (
    "id, product_id, store_id, store_location_id, price, "
    "compare_at_price, quantity, is_available"
)

# Characters that would break a PostgREST ``or=(...)`` filter
_FILTER_UNSAFE_RE = re.compile(r"[,()%*]")


def _product_from_dict(d: dict[str, Any]) -> MasterProduct:
    images = d.get("images")
    return MasterProduct(
        id=str(d["id"]),
        name=d.get("name") or "",
        brand=d.get("brand"),
        category=d.get("category") or "",
        subcategory=d.get("subcategory"),
        description=d.get("description"),
        thumbnail_url=d.get("thumbnail_url"),
        images=images if isinstance(images, list) else None,
        age_restriction=d.get("age_restriction"),
        slug=d.get("slug"),
        is_active=d.get("is_active", True) is not False,
    )


def _store_from_dict(d: dict[str, Any] | None) -> Store | None:
    if not d:
        return None
    return Store(
        id=str(d["id"]),
        name=d.get("name") or "",
        slug=d.get("slug") or "",
        logo_url=d.get("logo_url"),
        banner_url=d.get("banner_url"),
        description=d.get("description"),
        email=d.get("email"),
        phone=d.get("phone"),
        website=d.get("website"),
        average_rating=d.get("average_rating"),
        total_reviews=d.get("total_reviews"),
        is_active=d.get("is_active", True) is not False,
        is_featured=bool(d.get("is_featured", False)),
    )


def _location_from_dict(d: dict[str, Any] | None) -> StoreLocation | None:
    if not d:
        return None
    return StoreLocation(
        id=str(d["id"]),
        store_id=str(d.get("store_id", "")),
        name=d.get("name") or "",
        address_line1=d.get("address_line1"),
        city=d.get("city"),
        state=d.get("state"),
        zip_code=d.get("zip_code"),
        latitude=d.get("latitude"),
        longitude=d.get("longitude"),
        business_hours=d.get("business_hours"),
        is_delivery_available=d.get("is_delivery_available"),
        is_pickup_available=d.get("is_pickup_available"),
        is_primary=bool(d.get("is_primary", False)),
        is_active=d.get("is_active", True) is not False,
    )


def _inventory_from_dict(d: dict[str, Any]) -> InventoryRow:
    record = InventoryRecord(
        id=str(d["id"]),
        product_id=str(d.get("product_id", "")),
        store_id=str(d.get("store_id", "")),
        store_location_id=d.get("store_location_id"),
        price=float(d["price"]),
        compare_at_price=d.get("compare_at_price"),
        quantity=int(d.get("quantity") or 0),
        is_available=bool(d.get("is_available", False)),
    )
    product = d.get("product")
    return InventoryRow(
        record=record,
        store=_store_from_dict(d.get("store")),
        location=_location_from_dict(d.get("location")),
        product=_product_from_dict(product) if product else None,
    )


def _stock_address(d: dict[str, Any]) -> StoreAddress:
    return StoreAddress(
        street=d.get("address_line1") or "",
        city=d.get("city") or "",
        state=d.get("state") or "",
        zip=d.get("zip_code") or "",
    )


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _utc_stamp(moment: datetime) -> str:
    """Render a timestamp PostgREST parses without URL-escaping '+'."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SupabaseMarketplaceRepository(MarketplaceRepository):
    """Marketplace collaborators served by a Supabase project."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls) -> "SupabaseMarketplaceRepository":
        """Create a client from ``SUPABASE_URL`` / ``SUPABASE_KEY``."""
        if not Settings.SUPABASE_URL or not Settings.SUPABASE_KEY:
            raise CatalogQueryError(
                "SUPABASE_URL and SUPABASE_KEY must be set"
            )
        client = create_client(Settings.SUPABASE_URL, Settings.SUPABASE_KEY)
        return cls(client)

    @staticmethod
    def _rows(response: Any, label: str) -> list[dict[str, Any]]:
        """Unwrap a PostgREST response, raising on an error payload."""
        error = getattr(response, "error", None)
        if error:
            raise CatalogQueryError(f"{label}: {error}")
        data = getattr(response, "data", None)
        return list(data) if data else []

    async def _execute(self, builder: Any, label: str) -> list[dict[str, Any]]:
        response = await asyncio.to_thread(builder.execute)
        return self._rows(response, label)

    async def _rpc(
        self, function: str, params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        return await self._execute(
            self._client.rpc(function, params), f"rpc {function}",
        )

    # ── Geospatial / text-match capabilities ────────────

    async def nearby_stores(
        self, latitude: float, longitude: float, radius_miles: float,
    ) -> list[NearbyStoreRow]:
        rows = await self._rpc("get_nearby_stores", {
            "p_lat": latitude,
            "p_lng": longitude,
            "p_radius_miles": radius_miles,
        })
        return [
            NearbyStoreRow(
                store_id=str(r["store_id"]),
                store_name=r.get("store_name") or "",
                location_id=str(r["location_id"]),
                location_name=r.get("location_name") or "",
                distance_miles=float(r["distance_miles"]),
            )
            for r in rows
        ]

    async def fuzzy_search_products(
        self, query: FuzzyQuery,
    ) -> list[FuzzyMatchRow]:
        rows = await self._rpc("fuzzy_search_products", {
            "p_query": query.query or None,
            "p_category": query.category or None,
            "p_brand": query.brand or None,
            "p_min_price": query.min_price,
            "p_max_price": query.max_price,
            "p_store_ids": query.store_ids,
            "p_limit": query.limit,
            "p_offset": query.offset,
            "p_similarity_threshold": query.similarity_threshold,
        })
        return [
            FuzzyMatchRow(
                product_id=str(r["product_id"]),
                product_name=r.get("product_name") or "",
                product_brand=r.get("product_brand"),
                product_category=r.get("product_category") or "",
                product_subcategory=r.get("product_subcategory"),
                thumbnail_url=r.get("thumbnail_url"),
                images=r.get("images"),
                description=r.get("description"),
                age_restriction=r.get("age_restriction"),
                slug=r.get("slug"),
                min_price=float(r.get("min_price") or 0),
                max_price=float(r.get("max_price") or 0),
                store_count=int(r.get("store_count") or 0),
                relevance_score=float(r.get("relevance_score") or 0),
            )
            for r in rows
        ]

    async def search_suggestions(
        self, query: str, limit: int,
    ) -> list[SearchSuggestion]:
        rows = await self._rpc("get_search_suggestions", {
            "p_query": query,
            "p_limit": limit,
        })
        return [
            SearchSuggestion(
                suggestion=r["suggestion"],
                type=r.get("suggestion_type") or "product",
                count=int(r.get("match_count") or 0),
            )
            for r in rows
        ]

    # ── Master catalog ───────────────────────────────────

    async def find_products_by_terms(
        self, terms: list[str], category: str | None, limit: int,
    ) -> list[MasterProduct]:
        builder = (
            self._client.table("master_products")
            .select(_PRODUCT_SELECT)
            .eq("is_active", True)
        )
        safe_terms = [
            t for t in (_FILTER_UNSAFE_RE.sub("", term) for term in terms)
            if t
        ]
        if safe_terms:
            builder = builder.or_(",".join(
                f"name.ilike.%{t}%,brand.ilike.%{t}%" for t in safe_terms
            ))
        if category:
            builder = builder.ilike("category", category)
        rows = await self._execute(
            builder.limit(limit), "find_products_by_terms",
        )
        return [_product_from_dict(r) for r in rows]

    async def _fetch_product(
        self, column: str, value: str,
    ) -> MasterProduct | None:
        rows = await self._execute(
            self._client.table("master_products")
            .select(_PRODUCT_SELECT)
            .eq("is_active", True)
            .eq(column, value)
            .limit(1),
            f"fetch_product_by_{column}",
        )
        return _product_from_dict(rows[0]) if rows else None

    async def fetch_product_by_id(
        self, product_id: str,
    ) -> MasterProduct | None:
        return await self._fetch_product("id", product_id)

    async def fetch_product_by_slug(
        self, slug: str,
    ) -> MasterProduct | None:
        return await self._fetch_product("slug", slug)

    async def list_active_products(
        self, limit: int,
    ) -> list[MasterProduct]:
        rows = await self._execute(
            self._client.table("master_products")
            .select(_PRODUCT_SELECT)
            .eq("is_active", True)
            .limit(limit),
            "list_active_products",
        )
        return [_product_from_dict(r) for r in rows]

    # ── Stores ───────────────────────────────────────────

    async def fetch_stores(self, store_ids: list[str]) -> list[Store]:
        if not store_ids:
            return []
        rows = await self._execute(
            self._client.table("stores")
            .select(_STORE_SELECT)
            .in_("id", store_ids),
            "fetch_stores",
        )
        return [s for s in (_store_from_dict(r) for r in rows) if s]

    async def fetch_store_by_slug(self, slug: str) -> Store | None:
        rows = await self._execute(
            self._client.table("stores")
            .select(_STORE_SELECT)
            .eq("slug", slug)
            .eq("is_active", True)
            .limit(1),
            "fetch_store_by_slug",
        )
        return _store_from_dict(rows[0]) if rows else None

    async def fetch_locations(
        self, location_ids: list[str],
    ) -> list[StoreLocation]:
        if not location_ids:
            return []
        rows = await self._execute(
            self._client.table("store_locations")
            .select(_LOCATION_SELECT)
            .in_("id", location_ids),
            "fetch_locations",
        )
        return [
            loc for loc in (_location_from_dict(r) for r in rows) if loc
        ]

    async def fetch_primary_location(
        self, store_id: str,
    ) -> StoreLocation | None:
        rows = await self._execute(
            self._client.table("store_locations")
            .select(_LOCATION_SELECT)
            .eq("store_id", store_id)
            .eq("is_primary", True)
            .limit(1),
            "fetch_primary_location",
        )
        return _location_from_dict(rows[0]) if rows else None

    # ── Inventory ────────────────────────────────────────

    async def fetch_inventory(
        self,
        product_ids: list[str],
        store_ids: list[str] | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
    ) -> list[InventoryRow]:
        if not product_ids or store_ids == []:
            return []
        builder = (
            self._client.table("store_inventories")
            .select(f"{_INVENTORY_SELECT}, store:stores({_STORE_SELECT})")
            .in_("product_id", product_ids)
            .eq("is_available", True)
            .gt("quantity", 0)
        )
        if store_ids is not None:
            builder = builder.in_("store_id", store_ids)
        if min_price is not None:
            builder = builder.gte("price", min_price)
        if max_price is not None:
            builder = builder.lte("price", max_price)
        rows = await self._execute(builder, "fetch_inventory")
        return [_inventory_from_dict(r) for r in rows]

    async def fetch_product_inventory(
        self, product_id: str,
    ) -> list[InventoryRow]:
        rows = await self._execute(
            self._client.table("store_inventories")
            .select(
                f"{_INVENTORY_SELECT}, "
                f"store:stores({_STORE_SELECT}), "
                f"location:store_locations({_LOCATION_SELECT})"
            )
            .eq("product_id", product_id)
            .eq("is_available", True),
            "fetch_product_inventory",
        )
        return [_inventory_from_dict(r) for r in rows]

    async def fetch_store_inventory(
        self, store_id: str,
    ) -> list[InventoryRow]:
        rows = await self._execute(
            self._client.table("store_inventories")
            .select(
                f"{_INVENTORY_SELECT}, "
                f"store:stores({_STORE_SELECT}), "
                f"product:master_products({_PRODUCT_SELECT})"
            )
            .eq("store_id", store_id)
            .eq("is_available", True),
            "fetch_store_inventory",
        )
        return [_inventory_from_dict(r) for r in rows]

    # ── Store policy ─────────────────────────────────────

    async def fetch_delivery_settings(
        self, store_ids: list[str],
    ) -> list[DeliverySettings]:
        if not store_ids:
            return []
        rows = await self._execute(
            self._client.table("store_delivery_settings")
            .select("*")
            .in_("store_id", store_ids),
            "fetch_delivery_settings",
        )
        return [
            DeliverySettings(
                store_id=str(r["store_id"]),
                is_delivery_enabled=r.get("is_delivery_enabled"),
                is_pickup_enabled=r.get("is_pickup_enabled"),
                base_delivery_fee=r.get("base_delivery_fee"),
                minimum_order_amount=r.get("minimum_order_amount"),
                free_delivery_threshold=r.get("free_delivery_threshold"),
                delivery_radius_miles=r.get("delivery_radius_miles"),
                estimated_delivery_time=r.get("estimated_delivery_time"),
                estimated_pickup_time=r.get("estimated_pickup_time"),
            )
            for r in rows
        ]

    async def fetch_active_coupons(
        self, store_ids: list[str], now: datetime,
    ) -> list[Coupon]:
        if not store_ids:
            return []
        stamp = _utc_stamp(now)
        rows = await self._execute(
            self._client.table("coupons")
            .select(
                "id, store_id, code, description, type, value, "
                "minimum_order_amount, is_active, start_date, end_date"
            )
            .in_("store_id", store_ids)
            .eq("is_active", True)
            .lte("start_date", stamp)
            .or_(f"end_date.is.null,end_date.gte.{stamp}"),
            "fetch_active_coupons",
        )
        return [
            Coupon(
                id=str(r["id"]),
                store_id=str(r["store_id"]),
                code=r.get("code") or "",
                type=r.get("type") or "fixed",
                value=float(r.get("value") or 0),
                description=r.get("description"),
                minimum_order_amount=r.get("minimum_order_amount"),
                is_active=r.get("is_active", True) is not False,
                start_date=parse_timestamp(r.get("start_date")),
                end_date=parse_timestamp(r.get("end_date")),
            )
            for r in rows
        ]

    # ── Taxonomy ─────────────────────────────────────────

    async def list_categories(self) -> list[ProductCategory]:
        rows = await self._execute(
            self._client.table("product_categories")
            .select(
                "id, name, slug, description, image_url, parent_id, "
                "sort_order"
            )
            .eq("is_active", True)
            .order("sort_order", desc=False),
            "list_categories",
        )
        return [
            ProductCategory(
                id=str(r["id"]),
                name=r.get("name") or "",
                slug=r.get("slug") or "",
                description=r.get("description"),
                image_url=r.get("image_url"),
                parent_id=r.get("parent_id"),
                sort_order=int(r.get("sort_order") or 0),
            )
            for r in rows
        ]

    async def list_product_category_names(self) -> list[str]:
        rows = await self._execute(
            self._client.table("master_products")
            .select("category")
            .eq("is_active", True),
            "list_product_category_names",
        )
        return [r["category"] for r in rows if r.get("category")]

    # ── Fulfilment ───────────────────────────────────────

    async def get_nearest_location_with_stock(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
        fulfillment_type: str,
    ) -> NearestLocation | None:
        rows = await self._rpc("get_nearest_location_with_stock", {
            "p_store_id": store_id,
            "p_product_id": product_id,
            "p_customer_lat": latitude,
            "p_customer_lng": longitude,
            "p_fulfillment_type": fulfillment_type,
        })
        if not rows:
            return None
        r = rows[0]
        return NearestLocation(
            location_id=str(r["location_id"]),
            location_name=r.get("location_name") or "",
            inventory_id=str(r["inventory_id"]),
            distance_miles=_optional_float(r.get("distance_miles")),
            quantity=int(r.get("quantity") or 0),
            address=_stock_address(r),
        )

    async def get_available_locations_for_product(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
    ) -> list[LocationAvailability]:
        rows = await self._rpc("get_available_locations_for_product", {
            "p_store_id": store_id,
            "p_product_id": product_id,
            "p_customer_lat": latitude,
            "p_customer_lng": longitude,
        })
        return [
            LocationAvailability(
                location_id=str(r["location_id"]),
                location_name=r.get("location_name") or "",
                inventory_id=str(r["inventory_id"]),
                distance_miles=_optional_float(r.get("distance_miles")),
                quantity=int(r.get("quantity") or 0),
                address=_stock_address(r),
                price=float(r["price"]),
                is_delivery_available=bool(r.get("is_delivery_available")),
                is_pickup_available=bool(r.get("is_pickup_available")),
                is_within_delivery_range=bool(
                    r.get("is_within_delivery_range")
                ),
            )
            for r in rows
        ]
