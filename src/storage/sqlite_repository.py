# src/storage/sqlite_repository.py

"""SQLite-backed marketplace repository.

Implements every collaborator the engine consumes against a local
SQLite file: relational reads, the geospatial nearest-store query (the
haversine distance is registered as a SQL function) and the fuzzy
product match (trigram scoring in :mod:`src.storage.trigram`).

Each call opens its own connection so concurrent ``asyncio.to_thread``
calls never share one.
"""

import asyncio
import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

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
from src.storage import trigram
from src.storage.repository import (
    FULFILLMENT_TYPES,
    FuzzyMatchRow,
    MarketplaceRepository,
    NearbyStoreRow,
    parse_timestamp,
)
from src.utils.geo import haversine_miles

logger = logging.getLogger("marketplace.storage")

_SUGGESTION_THRESHOLD = 0.2

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS master_products (
    id              TEXT PRIMARY KEY,
    name            TEXT    NOT NULL,
    brand           TEXT,
    category        TEXT    NOT NULL DEFAULT '',
    subcategory     TEXT,
    description     TEXT,
    thumbnail_url   TEXT,
    images          TEXT,
    age_restriction INTEGER,
    slug            TEXT UNIQUE,
    is_active       INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS stores (
    id             TEXT PRIMARY KEY,
    name           TEXT    NOT NULL,
    slug           TEXT    NOT NULL UNIQUE,
    logo_url       TEXT,
    banner_url     TEXT,
    description    TEXT,
    email          TEXT,
    phone          TEXT,
    website        TEXT,
    average_rating REAL,
    total_reviews  INTEGER,
    is_active      INTEGER NOT NULL DEFAULT 1,
    is_featured    INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS store_locations (
    id                    TEXT PRIMARY KEY,
    store_id              TEXT NOT NULL REFERENCES stores(id),
    name                  TEXT NOT NULL,
    address_line1         TEXT,
    city                  TEXT,
    state                 TEXT,
    zip_code              TEXT,
    latitude              REAL,
    longitude             REAL,
    business_hours        TEXT,
    is_delivery_available INTEGER,
    is_pickup_available   INTEGER,
    is_primary            INTEGER NOT NULL DEFAULT 0,
    is_active             INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS store_inventories (
    id                TEXT PRIMARY KEY,
    product_id        TEXT    NOT NULL REFERENCES master_products(id),
    store_id          TEXT    NOT NULL REFERENCES stores(id),
    store_location_id TEXT REFERENCES store_locations(id),
    price             REAL    NOT NULL,
    compare_at_price  REAL,
    quantity          INTEGER NOT NULL DEFAULT 0,
    is_available      INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS store_delivery_settings (
    store_id                TEXT PRIMARY KEY REFERENCES stores(id),
    is_delivery_enabled     INTEGER,
    is_pickup_enabled       INTEGER,
    base_delivery_fee       REAL,
    minimum_order_amount    REAL,
    free_delivery_threshold REAL,
    delivery_radius_miles   REAL,
    estimated_delivery_time TEXT,
    estimated_pickup_time   TEXT
);

CREATE TABLE IF NOT EXISTS coupons (
    id                   TEXT PRIMARY KEY,
    store_id             TEXT NOT NULL REFERENCES stores(id),
    code                 TEXT NOT NULL,
    description          TEXT,
    type                 TEXT NOT NULL,
    value                REAL NOT NULL,
    minimum_order_amount REAL,
    is_active            INTEGER NOT NULL DEFAULT 1,
    start_date           TEXT,
    end_date             TEXT
);

CREATE TABLE IF NOT EXISTS product_categories (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    slug        TEXT NOT NULL,
    description TEXT,
    image_url   TEXT,
    parent_id   TEXT,
    sort_order  INTEGER NOT NULL DEFAULT 0,
    is_active   INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_inventory_product
    ON store_inventories(product_id, is_available, quantity);
CREATE INDEX IF NOT EXISTS idx_inventory_store
    ON store_inventories(store_id);
CREATE INDEX IF NOT EXISTS idx_locations_store
    ON store_locations(store_id);
"""

_PRODUCT_COLS: tuple[str, ...] = (
    "id", "name", "brand", "category", "subcategory", "description",
    "thumbnail_url", "images", "age_restriction", "slug", "is_active",
)
_STORE_COLS: tuple[str, ...] = (
    "id", "name", "slug", "logo_url", "banner_url", "description",
    "email", "phone", "website", "average_rating", "total_reviews",
    "is_active", "is_featured",
)
_LOCATION_COLS: tuple[str, ...] = (
    "id", "store_id", "name", "address_line1", "city", "state",
    "zip_code", "latitude", "longitude", "business_hours",
    "is_delivery_available", "is_pickup_available", "is_primary",
    "is_active",
)
_INVENTORY_COLS: tuple[str, ...] = (
    "id", "product_id", "store_id", "store_location_id", "price",
    "compare_at_price", "quantity", "is_available",
)
_DELIVERY_COLS: tuple[str, ...] = (
    "store_id", "is_delivery_enabled", "is_pickup_enabled",
    "base_delivery_fee", "minimum_order_amount",
    "free_delivery_threshold", "delivery_radius_miles",
    "estimated_delivery_time", "estimated_pickup_time",
)
_COUPON_COLS: tuple[str, ...] = (
    "id", "store_id", "code", "description", "type", "value",
    "minimum_order_amount", "is_active", "start_date", "end_date",
)
_CATEGORY_COLS: tuple[str, ...] = (
    "id", "name", "slug", "description", "image_url", "parent_id",
    "sort_order", "is_active",
)

# Fixture import whitelist: table -> permitted columns
_TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "master_products": _PRODUCT_COLS,
    "stores": _STORE_COLS,
    "store_locations": _LOCATION_COLS,
    "store_inventories": _INVENTORY_COLS,
    "store_delivery_settings": _DELIVERY_COLS,
    "coupons": _COUPON_COLS,
    "product_categories": _CATEGORY_COLS,
}


# ── Row conversion helpers ───────────────────────────────


def _columns(alias: str, cols: tuple[str, ...], prefix: str) -> str:
    """Build ``alias.col AS prefixcol`` select lists for joins."""
    return ", ".join(f"{alias}.{c} AS {prefix}{c}" for c in cols)


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


def _opt_bool(value: Any) -> bool | None:
    return None if value is None else bool(value)


def _load_json(value: Any) -> Any:
    """Decode a JSON column, keeping undecodable text as-is."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _product_from_row(row: sqlite3.Row, prefix: str = "") -> MasterProduct:
    images = _load_json(row[f"{prefix}images"])
    return MasterProduct(
        id=row[f"{prefix}id"],
        name=row[f"{prefix}name"],
        brand=row[f"{prefix}brand"],
        category=row[f"{prefix}category"] or "",
        subcategory=row[f"{prefix}subcategory"],
        description=row[f"{prefix}description"],
        thumbnail_url=row[f"{prefix}thumbnail_url"],
        images=images if isinstance(images, list) else None,
        age_restriction=row[f"{prefix}age_restriction"],
        slug=row[f"{prefix}slug"],
        is_active=bool(row[f"{prefix}is_active"]),
    )


def _store_from_row(row: sqlite3.Row, prefix: str = "") -> Store | None:
    if row[f"{prefix}id"] is None:
        return None
    return Store(
        id=row[f"{prefix}id"],
        name=row[f"{prefix}name"],
        slug=row[f"{prefix}slug"],
        logo_url=row[f"{prefix}logo_url"],
        banner_url=row[f"{prefix}banner_url"],
        description=row[f"{prefix}description"],
        email=row[f"{prefix}email"],
        phone=row[f"{prefix}phone"],
        website=row[f"{prefix}website"],
        average_rating=row[f"{prefix}average_rating"],
        total_reviews=row[f"{prefix}total_reviews"],
        is_active=bool(row[f"{prefix}is_active"]),
        is_featured=bool(row[f"{prefix}is_featured"]),
    )


def _location_from_row(
    row: sqlite3.Row, prefix: str = "",
) -> StoreLocation | None:
    if row[f"{prefix}id"] is None:
        return None
    return StoreLocation(
        id=row[f"{prefix}id"],
        store_id=row[f"{prefix}store_id"],
        name=row[f"{prefix}name"],
        address_line1=row[f"{prefix}address_line1"],
        city=row[f"{prefix}city"],
        state=row[f"{prefix}state"],
        zip_code=row[f"{prefix}zip_code"],
        latitude=row[f"{prefix}latitude"],
        longitude=row[f"{prefix}longitude"],
        business_hours=_load_json(row[f"{prefix}business_hours"]),
        is_delivery_available=_opt_bool(
            row[f"{prefix}is_delivery_available"]
        ),
        is_pickup_available=_opt_bool(
            row[f"{prefix}is_pickup_available"]
        ),
        is_primary=bool(row[f"{prefix}is_primary"]),
        is_active=bool(row[f"{prefix}is_active"]),
    )


def _inventory_from_row(
    row: sqlite3.Row, prefix: str = "",
) -> InventoryRecord:
    return InventoryRecord(
        id=row[f"{prefix}id"],
        product_id=row[f"{prefix}product_id"],
        store_id=row[f"{prefix}store_id"],
        store_location_id=row[f"{prefix}store_location_id"],
        price=float(row[f"{prefix}price"]),
        compare_at_price=row[f"{prefix}compare_at_price"],
        quantity=int(row[f"{prefix}quantity"]),
        is_available=bool(row[f"{prefix}is_available"]),
    )


def _sql_haversine(
    lat1: float | None,
    lon1: float | None,
    lat2: float | None,
    lon2: float | None,
) -> float | None:
    """SQL wrapper: NULL coordinates give a NULL distance."""
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None
    return haversine_miles(lat1, lon1, lat2, lon2)


def _to_sql_value(value: Any) -> Any:
    """Encode a fixture value for SQLite storage."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SqliteMarketplaceRepository(MarketplaceRepository):
    """Marketplace collaborators served from a local SQLite file."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or Settings.CATALOG_DB_PATH
        logger.debug("SqliteMarketplaceRepository using %s", self._db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a short-lived connection with the SQL helpers registered."""
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        conn.create_function(
            "haversine_miles", 4, _sql_haversine, deterministic=True,
        )
        try:
            yield conn
        finally:
            conn.close()

    def _query(
        self, sql: str, params: list[Any] | tuple[Any, ...] = (),
    ) -> list[sqlite3.Row]:
        with self._connect() as conn:
            return conn.execute(sql, list(params)).fetchall()

    # ── Schema & fixtures ────────────────────────────────

    def initialise_schema(self) -> None:
        """Create every table and index if missing."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    def import_fixture(self, data: dict[str, list[dict[str, Any]]]) -> int:
        """Insert fixture rows keyed by table name.

        Unknown tables and columns are rejected.  Returns the number of
        rows written.
        """
        self.initialise_schema()
        count = 0
        with self._connect() as conn:
            for table, rows in data.items():
                allowed = _TABLE_COLUMNS.get(table)
                if allowed is None:
                    raise ValueError(f"Unknown fixture table: {table}")
                for row in rows:
                    unknown = set(row) - set(allowed)
                    if unknown:
                        raise ValueError(
                            f"Unknown columns for {table}: "
                            f"{', '.join(sorted(unknown))}"
                        )
                    cols = list(row)
                    conn.execute(
                        f"INSERT OR REPLACE INTO {table} "
                        f"({', '.join(cols)}) "
                        f"VALUES ({_placeholders(cols)})",
                        [_to_sql_value(row[c]) for c in cols],
                    )
                    count += 1
            conn.commit()
        logger.info(
            "Imported %d fixture rows into %s", count, self._db_path,
        )
        return count

    def import_fixture_file(self, path: Path) -> int:
        """Load a JSON fixture file and import it."""
        with open(path, encoding="utf-8") as f:
            data: dict[str, list[dict[str, Any]]] = json.load(f)
        return self.import_fixture(data)

    # ── Geospatial / text-match capabilities ────────────

    def _nearby_stores(
        self, latitude: float, longitude: float, radius_miles: float,
    ) -> list[NearbyStoreRow]:
        rows = self._query(
            "SELECT * FROM ("
            "  SELECT s.id AS store_id, s.name AS store_name, "
            "         l.id AS location_id, l.name AS location_name, "
            "         haversine_miles(?, ?, l.latitude, l.longitude) "
            "           AS distance_miles "
            "  FROM store_locations l "
            "  JOIN stores s ON s.id = l.store_id "
            "  WHERE s.is_active = 1 AND l.is_active = 1 "
            "    AND l.latitude IS NOT NULL "
            "    AND l.longitude IS NOT NULL"
            ") WHERE distance_miles <= ? "
            "ORDER BY distance_miles ASC",
            (latitude, longitude, radius_miles),
        )
        return [
            NearbyStoreRow(
                store_id=r["store_id"],
                store_name=r["store_name"],
                location_id=r["location_id"],
                location_name=r["location_name"],
                distance_miles=float(r["distance_miles"]),
            )
            for r in rows
        ]

    async def nearby_stores(
        self, latitude: float, longitude: float, radius_miles: float,
    ) -> list[NearbyStoreRow]:
        return await asyncio.to_thread(
            self._nearby_stores, latitude, longitude, radius_miles,
        )

    def _fuzzy_search_products(
        self, query: FuzzyQuery,
    ) -> list[FuzzyMatchRow]:
        clauses = [
            "p.is_active = 1",
            "s.is_active = 1",
            "i.is_available = 1",
            "i.quantity > 0",
        ]
        params: list[Any] = []
        if query.category:
            clauses.append("lower(p.category) = lower(?)")
            params.append(query.category)
        if query.brand:
            clauses.append("lower(p.brand) = lower(?)")
            params.append(query.brand)
        if query.min_price is not None:
            clauses.append("i.price >= ?")
            params.append(query.min_price)
        if query.max_price is not None:
            clauses.append("i.price <= ?")
            params.append(query.max_price)
        if query.store_ids is not None:
            if not query.store_ids:
                return []
            clauses.append(
                f"i.store_id IN ({_placeholders(query.store_ids)})"
            )
            params.extend(query.store_ids)

        rows = self._query(
            f"SELECT {_columns('p', _PRODUCT_COLS, '')}, "
            "       MIN(i.price) AS min_price, "
            "       MAX(i.price) AS max_price, "
            "       COUNT(DISTINCT i.store_id) AS store_count "
            "FROM master_products p "
            "JOIN store_inventories i ON i.product_id = p.id "
            "JOIN stores s ON s.id = i.store_id "
            f"WHERE {' AND '.join(clauses)} "
            "GROUP BY p.id",
            params,
        )

        text = (query.query or "").strip()
        scored: list[tuple[float, sqlite3.Row]] = []
        for r in rows:
            if not text:
                scored.append((0.0, r))
                continue
            score = trigram.relevance(text, r["name"], r["brand"])
            if score >= query.similarity_threshold:
                scored.append((score, r))

        scored.sort(key=lambda item: (-item[0], item[1]["name"]))
        window = scored[query.offset:query.offset + query.limit]

        results: list[FuzzyMatchRow] = []
        for score, r in window:
            product = _product_from_row(r)
            results.append(FuzzyMatchRow(
                product_id=product.id,
                product_name=product.name,
                product_brand=product.brand,
                product_category=product.category,
                product_subcategory=product.subcategory,
                thumbnail_url=product.thumbnail_url,
                images=product.images,
                description=product.description,
                age_restriction=product.age_restriction,
                slug=product.slug,
                min_price=float(r["min_price"]),
                max_price=float(r["max_price"]),
                store_count=int(r["store_count"]),
                relevance_score=score,
            ))
        logger.debug(
            "Fuzzy match '%s' @%.2f -> %d rows",
            text,
            query.similarity_threshold,
            len(results),
        )
        return results

    async def fuzzy_search_products(
        self, query: FuzzyQuery,
    ) -> list[FuzzyMatchRow]:
        return await asyncio.to_thread(self._fuzzy_search_products, query)

    def _search_suggestions(
        self, query: str, limit: int,
    ) -> list[SearchSuggestion]:
        rows = self._query(
            "SELECT name, brand FROM master_products WHERE is_active = 1"
        )
        name_counts: dict[str, int] = {}
        brand_counts: dict[str, int] = {}
        for r in rows:
            name_counts[r["name"]] = name_counts.get(r["name"], 0) + 1
            if r["brand"]:
                brand_counts[r["brand"]] = (
                    brand_counts.get(r["brand"], 0) + 1
                )

        scored: list[tuple[float, SearchSuggestion]] = []
        for kind, counts in (("product", name_counts), ("brand", brand_counts)):
            for text, count in counts.items():
                score = trigram.relevance(query, text)
                if score >= _SUGGESTION_THRESHOLD:
                    scored.append((
                        score,
                        SearchSuggestion(
                            suggestion=text, type=kind, count=count,
                        ),
                    ))
        scored.sort(key=lambda item: (-item[0], -item[1].count))
        return [s for _, s in scored[:limit]]

    async def search_suggestions(
        self, query: str, limit: int,
    ) -> list[SearchSuggestion]:
        return await asyncio.to_thread(
            self._search_suggestions, query, limit,
        )

    # ── Master catalog ───────────────────────────────────

    def _find_products_by_terms(
        self, terms: list[str], category: str | None, limit: int,
    ) -> list[MasterProduct]:
        clauses = ["is_active = 1"]
        params: list[Any] = []
        if terms:
            ors: list[str] = []
            for term in terms:
                ors.append("instr(lower(name), ?) > 0")
                ors.append("instr(lower(coalesce(brand, '')), ?) > 0")
                params.extend([term.lower(), term.lower()])
            clauses.append(f"({' OR '.join(ors)})")
        if category:
            clauses.append("lower(category) = lower(?)")
            params.append(category)
        params.append(limit)
        rows = self._query(
            f"SELECT {', '.join(_PRODUCT_COLS)} FROM master_products "
            f"WHERE {' AND '.join(clauses)} LIMIT ?",
            params,
        )
        return [_product_from_row(r) for r in rows]

    async def find_products_by_terms(
        self, terms: list[str], category: str | None, limit: int,
    ) -> list[MasterProduct]:
        return await asyncio.to_thread(
            self._find_products_by_terms, terms, category, limit,
        )

    def _fetch_product(self, column: str, value: str) -> MasterProduct | None:
        rows = self._query(
            f"SELECT {', '.join(_PRODUCT_COLS)} FROM master_products "
            f"WHERE {column} = ? AND is_active = 1 LIMIT 1",
            (value,),
        )
        return _product_from_row(rows[0]) if rows else None

    async def fetch_product_by_id(
        self, product_id: str,
    ) -> MasterProduct | None:
        return await asyncio.to_thread(self._fetch_product, "id", product_id)

    async def fetch_product_by_slug(
        self, slug: str,
    ) -> MasterProduct | None:
        return await asyncio.to_thread(self._fetch_product, "slug", slug)

    def _list_active_products(self, limit: int) -> list[MasterProduct]:
        rows = self._query(
            f"SELECT {', '.join(_PRODUCT_COLS)} FROM master_products "
            "WHERE is_active = 1 ORDER BY name LIMIT ?",
            (limit,),
        )
        return [_product_from_row(r) for r in rows]

    async def list_active_products(
        self, limit: int,
    ) -> list[MasterProduct]:
        return await asyncio.to_thread(self._list_active_products, limit)

    # ── Stores ───────────────────────────────────────────

    def _fetch_stores(self, store_ids: list[str]) -> list[Store]:
        if not store_ids:
            return []
        rows = self._query(
            f"SELECT {', '.join(_STORE_COLS)} FROM stores "
            f"WHERE id IN ({_placeholders(store_ids)})",
            store_ids,
        )
        return [s for s in (_store_from_row(r) for r in rows) if s]

    async def fetch_stores(self, store_ids: list[str]) -> list[Store]:
        return await asyncio.to_thread(self._fetch_stores, store_ids)

    def _fetch_store_by_slug(self, slug: str) -> Store | None:
        rows = self._query(
            f"SELECT {', '.join(_STORE_COLS)} FROM stores "
            "WHERE slug = ? AND is_active = 1 LIMIT 1",
            (slug,),
        )
        return _store_from_row(rows[0]) if rows else None

    async def fetch_store_by_slug(self, slug: str) -> Store | None:
        return await asyncio.to_thread(self._fetch_store_by_slug, slug)

    def _fetch_locations(
        self, location_ids: list[str],
    ) -> list[StoreLocation]:
        if not location_ids:
            return []
        rows = self._query(
            f"SELECT {', '.join(_LOCATION_COLS)} FROM store_locations "
            f"WHERE id IN ({_placeholders(location_ids)})",
            location_ids,
        )
        return [
            loc for loc in (_location_from_row(r) for r in rows) if loc
        ]

    async def fetch_locations(
        self, location_ids: list[str],
    ) -> list[StoreLocation]:
        return await asyncio.to_thread(self._fetch_locations, location_ids)

    def _fetch_primary_location(
        self, store_id: str,
    ) -> StoreLocation | None:
        rows = self._query(
            f"SELECT {', '.join(_LOCATION_COLS)} FROM store_locations "
            "WHERE store_id = ? AND is_primary = 1 LIMIT 1",
            (store_id,),
        )
        return _location_from_row(rows[0]) if rows else None

    async def fetch_primary_location(
        self, store_id: str,
    ) -> StoreLocation | None:
        return await asyncio.to_thread(
            self._fetch_primary_location, store_id,
        )

    # ── Inventory ────────────────────────────────────────

    def _fetch_inventory(
        self,
        product_ids: list[str],
        store_ids: list[str] | None,
        min_price: float | None,
        max_price: float | None,
    ) -> list[InventoryRow]:
        if not product_ids or store_ids == []:
            return []
        clauses = [
            f"i.product_id IN ({_placeholders(product_ids)})",
            "i.is_available = 1",
            "i.quantity > 0",
        ]
        params: list[Any] = list(product_ids)
        if store_ids is not None:
            clauses.append(f"i.store_id IN ({_placeholders(store_ids)})")
            params.extend(store_ids)
        if min_price is not None:
            clauses.append("i.price >= ?")
            params.append(min_price)
        if max_price is not None:
            clauses.append("i.price <= ?")
            params.append(max_price)

        rows = self._query(
            f"SELECT {_columns('i', _INVENTORY_COLS, 'i_')}, "
            f"       {_columns('s', _STORE_COLS, 's_')} "
            "FROM store_inventories i "
            "LEFT JOIN stores s ON s.id = i.store_id "
            f"WHERE {' AND '.join(clauses)}",
            params,
        )
        return [
            InventoryRow(
                record=_inventory_from_row(r, "i_"),
                store=_store_from_row(r, "s_"),
            )
            for r in rows
        ]

    async def fetch_inventory(
        self,
        product_ids: list[str],
        store_ids: list[str] | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
    ) -> list[InventoryRow]:
        return await asyncio.to_thread(
            self._fetch_inventory,
            product_ids,
            store_ids,
            min_price,
            max_price,
        )

    def _fetch_product_inventory(
        self, product_id: str,
    ) -> list[InventoryRow]:
        rows = self._query(
            f"SELECT {_columns('i', _INVENTORY_COLS, 'i_')}, "
            f"       {_columns('s', _STORE_COLS, 's_')}, "
            f"       {_columns('l', _LOCATION_COLS, 'l_')} "
            "FROM store_inventories i "
            "LEFT JOIN stores s ON s.id = i.store_id "
            "LEFT JOIN store_locations l ON l.id = i.store_location_id "
            "WHERE i.product_id = ? AND i.is_available = 1",
            (product_id,),
        )
        return [
            InventoryRow(
                record=_inventory_from_row(r, "i_"),
                store=_store_from_row(r, "s_"),
                location=_location_from_row(r, "l_"),
            )
            for r in rows
        ]

    async def fetch_product_inventory(
        self, product_id: str,
    ) -> list[InventoryRow]:
        return await asyncio.to_thread(
            self._fetch_product_inventory, product_id,
        )

    def _fetch_store_inventory(self, store_id: str) -> list[InventoryRow]:
        rows = self._query(
            f"SELECT {_columns('i', _INVENTORY_COLS, 'i_')}, "
            f"       {_columns('s', _STORE_COLS, 's_')}, "
            f"       {_columns('p', _PRODUCT_COLS, 'p_')} "
            "FROM store_inventories i "
            "LEFT JOIN stores s ON s.id = i.store_id "
            "JOIN master_products p ON p.id = i.product_id "
            "WHERE i.store_id = ? AND i.is_available = 1 "
            "ORDER BY p.name",
            (store_id,),
        )
        return [
            InventoryRow(
                record=_inventory_from_row(r, "i_"),
                store=_store_from_row(r, "s_"),
                product=_product_from_row(r, "p_"),
            )
            for r in rows
        ]

    async def fetch_store_inventory(
        self, store_id: str,
    ) -> list[InventoryRow]:
        return await asyncio.to_thread(
            self._fetch_store_inventory, store_id,
        )

    # ── Store policy ─────────────────────────────────────

    def _fetch_delivery_settings(
        self, store_ids: list[str],
    ) -> list[DeliverySettings]:
        if not store_ids:
            return []
        rows = self._query(
            f"SELECT {', '.join(_DELIVERY_COLS)} "
            "FROM store_delivery_settings "
            f"WHERE store_id IN ({_placeholders(store_ids)})",
            store_ids,
        )
        return [
            DeliverySettings(
                store_id=r["store_id"],
                is_delivery_enabled=_opt_bool(r["is_delivery_enabled"]),
                is_pickup_enabled=_opt_bool(r["is_pickup_enabled"]),
                base_delivery_fee=r["base_delivery_fee"],
                minimum_order_amount=r["minimum_order_amount"],
                free_delivery_threshold=r["free_delivery_threshold"],
                delivery_radius_miles=r["delivery_radius_miles"],
                estimated_delivery_time=r["estimated_delivery_time"],
                estimated_pickup_time=r["estimated_pickup_time"],
            )
            for r in rows
        ]

    async def fetch_delivery_settings(
        self, store_ids: list[str],
    ) -> list[DeliverySettings]:
        return await asyncio.to_thread(
            self._fetch_delivery_settings, store_ids,
        )

    def _fetch_active_coupons(
        self, store_ids: list[str], now: datetime,
    ) -> list[Coupon]:
        if not store_ids:
            return []
        rows = self._query(
            f"SELECT {', '.join(_COUPON_COLS)} FROM coupons "
            f"WHERE store_id IN ({_placeholders(store_ids)}) "
            "AND is_active = 1",
            store_ids,
        )
        coupons: list[Coupon] = []
        for r in rows:
            start = parse_timestamp(r["start_date"])
            end = parse_timestamp(r["end_date"])
            # Timestamps are stored as text; the window check runs here
            if start is None or start > now:
                continue
            if end is not None and end < now:
                continue
            coupons.append(Coupon(
                id=r["id"],
                store_id=r["store_id"],
                code=r["code"],
                type=r["type"],
                value=float(r["value"]),
                description=r["description"],
                minimum_order_amount=r["minimum_order_amount"],
                is_active=bool(r["is_active"]),
                start_date=start,
                end_date=end,
            ))
        return coupons

    async def fetch_active_coupons(
        self, store_ids: list[str], now: datetime,
    ) -> list[Coupon]:
        return await asyncio.to_thread(
            self._fetch_active_coupons, store_ids, now,
        )

    # ── Taxonomy ─────────────────────────────────────────

    def _list_categories(self) -> list[ProductCategory]:
        rows = self._query(
            f"SELECT {', '.join(_CATEGORY_COLS)} FROM product_categories "
            "WHERE is_active = 1 ORDER BY sort_order ASC",
        )
        return [
            ProductCategory(
                id=r["id"],
                name=r["name"],
                slug=r["slug"],
                description=r["description"],
                image_url=r["image_url"],
                parent_id=r["parent_id"],
                sort_order=r["sort_order"] or 0,
            )
            for r in rows
        ]

    async def list_categories(self) -> list[ProductCategory]:
        return await asyncio.to_thread(self._list_categories)

    def _list_product_category_names(self) -> list[str]:
        rows = self._query(
            "SELECT category FROM master_products WHERE is_active = 1"
        )
        return [r["category"] for r in rows if r["category"]]

    async def list_product_category_names(self) -> list[str]:
        return await asyncio.to_thread(self._list_product_category_names)

    # ── Fulfilment ───────────────────────────────────────

    def _available_locations(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
    ) -> list[LocationAvailability]:
        rows = self._query(
            "SELECT i.id AS inventory_id, i.price, i.quantity, "
            "       l.id AS location_id, l.name AS location_name, "
            "       l.address_line1, l.city, l.state, l.zip_code, "
            "       COALESCE(l.is_delivery_available, "
            "                d.is_delivery_enabled, ?) AS delivers, "
            "       COALESCE(l.is_pickup_available, "
            "                d.is_pickup_enabled, ?) AS picks_up, "
            "       COALESCE(d.delivery_radius_miles, ?) AS radius, "
            "       haversine_miles(?, ?, l.latitude, l.longitude) "
            "         AS distance_miles "
            "FROM store_inventories i "
            "JOIN store_locations l ON l.id = i.store_location_id "
            "JOIN stores s ON s.id = i.store_id "
            "LEFT JOIN store_delivery_settings d ON d.store_id = i.store_id "
            "WHERE i.store_id = ? AND i.product_id = ? "
            "  AND i.is_available = 1 AND i.quantity > 0 "
            "  AND s.is_active = 1 AND l.is_active = 1 "
            "ORDER BY distance_miles IS NULL, distance_miles, "
            "         l.is_primary DESC, l.name",
            (
                int(Settings.DEFAULT_DELIVERY_ENABLED),
                int(Settings.DEFAULT_PICKUP_ENABLED),
                Settings.DEFAULT_DELIVERY_RADIUS_MILES,
                latitude,
                longitude,
                store_id,
                product_id,
            ),
        )
        results: list[LocationAvailability] = []
        for r in rows:
            distance = r["distance_miles"]
            results.append(LocationAvailability(
                location_id=r["location_id"],
                location_name=r["location_name"] or "",
                inventory_id=r["inventory_id"],
                distance_miles=(
                    round(distance, 2) if distance is not None else None
                ),
                quantity=int(r["quantity"]),
                address=StoreAddress(
                    street=r["address_line1"] or "",
                    city=r["city"] or "",
                    state=r["state"] or "",
                    zip=r["zip_code"] or "",
                ),
                price=float(r["price"]),
                is_delivery_available=bool(r["delivers"]),
                is_pickup_available=bool(r["picks_up"]),
                # No caller position counts as in range
                is_within_delivery_range=(
                    distance is None or distance <= r["radius"]
                ),
            ))
        return results

    async def get_available_locations_for_product(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
    ) -> list[LocationAvailability]:
        return await asyncio.to_thread(
            self._available_locations,
            store_id,
            product_id,
            latitude,
            longitude,
        )

    def _nearest_location_with_stock(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
        fulfillment_type: str,
    ) -> NearestLocation | None:
        if fulfillment_type not in FULFILLMENT_TYPES:
            raise ValueError(f"Unknown fulfillment type: {fulfillment_type}")
        for loc in self._available_locations(
            store_id, product_id, latitude, longitude,
        ):
            if fulfillment_type == "pickup":
                eligible = loc.is_pickup_available
            else:
                eligible = (
                    loc.is_delivery_available
                    and loc.is_within_delivery_range
                )
            if eligible:
                return NearestLocation(
                    location_id=loc.location_id,
                    location_name=loc.location_name,
                    inventory_id=loc.inventory_id,
                    distance_miles=loc.distance_miles,
                    quantity=loc.quantity,
                    address=loc.address,
                )
        return None

    async def get_nearest_location_with_stock(
        self,
        store_id: str,
        product_id: str,
        latitude: float | None,
        longitude: float | None,
        fulfillment_type: str,
    ) -> NearestLocation | None:
        return await asyncio.to_thread(
            self._nearest_location_with_stock,
            store_id,
            product_id,
            latitude,
            longitude,
            fulfillment_type,
        )
