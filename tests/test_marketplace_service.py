# tests/test_marketplace_service.py

"""End-to-end tests of the service facade over a SQLite catalog."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from src.models.search_params import ProductSearchParams, StoreSearchParams
from src.services.marketplace import MarketplaceService, build_repository
from src.storage.sqlite_repository import SqliteMarketplaceRepository
from tests.fakes import load_fixture

GG_ID = "11111111-1111-1111-1111-111111111111"
JOSH_ID = "33333333-3333-3333-3333-333333333333"

CENTER_CITY = (39.95, -75.16)
HARRISBURG = (40.27, -76.88)


class _ServiceCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "catalog.db"
        repository = SqliteMarketplaceRepository(self.db_path)
        repository.import_fixture(load_fixture())
        self.service = MarketplaceService(repository)

    def tearDown(self) -> None:
        self._tmp.cleanup()


class TestStores(_ServiceCase):

    async def test_nearby_orders_by_distance(self) -> None:
        stores = await self.service.nearby_stores(
            StoreSearchParams(*CENTER_CITY, radius_miles=10)
        )
        self.assertEqual([s.id for s in stores], ["s1", "s2"])
        self.assertLess(stores[0].distance_miles, stores[1].distance_miles)
        self.assertEqual(stores[0].address.city, "Philadelphia")
        self.assertEqual(stores[0].delivery_info.delivery_fee, 2.99)
        self.assertFalse(stores[1].delivery_info.is_delivery_available)

    async def test_nearby_sorted_by_rating(self) -> None:
        stores = await self.service.nearby_stores(
            StoreSearchParams(*CENTER_CITY, radius_miles=10, sort_by="rating")
        )
        self.assertEqual([s.id for s in stores], ["s2", "s1"])

    async def test_store_details(self) -> None:
        details = await self.service.store_details(
            "liberty-liquors", *CENTER_CITY,
        )
        self.assertIsNotNone(details)
        self.assertEqual(details.location_id, "l1")
        self.assertEqual(details.phone, "215-555-0101")
        self.assertTrue(details.is_featured)

    async def test_inactive_store_details_hidden(self) -> None:
        self.assertIsNone(await self.service.store_details("camden-spirits"))


class TestSearch(_ServiceCase):

    async def test_search_vodka(self) -> None:
        products = await self.service.search_products(
            ProductSearchParams(query="vodka")
        )
        names = {p.name for p in products}
        self.assertEqual(
            names, {"Grey Goose Vodka 750ml", "Titos Handmade Vodka"},
        )
        goose = next(p for p in products if p.id == GG_ID)
        self.assertEqual(goose.lowest_price, 27.49)
        self.assertEqual(len(goose.prices), 2)

    async def test_typo_still_matches(self) -> None:
        products = await self.service.search_products(
            ProductSearchParams(query="vodak")
        )
        self.assertIn(GG_ID, [p.id for p in products])

    async def test_far_away_centre_has_no_offers(self) -> None:
        products = await self.service.search_products(
            ProductSearchParams(
                query="vodka",
                latitude=HARRISBURG[0],
                longitude=HARRISBURG[1],
                radius_miles=5,
            )
        )
        self.assertEqual(products, [])

    async def test_price_sort(self) -> None:
        products = await self.service.search_products(
            ProductSearchParams(query="vodka", sort_by="price")
        )
        prices = [p.lowest_price for p in products]
        self.assertEqual(prices, sorted(prices))

    async def test_suggestions(self) -> None:
        suggestions = await self.service.search_suggestions("grey", 5)
        self.assertTrue(any("Grey" in s.suggestion for s in suggestions))
        self.assertEqual(await self.service.search_suggestions("g"), [])


class TestCatalog(_ServiceCase):

    async def test_product_detail_carries_coupons(self) -> None:
        product = await self.service.product_detail(GG_ID)
        self.assertIsNotNone(product)
        by_store = {offer.store_id: offer for offer in product.prices}
        self.assertEqual(set(by_store), {"s1", "s2"})
        self.assertEqual([c.code for c in by_store["s1"].coupons], ["SAVE10"])
        self.assertEqual(by_store["s2"].coupons, [])
        self.assertEqual(product.prices[0].store_id, "s2")

    async def test_product_detail_by_slug(self) -> None:
        product = await self.service.product_detail("grey-goose-vodka-750ml")
        self.assertEqual(product.id, GG_ID)

    async def test_product_only_at_inactive_store_is_hidden(self) -> None:
        self.assertIsNone(
            await self.service.product_detail("blue-moon-belgian-white")
        )

    async def test_store_catalog(self) -> None:
        products = await self.service.store_catalog("s2")
        self.assertEqual(len(products), 3)
        wine = await self.service.store_catalog("s2", category="WINE")
        self.assertEqual([p.id for p in wine], [JOSH_ID])
        self.assertEqual(await self.service.store_catalog("s1", search="tito"), [])

    async def test_featured_cheapest_first(self) -> None:
        products = await self.service.featured_products(2)
        self.assertEqual(
            [p.lowest_price for p in products], [12.0, 22.99],
        )

    async def test_categories_with_counts(self) -> None:
        categories = await self.service.categories()
        counts = {c.slug: c.count for c in categories}
        self.assertEqual(counts, {"spirits": 2, "wine": 1, "beer": 1})
        self.assertEqual([c.sort_order for c in categories], [1, 2, 3])

    async def test_product_locations(self) -> None:
        locations = await self.service.product_locations(
            "s2", JOSH_ID, *CENTER_CITY,
        )
        self.assertEqual([loc.location_id for loc in locations], ["l2"])
        self.assertEqual(locations[0].price, 14.5)
        self.assertFalse(locations[0].is_delivery_available)

    async def test_nearest_stocked_location(self) -> None:
        pickup = await self.service.nearest_stocked_location(
            "s2", JOSH_ID, *CENTER_CITY, "pickup",
        )
        self.assertEqual(pickup.location_id, "l2")
        self.assertIsNone(
            await self.service.nearest_stocked_location(
                "s2", JOSH_ID, *CENTER_CITY, "delivery",
            )
        )

    async def test_unknown_fulfillment_type_is_none(self) -> None:
        with self.assertLogs("marketplace.service", level="ERROR"):
            self.assertIsNone(
                await self.service.nearest_stocked_location(
                    "s2", JOSH_ID, fulfillment_type="drone",
                )
            )


class TestFailSoft(unittest.IsolatedAsyncioTestCase):
    """An empty database never makes the facade raise."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        repository = SqliteMarketplaceRepository(
            Path(self._tmp.name) / "empty.db"
        )
        self.service = MarketplaceService(repository)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_entry_points_degrade(self) -> None:
        with self.assertLogs("marketplace", level="ERROR"):
            self.assertEqual(
                await self.service.nearby_stores(
                    StoreSearchParams(*CENTER_CITY)
                ),
                [],
            )
            self.assertEqual(
                await self.service.search_products(
                    ProductSearchParams(query="vodka")
                ),
                [],
            )
            self.assertIsNone(await self.service.product_detail(GG_ID))
            self.assertIsNone(await self.service.store_details("x"))
            self.assertEqual(await self.service.featured_products(), [])
            self.assertEqual(await self.service.store_catalog("s1"), [])

    async def test_categories_fall_back_to_defaults(self) -> None:
        categories = await self.service.categories()
        self.assertTrue(categories)
        self.assertTrue(all(c.count == 0 for c in categories))


class TestBuildRepository(unittest.TestCase):

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ValueError):
            build_repository("bogus")

    def test_sqlite_backend(self) -> None:
        with patch(
            "src.services.marketplace.Settings.CATALOG_DB_PATH",
            Path("/tmp/does-not-matter.db"),
        ):
            repository = build_repository("SQLite")
        self.assertIsInstance(repository, SqliteMarketplaceRepository)


if __name__ == "__main__":
    unittest.main()
