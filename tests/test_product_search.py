# tests/test_product_search.py

"""Tests for staged product search and autocomplete."""

import unittest

from src.models.listing import SearchSuggestion
from src.models.search_params import ProductSearchParams
from src.services.product_search import ProductSearchEngine, tokenize
from src.storage.repository import NearbyStoreRow
from tests.fakes import (
    FakeRepository,
    fuzzy_row,
    make_product,
    make_row,
    make_store,
)


class TestTokenize(unittest.TestCase):

    def test_drops_short_tokens(self) -> None:
        self.assertEqual(tokenize("grey  x goose"), ["grey", "goose"])

    def test_empty_query(self) -> None:
        self.assertEqual(tokenize(None), [])
        self.assertEqual(tokenize("   "), [])


class _SearchCase(unittest.IsolatedAsyncioTestCase):
    """Shared catalog: three active stores' worth of offers."""

    def setUp(self) -> None:
        self.repo = FakeRepository()
        s1 = make_store("s1", average_rating=4.5)
        s2 = make_store("s2")
        s3 = make_store("s3", is_active=False)
        self.grey_goose = make_product(
            "p1", "Grey Goose Vodka", brand="Grey Goose",
        )
        self.titos = make_product("p2", "Titos Handmade Vodka", brand="Tito's")
        self.josh = make_product("p3", "Josh Cabernet", category="wine")
        self.blue_moon = make_product("p4", "Blue Moon", category="beer")
        self.repo.products = [
            self.grey_goose, self.titos, self.josh, self.blue_moon,
        ]
        self.repo.stores = [s1, s2, s3]
        self.repo.inventory = [
            make_row("i1", "p1", s1, 29.99),
            make_row("i2", "p1", s2, 27.49),
            make_row("i3", "p2", s2, 22.99),
            make_row("i4", "p3", s1, 14.5),
            make_row("i5", "p4", s3, 9.99),
        ]
        self.repo.geo_rows = [
            NearbyStoreRow("s1", "Store s1", "l1", "L1", 1.0),
            NearbyStoreRow("s3", "Store s3", "l3", "L3", 2.0),
            NearbyStoreRow("s2", "Store s2", "l2", "L2", 3.0),
        ]
        self.engine = ProductSearchEngine(self.repo)

    def thresholds_called(self) -> list[float]:
        return [
            args[0].similarity_threshold
            for args in self.repo.called("fuzzy_search_products")
        ]


class TestStagedSearch(_SearchCase):
    """Primary, relaxed and substring stages."""

    async def test_primary_stage_hit(self) -> None:
        self.repo.fuzzy_results = {
            0.15: [fuzzy_row(self.grey_goose, 0.9), fuzzy_row(self.titos, 0.8)],
            0.1: [fuzzy_row(self.josh, 0.11)],
        }
        results = await self.engine.search(ProductSearchParams(query="vodka"))
        self.assertEqual([p.id for p in results], ["p1", "p2"])
        self.assertEqual(results[0].relevance, 0.9)
        self.assertEqual(self.thresholds_called(), [0.15])

    async def test_relaxed_stage_when_primary_empty(self) -> None:
        self.repo.fuzzy_results = {0.1: [fuzzy_row(self.grey_goose, 0.12)]}
        results = await self.engine.search(ProductSearchParams(query="gry"))
        self.assertEqual([p.id for p in results], ["p1"])
        self.assertEqual(results[0].relevance, 0.12)
        self.assertEqual(self.thresholds_called(), [0.15, 0.1])

    async def test_relaxed_empty_ends_without_substring(self) -> None:
        results = await self.engine.search(ProductSearchParams(query="zzz"))
        self.assertEqual(results, [])
        self.assertEqual(self.thresholds_called(), [0.15, 0.1])
        self.assertEqual(self.repo.called("find_products_by_terms"), [])

    async def test_fuzzy_error_routes_to_substring(self) -> None:
        self.repo.failures.add("fuzzy_search_products")
        with self.assertLogs("marketplace.search", level="WARNING"):
            results = await self.engine.search(
                ProductSearchParams(query="grey vodka x"),
            )
        (terms_call,) = self.repo.called("find_products_by_terms")
        self.assertEqual(terms_call[0], ["grey", "vodka"])
        self.assertEqual(self.thresholds_called(), [0.15])
        # No relevance in this path, so cheapest first
        self.assertEqual([p.id for p in results], ["p2", "p1"])
        self.assertTrue(all(p.relevance is None for p in results))
        for product in results:
            self.assertTrue(product.prices)
            self.assertEqual(product.lowest_price, product.prices[0].price)

    async def test_relaxed_error_routes_to_substring(self) -> None:
        calls = {"n": 0}
        original = self.repo.fuzzy_search_products

        async def fail_second(query):
            calls["n"] += 1
            if calls["n"] == 2:
                raise ConnectionError("dropped")
            return await original(query)

        self.repo.fuzzy_search_products = fail_second
        with self.assertLogs("marketplace.search", level="ERROR"):
            results = await self.engine.search(
                ProductSearchParams(query="titos"),
            )
        self.assertEqual([p.id for p in results], ["p2"])

    async def test_category_passed_to_stages(self) -> None:
        self.repo.failures.add("fuzzy_search_products")
        with self.assertLogs("marketplace.search", level="WARNING"):
            results = await self.engine.search(
                ProductSearchParams(query="josh", category="WINE"),
            )
        self.assertEqual([p.id for p in results], ["p3"])
        (fuzzy_args,) = self.repo.called("fuzzy_search_products")
        self.assertEqual(fuzzy_args[0].category, "WINE")

    async def test_over_fetches_candidates(self) -> None:
        await self.engine.search(ProductSearchParams(query="vodka", limit=5))
        query = self.repo.called("fuzzy_search_products")[0][0]
        self.assertEqual(query.limit, 100)
        self.assertEqual(query.offset, 0)


class TestSearchFiltering(_SearchCase):
    """Inventory joins, geo restriction and price bounds."""

    async def test_inactive_store_only_product_excluded(self) -> None:
        self.repo.fuzzy_results = {
            0.15: [fuzzy_row(self.blue_moon, 0.9), fuzzy_row(self.grey_goose, 0.5)],
        }
        results = await self.engine.search(ProductSearchParams(query="moon"))
        self.assertEqual([p.id for p in results], ["p1"])

    async def test_listing_offers_carry_no_rating_or_coupons(self) -> None:
        self.repo.fuzzy_results = {0.15: [fuzzy_row(self.grey_goose, 0.9)]}
        (product,) = await self.engine.search(ProductSearchParams(query="grey"))
        for offer in product.prices:
            self.assertEqual(offer.store_rating, 0)
            self.assertEqual(offer.coupons, [])
            self.assertEqual(offer.location_name, "Main Location")
        self.assertEqual(product.price_range_text, "$27.49 - $29.99")

    async def test_geo_centre_restricts_stores(self) -> None:
        self.repo.fuzzy_results = {
            0.15: [fuzzy_row(self.grey_goose, 0.5), fuzzy_row(self.titos, 0.9)],
        }
        params = ProductSearchParams(
            query="vodka", latitude=39.95, longitude=-75.16,
            radius_miles=2.5, sort_by="distance",
        )
        results = await self.engine.search(params)
        query = self.repo.called("fuzzy_search_products")[0][0]
        self.assertEqual(query.store_ids, ["s1", "s3"])
        # Tito's is only stocked at s2, outside the radius
        self.assertEqual([p.id for p in results], ["p1"])
        self.assertEqual([o.store_id for o in results[0].prices], ["s1"])
        self.assertEqual(results[0].prices[0].distance_miles, 1.0)

    async def test_sort_by_distance(self) -> None:
        self.repo.fuzzy_results = {
            0.15: [fuzzy_row(self.titos, 0.9), fuzzy_row(self.grey_goose, 0.5)],
        }
        params = ProductSearchParams(
            query="vodka", latitude=39.95, longitude=-75.16,
            sort_by="distance",
        )
        results = await self.engine.search(params)
        self.assertEqual([p.id for p in results], ["p1", "p2"])

    async def test_no_store_in_radius_is_empty(self) -> None:
        params = ProductSearchParams(
            query="vodka", latitude=39.95, longitude=-75.16, radius_miles=0.5,
        )
        self.assertEqual(await self.engine.search(params), [])
        self.assertEqual(self.repo.called("fuzzy_search_products"), [])

    async def test_geo_error_degrades_to_unfiltered(self) -> None:
        self.repo.failures.add("nearby_stores")
        self.repo.fuzzy_results = {0.15: [fuzzy_row(self.titos, 0.9)]}
        params = ProductSearchParams(
            query="titos", latitude=39.95, longitude=-75.16,
        )
        with self.assertLogs("marketplace.locator", level="ERROR"):
            results = await self.engine.search(params)
        self.assertEqual([p.id for p in results], ["p2"])
        query = self.repo.called("fuzzy_search_products")[0][0]
        self.assertIsNone(query.store_ids)

    async def test_price_bounds_filter_offers(self) -> None:
        self.repo.fuzzy_results = {
            0.15: [fuzzy_row(self.grey_goose, 0.5), fuzzy_row(self.titos, 0.9)],
        }
        params = ProductSearchParams(query="vodka", min_price=25, max_price=28)
        results = await self.engine.search(params)
        self.assertEqual([p.id for p in results], ["p1"])
        self.assertEqual([o.price for o in results[0].prices], [27.49])

    async def test_pagination(self) -> None:
        self.repo.fuzzy_results = {
            0.15: [fuzzy_row(self.grey_goose, 0.9), fuzzy_row(self.titos, 0.8)],
        }
        params = ProductSearchParams(query="vodka", page=2, limit=1)
        results = await self.engine.search(params)
        self.assertEqual([p.id for p in results], ["p2"])

    async def test_inventory_error_is_empty(self) -> None:
        self.repo.fuzzy_results = {0.15: [fuzzy_row(self.grey_goose, 0.9)]}
        self.repo.failures.add("fetch_inventory")
        with self.assertLogs("marketplace.search", level="ERROR"):
            results = await self.engine.search(ProductSearchParams(query="grey"))
        self.assertEqual(results, [])


class TestSuggest(unittest.IsolatedAsyncioTestCase):
    """Autocomplete with a substring fallback."""

    def setUp(self) -> None:
        self.repo = FakeRepository()
        self.repo.products = [
            make_product("p1", "Grey Goose Vodka", brand="Grey Goose"),
            make_product("p2", "Grey Goose Le Citron", brand="Grey Goose"),
            make_product("p3", "Titos Handmade Vodka", brand="Tito's"),
        ]
        self.engine = ProductSearchEngine(self.repo)

    async def test_short_query_is_empty(self) -> None:
        self.assertEqual(await self.engine.suggest("g"), [])
        self.assertEqual(self.repo.calls, [])

    async def test_uses_suggestion_collaborator(self) -> None:
        self.repo.suggestions = [
            SearchSuggestion("Grey Goose", "brand", 2),
            SearchSuggestion("Grey Goose Vodka", "product", 1),
        ]
        suggestions = await self.engine.suggest("grey", limit=1)
        self.assertEqual(
            suggestions, [SearchSuggestion("Grey Goose", "brand", 2)],
        )

    async def test_fallback_dedupes_case_insensitively(self) -> None:
        self.repo.failures.add("search_suggestions")
        with self.assertLogs("marketplace.search", level="ERROR"):
            suggestions = await self.engine.suggest("GREY")
        self.assertEqual(
            [(s.suggestion, s.type) for s in suggestions],
            [
                ("Grey Goose Vodka", "product"),
                ("Grey Goose", "brand"),
                ("Grey Goose Le Citron", "product"),
            ],
        )
        self.assertTrue(all(s.count == 1 for s in suggestions))

    async def test_fallback_keeps_name_of_brand_only_match(self) -> None:
        self.repo.products = [
            make_product("p9", "Original Vodka", brand="Absolut"),
        ]
        self.repo.failures.add("search_suggestions")
        with self.assertLogs("marketplace.search", level="ERROR"):
            suggestions = await self.engine.suggest("absolut")
        self.assertEqual(
            [(s.suggestion, s.type) for s in suggestions],
            [("Original Vodka", "product"), ("Absolut", "brand")],
        )

    async def test_fallback_dedupes_names_and_brands_separately(self) -> None:
        self.repo.products = [
            make_product("p1", "Fireball", brand="Fireball"),
            make_product("p2", "FIREBALL", brand="fireball"),
        ]
        self.repo.failures.add("search_suggestions")
        with self.assertLogs("marketplace.search", level="ERROR"):
            suggestions = await self.engine.suggest("fireball")
        self.assertEqual(
            [(s.suggestion, s.type) for s in suggestions],
            [("Fireball", "product"), ("Fireball", "brand")],
        )

    async def test_both_collaborators_failing_is_empty(self) -> None:
        self.repo.failures.update(
            {"search_suggestions", "find_products_by_terms"},
        )
        with self.assertLogs("marketplace.search", level="ERROR"):
            self.assertEqual(await self.engine.suggest("grey"), [])


if __name__ == "__main__":
    unittest.main()
