# tests/test_cli_runner.py

"""Tests for the headless CLI commands."""

import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from src.cli import runner
from src.models.listing import (
    CategoryWithCount,
    LocationAvailability,
    NearestLocation,
    SearchSuggestion,
    StoreAddress,
)
from src.models.search_params import ProductSearchParams
from src.services.price_aggregator import aggregate_product, build_store_price
from tests.fakes import FIXTURE_PATH, make_product, make_row, make_store


def _product():
    product = make_product("p1", "Grey Goose", brand="Grey Goose")
    row = make_row("i1", "p1", make_store("s1"), 19.99)
    return aggregate_product(product, [build_store_price(row, None)])


def _service(**methods) -> MagicMock:
    service = MagicMock()
    for name, value in methods.items():
        setattr(service, name, AsyncMock(return_value=value))
    return service


class TestCommands(unittest.IsolatedAsyncioTestCase):

    async def test_search_emits_json(self) -> None:
        service = _service(search_products=[_product()])
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_search(
                service, ProductSearchParams(query="goose"), "json",
            )
        self.assertEqual(code, 0)
        payload = json.loads(out.getvalue())
        self.assertEqual(payload[0]["name"], "Grey Goose")
        self.assertEqual(payload[0]["prices"][0]["price"], 19.99)

    async def test_empty_result_exit_code(self) -> None:
        service = _service(search_products=[])
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_search(
                service, ProductSearchParams(query="nothing"), "json",
            )
        self.assertEqual(code, 1)
        self.assertEqual(out.getvalue(), "")

    async def test_missing_product(self) -> None:
        service = _service(product_detail=None)
        code = await runner.cli_product(service, "nope", None, None, "json")
        self.assertEqual(code, 1)
        service.product_detail.assert_awaited_once_with("nope", None, None)

    async def test_product_table(self) -> None:
        service = _service(product_detail=_product())
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_product(service, "p1", None, None, "table")
        self.assertEqual(code, 0)
        self.assertIn("$19.99", out.getvalue())

    async def test_suggest_table(self) -> None:
        service = _service(search_suggestions=[
            SearchSuggestion(suggestion="Grey Goose", type="brand", count=3),
        ])
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_suggest(service, "grey", 5, "table")
        self.assertEqual(code, 0)
        self.assertIn("Grey Goose", out.getvalue())
        service.search_suggestions.assert_awaited_once_with("grey", 5)

    async def test_catalog_passes_filters(self) -> None:
        service = _service(store_catalog=[_product()])
        with patch("sys.stdout", new_callable=io.StringIO):
            code = await runner.cli_catalog(
                service, "s1", "spirits", "goose", 2, 10, "json",
            )
        self.assertEqual(code, 0)
        service.store_catalog.assert_awaited_once_with(
            "s1", "spirits", "goose", 2, 10,
        )

    async def test_locations_table(self) -> None:
        service = _service(product_locations=[LocationAvailability(
            location_id="l1", location_name="Market St", inventory_id="i1",
            distance_miles=None, quantity=3,
            address=StoreAddress(city="Philadelphia"), price=19.99,
            is_delivery_available=True, is_pickup_available=False,
            is_within_delivery_range=True,
        )])
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_locations(
                service, "s1", "p1", None, None, False, "delivery", "table",
            )
        self.assertEqual(code, 0)
        self.assertIn("Market St", out.getvalue())
        service.product_locations.assert_awaited_once_with(
            "s1", "p1", None, None,
        )

    async def test_nearest_location_json(self) -> None:
        service = _service(nearest_stocked_location=NearestLocation(
            location_id="l1", location_name="Market St", inventory_id="i1",
            distance_miles=0.4, quantity=3, address=StoreAddress(),
        ))
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_locations(
                service, "s1", "p1", 39.95, -75.16, True, "pickup", "json",
            )
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out.getvalue())["inventory_id"], "i1")
        service.nearest_stocked_location.assert_awaited_once_with(
            "s1", "p1", 39.95, -75.16, "pickup",
        )

    async def test_no_nearest_location(self) -> None:
        service = _service(nearest_stocked_location=None)
        code = await runner.cli_locations(
            service, "s1", "p1", None, None, True, "delivery", "json",
        )
        self.assertEqual(code, 1)

    async def test_categories_json(self) -> None:
        service = _service(categories=[CategoryWithCount(
            id="c1", name="Spirits", slug="spirits", description=None,
            image_url=None, parent_id=None, count=4, sort_order=1,
        )])
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = await runner.cli_categories(service, "json")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out.getvalue())[0]["count"], 4)


class TestLoadFixture(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "catalog.db"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_file(self) -> None:
        code = runner.run_load_fixture(
            str(Path(self._tmp.name) / "missing.json"), str(self.db_path),
        )
        self.assertEqual(code, 1)
        self.assertFalse(self.db_path.exists())

    def test_imports_sample_catalog(self) -> None:
        code = runner.run_load_fixture(str(FIXTURE_PATH), str(self.db_path))
        self.assertEqual(code, 0)
        self.assertTrue(self.db_path.exists())

    def test_invalid_fixture(self) -> None:
        bad = Path(self._tmp.name) / "bad.json"
        bad.write_text(json.dumps({"nope": [{"id": "x"}]}), encoding="utf-8")
        with self.assertLogs("marketplace.cli", level="ERROR"):
            code = runner.run_load_fixture(str(bad), str(self.db_path))
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
