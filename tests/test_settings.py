# tests/test_settings.py

"""Tests for the Settings configuration class."""

import unittest
from pathlib import Path

from src.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Verify Settings constants and defaults."""

    def test_similarity_thresholds(self) -> None:
        """Primary is 0.15 and the relaxed retry is lower, at 0.10."""
        self.assertEqual(Settings.PRIMARY_SIMILARITY_THRESHOLD, 0.15)
        self.assertEqual(Settings.RELAXED_SIMILARITY_THRESHOLD, 0.1)
        self.assertLess(
            Settings.RELAXED_SIMILARITY_THRESHOLD,
            Settings.PRIMARY_SIMILARITY_THRESHOLD,
        )

    def test_default_radii(self) -> None:
        self.assertEqual(Settings.DEFAULT_STORE_RADIUS_MILES, 10.0)
        self.assertEqual(Settings.DEFAULT_SEARCH_RADIUS_MILES, 25.0)

    def test_earth_radius_in_miles(self) -> None:
        self.assertEqual(Settings.EARTH_RADIUS_MILES, 3959.0)

    def test_candidate_limit_exceeds_page_size(self) -> None:
        """Fuzzy over-fetch must leave room for inventory filtering."""
        self.assertGreater(
            Settings.FUZZY_CANDIDATE_LIMIT, Settings.DEFAULT_PAGE_SIZE
        )

    def test_delivery_defaults(self) -> None:
        """Default delivery policy values are fixed."""
        self.assertTrue(Settings.DEFAULT_DELIVERY_ENABLED)
        self.assertTrue(Settings.DEFAULT_PICKUP_ENABLED)
        self.assertEqual(Settings.DEFAULT_DELIVERY_FEE, 4.99)
        self.assertEqual(Settings.DEFAULT_MINIMUM_ORDER, 0.0)
        self.assertIsNone(Settings.DEFAULT_FREE_DELIVERY_THRESHOLD)
        self.assertEqual(Settings.DEFAULT_DELIVERY_RADIUS_MILES, 10.0)
        self.assertEqual(Settings.DEFAULT_ESTIMATED_DELIVERY, "30-45 min")
        self.assertEqual(Settings.DEFAULT_ESTIMATED_PICKUP, "15-20 min")

    def test_default_categories_have_required_keys(self) -> None:
        for category in Settings.DEFAULT_CATEGORIES:
            with self.subTest(category=category.get("id", "?")):
                self.assertIn("id", category)
                self.assertIn("name", category)

    def test_default_category_ids_are_unique(self) -> None:
        ids = [c["id"] for c in Settings.DEFAULT_CATEGORIES]
        self.assertEqual(len(ids), len(set(ids)))

    def test_backend_is_known(self) -> None:
        self.assertIn(Settings.CATALOG_BACKEND, ("sqlite", "supabase"))

    def test_paths_are_path_objects(self) -> None:
        """BASE_DIR and CATALOG_DB_PATH must be Path instances."""
        self.assertIsInstance(Settings.BASE_DIR, Path)
        self.assertIsInstance(Settings.CATALOG_DB_PATH, Path)


if __name__ == "__main__":
    unittest.main()
