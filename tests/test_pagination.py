# tests/test_pagination.py

"""Tests for 1-based page slicing."""

import unittest

from src.utils.pagination import paginate


class TestPaginate(unittest.TestCase):
    """Slices ``[(page-1)*limit, page*limit)``."""

    def test_second_page_of_45(self) -> None:
        items = list(range(45))
        self.assertEqual(paginate(items, 2, 20), list(range(20, 40)))

    def test_second_page_of_25(self) -> None:
        items = list(range(25))
        self.assertEqual(paginate(items, 2, 20), list(range(20, 25)))

    def test_second_page_of_15_is_empty(self) -> None:
        self.assertEqual(paginate(list(range(15)), 2, 20), [])

    def test_first_page(self) -> None:
        self.assertEqual(paginate(list(range(5)), 1, 2), [0, 1])

    def test_page_below_one_is_first_page(self) -> None:
        self.assertEqual(paginate(list(range(5)), 0, 2), [0, 1])

    def test_non_positive_limit_is_empty(self) -> None:
        self.assertEqual(paginate(list(range(5)), 1, 0), [])

    def test_returns_list_for_tuple(self) -> None:
        self.assertEqual(paginate((1, 2, 3), 1, 10), [1, 2, 3])


if __name__ == "__main__":
    unittest.main()
