# tests/test_coupons.py

"""Tests for eligible-coupon resolution."""

import unittest
from datetime import datetime, timedelta, timezone

from src.models.catalog import Coupon
from src.services.coupons import CouponResolver, is_coupon_eligible
from tests.fakes import FakeRepository

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _coupon(coupon_id: str, store_id: str = "s1", **kwargs) -> Coupon:
    kwargs.setdefault("start_date", NOW - timedelta(days=1))
    kwargs.setdefault("type", "percentage")
    return Coupon(
        id=coupon_id,
        store_id=store_id,
        code=coupon_id.upper(),
        value=10,
        **kwargs,
    )


class TestIsCouponEligible(unittest.TestCase):
    """Active, started and not yet ended."""

    def test_open_ended_coupon(self) -> None:
        self.assertTrue(is_coupon_eligible(_coupon("a"), NOW))

    def test_inactive(self) -> None:
        self.assertFalse(is_coupon_eligible(_coupon("a", is_active=False), NOW))

    def test_not_started(self) -> None:
        coupon = _coupon("a", start_date=NOW + timedelta(seconds=1))
        self.assertFalse(is_coupon_eligible(coupon, NOW))

    def test_expired(self) -> None:
        coupon = _coupon("a", end_date=NOW - timedelta(seconds=1))
        self.assertFalse(is_coupon_eligible(coupon, NOW))

    def test_boundaries_are_inclusive(self) -> None:
        coupon = _coupon("a", start_date=NOW, end_date=NOW)
        self.assertTrue(is_coupon_eligible(coupon, NOW))

    def test_missing_start_is_not_eligible(self) -> None:
        self.assertFalse(is_coupon_eligible(_coupon("a", start_date=None), NOW))


class TestCouponResolver(unittest.IsolatedAsyncioTestCase):
    """Grouping by store, with an injected clock."""

    def setUp(self) -> None:
        self.repo = FakeRepository()
        self.repo.coupons = [
            _coupon("save10", "s1"),
            _coupon("save5", "s1", type="fixed"),
            _coupon("later", "s2", start_date=NOW + timedelta(days=3)),
            _coupon("other", "s3"),
        ]
        self.resolver = CouponResolver(self.repo, clock=lambda: NOW)

    async def test_groups_eligible_coupons_by_store(self) -> None:
        resolved = await self.resolver.resolve(["s1", "s2"])
        self.assertEqual(
            [c.code for c in resolved["s1"]], ["SAVE10", "SAVE5"],
        )
        self.assertNotIn("s2", resolved)
        self.assertNotIn("s3", resolved)

    async def test_clock_passed_to_repository(self) -> None:
        await self.resolver.resolve(["s1"])
        (args,) = self.repo.called("fetch_active_coupons")
        self.assertEqual(args[1], NOW)

    async def test_error_gives_empty(self) -> None:
        self.repo.failures.add("fetch_active_coupons")
        with self.assertLogs("marketplace.coupons", level="ERROR"):
            self.assertEqual(await self.resolver.resolve(["s1"]), {})

    async def test_no_stores(self) -> None:
        self.assertEqual(await self.resolver.resolve([]), {})


if __name__ == "__main__":
    unittest.main()
