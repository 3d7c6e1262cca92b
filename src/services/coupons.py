# src/services/coupons.py

"""Eligible-coupon lookup for a set of stores."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from src.models.catalog import Coupon
from src.models.listing import StoreCoupon
from src.services.fail_soft import attempt
from src.storage.repository import MarketplaceRepository

logger = logging.getLogger("marketplace.coupons")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_coupon_eligible(coupon: Coupon, now: datetime) -> bool:
    """Active, started, and not yet ended at *now*.

    A coupon with no start date has not started.  No end date means it
    never expires.
    """
    if not coupon.is_active or coupon.start_date is None:
        return False
    if coupon.start_date > now:
        return False
    return coupon.end_date is None or coupon.end_date >= now


def to_store_coupon(coupon: Coupon) -> StoreCoupon:
    return StoreCoupon(
        id=coupon.id,
        code=coupon.code,
        type=coupon.type,
        value=coupon.value,
        description=coupon.description,
        minimum_order_amount=coupon.minimum_order_amount,
    )


class CouponResolver:
    """Groups the currently eligible coupons of several stores."""

    def __init__(
        self,
        repository: MarketplaceRepository,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._clock = clock

    async def resolve(
        self, store_ids: list[str],
    ) -> dict[str, list[StoreCoupon]]:
        """Map store id to its eligible coupons; ``{}`` on any error."""
        unique_ids = list(dict.fromkeys(store_ids))
        if not unique_ids:
            return {}

        now = self._clock()
        outcome = await attempt(
            "Coupon lookup",
            self._repository.fetch_active_coupons(unique_ids, now),
            [],
            logger,
        )

        by_store: dict[str, list[StoreCoupon]] = {}
        for coupon in outcome.value:
            if not is_coupon_eligible(coupon, now):
                continue
            by_store.setdefault(coupon.store_id, []).append(
                to_store_coupon(coupon)
            )
        return by_store
