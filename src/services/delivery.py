# src/services/delivery.py

"""Delivery-settings resolution and per-field default coalescing."""

import logging
from dataclasses import dataclass

from src.config.settings import Settings
from src.models.catalog import DeliverySettings
from src.services.fail_soft import attempt
from src.storage.repository import MarketplaceRepository

logger = logging.getLogger("marketplace.delivery")


@dataclass(frozen=True)
class DeliveryPolicy:
    """A fully populated delivery policy (no absent fields)."""

    is_delivery_enabled: bool
    is_pickup_enabled: bool
    delivery_fee: float
    minimum_order_amount: float
    free_delivery_threshold: float | None
    delivery_radius_miles: float
    estimated_delivery_time: str
    estimated_pickup_time: str


DEFAULT_DELIVERY_POLICY = DeliveryPolicy(
    is_delivery_enabled=Settings.DEFAULT_DELIVERY_ENABLED,
    is_pickup_enabled=Settings.DEFAULT_PICKUP_ENABLED,
    delivery_fee=Settings.DEFAULT_DELIVERY_FEE,
    minimum_order_amount=Settings.DEFAULT_MINIMUM_ORDER,
    free_delivery_threshold=Settings.DEFAULT_FREE_DELIVERY_THRESHOLD,
    delivery_radius_miles=Settings.DEFAULT_DELIVERY_RADIUS_MILES,
    estimated_delivery_time=Settings.DEFAULT_ESTIMATED_DELIVERY,
    estimated_pickup_time=Settings.DEFAULT_ESTIMATED_PICKUP,
)


def coalesce(*values):
    """Return the first value that is not ``None`` (``None`` if all are)."""
    for value in values:
        if value is not None:
            return value
    return None


def effective_delivery(
    settings: DeliverySettings | None,
    defaults: DeliveryPolicy = DEFAULT_DELIVERY_POLICY,
) -> DeliveryPolicy:
    """Coalesce a store's settings over *defaults*, field by field.

    A configured ``0`` fee or ``False`` flag is kept; only absent
    (``None``) fields take the default.  The free-delivery threshold
    default is itself ``None`` (no free delivery).
    """
    if settings is None:
        return defaults
    return DeliveryPolicy(
        is_delivery_enabled=coalesce(
            settings.is_delivery_enabled, defaults.is_delivery_enabled,
        ),
        is_pickup_enabled=coalesce(
            settings.is_pickup_enabled, defaults.is_pickup_enabled,
        ),
        delivery_fee=coalesce(
            settings.base_delivery_fee, defaults.delivery_fee,
        ),
        minimum_order_amount=coalesce(
            settings.minimum_order_amount, defaults.minimum_order_amount,
        ),
        free_delivery_threshold=coalesce(
            settings.free_delivery_threshold,
            defaults.free_delivery_threshold,
        ),
        delivery_radius_miles=coalesce(
            settings.delivery_radius_miles, defaults.delivery_radius_miles,
        ),
        estimated_delivery_time=coalesce(
            settings.estimated_delivery_time,
            defaults.estimated_delivery_time,
        ),
        estimated_pickup_time=coalesce(
            settings.estimated_pickup_time, defaults.estimated_pickup_time,
        ),
    )


class DeliverySettingsResolver:
    """Batch lookup of per-store delivery settings."""

    def __init__(self, repository: MarketplaceRepository) -> None:
        self._repository = repository

    async def resolve(
        self, store_ids: list[str],
    ) -> dict[str, DeliverySettings]:
        """Map each configured store id to its settings row.

        Stores without a row are omitted; callers coalesce defaults.
        Never raises: an unavailable settings table yields ``{}``.
        """
        unique_ids = list(dict.fromkeys(store_ids))
        if not unique_ids:
            return {}
        outcome = await attempt(
            "Delivery settings lookup",
            self._repository.fetch_delivery_settings(unique_ids),
            [],
            logger,
        )
        return {row.store_id: row for row in outcome.value}

    async def resolve_one(self, store_id: str) -> DeliverySettings | None:
        resolved = await self.resolve([store_id])
        return resolved.get(store_id)
