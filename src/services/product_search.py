# src/services/product_search.py

"""Fuzzy product search with staged fallback, plus autocomplete."""

import logging
from dataclasses import dataclass

from src.config.settings import Settings
from src.models.catalog import InventoryRow, MasterProduct
from src.models.listing import ProductWithPrices, SearchSuggestion
from src.models.search_params import FuzzyQuery, ProductSearchParams
from src.services.delivery import DeliverySettingsResolver
from src.services.fail_soft import attempt
from src.services.price_aggregator import (
    LISTING_PROFILE,
    aggregate_product,
    build_store_price,
    group_by_product,
    sort_products,
)
from src.services.search_stages import (
    STAGE_THRESHOLDS,
    SearchStage,
    classify,
    next_stage,
)
from src.services.store_locator import StoreLocator
from src.storage.repository import FuzzyMatchRow, MarketplaceRepository
from src.utils.pagination import paginate

logger = logging.getLogger("marketplace.search")


def tokenize(query: str | None) -> list[str]:
    """Whitespace tokens of at least ``MIN_TOKEN_LENGTH`` characters."""
    if not query:
        return []
    return [
        token for token in query.split()
        if len(token) >= Settings.MIN_TOKEN_LENGTH
    ]


@dataclass
class _Candidates:
    """Products surviving the text-match stage, keyed by id."""

    products: dict[str, MasterProduct]
    relevance: dict[str, float] | None = None


class ProductSearchEngine:
    """Relevance-ranked product search across every nearby store."""

    def __init__(
        self,
        repository: MarketplaceRepository,
        locator: StoreLocator | None = None,
        delivery: DeliverySettingsResolver | None = None,
    ) -> None:
        self._repository = repository
        self._delivery = delivery or DeliverySettingsResolver(repository)
        self._locator = locator or StoreLocator(repository, self._delivery)

    async def search(
        self, params: ProductSearchParams,
    ) -> list[ProductWithPrices]:
        """Run the staged search and return one page of priced products.

        Never raises.  A geo centre with no store in range returns
        ``[]``; a failing geo lookup degrades to an unfiltered search.
        """
        distances: dict[str, float] = {}
        store_ids: list[str] | None = None
        if params.has_location:
            geo = await self._locator.nearby_distances(
                params.latitude, params.longitude, params.radius_miles,
            )
            if not geo.failed:
                if not geo.value:
                    return []
                distances = geo.value
                store_ids = list(distances)

        candidates = await self._run_stages(params, store_ids)
        if not candidates.products:
            return []

        inventory = await attempt(
            "Inventory lookup",
            self._repository.fetch_inventory(
                list(candidates.products),
                store_ids,
                params.min_price,
                params.max_price,
            ),
            [],
            logger,
        )
        products = await self._price_products(
            candidates, inventory.value, distances,
        )
        ordered = sort_products(products, params.sort_by)
        return paginate(ordered, params.page, params.limit)

    # ── Stages ───────────────────────────────────────────

    async def _run_stages(
        self,
        params: ProductSearchParams,
        store_ids: list[str] | None,
    ) -> _Candidates:
        stage = SearchStage.PRIMARY
        candidates = _Candidates(products={})
        while stage is not SearchStage.DONE:
            if stage is SearchStage.SUBSTRING:
                candidates = await self._substring_stage(params)
                stage = next_stage(stage, classify(0, False))
                continue

            threshold = STAGE_THRESHOLDS[stage]
            outcome = await attempt(
                f"Fuzzy search ({stage.value}, {threshold})",
                self._repository.fuzzy_search_products(FuzzyQuery(
                    query=params.query,
                    similarity_threshold=threshold,
                    category=params.category,
                    min_price=params.min_price,
                    max_price=params.max_price,
                    store_ids=store_ids,
                )),
                [],
                logger,
            )
            if outcome.value:
                candidates = self._fuzzy_candidates(outcome.value)
            logger.debug(
                "Stage %s returned %d rows",
                stage.value,
                len(outcome.value),
            )
            stage = next_stage(
                stage, classify(len(outcome.value), outcome.failed),
            )
        return candidates

    @staticmethod
    def _fuzzy_candidates(rows: list[FuzzyMatchRow]) -> _Candidates:
        products: dict[str, MasterProduct] = {}
        relevance: dict[str, float] = {}
        for row in rows:
            products[row.product_id] = row.to_product()
            relevance[row.product_id] = row.relevance_score
        return _Candidates(products=products, relevance=relevance)

    async def _substring_stage(
        self, params: ProductSearchParams,
    ) -> _Candidates:
        logger.warning(
            "Fuzzy search unavailable; using substring match for '%s'",
            params.query or "",
        )
        outcome = await attempt(
            "Substring product search",
            self._repository.find_products_by_terms(
                tokenize(params.query),
                params.category,
                Settings.FUZZY_CANDIDATE_LIMIT,
            ),
            [],
            logger,
        )
        return _Candidates(products={p.id: p for p in outcome.value})

    # ── Enrichment ───────────────────────────────────────

    async def _price_products(
        self,
        candidates: _Candidates,
        rows: list[InventoryRow],
        distances: dict[str, float],
    ) -> list[ProductWithPrices]:
        grouped = group_by_product(rows)
        if not grouped:
            return []

        settings = await self._delivery.resolve(
            [r.record.store_id for group in grouped.values() for r in group]
        )

        results: list[ProductWithPrices] = []
        for product_id, group in grouped.items():
            product = candidates.products.get(product_id)
            if product is None:
                continue
            prices = [
                build_store_price(
                    row,
                    settings.get(row.record.store_id),
                    LISTING_PROFILE,
                    distances.get(row.record.store_id, 0.0),
                )
                for row in group
            ]
            relevance = (
                candidates.relevance.get(product_id)
                if candidates.relevance is not None else None
            )
            aggregated = aggregate_product(product, prices, relevance)
            if aggregated is not None:
                results.append(aggregated)
        return results

    # ── Suggestions ──────────────────────────────────────

    async def suggest(
        self, query: str, limit: int = Settings.SUGGESTION_LIMIT,
    ) -> list[SearchSuggestion]:
        """Autocomplete entries for *query*; ``[]`` for short queries."""
        query = (query or "").strip()
        if len(query) < Settings.MIN_TOKEN_LENGTH:
            return []

        outcome = await attempt(
            "Search suggestions",
            self._repository.search_suggestions(query, limit),
            [],
            logger,
        )
        if not outcome.failed:
            return outcome.value[:limit]

        fallback = await attempt(
            "Suggestion fallback",
            self._repository.find_products_by_terms([query], None, limit),
            [],
            logger,
        )
        return self._suggestions_from_products(fallback.value, limit)

    @staticmethod
    def _suggestions_from_products(
        products: list[MasterProduct], limit: int,
    ) -> list[SearchSuggestion]:
        """Name and brand of every fallback row, each deduped by kind."""
        seen_names: set[str] = set()
        seen_brands: set[str] = set()
        suggestions: list[SearchSuggestion] = []
        for product in products:
            if product.name and product.name.lower() not in seen_names:
                seen_names.add(product.name.lower())
                suggestions.append(SearchSuggestion(
                    suggestion=product.name, type="product", count=1,
                ))
            if product.brand and product.brand.lower() not in seen_brands:
                seen_brands.add(product.brand.lower())
                suggestions.append(SearchSuggestion(
                    suggestion=product.brand, type="brand", count=1,
                ))
        return suggestions[:limit]
