# src/models/search_params.py

"""Request parameters for the discovery entry points."""

from dataclasses import dataclass

from src.config.settings import Settings


@dataclass
class StoreSearchParams:
    """Inputs for "stores near me"."""

    latitude: float
    longitude: float
    radius_miles: float = Settings.DEFAULT_STORE_RADIUS_MILES
    search: str | None = None
    sort_by: str = "distance"  # "distance" | "rating"
    page: int = 1
    limit: int = Settings.DEFAULT_PAGE_SIZE


@dataclass
class ProductSearchParams:
    """Inputs for product search."""

    query: str | None = None
    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius_miles: float = Settings.DEFAULT_SEARCH_RADIUS_MILES
    sort_by: str = "relevance"  # "relevance" | "price" | "distance"
    page: int = 1
    limit: int = Settings.DEFAULT_PAGE_SIZE

    @property
    def has_location(self) -> bool:
        """True when both coordinates of a geo centre are supplied."""
        return self.latitude is not None and self.longitude is not None


@dataclass
class FuzzyQuery:
    """Arguments handed to the fuzzy-match collaborator."""

    query: str | None
    similarity_threshold: float
    category: str | None = None
    brand: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    store_ids: list[str] | None = None
    limit: int = Settings.FUZZY_CANDIDATE_LIMIT
    offset: int = 0
