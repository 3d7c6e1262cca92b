# src/config/settings.py

"""Central configuration for the market_discovery engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the market_discovery engine."""

    # --- Backend ---
    CATALOG_BACKEND: str = os.getenv("MARKETPLACE_BACKEND", "sqlite")
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")

    # --- Geo ---
    EARTH_RADIUS_MILES: float = 3959.0
    DEFAULT_STORE_RADIUS_MILES: float = 10.0     # "stores near me"
    DEFAULT_SEARCH_RADIUS_MILES: float = 25.0    # product search geo filter

    # --- Search ---
    PRIMARY_SIMILARITY_THRESHOLD: float = 0.15
    RELAXED_SIMILARITY_THRESHOLD: float = 0.1
    FUZZY_CANDIDATE_LIMIT: int = 100    # Over-fetch before inventory join
    MIN_TOKEN_LENGTH: int = 2           # Substring fallback / suggestions
    SUGGESTION_LIMIT: int = 10

    # --- Listing ---
    DEFAULT_PAGE_SIZE: int = 20
    FEATURED_LIMIT: int = 12
    FEATURED_CANDIDATE_LIMIT: int = 100

    # --- Delivery defaults (applied per field) ---
    DEFAULT_DELIVERY_ENABLED: bool = True
    DEFAULT_PICKUP_ENABLED: bool = True
    DEFAULT_DELIVERY_FEE: float = 4.99
    DEFAULT_MINIMUM_ORDER: float = 0.0
    DEFAULT_FREE_DELIVERY_THRESHOLD: float | None = None
    DEFAULT_DELIVERY_RADIUS_MILES: float = 10.0
    DEFAULT_ESTIMATED_DELIVERY: str = "30-45 min"
    DEFAULT_ESTIMATED_PICKUP: str = "15-20 min"

    # --- Offer sentinels ---
    UNKNOWN_STORE_NAME: str = "Unknown Store"
    MAIN_LOCATION_NAME: str = "Main Location"

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    CATALOG_DB_PATH: Path = Path(
        os.getenv(
            "MARKETPLACE_DB_PATH",
            str(BASE_DIR / "data" / "marketplace.db"),
        )
    )
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Categories shown when the taxonomy is empty ---
    DEFAULT_CATEGORIES: list[dict[str, str]] = [
        {"id": "spirits", "name": "Spirits"},
        {"id": "wine", "name": "Wine"},
        {"id": "beer", "name": "Beer"},
        {"id": "mixers", "name": "Mixers"},
        {"id": "accessories", "name": "Accessories"},
    ]
