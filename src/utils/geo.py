# src/utils/geo.py

"""Great-circle distance helpers."""

import math

from src.config.settings import Settings


def haversine_miles(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Return the great-circle distance in miles between two points.

    Coordinates are in degrees.  NaN inputs propagate to a NaN result.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push antipodal points a hair above 1
    if a > 1.0:
        a = 1.0
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return Settings.EARTH_RADIUS_MILES * c


def distance_to(
    latitude: float | None,
    longitude: float | None,
    target_lat: float | None,
    target_lng: float | None,
) -> float:
    """Distance from a caller to a target, or 0 when either is unknown."""
    if (
        latitude is None
        or longitude is None
        or target_lat is None
        or target_lng is None
    ):
        return 0.0
    return round(
        haversine_miles(latitude, longitude, target_lat, target_lng), 2
    )
