"""
Great-circle distance between a customer and a workshop.

Coordinates come from the geocoding collaborator. Missing coordinates degrade
to None instead of raising.
"""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(
    origin_lat: Optional[float],
    origin_lon: Optional[float],
    dest_lat: Optional[float],
    dest_lon: Optional[float],
) -> Optional[float]:
    """Distance rounded to one decimal place, or None when any coordinate is unknown"""
    if None in (origin_lat, origin_lon, dest_lat, dest_lon):
        return None
    km = haversine_km(origin_lat, origin_lon, dest_lat, dest_lon)
    return math.floor(km * 10 + 0.5) / 10
