"""Great-circle distance helpers."""

from __future__ import annotations

import math

from dnp.models import GeoPoint


# Mean Earth radius in meters (IUGG).
EARTH_RADIUS_METERS = 6371008.8


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Return the great-circle distance between two points in meters."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def round_coordinate(value: float, decimals: int = 6) -> float:
    """Round a coordinate; 6 decimals is roughly 0.1 m."""
    return round(value, decimals)
