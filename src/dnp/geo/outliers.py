"""Outlier pruning for geocoded addresses of a single message.

A geocoder occasionally resolves a street name to a namesake in another town or
country. Each address is kept only if some other address of the same message lies
within ``max_distance_meters``. This is a nearest-neighbour density check, not a
clustering algorithm: two small far-apart groups are both kept, while a lone point
is dropped even when it is the only address near a larger group elsewhere.
"""

from __future__ import annotations

from typing import Callable, Sequence

from dnp.geo.distance import haversine_distance
from dnp.models import Address, GeoPoint
from dnp.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_MAX_DISTANCE_METERS = 1000.0

DistanceFn = Callable[[GeoPoint, GeoPoint], float]


def nearest_neighbor_distances(
    points: Sequence[GeoPoint],
    distance_fn: DistanceFn = haversine_distance,
) -> list[float]:
    """Return, for each point, the distance to its closest other point."""
    nearest = [float("inf")] * len(points)
    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            distance = distance_fn(points[i], points[j])
            if distance < nearest[i]:
                nearest[i] = distance
            if distance < nearest[j]:
                nearest[j] = distance
    return nearest


def filter_outlier_addresses(
    addresses: Sequence[Address],
    max_distance_meters: float = DEFAULT_MAX_DISTANCE_METERS,
    distance_fn: DistanceFn = haversine_distance,
) -> list[Address]:
    """Drop addresses whose nearest neighbour is farther than the threshold.

    Zero or one address is returned unchanged. Order of survivors is preserved.
    """
    if len(addresses) <= 1:
        return list(addresses)

    nearest = nearest_neighbor_distances(
        [address.coordinates for address in addresses], distance_fn
    )

    kept: list[Address] = []
    for address, distance in zip(addresses, nearest):
        if distance <= max_distance_meters:
            kept.append(address)
            continue
        logger.info(
            "outliers.dropped text=%r nearest_m=%.1f threshold_m=%s",
            address.original_text[:80],
            distance,
            max_distance_meters,
        )

    return kept
