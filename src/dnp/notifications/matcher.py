"""Geodistance matching of messages against user interest zones."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from dnp.geo.boundaries import GeometryError, geometry_vertices
from dnp.geo.distance import haversine_distance
from dnp.models import GeoPoint, Interest, Message
from dnp.utils.logging import get_logger


logger = get_logger(__name__)

DistanceFn = Callable[[GeoPoint, GeoPoint], float]


@dataclass(frozen=True)
class InterestMatch:
    interest: Interest
    distance_meters: float


def _open_ring(ring: Any) -> list[tuple[float, float]]:
    positions = geometry_vertices({"type": "LineString", "coordinates": ring})
    if len(positions) > 1 and positions[0] == positions[-1]:
        return positions[:-1]
    return positions


def _centroid_vertices(geometry: dict[str, Any]) -> list[tuple[float, float]]:
    """Vertices for averaging; closed rings contribute their first vertex once."""
    kind = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if kind == "Polygon" and isinstance(coordinates, list):
        return [pos for ring in coordinates for pos in _open_ring(ring)]
    if kind == "MultiPolygon" and isinstance(coordinates, list):
        return [
            pos
            for polygon in coordinates
            if isinstance(polygon, list)
            for ring in polygon
            for pos in _open_ring(ring)
        ]
    return geometry_vertices(geometry)


def geometry_centroid(geo_json: Optional[dict[str, Any]]) -> Optional[GeoPoint]:
    """Mean of all feature vertices; malformed features are ignored."""
    if not geo_json:
        return None

    lng_total = 0.0
    lat_total = 0.0
    count = 0
    for feature in geo_json.get("features") or []:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geometry, dict):
            continue
        try:
            vertices = _centroid_vertices(geometry)
        except GeometryError:
            continue
        for lng, lat in vertices:
            lng_total += lng
            lat_total += lat
            count += 1

    if count == 0:
        return None
    return GeoPoint(lat=lat_total / count, lng=lng_total / count)


def representative_point(message: Message) -> Optional[GeoPoint]:
    """Primary geocoded coordinate, else the centroid of the message geometry."""
    if message.addresses:
        return message.addresses[0].coordinates
    return geometry_centroid(message.geo_json)


def parse_interest(
    doc: dict[str, Any],
    min_radius: Optional[float] = None,
    max_radius: Optional[float] = None,
) -> Optional[Interest]:
    """Build an Interest from a stored document, or None if it is malformed.

    Radii outside ``[min_radius, max_radius]`` are clamped into that range.
    """
    try:
        interest = Interest.model_validate(doc)
    except ValidationError as exc:
        logger.warning(
            "interests.malformed id=%s errors=%s", doc.get("id"), exc.error_count()
        )
        return None

    radius = interest.radius
    if min_radius is not None:
        radius = max(radius, min_radius)
    if max_radius is not None:
        radius = min(radius, max_radius)
    if radius != interest.radius:
        interest = interest.model_copy(update={"radius": radius})
    return interest


def parse_interests(
    docs: Iterable[dict[str, Any]],
    min_radius: Optional[float] = None,
    max_radius: Optional[float] = None,
) -> list[Interest]:
    interests: list[Interest] = []
    for doc in docs:
        interest = parse_interest(doc, min_radius, max_radius)
        if interest is not None:
            interests.append(interest)
    return interests


def within_radius(distance_meters: float, radius_meters: float) -> bool:
    """Distance predicate; exactly on the circle counts as inside."""
    return distance_meters <= radius_meters


def match_interests(
    point: GeoPoint,
    interests: Sequence[Interest],
    distance_fn: DistanceFn = haversine_distance,
) -> list[InterestMatch]:
    """Return the interests whose circle contains ``point``."""
    matches: list[InterestMatch] = []
    for interest in interests:
        distance = distance_fn(point, interest.coordinates)
        if within_radius(distance, interest.radius):
            matches.append(InterestMatch(interest=interest, distance_meters=distance))
    return matches
