"""Containment of GeoJSON features within administrative boundary polygons.

Only what the scraped data needs is supported. A Point is inside when it lies in
any boundary polygon. Line and polygon features count as inside when at least one
of their vertices does, which misses a line that crosses a boundary with no vertex
in it. Containment uses the even-odd rule on each polygon's exterior ring, holes are
ignored, and a point lying exactly on a ring edge counts as inside.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import orjson

from dnp.models import Feature, FeatureCollection
from dnp.utils.logging import get_logger


logger = get_logger(__name__)

Position = tuple[float, float]
Ring = list[Position]

_EDGE_EPSILON = 1e-12


class GeometryError(ValueError):
    """Geometry has an unknown type or malformed coordinates."""


@dataclass(frozen=True)
class BoundaryCheck:
    """Outcome of a containment check, with the fallback made explicit."""

    within: bool
    error: Optional[str] = None

    @property
    def failed_open(self) -> bool:
        return self.error is not None


def load_boundary(path: Union[str, Path]) -> FeatureCollection:
    """Read a boundary FeatureCollection from a GeoJSON file."""
    data = orjson.loads(Path(path).read_bytes())
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        raise GeometryError(f"Boundary file is not a FeatureCollection: {path}")
    return data


def _position(value: Any) -> Position:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise GeometryError(f"Invalid position: {value!r}")
    lng, lat = value[0], value[1]
    for number in (lng, lat):
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            raise GeometryError(f"Invalid position: {value!r}")
        if not math.isfinite(number):
            raise GeometryError(f"Invalid position: {value!r}")
    return float(lng), float(lat)


def _positions(value: Any) -> list[Position]:
    if not isinstance(value, (list, tuple)):
        raise GeometryError(f"Invalid coordinate array: {value!r}")
    return [_position(item) for item in value]


def _nested(value: Any) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise GeometryError(f"Invalid coordinate array: {value!r}")
    return list(value)


def geometry_vertices(geometry: dict[str, Any]) -> list[Position]:
    """Flatten a geometry into its vertices (GeoJSON ``[lng, lat]`` order)."""
    kind = geometry.get("type")
    coordinates = geometry.get("coordinates")

    if kind == "Point":
        return [_position(coordinates)]
    if kind in ("LineString", "MultiPoint"):
        return _positions(coordinates)
    if kind in ("Polygon", "MultiLineString"):
        return [pos for part in _nested(coordinates) for pos in _positions(part)]
    if kind == "MultiPolygon":
        return [
            pos
            for polygon in _nested(coordinates)
            for ring in _nested(polygon)
            for pos in _positions(ring)
        ]

    raise GeometryError(f"Unsupported geometry type: {kind!r}")


def boundary_rings(boundary: FeatureCollection) -> list[Ring]:
    """Return the exterior ring of every polygon in a boundary collection."""
    if not isinstance(boundary, dict):
        raise GeometryError("Boundary must be a FeatureCollection")

    rings: list[Ring] = []
    for feature in boundary.get("features") or []:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geometry, dict):
            raise GeometryError("Boundary feature has no geometry")

        kind = geometry.get("type")
        coordinates = geometry.get("coordinates")
        if kind == "Polygon":
            polygons = [coordinates]
        elif kind == "MultiPolygon":
            polygons = _nested(coordinates)
        else:
            raise GeometryError(f"Boundary geometry must be a polygon, got {kind!r}")

        for polygon in polygons:
            parts = _nested(polygon)
            if not parts:
                raise GeometryError("Boundary polygon has no rings")
            ring = _positions(parts[0])
            if len(ring) < 3:
                raise GeometryError("Boundary ring needs at least three positions")
            rings.append(ring)

    return rings


def _on_segment(point: Position, a: Position, b: Position) -> bool:
    (px, py), (ax, ay), (bx, by) = point, a, b
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > _EDGE_EPSILON:
        return False
    return (
        min(ax, bx) - _EDGE_EPSILON <= px <= max(ax, bx) + _EDGE_EPSILON
        and min(ay, by) - _EDGE_EPSILON <= py <= max(ay, by) + _EDGE_EPSILON
    )


def point_in_ring(point: Position, ring: Ring) -> bool:
    """Even-odd ray casting; points on an edge are inside."""
    px, py = point
    inside = False
    count = len(ring)
    j = count - 1
    for i in range(count):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if _on_segment(point, ring[j], ring[i]):
            return True
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def _has_geometry(feature: Any) -> bool:
    if not isinstance(feature, dict):
        return False
    geometry = feature.get("geometry")
    return isinstance(geometry, dict) and geometry.get("coordinates") is not None


def feature_within(feature: Feature, rings: list[Ring]) -> bool:
    """True when any vertex of the feature lies in any ring.

    Raises GeometryError for unknown geometry types or malformed coordinates.
    """
    for vertex in geometry_vertices(feature["geometry"]):
        if any(point_in_ring(vertex, ring) for ring in rings):
            return True
    return False


def _features(collection: Optional[FeatureCollection]) -> list[Any]:
    if not collection:
        return []
    return list(collection.get("features") or [])


def filter_features(
    features: Optional[FeatureCollection],
    boundary: FeatureCollection,
) -> Optional[FeatureCollection]:
    """Keep only features inside the boundary, preserving their order.

    Returns None for a missing or empty collection and when nothing survives.
    Features without usable geometry are dropped.
    """
    items = _features(features)
    if not items:
        return None

    rings = boundary_rings(boundary)
    kept: list[Feature] = []
    for feature in items:
        if not _has_geometry(feature):
            continue
        try:
            if feature_within(feature, rings):
                kept.append(feature)
        except GeometryError as exc:
            logger.debug("boundaries.feature_dropped error=%s", exc)

    if not kept:
        return None

    return {"type": "FeatureCollection", "features": kept}


def check_within_boundaries(
    features: Optional[FeatureCollection],
    boundary: FeatureCollection,
) -> BoundaryCheck:
    """Evaluate containment, turning any geometry error into an inside verdict."""
    items = _features(features)
    if not items:
        return BoundaryCheck(within=False)

    try:
        rings = boundary_rings(boundary)
        for feature in items:
            if _has_geometry(feature) and feature_within(feature, rings):
                return BoundaryCheck(within=True)
    except (GeometryError, TypeError, KeyError, AttributeError) as exc:
        logger.warning("boundaries.check_failed_open error=%s", exc)
        return BoundaryCheck(within=True, error=str(exc))

    return BoundaryCheck(within=False)


def is_within_boundaries(
    features: Optional[FeatureCollection],
    boundary: FeatureCollection,
) -> bool:
    """True if at least one feature is inside, or if the check itself failed."""
    return check_within_boundaries(features, boundary).within


def merge_boundaries(paths: Iterable[Union[str, Path]]) -> FeatureCollection:
    """Merge several boundary files into one collection (district unions)."""
    merged: list[Feature] = []
    for path in paths:
        merged.extend(load_boundary(path).get("features") or [])
    return {"type": "FeatureCollection", "features": merged}
