"""Geometry helpers: distances, outlier pruning and boundary containment."""

from dnp.geo.boundaries import (
    BoundaryCheck,
    GeometryError,
    check_within_boundaries,
    filter_features,
    is_within_boundaries,
    load_boundary,
    merge_boundaries,
)
from dnp.geo.distance import haversine_distance, round_coordinate
from dnp.geo.outliers import filter_outlier_addresses

__all__ = [
    "BoundaryCheck",
    "GeometryError",
    "check_within_boundaries",
    "filter_features",
    "filter_outlier_addresses",
    "haversine_distance",
    "is_within_boundaries",
    "load_boundary",
    "merge_boundaries",
    "round_coordinate",
]
