"""
Nearest-location lookup on the sphere.

    from geonear import KDTree, Point, load_locations

    tree = KDTree(load_locations("data/locations.csv"))
    print(tree.nearest((48.8566, 2.3522)).label)
"""

from geonear.distance import EARTH_RADIUS_KM, brute_force_nearest, distance, haversine_km
from geonear.kd_tree import EmptyIndexError, KDTree, Point, QueryResult
from geonear.loader import load_locations, parse_locations

__all__ = [
    "EARTH_RADIUS_KM",
    "EmptyIndexError",
    "KDTree",
    "Point",
    "QueryResult",
    "brute_force_nearest",
    "distance",
    "haversine_km",
    "load_locations",
    "parse_locations",
]
