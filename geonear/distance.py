"""Great-circle distance on a spherical Earth."""

import math

import numpy as np


EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km between two points given in degrees.

    The haversine term is clamped to [0, 1] so rounding near zero distance
    or near antipodal points never reaches ``sqrt`` of a negative number.
    """
    lat1_r, lon1_r = math.radians(lat1), math.radians(lon1)
    lat2_r, lon2_r = math.radians(lat2), math.radians(lon2)
    dlat = lat2_r - lat1_r
    dlon = lon2_r - lon1_r
    h = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2.0) ** 2
    )
    h = min(max(h, 0.0), 1.0)
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))
    return EARTH_RADIUS_KM * c


def distance(a, b) -> float:
    """Haversine distance in km between two objects with ``latitude`` / ``longitude``."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def haversine_km_many(lat: float, lon: float, lats, lons) -> np.ndarray:
    """Vectorised ``haversine_km`` from one point to many."""
    lat_r = np.radians(lat)
    lats_r = np.radians(np.asarray(lats, dtype=float))
    dlat = lats_r - lat_r
    dlon = np.radians(np.asarray(lons, dtype=float)) - np.radians(lon)
    h = np.sin(dlat / 2.0) ** 2 + np.cos(lat_r) * np.cos(lats_r) * np.sin(dlon / 2.0) ** 2
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2.0 * np.arctan2(np.sqrt(h), np.sqrt(1.0 - h))


def brute_force_nearest(target, points) -> tuple:
    """
    Linear scan for the point closest to *target*.

    Ties resolve to the earliest point in *points*.

    Returns
    -------
    (point, distance_km)
    """
    points = list(points)
    if not points:
        raise ValueError("brute_force_nearest() needs at least one point")
    dists = haversine_km_many(
        target.latitude,
        target.longitude,
        [p.latitude for p in points],
        [p.longitude for p in points],
    )
    best = int(np.argmin(dists))
    return points[best], float(dists[best])
