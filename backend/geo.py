"""Ruta Segura Backend — Great-circle distance helpers"""

import math
from numbers import Real

import numpy as np

from config import EARTH_RADIUS_KM


def as_point(value) -> tuple[float, float]:
    """Coerce a (lat, lon) pair to floats.

    Raises TypeError for anything that is not a pair of real numbers.
    Non-finite values are passed through; callers decide what they mean.
    """
    try:
        lat, lon = value
    except (TypeError, ValueError):
        raise TypeError(f"Expected a (lat, lon) pair, got {value!r}") from None
    for v in (lat, lon):
        if isinstance(v, bool) or not isinstance(v, (Real, np.floating, np.integer)):
            raise TypeError(f"Coordinate values must be numeric, got {value!r}")
    return float(lat), float(lon)


def is_finite_point(point: tuple[float, float]) -> bool:
    return math.isfinite(point[0]) and math.isfinite(point[1])


def haversine_km(a, b) -> float:
    """Great-circle distance in kilometres between two (lat, lon) points."""
    lat1, lon1 = as_point(a)
    lat2, lon2 = as_point(b)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    h = (math.sin(dlat / 2) ** 2
         + math.cos(math.radians(lat1))
         * math.cos(math.radians(lat2))
         * math.sin(dlon / 2) ** 2)
    # Clamp to [0, 1] against floating-point overshoot
    h = max(0.0, min(1.0, h))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def haversine_km_many(point, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Vectorised haversine from one point to arrays of latitudes/longitudes."""
    lat, lon = as_point(point)
    phi1 = np.radians(lat)
    phi2 = np.radians(lats)
    dphi = np.radians(lats - lat)
    dlam = np.radians(lons - lon)
    h = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlam / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(h), np.sqrt(1.0 - h))
