"""Geographic utility functions for SignalFusion.

Pure geographic computations — no I/O, no external calls.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

# Mean Earth radius in kilometres
EARTH_RADIUS_KM = 6371.0

# Kilometres per degree of latitude (constant on a sphere of EARTH_RADIUS_KM)
KM_PER_DEG_LAT = math.pi * EARTH_RADIUS_KM / 180.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great-circle distance between two points using the Haversine formula.

    Longitude differences wrap naturally, so points on either side of the
    antimeridian measure as neighbours.

    Args:
        lat1: Latitude of first point in decimal degrees.
        lon1: Longitude of first point in decimal degrees.
        lat2: Latitude of second point in decimal degrees.
        lon2: Longitude of second point in decimal degrees.

    Returns:
        Distance in kilometres.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_KM * c


def normalize_longitude(lon: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    return ((lon + 180.0) % 360.0) - 180.0


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """True for finite latitude in [-90, 90] and longitude in [-180, 180]."""
    return (
        isinstance(lat, (int, float))
        and isinstance(lon, (int, float))
        and math.isfinite(lat)
        and math.isfinite(lon)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lon <= 180.0
    )


def weighted_centroid(
    points: Sequence[Tuple[float, float]],
    weights: Sequence[float],
) -> Tuple[float, float]:
    """Weighted geographic mean of (lat, lon) points.

    Averages unit vectors on the sphere rather than raw degrees, so a cluster
    straddling ±180° longitude gets a centroid between its members instead of
    on the opposite side of the globe. Falls back to equal weights when the
    weights sum to zero.

    Args:
        points: (lat, lon) pairs in decimal degrees.
        weights: Non-negative weight per point.

    Returns:
        (lat, lon) of the centroid.
    """
    if not points:
        raise ValueError("weighted_centroid requires at least one point")

    total = sum(weights)
    if total <= 0:
        weights = [1.0] * len(points)
        total = float(len(points))

    x = y = z = 0.0
    for (lat, lon), w in zip(points, weights):
        phi = math.radians(lat)
        lam = math.radians(lon)
        x += w * math.cos(phi) * math.cos(lam)
        y += w * math.cos(phi) * math.sin(lam)
        z += w * math.sin(phi)
    x, y, z = x / total, y / total, z / total

    hyp = math.hypot(x, y)
    if hyp < 1e-12 and abs(z) < 1e-12:
        # Antipodal members cancel out; use the heaviest point
        idx = max(range(len(points)), key=lambda i: weights[i])
        return points[idx]
    lat = math.degrees(math.atan2(z, hyp))
    lon = math.degrees(math.atan2(y, x)) if hyp >= 1e-12 else 0.0
    return lat, normalize_longitude(lon)
