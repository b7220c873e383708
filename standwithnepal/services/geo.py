"""
Great-circle distance helpers for the nearby-issues search.
Uses the Haversine formula on a spherical Earth.
"""
import math
from typing import Optional, Tuple

# Mean Earth radius in kilometres
EARTH_RADIUS_KM = 6371.0

# One degree of latitude is never shorter than this (meridian arc at the equator)
_MIN_KM_PER_DEGREE_LAT = 110.5


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometres
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Rounding can push a a hair past 1 for antipodal points
    a = min(1.0, max(0.0, a))

    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def within_radius(
    point_lat: float,
    point_lng: float,
    center_lat: float,
    center_lng: float,
    radius_km: float,
) -> Tuple[bool, float]:
    """
    Check whether a point lies strictly inside a circle.

    Returns:
        Tuple of (is_inside, distance_km). A point exactly on the boundary is outside.
    """
    distance = haversine_km(center_lat, center_lng, point_lat, point_lng)
    return distance < radius_km, distance


def latitude_band(center_lat: float, radius_km: float) -> Optional[Tuple[float, float]]:
    """
    Latitude range that contains every point within radius_km of center_lat.
    Used as a cheap SQL pre-filter before the exact distance check.
    Returns None when the band would cover a pole.
    """
    if radius_km <= 0:
        return center_lat, center_lat
    delta = radius_km / _MIN_KM_PER_DEGREE_LAT
    low, high = center_lat - delta, center_lat + delta
    if low < -90 or high > 90:
        return None
    return low, high
