# saath-saath/saathsaath/utils.py
"""
Utility functions for the Saath-Saath Group Buying Engine.

Provides geographic calculations, travel time estimates and presentation
helpers. Includes OSRM integration for road distances and Nominatim
integration for (reverse) geocoding.
"""

from __future__ import annotations

import math
import logging
from typing import Tuple, Optional

import requests

from . import config
from .cache import ExpiringCache
from .models import Location

# Configure logging
logger = logging.getLogger(__name__)

# Shared cache for OSRM and Nominatim results
_geo_cache = ExpiringCache(
    max_size=config.GEO_CACHE_SIZE,
    default_ttl=config.GEO_CACHE_TTL_SECONDS,
)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute the distance between two GPS coordinates.
    This accounts for Earth's curvature, making it accurate for neighbourhood distances.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> haversine_distance(28.6562, 77.2410, 28.6565, 77.2411)
        0.035  # ~35 meters
    """
    # Convert decimal degrees to radians
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    # Haversine formula
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return c * config.EARTH_RADIUS_KM


def distance_between(a: Location, b: Location) -> float:
    """Haversine distance in km between two Location objects."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def _get_cache_key(lat1: float, lon1: float, lat2: float, lon2: float) -> Tuple[str, float, float, float, float]:
    """Create a cache key with rounded coordinates (5 decimal places ≈ 1m precision)."""
    return ("route", round(lat1, 5), round(lon1, 5), round(lat2, 5), round(lon2, 5))


def osrm_route(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> Optional[Tuple[float, float]]:
    """
    Get road distance and duration from OSRM routing service.

    Queries the OSRM API for the actual driving route between two points.
    Results are cached to minimize API calls.

    Args:
        lat1: Latitude of origin in decimal degrees
        lon1: Longitude of origin in decimal degrees
        lat2: Latitude of destination in decimal degrees
        lon2: Longitude of destination in decimal degrees

    Returns:
        Tuple of (distance_km, duration_minutes) if successful, None if failed

    Note:
        OSRM expects coordinates in lon,lat order (not lat,lon).
    """
    cache_key = _get_cache_key(lat1, lon1, lat2, lon2)
    cached = _geo_cache.get(cache_key)
    if cached is not None:
        return cached

    # Roads are mostly bidirectional with the same distance
    cached = _geo_cache.get(_get_cache_key(lat2, lon2, lat1, lon1))
    if cached is not None:
        return cached

    try:
        url = (
            f"{config.OSRM_SERVER_URL}/route/v1/driving/"
            f"{lon1},{lat1};{lon2},{lat2}"
            f"?overview=false"
        )

        response = requests.get(url, timeout=config.OSRM_TIMEOUT_SECONDS)
        response.raise_for_status()

        data = response.json()

        if data.get("code") != "Ok" or not data.get("routes"):
            logger.warning(f"OSRM returned no route: {data.get('code')}")
            return None

        route = data["routes"][0]
        distance_km = route["distance"] / 1000  # Convert meters to km
        duration_min = route["duration"] / 60   # Convert seconds to minutes

        result = (distance_km, duration_min)
        _geo_cache.put(cache_key, result)
        return result

    except requests.exceptions.Timeout:
        logger.warning("OSRM request timed out")
        return None
    except requests.exceptions.RequestException as e:
        logger.warning(f"OSRM request failed: {e}")
        return None
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(f"OSRM response parsing failed: {e}")
        return None


def geocode_address(address: str) -> Optional[Location]:
    """
    Resolve a free-text address to coordinates using Nominatim (OpenStreetMap).

    Args:
        address: Address to look up, e.g. "Chandni Chowk, Delhi"

    Returns:
        Location with the matched display name as address, or None if the
        address is unknown or the service fails
    """
    if not address or not address.strip():
        return None

    cache_key = ("geocode", address.strip().lower())
    cached = _geo_cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        response = requests.get(
            f"{config.NOMINATIM_URL}/search",
            params={"format": "json", "q": address, "limit": 1},
            headers={"User-Agent": config.NOMINATIM_USER_AGENT},
            timeout=config.NOMINATIM_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()

        if not data:
            logger.info(f"Nominatim found no match for '{address}'")
            return None

        match = data[0]
        location = Location(
            latitude=float(match["lat"]),
            longitude=float(match["lon"]),
            address=match.get("display_name", address),
        )
        _geo_cache.put(cache_key, location)
        return location

    except requests.exceptions.Timeout:
        logger.warning("Nominatim geocoding request timed out")
        return None
    except requests.exceptions.RequestException as e:
        logger.warning(f"Nominatim geocoding request failed: {e}")
        return None
    except (KeyError, IndexError, ValueError, TypeError) as e:
        logger.warning(f"Nominatim geocoding response parsing failed: {e}")
        return None


def reverse_geocode(latitude: float, longitude: float) -> Optional[str]:
    """
    Get a human-readable address for coordinates using Nominatim.

    Returns:
        The display name, or None if unavailable
    """
    cache_key = ("reverse", round(latitude, 5), round(longitude, 5))
    cached = _geo_cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        response = requests.get(
            f"{config.NOMINATIM_URL}/reverse",
            params={"format": "json", "lat": latitude, "lon": longitude},
            headers={"User-Agent": config.NOMINATIM_USER_AGENT},
            timeout=config.NOMINATIM_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        name = response.json().get("display_name")
        if name:
            _geo_cache.put(cache_key, name)
        return name or None

    except requests.exceptions.Timeout:
        logger.warning("Nominatim reverse geocoding timed out")
        return None
    except requests.exceptions.RequestException as e:
        logger.warning(f"Nominatim reverse geocoding failed: {e}")
        return None
    except (AttributeError, ValueError) as e:
        logger.warning(f"Nominatim reverse geocoding response parsing failed: {e}")
        return None


def clear_geo_cache() -> int:
    """
    Clear the OSRM/Nominatim result cache.

    Returns:
        Number of cached entries that were cleared
    """
    return _geo_cache.clear()


def get_geo_cache_stats() -> dict:
    """Get statistics about the OSRM/Nominatim cache."""
    return _geo_cache.stats()


def calculate_travel_time_minutes(distance_km: float) -> int:
    """
    Estimate travel time in mixed city traffic.

    Uses the average city speed from config and rounds to whole minutes.

    Args:
        distance_km: Distance in kilometers

    Returns:
        Estimated travel time in minutes

    Example:
        >>> calculate_travel_time_minutes(5.0)  # 5km at 20km/h
        15
    """
    if config.CITY_AVG_SPEED_KMH <= 0:
        raise ValueError("CITY_AVG_SPEED_KMH must be positive")
    return round((distance_km / config.CITY_AVG_SPEED_KMH) * 60)


def format_rupees(amount: float) -> str:
    """
    Format an amount as whole rupees for display.

    Engine values keep full precision; rounding happens only here.

    Example:
        >>> format_rupees(149.6)
        '₹150'
    """
    return f"₹{round(amount):,}"


def format_time_duration(minutes: float) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"
