# saath-saath/saathsaath/config.py
"""
Configuration parameters for the Saath-Saath Group Buying Engine.

This module centralizes all tunable parameters, making it easy to:
- Adjust group formation thresholds
- Fine-tune pricing behaviour
- Configure the external geo services (OSRM, Nominatim)

All parameters are documented with their purpose and typical value ranges.
"""

from typing import Dict, Final, Tuple

# =============================================================================
# GROUP FORMATION PARAMETERS
# =============================================================================

GROUP_RADIUS_KM: float = 2.0
"""Radius around the ordering vendor's stall in which other vendors may join a group."""

MINIMUM_MEMBERS: int = 2
"""Minimum number of vendors (including the ordering vendor) needed to form a group."""

MINIMUM_SAVINGS: float = 50.0
"""
Minimum projected savings (in rupees) for a group to be worth forming.
Below this the order is processed individually.
"""

COMPATIBILITY_WINDOW_HOURS: float = 2.0
"""Only pending orders created within this many hours are considered compatible."""

FORMATION_DEADLINE_MINS: int = 30
"""Time (from creation) a forming group waits for confirmation."""

DELIVERY_SLOT_HOURS: int = 4
"""Offset (from creation) of the delivery slot assigned to a new group."""

# =============================================================================
# PHYSICS AND TIME CONSTANTS
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by the Haversine formula."""

CITY_AVG_SPEED_KMH: float = 20.0
"""Average speed in mixed city traffic, used for delivery time estimates."""

DEPOT_LOCATION: Tuple[float, float] = (28.7041, 77.1025)
"""Wholesale market (Azadpur Mandi, Delhi) where group deliveries start."""

MARKET_UTC_OFFSET_HOURS: float = 5.5
"""Local time of the market (IST). Offset-aware timestamps are converted to it."""

# =============================================================================
# PRICING PARAMETERS
# =============================================================================

LARGE_GROUP_MIN_SIZE: int = 3
"""Groups strictly larger than this get an extra discount on top of the bulk tier."""

LARGE_GROUP_DISCOUNT_PER_MEMBER_PCT: float = 0.5
"""Extra discount percentage granted per member of a large group."""

LARGE_GROUP_MAX_DISCOUNT_PCT: float = 5.0
"""Cap on the extra large-group discount percentage."""

SEASONAL_MULTIPLIERS: Dict[str, Dict[str, float]] = {
    "summer": {"vegetables": 1.1, "oil": 1.0, "spices": 1.0, "flour": 1.0, "dairy": 1.15, "other": 1.0},
    "monsoon": {"vegetables": 1.2, "oil": 1.05, "spices": 1.0, "flour": 1.0, "dairy": 1.1, "other": 1.0},
    "winter": {"vegetables": 0.9, "oil": 1.0, "spices": 1.0, "flour": 1.0, "dairy": 0.95, "other": 1.0},
}
"""Price multipliers per season and product category."""

# =============================================================================
# ROAD DISTANCE (OSRM) CONFIGURATION
# =============================================================================

USE_ROAD_DISTANCE: bool = False
"""
Enable real road distance calculation via OSRM for delivery legs.
When False, uses Haversine (great-circle) distance.
Group matching always uses Haversine regardless of this flag.
"""

OSRM_SERVER_URL: str = "https://router.project-osrm.org"
"""
OSRM server URL. Options:
- "https://router.project-osrm.org" (public demo, rate-limited)
- "http://localhost:5000" (local Docker instance)
"""

OSRM_TIMEOUT_SECONDS: float = 5.0
"""Timeout for OSRM API requests. Fail fast to avoid blocking group formation."""

# =============================================================================
# GEOCODING (NOMINATIM) CONFIGURATION
# =============================================================================

NOMINATIM_URL: str = "https://nominatim.openstreetmap.org"
"""Free OpenStreetMap geocoder. No API key required, 1 request/second policy."""

NOMINATIM_TIMEOUT_SECONDS: float = 5.0
"""Timeout for geocoding requests."""

NOMINATIM_USER_AGENT: str = "saath-saath-group-buying/1.0"
"""Nominatim rejects requests without an identifying User-Agent."""

# =============================================================================
# CACHING
# =============================================================================

GEO_CACHE_SIZE: int = 10000
"""Maximum number of route/geocode results kept in memory."""

GEO_CACHE_TTL_SECONDS: float = 6 * 60 * 60
"""Lifetime of cached route/geocode results."""
