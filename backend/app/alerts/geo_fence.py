"""
geo_fence.py — Spatial targeting for staff alerts.

Selects the volunteers close enough to an incident to be asked for help.

═══════════════════════════════════════════════════════════════════════════
GEO-FENCE DESIGN
═══════════════════════════════════════════════════════════════════════════

A staff alert defines a circular fence:

    centre:  (alert.latitude, alert.longitude)
    radius:  STAFF_ALERT_RADIUS_KM   (10 km by default)

A volunteer is targeted if:

    haversine(alert_location, volunteer_location) ≤ radius_km

A bounding-box pre-filter rejects distant volunteers with plain float
comparisons before the trigonometry runs.

Haversine, with φ = latitude and λ = longitude in radians:

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    d = 2R · atan2(√a, √(1 − a))
"""

from __future__ import annotations

import logging
import math
from typing import List, Sequence, Tuple

from backend.app.alerts.store import LocatedVolunteer

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM: float = 6_371.0088  # IAU mean radius


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _bounding_box(
    lat: float, lon: float, radius_km: float,
) -> Tuple[float, float, Tuple[Tuple[float, float], ...]]:
    """
    (min_lat, max_lat, lon_ranges) enclosing the fence.

    ``lon_ranges`` holds one (min_lon, max_lon) window, or two when the fence
    crosses the antimeridian. A fence that reaches a pole spans every
    longitude.
    """
    angular = radius_km / EARTH_RADIUS_KM
    min_lat = lat - math.degrees(angular)
    max_lat = lat + math.degrees(angular)

    if min_lat <= -90.0 or max_lat >= 90.0:
        return max(min_lat, -90.0), min(max_lat, 90.0), ((-180.0, 180.0),)

    ratio = math.sin(angular) / math.cos(math.radians(lat))
    delta_lon = math.degrees(math.asin(min(1.0, ratio)))
    west, east = lon - delta_lon, lon + delta_lon

    if west < -180.0:
        lon_ranges = ((west + 360.0, 180.0), (-180.0, east))
    elif east > 180.0:
        lon_ranges = ((west, 180.0), (-180.0, east - 360.0))
    else:
        lon_ranges = ((west, east),)

    return min_lat, max_lat, lon_ranges


def volunteers_within_radius(
    latitude: float,
    longitude: float,
    volunteers: Sequence[LocatedVolunteer],
    radius_km: float,
) -> List[LocatedVolunteer]:
    """
    Volunteers inside the fence, in input order.

    Examples
    --------
    >>> near = LocatedVolunteer(1, "A", "a@x.org", 13.0827, 80.2707)
    >>> far = LocatedVolunteer(2, "B", "b@x.org", 20.0, 70.0)
    >>> [v.id for v in volunteers_within_radius(13.0827, 80.2707, [near, far], 10.0)]
    [1]
    """
    min_lat, max_lat, lon_ranges = _bounding_box(latitude, longitude, radius_km)

    targeted = [
        v for v in volunteers
        if min_lat <= v.latitude <= max_lat
        and any(lo <= v.longitude <= hi for lo, hi in lon_ranges)
        and haversine_km(latitude, longitude, v.latitude, v.longitude) <= radius_km
    ]

    logger.info(
        "Geo-fence (%.4f, %.4f) r=%.1f km: %d of %d volunteers targeted",
        latitude, longitude, radius_km, len(targeted), len(volunteers),
    )
    return targeted
