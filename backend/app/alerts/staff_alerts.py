"""
staff_alerts.py — Geo-targeted alerts raised by staff.

Unlike a broadcast, a staff alert only reaches volunteers near a given
point, is persisted together with its recipient list, and delivery is
logged rather than sent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from backend.app.alerts.geo_fence import volunteers_within_radius
from backend.app.alerts.store import StaffAlertRecord, StaffAlertRepository
from backend.app.core.errors import NotFoundError

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601, with UTC written as ``Z``."""
    if value is None:
        return None
    if value.utcoffset() == timedelta(0):
        return value.replace(tzinfo=None).isoformat() + "Z"
    return value.isoformat()


def alert_to_dict(alert: StaffAlertRecord) -> Dict[str, Any]:
    return {
        "id": alert.id,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "recipients": [
            {"volunteerId": r.volunteer_id, "name": r.name, "contact": r.contact}
            for r in alert.recipients
        ],
        "message": alert.message,
        "timestamp": _iso(alert.timestamp),
        "createdAt": _iso(alert.created_at),
    }


async def create_staff_alert(
    repository: StaffAlertRepository,
    *,
    latitude: float,
    longitude: float,
    message: str,
    timestamp: datetime,
    radius_km: float = 10.0,
) -> Dict[str, Any]:
    """
    Persist an alert for every volunteer within ``radius_km``.

    Raises NotFoundError when nobody is in range; nothing is stored then.
    """
    candidates = await repository.fetch_located_volunteers()
    nearby = volunteers_within_radius(latitude, longitude, candidates, radius_km)

    if not nearby:
        raise NotFoundError(
            f"No volunteers found within {radius_km:g} km of the specified location.",
            latitude=latitude,
            longitude=longitude,
        )

    alert = await repository.save_alert(
        latitude=latitude,
        longitude=longitude,
        message=message,
        timestamp=timestamp,
        volunteers=nearby,
    )

    logger.info("Sending staff alert %s to %d volunteers", alert.id, len(nearby))
    for volunteer in nearby:
        logger.info("- To: %s (%s): %s", volunteer.name, volunteer.contact, message)

    return {
        "message": f"Alert sent successfully to {len(nearby)} volunteer(s).",
        "alert": alert_to_dict(alert),
    }


async def list_staff_alerts(repository: StaffAlertRepository) -> List[Dict[str, Any]]:
    return [alert_to_dict(a) for a in await repository.list_alerts()]
