"""
FastAPI route: staff geo-targeted alerts.

    POST /api/v1/staff/alerts   — alert volunteers near a point (201)
    GET  /api/v1/staff/alerts   — list stored alerts with recipients
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.staff_alerts import create_staff_alert, list_staff_alerts
from backend.app.alerts.store import SqlStaffAlertRepository, StaffAlertRepository
from backend.app.api.schemas import StaffAlertRequest
from backend.app.core.config import settings
from backend.app.core.database import get_db

router = APIRouter(prefix="/api/v1/staff/alerts", tags=["staff-alerts"])


def get_staff_alert_repository(
    session: AsyncSession = Depends(get_db),
) -> StaffAlertRepository:
    return SqlStaffAlertRepository(session)


@router.post("", status_code=201, summary="Alert nearby volunteers")
async def create_alert(
    body: StaffAlertRequest,
    repository: StaffAlertRepository = Depends(get_staff_alert_repository),
):
    return await create_staff_alert(
        repository,
        latitude=body.latitude,
        longitude=body.longitude,
        message=body.message,
        timestamp=body.timestamp,
        radius_km=settings.STAFF_ALERT_RADIUS_KM,
    )


@router.get("", summary="List staff alerts")
async def get_alerts(
    repository: StaffAlertRepository = Depends(get_staff_alert_repository),
):
    return {"alerts": await list_staff_alerts(repository)}
