"""
store.py — Data-access collaborators for the alert subsystem.

    RecipientStore          contract consumed by the BroadcastEngine
    SqlRecipientStore       volunteers / users via SQLAlchemy
    SqlStaffAlertRepository staff geo-targeted alerts via SQLAlchemy

Both SQL classes translate SQLAlchemy failures into StoreError so callers
never depend on the driver's exception types. Records returned are plain
frozen dataclasses, detached from any session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.db_models import StaffAlert, StaffAlertRecipient, User, Volunteer
from backend.app.core.errors import StoreError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VolunteerRecord:
    id: int
    name: str
    contact: str
    skills: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    id: int
    name: str
    contact: str


@dataclass(frozen=True)
class LocatedVolunteer:
    """Volunteer with a known position, candidate for a staff alert."""
    id: int
    name: str
    contact: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class StaffAlertRecipientRecord:
    volunteer_id: int
    name: str
    contact: str


@dataclass(frozen=True)
class StaffAlertRecord:
    id: int
    latitude: float
    longitude: float
    message: str
    timestamp: datetime
    created_at: Optional[datetime]
    recipients: Tuple[StaffAlertRecipientRecord, ...] = field(default_factory=tuple)


# ═══════════════════════════════════════════════════════════════════════════
# Contracts
# ═══════════════════════════════════════════════════════════════════════════

class RecipientStore(Protocol):
    async def fetch_volunteers(self) -> Sequence[VolunteerRecord]: ...

    async def fetch_users(self) -> Sequence[UserRecord]: ...


class StaffAlertRepository(Protocol):
    async def fetch_located_volunteers(self) -> Sequence[LocatedVolunteer]: ...

    async def save_alert(
        self,
        *,
        latitude: float,
        longitude: float,
        message: str,
        timestamp: datetime,
        volunteers: Sequence[LocatedVolunteer],
    ) -> StaffAlertRecord: ...

    async def list_alerts(self) -> Sequence[StaffAlertRecord]: ...


# ═══════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementations
# ═══════════════════════════════════════════════════════════════════════════

class SqlRecipientStore:
    """
    Read-only roster access. Each fetch opens its own short session from the
    shared factory, so one instance can serve every broadcast.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch_volunteers(self) -> List[VolunteerRecord]:
        stmt = select(Volunteer.id, Volunteer.name, Volunteer.contact, Volunteer.skills).order_by(Volunteer.id)
        rows = await self._fetch(stmt, "volunteers")
        return [VolunteerRecord(id=r.id, name=r.name, contact=r.contact, skills=r.skills) for r in rows]

    async def fetch_users(self) -> List[UserRecord]:
        stmt = select(User.id, User.name, User.contact).order_by(User.id)
        rows = await self._fetch(stmt, "users")
        return [UserRecord(id=r.id, name=r.name, contact=r.contact) for r in rows]

    async def _fetch(self, stmt, table: str):
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.all()
        except SQLAlchemyError as exc:
            logger.error("Reading %s failed: %s", table, exc)
            raise StoreError(f"Failed to read {table}: {exc}") from exc


def _to_record(alert: StaffAlert) -> StaffAlertRecord:
    return StaffAlertRecord(
        id=alert.id,
        latitude=alert.latitude,
        longitude=alert.longitude,
        message=alert.message,
        timestamp=alert.timestamp,
        created_at=alert.created_at,
        recipients=tuple(
            StaffAlertRecipientRecord(
                volunteer_id=r.volunteer_id, name=r.name, contact=r.contact,
            )
            for r in alert.recipients
        ),
    )


class SqlStaffAlertRepository:
    """Staff alert persistence bound to one request-scoped session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def fetch_located_volunteers(self) -> List[LocatedVolunteer]:
        stmt = select(
            Volunteer.id, Volunteer.name, Volunteer.contact,
            Volunteer.latitude, Volunteer.longitude,
        ).where(Volunteer.latitude.is_not(None), Volunteer.longitude.is_not(None)).order_by(Volunteer.id)
        try:
            rows = (await self._session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read volunteer locations: {exc}") from exc
        return [
            LocatedVolunteer(
                id=r.id, name=r.name, contact=r.contact,
                latitude=r.latitude, longitude=r.longitude,
            )
            for r in rows
        ]

    async def save_alert(
        self,
        *,
        latitude: float,
        longitude: float,
        message: str,
        timestamp: datetime,
        volunteers: Sequence[LocatedVolunteer],
    ) -> StaffAlertRecord:
        alert = StaffAlert(
            latitude=latitude,
            longitude=longitude,
            message=message,
            timestamp=timestamp,
            recipients=[
                StaffAlertRecipient(volunteer_id=v.id, name=v.name, contact=v.contact)
                for v in volunteers
            ],
        )
        try:
            self._session.add(alert)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreError(f"Failed to save alert: {exc}") from exc
        return _to_record(alert)

    async def list_alerts(self) -> List[StaffAlertRecord]:
        try:
            result = await self._session.execute(select(StaffAlert).order_by(StaffAlert.id))
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read alerts: {exc}") from exc
        return [_to_record(a) for a in result.scalars().all()]
