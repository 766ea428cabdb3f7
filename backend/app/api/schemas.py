"""
Pydantic request schemas for the alert endpoints.

Field names on the wire are camelCase to match the existing web client;
Python attributes stay snake_case via aliases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.alerts.models import Incident


class AlertRequest(BaseModel):
    """Body of POST /api/v1/alerts."""

    model_config = ConfigDict(populate_by_name=True)

    emergency_type: str = Field(
        "Unspecified",
        alias="emergencyType",
        description="Kind of emergency, used in the subject and default body",
        examples=["Flood"],
    )
    description: Optional[str] = Field(
        None,
        description="Free-text details appended to the default body",
        examples=["Water level rising near Block 5"],
    )
    message: Optional[str] = Field(
        None,
        description="Replaces the generated body entirely when non-empty",
        examples=["Evacuate now"],
    )

    def to_incident(self) -> Incident:
        return Incident(
            emergency_type=self.emergency_type,
            description=self.description,
            override_message=self.message,
        )


class StaffAlertRequest(BaseModel):
    """Body of POST /api/v1/staff/alerts."""

    latitude: float = Field(..., ge=-90.0, le=90.0, examples=[13.0827])
    longitude: float = Field(..., ge=-180.0, le=180.0, examples=[80.2707])
    message: str = Field(..., min_length=1, examples=["Need 3 volunteers at the shelter"])
    timestamp: datetime = Field(..., examples=["2026-10-17T09:30:00Z"])
