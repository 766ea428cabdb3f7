"""
FastAPI route: emergency alert broadcast.

    POST /api/v1/alerts           — notify every volunteer and user
    GET  /api/v1/alerts/mode      — report live vs simulated delivery

Response bodies are part of the web client contract:

    200  {message, totalRecipients, totalVolunteers, totalUsers,
          successfulSends, successfulVolunteerSends, successfulUserSends,
          failedSends, details: [{success, contact, type, method, error?}]}
    400  {message}            — empty roster
    500  {message, error}     — roster unreadable or unexpected failure

A 200 is returned even when some deliveries failed; the failures are in
``failedSends`` and ``details``.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from backend.app.alerts.alert_service import BroadcastEngine
from backend.app.api.schemas import AlertRequest

router = APIRouter(prefix="/api/v1/alerts", tags=["alert-broadcasting"])


def get_broadcast_engine(request: Request) -> BroadcastEngine:
    """The engine built at startup (see main.lifespan)."""
    return request.app.state.broadcast_engine


@router.post(
    "",
    summary="Broadcast an emergency alert",
    description=(
        "Sends one notification per volunteer and user. Per-recipient "
        "failures are reported in the body, not as an error status."
    ),
)
async def handle_alert_request(
    body: AlertRequest,
    engine: BroadcastEngine = Depends(get_broadcast_engine),
) -> Dict[str, Any]:
    report = await engine.run_broadcast(body.to_incident())
    return report.to_dict()


@router.get("/mode", summary="Current delivery mode")
async def delivery_mode(engine: BroadcastEngine = Depends(get_broadcast_engine)):
    return {
        "mode": engine.mode,
        "maxConcurrency": engine.max_concurrency,
        "sendTimeoutSeconds": engine.send_timeout_seconds,
    }
