"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Two families live here:

    • API errors (CrisisAPIError and subclasses) carry an HTTP status and
      are turned into JSON responses by the registered handlers.
    • Collaborator errors (StoreError, ProviderError) are raised by the
      recipient store and the messaging provider. The broadcast engine
      translates or contains them; they never reach a client directly.

Broadcast errors render the alert endpoint's own response body through
``BroadcastError.to_response()`` so the contract shape
``{message}`` / ``{message, error}`` is kept.

Usage:
    from backend.app.core.errors import NoRecipients, register_error_handlers

    raise NoRecipients()
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Collaborator Errors
# ═══════════════════════════════════════════════════════════════════════════

class StoreError(Exception):
    """The recipient store could not be read (connectivity or query failure)."""


class ProviderError(Exception):
    """The messaging provider rejected or failed a single send."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


# ═══════════════════════════════════════════════════════════════════════════
# API Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class CrisisAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(CrisisAPIError):
    """Resource not found (404)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


# ── Broadcast errors ──

class BroadcastError(CrisisAPIError):
    """Request-level failure of an emergency broadcast."""

    def to_response(self) -> Dict[str, Any]:
        return {"message": self.message}


class NoRecipients(BroadcastError):
    """The roster was read successfully but contains nobody (400)."""

    def __init__(self) -> None:
        super().__init__(
            message="No recipients (volunteers or users) available to notify",
            status_code=400,
            error_code="NO_RECIPIENTS",
        )


class _BroadcastServerError(BroadcastError):
    """500-class broadcast failure that keeps the original error text."""

    def __init__(self, error: str, *, error_code: str):
        super().__init__(
            message="Error processing alert",
            status_code=500,
            error_code=error_code,
            details={"error": error},
        )
        self.error = error

    def __str__(self) -> str:
        return self.error

    def to_response(self) -> Dict[str, Any]:
        return {"message": self.message, "error": self.error}


class RosterUnavailable(_BroadcastServerError):
    """Volunteer or user roster could not be fetched (500)."""

    def __init__(self, error: str):
        super().__init__(error, error_code="ROSTER_UNAVAILABLE")


class BroadcastFailed(_BroadcastServerError):
    """Unexpected failure while orchestrating a broadcast (500)."""

    def __init__(self, error: str):
        super().__init__(error, error_code="BROADCAST_FAILED")


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build the generic JSON error envelope."""
    body: Dict[str, Any] = {
        "message": message,
        "error": {
            "code": error_code,
            "status": status_code,
        },
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(BroadcastError)
    async def handle_broadcast_error(request: Request, exc: BroadcastError):
        log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(log_level, "Broadcast rejected [%s]: %s", exc.error_code, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(CrisisAPIError)
    async def handle_api_error(request: Request, exc: CrisisAPIError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(
            500, "INTERNAL_ERROR", message, request=request,
        )
