"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.database import async_session_factory, close_db, ping_db
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import run_health_check

# ── Alert subsystem ──
from backend.app.alerts.alert_service import BroadcastEngine
from backend.app.alerts.channels import build_provider
from backend.app.alerts.store import SqlRecipientStore

# ── API routers ──
from backend.app.api.v1.alerts import router as alert_router
from backend.app.api.v1.staff_alerts import router as staff_alert_router

setup_logging()
logger = get_logger(__name__)


def build_broadcast_engine() -> BroadcastEngine:
    """Wire the engine from settings; the provider mode is fixed here."""
    return BroadcastEngine(
        SqlRecipientStore(async_session_factory),
        build_provider(settings),
        max_concurrency=settings.ALERT_MAX_CONCURRENCY,
        send_timeout_seconds=settings.ALERT_SEND_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    app.state.broadcast_engine = build_broadcast_engine()
    yield
    await close_db()
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Crisis-response coordination backend: emergency alert broadcasting "
        "to volunteers and affected users, and geo-targeted staff alerts."
    ),
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)

app.include_router(alert_router)
app.include_router(staff_alert_router)


@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs",
    }


def _messaging_mode(request: Request):
    engine = getattr(request.app.state, "broadcast_engine", None)
    return engine.mode if engine else None


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    report = await run_health_check(ping_db, _messaging_mode(request))
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness(request: Request):
    report = await run_health_check(ping_db, _messaging_mode(request))
    if report.status.value == "unhealthy":
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
