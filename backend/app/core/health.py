"""
Health check aggregation.

Checks:
    • Database connectivity (SELECT 1)
    • Messaging provider mode (simulated delivery reports DEGRADED)

Used by /health (full report) and /health/ready (503 when unhealthy).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp,
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_database(ping: Callable[[], Awaitable[None]]) -> ComponentHealth:
    comp = ComponentHealth(name="postgresql")
    start = time.monotonic()
    try:
        await ping()
        comp.message = "Connection OK"
    except Exception as exc:  # noqa: BLE001  reported, not raised
        logger.warning("Database health check failed: %s", exc)
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(exc)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_messaging(mode: Optional[str]) -> ComponentHealth:
    comp = ComponentHealth(name="messaging_provider")
    if mode == "live":
        comp.message = "Live email delivery"
    elif mode == "simulated":
        comp.status = HealthStatus.DEGRADED
        comp.message = "Simulated delivery (EMAIL_USER / EMAIL_PASS not set)"
    else:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Broadcast engine not initialised"
    return comp


async def run_health_check(
    ping: Callable[[], Awaitable[None]],
    messaging_mode: Optional[str],
) -> HealthReport:
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )
    report.components.append(await check_database(ping))
    report.components.append(check_messaging(messaging_mode))

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    return report
