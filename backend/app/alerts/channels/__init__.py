"""
channels — Messaging provider backends.

Each provider exposes:
    async send(to_address, message) → DeliveryMethod   (or raises ProviderError)

``build_provider`` picks the backend once, at bootstrap, from settings:
live SMTP when EMAIL_USER and EMAIL_PASS are set, simulated otherwise.
"""

from __future__ import annotations

import logging

from backend.app.alerts.channels.base import MessagingProvider
from backend.app.alerts.channels.email_alert import SmtpEmailProvider
from backend.app.alerts.channels.simulated import SimulatedProvider
from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

__all__ = [
    "MessagingProvider",
    "SimulatedProvider",
    "SmtpEmailProvider",
    "build_provider",
]


def smtp_timeout(settings: Settings) -> float:
    """SMTP socket timeout, strictly below the engine's per-send deadline."""
    deadline = settings.ALERT_SEND_TIMEOUT_SECONDS
    if deadline and settings.SMTP_TIMEOUT_SECONDS >= deadline:
        return deadline / 2
    return settings.SMTP_TIMEOUT_SECONDS


def build_provider(settings: Settings) -> MessagingProvider:
    if settings.email_configured:
        logger.info("Alert delivery: live email via %s:%d", settings.SMTP_HOST, settings.SMTP_PORT)
        return SmtpEmailProvider(
            settings.EMAIL_USER,
            settings.EMAIL_PASS,
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            timeout_seconds=smtp_timeout(settings),
        )
    logger.warning("Alert delivery: SIMULATED (EMAIL_USER / EMAIL_PASS not set)")
    return SimulatedProvider()
