"""
simulated.py — Stand-in provider used when no email account is configured.

Every send succeeds without touching the network; the alert is written to
the log instead so local and demo runs still show who would be notified.
"""

from __future__ import annotations

import logging

from backend.app.alerts.channels.base import MessagingProvider
from backend.app.alerts.models import AlertMessage, DeliveryMethod

logger = logging.getLogger(__name__)


class SimulatedProvider(MessagingProvider):
    mode = "simulated"

    async def send(self, to_address: str, message: AlertMessage) -> DeliveryMethod:
        logger.info("[SIMULATED] -> %s: %s", to_address, message.body.replace("\n", " | "))
        return DeliveryMethod.SIMULATED
