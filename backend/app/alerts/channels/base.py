"""
base.py — Messaging provider contract.

A provider delivers one rendered AlertMessage to one address. It either
returns the DeliveryMethod it used or raises ProviderError; the engine
turns both into a DeliveryOutcome.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from backend.app.alerts.models import AlertMessage, DeliveryMethod


class MessagingProvider(ABC):
    """Base class for the live and simulated delivery backends."""

    #: "live" or "simulated"; fixed for the lifetime of the instance
    mode: str = "live"

    @property
    def is_live(self) -> bool:
        return self.mode == "live"

    @abstractmethod
    async def send(self, to_address: str, message: AlertMessage) -> DeliveryMethod:
        """Deliver ``message`` to ``to_address``.

        Raises ProviderError when the provider rejects or fails the send.
        """
