"""
alert_service.py — Emergency broadcast engine.

Notifies every volunteer and user about one incident and reports how many
deliveries succeeded, per recipient kind.

═══════════════════════════════════════════════════════════════════════════
ORCHESTRATION FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  run_broadcast()    │
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  1. load_roster()   │  volunteers first, then users, store order
    │                     │  StoreError → RosterUnavailable
    └─────────┬───────────┘
              │  empty → NoRecipients (nothing is sent)
              ▼
    ┌─────────────────────┐
    │  2. dispatch()      │  one send per recipient, isolated
    │                     │  provider error / timeout → failed outcome
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  3. summarize()     │  pure tally → BroadcastReport
    └─────────────────────┘

Any other exception escaping steps 1-3 becomes BroadcastFailed, keeping
the original error text for operators.

═══════════════════════════════════════════════════════════════════════════
DELIVERY SEMANTICS
═══════════════════════════════════════════════════════════════════════════

    • Exactly one attempt per recipient. No retries.
    • Up to ``max_concurrency`` sends are in flight at once; 1 gives the
      strictly sequential behaviour.
    • Each send is bounded by ``send_timeout_seconds``. A timeout counts as
      a failed delivery for that recipient only.
      A provider that blocks in a worker thread (SMTP) is not interrupted by
      the deadline, so a send reported as timed out may still be delivered.
      build_provider keeps the SMTP socket timeout below this deadline.
    • Outcomes come back in roster order regardless of completion order.
    • Live vs simulated delivery is decided by the injected provider, once,
      when the engine is built.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, List, Optional, Sequence

from backend.app.alerts.channels.base import MessagingProvider
from backend.app.alerts.channels.email_alert import build_html_body, build_subject
from backend.app.alerts.models import (
    AlertMessage,
    BroadcastReport,
    DeliveryMethod,
    DeliveryOutcome,
    Incident,
    Recipient,
    RecipientKind,
)
from backend.app.alerts.store import RecipientStore
from backend.app.core.errors import (
    BroadcastError,
    BroadcastFailed,
    NoRecipients,
    ProviderError,
    RosterUnavailable,
    StoreError,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Message Construction
# ═══════════════════════════════════════════════════════════════════════════

def build_alert_body(incident: Incident) -> str:
    """Override message when non-empty, otherwise the EMERGENCY template."""
    if incident.override_message:
        return incident.override_message
    return f"EMERGENCY: {incident.emergency_type}\n{incident.description or ''}"


def build_message(incident: Incident) -> AlertMessage:
    body = build_alert_body(incident)
    return AlertMessage(
        subject=build_subject(incident),
        body=body,
        html=build_html_body(incident, body),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Aggregation
# ═══════════════════════════════════════════════════════════════════════════

def summarize(
    outcomes: Iterable[DeliveryOutcome],
    roster: Sequence[Recipient],
) -> BroadcastReport:
    """
    Tally a broadcast.

    Totals come from the roster composition; success counts come from the
    outcomes. Deterministic, no side effects. Empty inputs give all zeros.
    """
    outcomes = tuple(outcomes)
    successes = [o for o in outcomes if o.success]

    return BroadcastReport(
        total_recipients=len(roster),
        total_volunteers=sum(1 for r in roster if r.kind is RecipientKind.VOLUNTEER),
        total_users=sum(1 for r in roster if r.kind is RecipientKind.USER),
        successful_sends=len(successes),
        successful_volunteer_sends=sum(
            1 for o in successes if o.recipient.kind is RecipientKind.VOLUNTEER
        ),
        successful_user_sends=sum(
            1 for o in successes if o.recipient.kind is RecipientKind.USER
        ),
        outcomes=outcomes,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════

class BroadcastEngine:
    """
    Fan an incident out to the full roster.

    Parameters
    ----------
    store : RecipientStore
        Source of the volunteer and user rosters.
    provider : MessagingProvider
        Live or simulated backend, shared by every send.
    max_concurrency : int
        Upper bound on in-flight sends.
    send_timeout_seconds : float | None
        Per-send deadline. None disables it.
    """

    def __init__(
        self,
        store: RecipientStore,
        provider: MessagingProvider,
        *,
        max_concurrency: int = 8,
        send_timeout_seconds: Optional[float] = 20.0,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.store = store
        self.provider = provider
        self.max_concurrency = max_concurrency
        self.send_timeout_seconds = send_timeout_seconds

    @property
    def mode(self) -> str:
        return self.provider.mode

    # ── Step 1: roster ──

    async def load_roster(self) -> List[Recipient]:
        try:
            volunteers = await self.store.fetch_volunteers()
            users = await self.store.fetch_users()
        except StoreError as exc:
            raise RosterUnavailable(str(exc)) from exc

        roster = [
            Recipient(v.id, v.name, v.contact, RecipientKind.VOLUNTEER)
            for v in volunteers
        ]
        roster.extend(
            Recipient(u.id, u.name, u.contact, RecipientKind.USER) for u in users
        )
        return roster

    # ── Step 2: delivery ──

    async def dispatch(
        self,
        roster: Sequence[Recipient],
        incident: Incident,
    ) -> List[DeliveryOutcome]:
        if not roster:
            raise ValueError("dispatch() requires a non-empty roster")

        message = build_message(incident)
        gate = asyncio.Semaphore(self.max_concurrency)

        async def deliver(recipient: Recipient) -> DeliveryOutcome:
            async with gate:
                return await self._deliver(recipient, message)

        outcomes = await asyncio.gather(*(deliver(r) for r in roster))
        return list(outcomes)

    async def _deliver(self, recipient: Recipient, message: AlertMessage) -> DeliveryOutcome:
        """One isolated attempt. Every failure is returned as data."""
        try:
            method = await asyncio.wait_for(
                self.provider.send(recipient.contact_address, message),
                timeout=self.send_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = f"Timed out after {self.send_timeout_seconds}s"
        except ProviderError as exc:
            error = exc.detail
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or type(exc).__name__
        else:
            return DeliveryOutcome(recipient=recipient, success=True, method=method)

        logger.warning(
            "Failed to notify %s %s: %s",
            recipient.kind.value, recipient.contact_address, error,
        )
        return DeliveryOutcome(
            recipient=recipient,
            success=False,
            method=DeliveryMethod.FAILED,
            error_detail=error,
        )

    # ── Top level ──

    async def run_broadcast(self, incident: Incident) -> BroadcastReport:
        """
        Load, dispatch, summarize.

        Raises
        ------
        NoRecipients
            Both rosters are empty; nothing was sent.
        RosterUnavailable
            The store could not be read.
        BroadcastFailed
            Anything else went wrong.
        """
        started = time.perf_counter()
        try:
            roster = await self.load_roster()
            if not roster:
                logger.warning(
                    "Broadcast for %s aborted: roster is empty", incident.emergency_type,
                )
                raise NoRecipients()

            logger.info(
                "Broadcasting %s alert to %d recipients [%s]",
                incident.emergency_type, len(roster), self.mode,
                extra={
                    "incident_type": incident.emergency_type,
                    "recipient_count": len(roster),
                    "delivery_mode": self.mode,
                },
            )
            outcomes = await self.dispatch(roster, incident)
            report = summarize(outcomes, roster)
        except BroadcastError:
            raise
        except Exception as exc:
            logger.exception("Broadcast for %s failed", incident.emergency_type)
            raise BroadcastFailed(str(exc)) from exc

        elapsed = (time.perf_counter() - started) * 1000
        logger.info(
            "Broadcast complete: %d/%d delivered (%d volunteers, %d users), %d failed, %.1fms",
            report.successful_sends, report.total_recipients,
            report.successful_volunteer_sends, report.successful_user_sends,
            report.failed_sends, elapsed,
            extra={"duration_ms": elapsed, "recipient_count": report.total_recipients},
        )
        return report
