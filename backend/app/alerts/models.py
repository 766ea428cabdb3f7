"""
models.py — Data structures for the emergency broadcast engine.

Defines:
    • RecipientKind   — volunteer / user tag
    • DeliveryMethod  — how a single outcome was produced
    • Recipient       — one person on the roster, same shape for both kinds
    • Incident        — what the caller wants announced
    • AlertMessage    — rendered subject + bodies handed to the provider
    • DeliveryOutcome — per-recipient result of one broadcast
    • BroadcastReport — aggregate tally returned to the HTTP layer

═══════════════════════════════════════════════════════════════════════════
LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    Recipient        built by load_roster(), frozen for the broadcast
    DeliveryOutcome  built once per recipient by dispatch(), frozen
    BroadcastReport  built by summarize(), serialised, then discarded

Nothing here is persisted. Every outcome corresponds to exactly one
recipient, so ``len(report.outcomes) == report.total_recipients``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class RecipientKind(str, Enum):
    """Roster a recipient was loaded from."""
    VOLUNTEER = "volunteer"
    USER      = "user"


class DeliveryMethod(str, Enum):
    """How a delivery outcome came about."""
    EMAIL     = "email"       # sent through SMTP
    LOGGED    = "logged"      # non-email contact, recorded in the log only
    SIMULATED = "simulated"   # provider not configured
    FAILED    = "failed"      # provider error or timeout


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

def is_email_address(contact: Optional[str]) -> bool:
    """Contacts are either email addresses or phone numbers."""
    return bool(contact) and "@" in contact


@dataclass(frozen=True)
class Recipient:
    """
    A volunteer or affected user eligible for an emergency alert.

    Attributes
    ----------
    recipient_id : int | str
        Primary key in the source table. Ids are only unique per kind.
    display_name : str
    contact_address : str
        Email address or phone number, exactly as stored.
    kind : RecipientKind
    """
    recipient_id: Any
    display_name: str
    contact_address: str
    kind: RecipientKind


@dataclass(frozen=True)
class Incident:
    """An emergency to announce. ``override_message`` wins over the template."""
    emergency_type: str
    description: Optional[str] = None
    override_message: Optional[str] = None


@dataclass(frozen=True)
class AlertMessage:
    """Rendered alert, identical for every recipient of a broadcast."""
    subject: str
    body: str
    html: str = ""


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of the single send attempt made for one recipient."""
    recipient: Recipient
    success: bool
    method: DeliveryMethod
    error_detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "success": self.success,
            "contact": self.recipient.contact_address,
            "type": self.recipient.kind.value,
            "method": self.method.value,
        }
        if self.error_detail is not None:
            d["error"] = self.error_detail
        return d


@dataclass(frozen=True)
class BroadcastReport:
    """Aggregate delivery tally for one broadcast."""
    total_recipients: int = 0
    total_volunteers: int = 0
    total_users: int = 0
    successful_sends: int = 0
    successful_volunteer_sends: int = 0
    successful_user_sends: int = 0
    outcomes: Tuple[DeliveryOutcome, ...] = field(default_factory=tuple)

    @property
    def failed_sends(self) -> int:
        return self.total_recipients - self.successful_sends

    def to_dict(self) -> Dict[str, Any]:
        """Response body of the alert endpoint (field names are the contract)."""
        return {
            "message": "Alert processing completed",
            "totalRecipients": self.total_recipients,
            "totalVolunteers": self.total_volunteers,
            "totalUsers": self.total_users,
            "successfulSends": self.successful_sends,
            "successfulVolunteerSends": self.successful_volunteer_sends,
            "successfulUserSends": self.successful_user_sends,
            "failedSends": self.failed_sends,
            "details": [o.to_dict() for o in self.outcomes],
        }
