"""
email_alert.py — Live email delivery channel (SMTP).

Delivery mechanism:
    • SMTP with STARTTLS (Gmail by default), authenticated with
      EMAIL_USER / EMAIL_PASS
    • multipart/alternative message: the plain alert text plus an HTML
      rendering of the incident
    • The blocking smtplib session runs in a worker thread so concurrent
      sends do not stall the event loop

Contacts without an ``@`` are phone numbers. There is no SMS gateway in
this deployment, so those alerts are written to the log and reported as
DeliveryMethod.LOGGED (a success).

═══════════════════════════════════════════════════════════════════════════
EMAIL TEMPLATE
═══════════════════════════════════════════════════════════════════════════

    Subject: 🚨 EMERGENCY ALERT: {emergency_type}
    Body:
        ┌─────────────────────────────────────────┐
        │  🚨 EMERGENCY ALERT                       │
        ├─────────────────────────────────────────┤
        │  Emergency Type: {emergency_type}         │
        │  {description}                            │
        │  Alert Message: {alert body}              │
        │  Volunteers: respond if you can assist    │
        └─────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage

from backend.app.alerts.channels.base import MessagingProvider
from backend.app.alerts.models import AlertMessage, DeliveryMethod, Incident, is_email_address
from backend.app.core.errors import ProviderError

logger = logging.getLogger(__name__)


def build_subject(incident: Incident) -> str:
    """Single-line subject. Line breaks and control characters become spaces."""
    printable = "".join(ch if ch.isprintable() else " " for ch in incident.emergency_type)
    emergency_type = " ".join(printable.split())
    return f"🚨 EMERGENCY ALERT: {emergency_type}"


def build_html_body(incident: Incident, alert_body: str) -> str:
    """Render the HTML alternative. All incident text is escaped."""
    emergency_type = html.escape(incident.emergency_type)
    description = html.escape(incident.description or "No additional details provided.")
    alert_html = html.escape(alert_body).replace("\n", "<br>")

    return f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;padding:20px;background-color:#fee2e2;border:2px solid #dc2626;">
      <div style="background-color:#dc2626;color:white;padding:20px;border-radius:8px;text-align:center;">
        <h1 style="margin:0;">🚨 EMERGENCY ALERT</h1>
      </div>
      <div style="background-color:white;padding:30px;border-radius:8px;margin-top:20px;">
        <h2 style="color:#dc2626;">Emergency Type: {emergency_type}</h2>
        <p style="font-size:16px;line-height:1.6;color:#333;">{description}</p>
        <div style="background-color:#fef2f2;border-left:4px solid #dc2626;padding:15px;margin:20px 0;">
          <p style="margin:0;color:#991b1b;font-size:14px;">
            <strong>Alert Message:</strong><br>{alert_html}
          </p>
        </div>
        <p style="font-size:14px;color:#666;margin-top:20px;">
          If you are a volunteer, please respond immediately if you can assist.
        </p>
      </div>
    </div>
    """


class SmtpEmailProvider(MessagingProvider):
    """
    Live provider backed by an SMTP account.

    Parameters
    ----------
    username, password : str
        Account credentials; ``username`` is also the From address.
    host, port : str, int
        SMTP server (STARTTLS is always negotiated).
    timeout_seconds : float
        Socket timeout for each SMTP session.
    """

    mode = "live"

    def __init__(
        self,
        username: str,
        password: str,
        *,
        host: str = "smtp.gmail.com",
        port: int = 587,
        timeout_seconds: float = 20.0,
    ):
        self.username = username
        self._password = password
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds

    def _compose(self, to_address: str, message: AlertMessage) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self.username
        email["To"] = to_address
        email["Subject"] = message.subject
        email.set_content(message.body)
        if message.html:
            email.add_alternative(message.html, subtype="html")
        return email

    def _deliver(self, email: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
            server.starttls()
            server.login(self.username, self._password)
            server.send_message(email)

    async def send(self, to_address: str, message: AlertMessage) -> DeliveryMethod:
        if not is_email_address(to_address):
            logger.info("[LOGGED] Alert for %s: %s", to_address, message.body)
            return DeliveryMethod.LOGGED

        email = self._compose(to_address, message)
        try:
            await asyncio.to_thread(self._deliver, email)
        except (smtplib.SMTPException, OSError) as exc:
            raise ProviderError(str(exc) or type(exc).__name__) from exc

        logger.debug("[EMAIL] Alert delivered to %s", to_address)
        return DeliveryMethod.EMAIL
