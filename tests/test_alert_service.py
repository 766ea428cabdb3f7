"""
test_alert_service.py — Tests for the emergency broadcast engine.

Covers:
    • Message construction (template, override, HTML rendering)
    • Roster loading (ordering, kind tagging, store failures)
    • Dispatch (one outcome per recipient, isolation, timeouts, concurrency)
    • Summarize (partition sums, purity, empty input)
    • run_broadcast error taxonomy (NoRecipients, RosterUnavailable, BroadcastFailed)
    • Providers (simulated, SMTP email, provider selection)

Run with:
    pytest tests/test_alert_service.py -v
"""

from __future__ import annotations

import asyncio
import smtplib
from unittest.mock import patch

import pytest

from backend.app.alerts.alert_service import (
    BroadcastEngine,
    build_alert_body,
    build_message,
    summarize,
)
from backend.app.alerts.channels import (
    MessagingProvider,
    SimulatedProvider,
    SmtpEmailProvider,
    build_provider,
)
from backend.app.alerts.channels.email_alert import build_html_body, build_subject
from backend.app.alerts.models import (
    AlertMessage,
    DeliveryMethod,
    DeliveryOutcome,
    Incident,
    Recipient,
    RecipientKind,
    is_email_address,
)
from backend.app.alerts.store import UserRecord, VolunteerRecord
from backend.app.core.config import Settings
from backend.app.core.errors import (
    BroadcastFailed,
    NoRecipients,
    ProviderError,
    RosterUnavailable,
    StoreError,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

class FakeStore:
    """In-memory roster; ``error`` is raised by both fetches when set."""

    def __init__(self, volunteers=(), users=(), error=None):
        self.volunteers = list(volunteers)
        self.users = list(users)
        self.error = error

    async def fetch_volunteers(self):
        if self.error:
            raise self.error
        return self.volunteers

    async def fetch_users(self):
        if self.error:
            raise self.error
        return self.users


class RecordingProvider(MessagingProvider):
    """Live-mode provider that records sends and fails for chosen addresses."""

    mode = "live"

    def __init__(self, fail_for=(), hang_for=(), delay=0.0):
        self.fail_for = set(fail_for)
        self.hang_for = set(hang_for)
        self.delay = delay
        self.sent = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, to_address, message):
        self.sent.append((to_address, message))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if to_address in self.hang_for:
                await asyncio.sleep(5)
            if self.delay:
                await asyncio.sleep(self.delay)
            if to_address in self.fail_for:
                raise ProviderError("550 Mailbox unavailable")
            return DeliveryMethod.EMAIL
        finally:
            self.in_flight -= 1


def _make_volunteer(vid: int, contact: str = None) -> VolunteerRecord:
    return VolunteerRecord(
        id=vid, name=f"Volunteer {vid}",
        contact=contact or f"volunteer{vid}@example.org", skills="first aid",
    )


def _make_user(uid: int, contact: str = None) -> UserRecord:
    return UserRecord(id=uid, name=f"User {uid}", contact=contact or f"user{uid}@example.org")


def _make_recipient(rid: int = 1, kind: RecipientKind = RecipientKind.VOLUNTEER) -> Recipient:
    return Recipient(rid, f"R{rid}", f"r{rid}@example.org", kind)


def _make_engine(store=None, provider=None, **kwargs) -> BroadcastEngine:
    return BroadcastEngine(
        store or FakeStore([_make_volunteer(1)], [_make_user(1)]),
        provider or RecordingProvider(),
        **kwargs,
    )


FIRE = Incident(emergency_type="Fire", description="Block 5")


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Message Construction
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildMessage:

    def test_template_combines_type_and_description(self):
        assert build_alert_body(FIRE) == "EMERGENCY: Fire\nBlock 5"

    def test_missing_description_defaults_to_empty(self):
        assert build_alert_body(Incident("Flood")) == "EMERGENCY: Flood\n"

    def test_override_replaces_template(self):
        incident = Incident("Fire", "Block 5", override_message="Evacuate now")
        assert build_alert_body(incident) == "Evacuate now"

    def test_empty_override_falls_back_to_template(self):
        incident = Incident("Fire", "Block 5", override_message="")
        assert build_alert_body(incident) == "EMERGENCY: Fire\nBlock 5"

    def test_subject_names_emergency(self):
        assert build_subject(FIRE) == "🚨 EMERGENCY ALERT: Fire"

    def test_subject_is_single_line(self):
        incident = Incident("Flood\r\nWarning\t\x00 zone")
        assert build_subject(incident) == "🚨 EMERGENCY ALERT: Flood Warning zone"

    def test_html_escapes_incident_text(self):
        incident = Incident("<b>Fire</b>", "<script>alert(1)</script>")
        rendered = build_html_body(incident, "line1\nline2")
        assert "<script>" not in rendered
        assert "&lt;script&gt;" in rendered
        assert "line1<br>line2" in rendered

    def test_html_placeholder_without_description(self):
        assert "No additional details provided." in build_html_body(Incident("Flood"), "x")

    def test_build_message_bundles_parts(self):
        message = build_message(FIRE)
        assert message.body == "EMERGENCY: Fire\nBlock 5"
        assert message.subject.endswith("Fire")
        assert "Block 5" in message.html


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Roster Loading
# ═══════════════════════════════════════════════════════════════════════════

class TestLoadRoster:

    def test_volunteers_first_then_users_in_store_order(self):
        store = FakeStore([_make_volunteer(3), _make_volunteer(1)], [_make_user(9), _make_user(2)])
        roster = asyncio.run(_make_engine(store).load_roster())

        assert [(r.kind, r.recipient_id) for r in roster] == [
            (RecipientKind.VOLUNTEER, 3),
            (RecipientKind.VOLUNTEER, 1),
            (RecipientKind.USER, 9),
            (RecipientKind.USER, 2),
        ]

    def test_records_mapped_to_shared_shape(self):
        roster = asyncio.run(_make_engine(FakeStore([_make_volunteer(1)], [])).load_roster())
        assert roster[0].display_name == "Volunteer 1"
        assert roster[0].contact_address == "volunteer1@example.org"

    def test_store_error_becomes_roster_unavailable(self):
        engine = _make_engine(FakeStore(error=StoreError("connection refused")))
        with pytest.raises(RosterUnavailable) as info:
            asyncio.run(engine.load_roster())
        assert "connection refused" in info.value.error

    def test_empty_store_gives_empty_roster(self):
        assert asyncio.run(_make_engine(FakeStore()).load_roster()) == []


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Dispatch
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatch:

    def test_one_outcome_per_recipient_in_order(self):
        roster = [_make_recipient(i) for i in range(25)]
        outcomes = asyncio.run(_make_engine().dispatch(roster, FIRE))
        assert len(outcomes) == len(roster)
        assert [o.recipient for o in outcomes] == roster

    def test_every_send_uses_template_body(self):
        provider = RecordingProvider()
        roster = [_make_recipient(1), _make_recipient(2, RecipientKind.USER)]
        asyncio.run(_make_engine(provider=provider).dispatch(roster, FIRE))
        assert [m.body for _, m in provider.sent] == ["EMERGENCY: Fire\nBlock 5"] * 2

    def test_every_send_uses_override_body(self):
        provider = RecordingProvider()
        incident = Incident("Fire", "Block 5", override_message="Evacuate now")
        asyncio.run(_make_engine(provider=provider).dispatch([_make_recipient(1)], incident))
        assert provider.sent[0][1].body == "Evacuate now"

    def test_provider_error_is_contained(self):
        provider = RecordingProvider(fail_for={"r2@example.org"})
        roster = [_make_recipient(1), _make_recipient(2), _make_recipient(3)]
        outcomes = asyncio.run(_make_engine(provider=provider).dispatch(roster, FIRE))

        assert [o.success for o in outcomes] == [True, False, True]
        assert outcomes[1].error_detail == "550 Mailbox unavailable"
        assert outcomes[1].method == DeliveryMethod.FAILED
        assert len(provider.sent) == 3

    def test_unexpected_exception_is_contained(self):
        class Exploding(RecordingProvider):
            async def send(self, to_address, message):
                raise RuntimeError("socket closed")

        outcomes = asyncio.run(
            _make_engine(provider=Exploding()).dispatch([_make_recipient(1)], FIRE)
        )
        assert outcomes[0].success is False
        assert outcomes[0].error_detail == "socket closed"

    def test_timeout_fails_only_that_recipient(self):
        provider = RecordingProvider(hang_for={"r2@example.org"})
        engine = _make_engine(provider=provider, send_timeout_seconds=0.05)
        roster = [_make_recipient(1), _make_recipient(2), _make_recipient(3)]

        outcomes = asyncio.run(engine.dispatch(roster, FIRE))

        assert [o.success for o in outcomes] == [True, False, True]
        assert "Timed out" in outcomes[1].error_detail

    def test_concurrency_is_bounded(self):
        provider = RecordingProvider(delay=0.01)
        engine = _make_engine(provider=provider, max_concurrency=3)
        asyncio.run(engine.dispatch([_make_recipient(i) for i in range(12)], FIRE))
        assert 1 <= provider.max_in_flight <= 3

    def test_single_worker_is_sequential(self):
        provider = RecordingProvider(delay=0.005)
        engine = _make_engine(provider=provider, max_concurrency=1)
        roster = [_make_recipient(i) for i in range(5)]
        asyncio.run(engine.dispatch(roster, FIRE))
        assert provider.max_in_flight == 1
        assert [to for to, _ in provider.sent] == [r.contact_address for r in roster]

    def test_empty_roster_is_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(_make_engine().dispatch([], FIRE))

    def test_invalid_concurrency_rejected(self):
        with pytest.raises(ValueError):
            _make_engine(max_concurrency=0)


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Summarize
# ═══════════════════════════════════════════════════════════════════════════

def _outcomes(*pairs):
    """(kind, success) pairs."""
    return [
        DeliveryOutcome(
            recipient=_make_recipient(i, kind),
            success=ok,
            method=DeliveryMethod.EMAIL if ok else DeliveryMethod.FAILED,
            error_detail=None if ok else "boom",
        )
        for i, (kind, ok) in enumerate(pairs)
    ]


V, U = RecipientKind.VOLUNTEER, RecipientKind.USER


class TestSummarize:

    def test_counts(self):
        outcomes = _outcomes((V, True), (V, False), (U, True), (U, True))
        report = summarize(outcomes, [o.recipient for o in outcomes])

        assert report.total_recipients == 4
        assert report.total_volunteers == 2
        assert report.total_users == 2
        assert report.successful_sends == 3
        assert report.successful_volunteer_sends == 1
        assert report.successful_user_sends == 2
        assert report.failed_sends == 1

    def test_partition_sums(self):
        outcomes = _outcomes((V, False), (U, False), (U, True), (V, True), (V, True))
        report = summarize(outcomes, [o.recipient for o in outcomes])
        assert report.successful_volunteer_sends + report.successful_user_sends == report.successful_sends
        assert report.total_volunteers + report.total_users == report.total_recipients

    def test_pure(self):
        outcomes = _outcomes((V, True), (U, False))
        roster = [o.recipient for o in outcomes]
        assert summarize(outcomes, roster) == summarize(outcomes, roster)

    def test_empty_is_all_zero(self):
        report = summarize([], [])
        assert report.total_recipients == 0
        assert report.successful_sends == 0
        assert report.failed_sends == 0
        assert report.to_dict()["details"] == []

    def test_to_dict_contract(self):
        outcomes = _outcomes((V, True), (U, False))
        d = summarize(outcomes, [o.recipient for o in outcomes]).to_dict()

        assert d["message"] == "Alert processing completed"
        assert set(d) == {
            "message", "totalRecipients", "totalVolunteers", "totalUsers",
            "successfulSends", "successfulVolunteerSends", "successfulUserSends",
            "failedSends", "details",
        }
        assert d["details"][0] == {
            "success": True, "contact": "r0@example.org", "type": "volunteer", "method": "email",
        }
        assert d["details"][1]["error"] == "boom"
        assert d["details"][1]["type"] == "user"


# ═══════════════════════════════════════════════════════════════════════════
# Section 5: run_broadcast
# ═══════════════════════════════════════════════════════════════════════════

class TestRunBroadcast:

    def test_mixed_failure_scenario(self):
        store = FakeStore(
            [_make_volunteer(1), _make_volunteer(2)],
            [_make_user(1)],
        )
        provider = RecordingProvider(fail_for={"volunteer2@example.org"})
        report = asyncio.run(_make_engine(store, provider).run_broadcast(Incident("Flood")))

        assert report.total_recipients == 3
        assert report.successful_sends == 2
        assert report.failed_sends == 1
        assert report.successful_volunteer_sends == 1
        assert report.successful_user_sends == 1
        failed = [d for d in report.to_dict()["details"] if not d["success"]]
        assert len(failed) == 1
        assert failed[0]["contact"] == "volunteer2@example.org"

    def test_empty_roster_raises_no_recipients_without_sending(self):
        provider = RecordingProvider()
        engine = _make_engine(FakeStore(), provider)
        with pytest.raises(NoRecipients) as info:
            asyncio.run(engine.run_broadcast(Incident("Flood")))

        assert info.value.status_code == 400
        assert info.value.to_response() == {
            "message": "No recipients (volunteers or users) available to notify"
        }
        assert provider.sent == []

    def test_store_failure_is_roster_unavailable(self):
        engine = _make_engine(FakeStore(error=StoreError("db down")))
        with pytest.raises(RosterUnavailable) as info:
            asyncio.run(engine.run_broadcast(FIRE))
        assert info.value.status_code == 500
        assert info.value.to_response()["message"] == "Error processing alert"

    def test_unknown_failure_is_broadcast_failed(self):
        engine = _make_engine(FakeStore(error=KeyError("contact")))
        with pytest.raises(BroadcastFailed) as info:
            asyncio.run(engine.run_broadcast(FIRE))
        assert info.value.status_code == 500
        assert "contact" in info.value.to_response()["error"]

    def test_simulated_mode_never_fails(self):
        store = FakeStore(
            [_make_volunteer(i) for i in range(4)],
            [_make_user(i, contact=f"+9198765432{i:02d}") for i in range(3)],
        )
        engine = _make_engine(store, SimulatedProvider())
        report = asyncio.run(engine.run_broadcast(FIRE))

        assert engine.mode == "simulated"
        assert report.successful_sends == report.total_recipients == 7
        assert all(o.method == DeliveryMethod.SIMULATED for o in report.outcomes)


# ═══════════════════════════════════════════════════════════════════════════
# Section 6: Providers
# ═══════════════════════════════════════════════════════════════════════════

MESSAGE = AlertMessage(subject="🚨 EMERGENCY ALERT: Fire", body="EMERGENCY: Fire\nBlock 5", html="<p>x</p>")
SMTP_PATH = "backend.app.alerts.channels.email_alert.smtplib.SMTP"


def _make_smtp_provider() -> SmtpEmailProvider:
    return SmtpEmailProvider("alerts@example.org", "app-password", timeout_seconds=3.0)


class TestSmtpEmailProvider:

    def test_sends_over_starttls(self):
        with patch(SMTP_PATH) as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            method = asyncio.run(_make_smtp_provider().send("a@example.org", MESSAGE))

        assert method == DeliveryMethod.EMAIL
        smtp_cls.assert_called_once_with("smtp.gmail.com", 587, timeout=3.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("alerts@example.org", "app-password")
        sent = server.send_message.call_args.args[0]
        assert sent["To"] == "a@example.org"
        assert sent["Subject"] == MESSAGE.subject
        assert sent.get_body(("plain",)).get_content().strip() == MESSAGE.body

    def test_phone_contact_is_logged_not_mailed(self):
        with patch(SMTP_PATH) as smtp_cls:
            method = asyncio.run(_make_smtp_provider().send("+919876543210", MESSAGE))
        assert method == DeliveryMethod.LOGGED
        smtp_cls.assert_not_called()

    def test_smtp_failure_raises_provider_error(self):
        with patch(SMTP_PATH) as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            server.send_message.side_effect = smtplib.SMTPException("550 mailbox unavailable")
            with pytest.raises(ProviderError) as info:
                asyncio.run(_make_smtp_provider().send("a@example.org", MESSAGE))
        assert "550" in info.value.detail

    def test_connection_failure_raises_provider_error(self):
        with patch(SMTP_PATH, side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(ProviderError):
                asyncio.run(_make_smtp_provider().send("a@example.org", MESSAGE))

    @pytest.mark.parametrize("contact,expected", [
        ("a@example.org", True),
        ("+919876543210", False),
        ("", False),
        (None, False),
    ])
    def test_contact_classification(self, contact, expected):
        assert is_email_address(contact) is expected

    def test_multiline_emergency_type_still_delivers(self):
        store = FakeStore([_make_volunteer(1)], [_make_user(1)])
        engine = _make_engine(store, _make_smtp_provider())
        with patch(SMTP_PATH) as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            report = asyncio.run(engine.run_broadcast(Incident("Flood\nWarning", "river")))

        assert report.successful_sends == 2
        subjects = {call.args[0]["Subject"] for call in server.send_message.call_args_list}
        assert subjects == {"🚨 EMERGENCY ALERT: Flood Warning"}


class TestBuildProvider:

    def test_live_when_credentials_present(self):
        provider = build_provider(Settings(EMAIL_USER="alerts@example.org", EMAIL_PASS="pw"))
        assert isinstance(provider, SmtpEmailProvider)
        assert provider.is_live

    def test_simulated_without_credentials(self):
        provider = build_provider(Settings(EMAIL_USER=None, EMAIL_PASS=None))
        assert isinstance(provider, SimulatedProvider)
        assert not provider.is_live

    def test_simulated_with_partial_credentials(self):
        provider = build_provider(Settings(EMAIL_USER="alerts@example.org", EMAIL_PASS=None))
        assert isinstance(provider, SimulatedProvider)

    def test_smtp_timeout_below_send_deadline_by_default(self):
        settings = Settings(EMAIL_USER="alerts@example.org", EMAIL_PASS="pw")
        provider = build_provider(settings)
        assert provider.timeout_seconds == settings.SMTP_TIMEOUT_SECONDS
        assert provider.timeout_seconds < settings.ALERT_SEND_TIMEOUT_SECONDS

    def test_smtp_timeout_shrunk_when_not_below_deadline(self):
        provider = build_provider(Settings(
            EMAIL_USER="alerts@example.org", EMAIL_PASS="pw",
            ALERT_SEND_TIMEOUT_SECONDS=6.0, SMTP_TIMEOUT_SECONDS=30.0,
        ))
        assert provider.timeout_seconds == 3.0
