# ============================================================================
# OUTBOUND HTTP CLIENT TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Tests - Email/SMS providers and clinic API gateways
# PURPOSE: Verify request shapes and error mapping against httpx MockTransport
# CREATED: 14 SEP 2026
# ============================================================================
"""
Channel & Clinic API Tests

Every client accepts an injected httpx.AsyncClient; tests pass one built on
MockTransport so no network is touched.

Run with:
    pytest tests/test_channels.py -v
"""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs

import httpx
import pytest

from core.config import ChannelDefaults
from core.errors import ExternalDeliveryError
from core.models import SenderIdentity
from infrastructure.channels import ResendMailer, TwilioTextSender
from infrastructure.clinic_api import (
    ClinicApiClient,
    ClinicAppointmentGateway,
    ClinicIdentityResolver,
    ClinicPatientGateway,
    ClinicSenderDirectory,
    ClinicTemplateStore,
    to_snake,
)


DEFAULTS = ChannelDefaults(
    clinic_api_url="http://clinic.test/api",
    email_from_domain="mail.example.com",
    twilio_account_sid="AC123",
)


def _client(handler, base_url="http://provider.test"):
    """AsyncClient that records requests and answers via handler."""
    seen = []

    def _handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_handle), base_url=base_url)
    return client, seen


# ============================================================================
# RESEND
# ============================================================================

class TestResendMailer:

    def test_send_posts_email(self):
        client, seen = _client(lambda r: httpx.Response(200, json={"id": "em_1"}))
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value=SenderIdentity(from_address="dr@clinic.example.com", tier="doctor"))
        mailer = ResendMailer(DEFAULTS, identity_resolver=resolver, client=client)

        message_id = asyncio.run(mailer.send("doc-7", "pat@example.com", "Hello", "<p>Hi</p>"))

        assert message_id == "em_1"
        assert seen[0].url.path == "/emails"
        body = json.loads(seen[0].content)
        assert body == {
            "from": "dr@clinic.example.com",
            "to": ["pat@example.com"],
            "subject": "Hello",
            "html": "<p>Hi</p>",
        }
        resolver.resolve.assert_awaited_once_with("doc-7", "email")

    def test_default_from_address(self):
        client, seen = _client(lambda r: httpx.Response(200, json={"id": "em_2"}))
        mailer = ResendMailer(DEFAULTS, client=client)

        asyncio.run(mailer.send("doc-7", "pat@example.com", "S", "B"))

        assert json.loads(seen[0].content)["from"] == "notifications@mail.example.com"

    def test_resolver_failure_falls_back(self):
        client, seen = _client(lambda r: httpx.Response(200, json={"id": "em_3"}))
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=RuntimeError("down"))
        mailer = ResendMailer(DEFAULTS, identity_resolver=resolver, client=client)

        asyncio.run(mailer.send("doc-7", "pat@example.com", "S", "B"))

        assert json.loads(seen[0].content)["from"] == "notifications@mail.example.com"

    def test_rejection_raises(self):
        client, _ = _client(lambda r: httpx.Response(422, text="invalid to"))
        mailer = ResendMailer(DEFAULTS, client=client)

        with pytest.raises(ExternalDeliveryError) as exc_info:
            asyncio.run(mailer.send("doc-7", "bad", "S", "B"))

        assert exc_info.value.status_code == 422
        assert exc_info.value.channel == "email"
        assert "invalid to" in str(exc_info.value)

    def test_transport_error_raises(self):
        def _boom(request):
            raise httpx.ConnectError("refused", request=request)

        client, _ = _client(_boom)
        mailer = ResendMailer(DEFAULTS, client=client)

        with pytest.raises(ExternalDeliveryError, match="ConnectError"):
            asyncio.run(mailer.send("doc-7", "pat@example.com", "S", "B"))


# ============================================================================
# TWILIO
# ============================================================================

class TestTwilioTextSender:

    def test_sms_form(self):
        client, seen = _client(lambda r: httpx.Response(201, json={"sid": "SM1"}))
        sender = TwilioTextSender("sms", DEFAULTS, client=client)

        sid = asyncio.run(sender.send("+15550000000", "+15551112222", "Hi"))

        assert sid == "SM1"
        assert seen[0].url.path == "/Accounts/AC123/Messages.json"
        form = parse_qs(seen[0].content.decode())
        assert form == {"From": ["+15550000000"], "To": ["+15551112222"], "Body": ["Hi"]}

    def test_whatsapp_prefix(self):
        client, seen = _client(lambda r: httpx.Response(201, json={"sid": "SM2"}))
        sender = TwilioTextSender("WhatsApp", DEFAULTS, client=client)

        asyncio.run(sender.send("whatsapp:+15550000000", "+15551112222", "Hi"))

        form = parse_qs(seen[0].content.decode())
        assert form["From"] == ["whatsapp:+15550000000"]
        assert form["To"] == ["whatsapp:+15551112222"]

    def test_failure_carries_channel(self):
        client, _ = _client(lambda r: httpx.Response(400, text="unverified number"))
        sender = TwilioTextSender("whatsapp", DEFAULTS, client=client)

        with pytest.raises(ExternalDeliveryError) as exc_info:
            asyncio.run(sender.send("+1", "+2", "x"))

        assert exc_info.value.channel == "whatsapp"


# ============================================================================
# CLINIC API
# ============================================================================

def _api(routes):
    """ClinicApiClient answering from a {(method, path): response} map."""
    def handler(request):
        key = (request.method, request.url.path)
        if key not in routes:
            return httpx.Response(404)
        status, body = routes[key]
        return httpx.Response(status, json=body)

    client, seen = _client(handler, base_url="http://clinic.test/api")
    return ClinicApiClient(DEFAULTS, client=client), seen


class TestToSnake:

    def test_keys_and_ids(self):
        out = to_snake({"id": 12, "doctorId": 7, "waitlistReason": None}, "appointment_id")
        assert out == {"appointment_id": "12", "doctor_id": "7", "waitlist_reason": None}


class TestClinicGateways:

    def test_find_appointment(self):
        api, _ = _api({
            ("GET", "/api/appointments/a-1"): (200, {
                "id": "a-1", "doctorId": 7, "date": "2026-09-20T14:30:00Z", "status": "scheduled",
            }),
        })

        appointment = asyncio.run(ClinicAppointmentGateway(api).find_by_id("a-1"))

        assert appointment.appointment_id == "a-1"
        assert appointment.doctor_id == "7"
        assert appointment.date == datetime(2026, 9, 20, 14, 30, tzinfo=timezone.utc)

    def test_missing_appointment_is_none(self):
        api, _ = _api({})
        assert asyncio.run(ClinicAppointmentGateway(api).find_by_id("nope")) is None

    def test_update_sends_iso_dates(self):
        api, seen = _api({("PATCH", "/api/appointments/a-1"): (200, {"status": "waitlisted"})})
        when = datetime(2026, 9, 14, 9, 0, tzinfo=timezone.utc)

        appointment = asyncio.run(ClinicAppointmentGateway(api).update(
            "a-1", {"waitlist_added_at": when, "waitlist_reason": "Earlier slot"}
        ))

        assert json.loads(seen[0].content) == {
            "waitlist_added_at": "2026-09-14T09:00:00+00:00",
            "waitlist_reason": "Earlier slot",
        }
        assert appointment.appointment_id == "a-1"
        assert appointment.status == "waitlisted"

    def test_find_in_window_params(self):
        api, seen = _api({("GET", "/api/appointments"): (200, {"items": [{"id": "a-1"}, {"id": "a-2"}]})})
        start = datetime(2026, 9, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 9, 15, 9, 15, tzinfo=timezone.utc)

        found = asyncio.run(ClinicAppointmentGateway(api).find_in_window(
            "clinic-1", start, end, ["scheduled", "confirmed"]
        ))

        assert [a.appointment_id for a in found] == ["a-1", "a-2"]
        params = seen[0].url.params
        assert params["tenant_id"] == "clinic-1"
        assert params["status"] == "scheduled,confirmed"

    def test_server_error_raises(self):
        api, _ = _api({("GET", "/api/patients/p-1"): (500, {"error": "boom"})})

        with pytest.raises(ExternalDeliveryError) as exc_info:
            asyncio.run(ClinicPatientGateway(api).find_by_id("p-1"))

        assert exc_info.value.status_code == 500

    def test_patient_tags(self):
        api, _ = _api({("GET", "/api/patients/p-1"): (200, {"id": "p-1", "tags": ["VIP"]})})

        patient = asyncio.run(ClinicPatientGateway(api).find_by_id("p-1"))

        assert patient.tags == ["VIP"]

    def test_template(self):
        api, _ = _api({("GET", "/api/templates/tpl-1"): (200, {"id": "tpl-1", "bodyHtml": "<b>x</b>"})})

        template = asyncio.run(ClinicTemplateStore(api).find_by_id("tpl-1"))

        assert template.body == "<b>x</b>"

    def test_identity_tier(self):
        api, seen = _api({
            ("GET", "/api/accounts/doc-7/identity"): (200, {"fromAddress": "+15550000007", "tier": "doctor"}),
        })

        identity = asyncio.run(ClinicIdentityResolver(api).resolve("doc-7", "sms"))

        assert identity == SenderIdentity(from_address="+15550000007", tier="doctor")
        assert seen[0].url.params["channel"] == "sms"

    def test_identity_falls_back_to_platform(self):
        api, _ = _api({})

        identity = asyncio.run(ClinicIdentityResolver(api, platform_address="+15559999999").resolve("doc-7", "sms"))

        assert identity.tier == "platform"
        assert identity.from_address == "+15559999999"

    def test_fallback_sender(self):
        api, _ = _api({("GET", "/api/tenants/clinic-1/fallback-sender"): (200, {"senderId": 42})})

        assert asyncio.run(ClinicSenderDirectory(api).fallback_sender_id("clinic-1")) == "42"

    def test_no_fallback_sender(self):
        api, _ = _api({})

        assert asyncio.run(ClinicSenderDirectory(api).fallback_sender_id("clinic-1")) is None
