# ============================================================================
# ACTION DISPATCH TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Tests - Messaging and appointment side effects
# PURPOSE: Verify sender resolution, rendering, auditing and appointment
#          mutations
# CREATED: 14 SEP 2026
# ============================================================================
"""
ActionDispatcher Tests

Channel senders are AsyncMocks; clinic data comes from the fake gateways in
conftest. Every messaging attempt must leave exactly one audit record.

Run with:
    pytest tests/test_actions.py -v
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from core.config import ChannelDefaults, TrackingDefaults
from core.contracts import ActionType, CommunicationChannel, CommunicationStatus
from core.errors import ExternalDeliveryError
from core.models import ActionNode, Appointment, MessageTemplate, WorkflowInstance

from conftest import NOW, build_harness


def _instance(**context):
    data = {
        "tenant_id": "clinic-1",
        "patient_id": "p-1",
        "appointment_id": "a-1",
        "email": "pat@example.com",
        "phone": "+15550001111",
        "first_name": "Ana",
    }
    data.update(context)
    data = {k: v for k, v in data.items() if v is not None}
    return WorkflowInstance(
        instance_id="inst-1",
        workflow_id="wf-1",
        tenant_id="clinic-1",
        patient_id="p-1",
        appointment_id=data.get("appointment_id"),
        current_node_id="n1",
        context_data=data,
    )


def _node(action_type, **fields):
    return ActionNode(id="n1", action_type=action_type, **fields)


# ============================================================================
# SENDER RESOLUTION
# ============================================================================

class TestSenderResolution:

    def test_context_doctor_first(self):
        h = build_harness()
        sender = asyncio.run(h.actions.resolve_sender(_instance(doctor_id="doc-7")))
        assert sender == "doc-7"

    def test_appointment_doctor_second(self):
        h = build_harness()
        h.appointments.add(Appointment(appointment_id="a-1", doctor_id="doc-appt"))
        sender = asyncio.run(h.actions.resolve_sender(_instance()))
        assert sender == "doc-appt"

    def test_tenant_fallback_last(self):
        h = build_harness()
        sender = asyncio.run(h.actions.resolve_sender(_instance()))
        assert sender == "acct-fallback"

    def test_fallback_can_be_disabled(self):
        h = build_harness(channel_defaults=ChannelDefaults(allow_fallback_sender=False))

        result = asyncio.run(h.actions.execute(_instance(), _node(ActionType.EMAIL, message="hi")))

        assert result.success is False
        h.mailer.send.assert_not_awaited()
        records = h.communications.all()
        assert len(records) == 1
        assert records[0].status == CommunicationStatus.FAILED
        assert records[0].error_message == "No sender account available"


# ============================================================================
# EMAIL
# ============================================================================

class TestEmail:

    def test_inline_content_rendered(self):
        h = build_harness()
        node = _node(ActionType.EMAIL, subject="Hi {{ first_name }}", message="<p>Welcome {{ first_name }}</p>")

        result = asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        assert result.success is True
        h.mailer.send.assert_awaited_once_with("doc-7", "pat@example.com", "Hi Ana", "<p>Welcome Ana</p>")
        record = h.communications.all()[0]
        assert record.channel == CommunicationChannel.EMAIL
        assert record.status == CommunicationStatus.SENT
        assert record.recipient == "pat@example.com"
        assert record.instance_id == "inst-1"

    def test_stored_template_used(self):
        h = build_harness()
        h.templates.templates["tpl-1"] = MessageTemplate(
            template_id="tpl-1", subject="Reminder for {{ first_name }}", body_html="<b>{{ first_name }}</b>"
        )
        node = _node(ActionType.EMAIL, template_id="tpl-1")

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        h.mailer.send.assert_awaited_once_with("doc-7", "pat@example.com", "Reminder for Ana", "<b>Ana</b>")

    def test_found_template_replaces_stale_inline_text(self):
        h = build_harness()
        h.templates.templates["tpl-1"] = MessageTemplate(template_id="tpl-1", subject="S", body_html="template")
        node = _node(ActionType.EMAIL, template_id="tpl-1", subject="inline subj", message="inline body")

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        assert h.mailer.send.await_args.args[2:] == ("S", "template")

    def test_template_without_subject_keeps_inline_subject(self):
        h = build_harness()
        h.templates.templates["tpl-1"] = MessageTemplate(template_id="tpl-1", body_html="template")
        node = _node(ActionType.EMAIL, template_id="tpl-1", subject="inline subj", message="inline body")

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        assert h.mailer.send.await_args.args[2:] == ("inline subj", "template")

    def test_missing_template_falls_back_to_inline(self):
        h = build_harness()
        node = _node(ActionType.EMAIL, template_id="tpl-gone", subject="inline subj", message="inline body")

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        assert h.mailer.send.await_args.args[2:] == ("inline subj", "inline body")

    def test_default_subject(self):
        h = build_harness()

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), _node(ActionType.EMAIL, message="x")))

        assert h.mailer.send.await_args.args[2] == "Notification"

    def test_missing_recipient_audited_as_failure(self):
        h = build_harness()

        result = asyncio.run(h.actions.execute(_instance(email=None), _node(ActionType.EMAIL, message="x")))

        assert result.success is False
        h.mailer.send.assert_not_awaited()
        records = h.communications.all()
        assert [r.status for r in records] == [CommunicationStatus.FAILED]

    def test_provider_rejection_audited_once(self):
        h = build_harness()
        h.mailer.send = AsyncMock(side_effect=ExternalDeliveryError("email", "bad address", 422))

        result = asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), _node(ActionType.EMAIL, message="x")))

        assert result.success is False
        records = h.communications.all()
        assert len(records) == 1
        assert records[0].status == CommunicationStatus.FAILED
        assert "bad address" in records[0].error_message

    def test_tracking_pixel_injected(self):
        h = build_harness(tracking_defaults=TrackingDefaults(public_base_url="https://engine.example.com"))
        node = ActionNode(
            id="step-1", action_type=ActionType.EMAIL, template_id="tpl-9",
            message="<html><body>Hi</body></html>",
        )

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        html = h.mailer.send.await_args.args[3]
        assert (
            '<img src="https://engine.example.com/api/v1/tracking/open/inst-1/step-1?template_id=tpl-9"'
            in html
        )
        assert html.index("<img") < html.index("</body>")

    def test_click_tracking_base_available_to_templates(self):
        h = build_harness(tracking_defaults=TrackingDefaults(public_base_url="https://engine.example.com"))
        node = _node(ActionType.EMAIL, message='<a href="{{ click_tracking_base }}?action=BOOK&url=/book">Book</a>')

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), node))

        html = h.mailer.send.await_args.args[3]
        assert "https://engine.example.com/api/v1/tracking/click/inst-1/n1?action=BOOK" in html

    def test_strict_render_failure_audited(self):
        h = build_harness(strict_templates=True)

        result = asyncio.run(h.actions.execute(
            _instance(doctor_id="doc-7"), _node(ActionType.EMAIL, message="Hi {{ nickname }}")
        ))

        assert result.success is False
        h.mailer.send.assert_not_awaited()
        assert "nickname" in h.communications.all()[0].error_message


# ============================================================================
# SMS / WHATSAPP
# ============================================================================

class TestTextMessages:

    def test_sms_uses_resolved_identity(self):
        h = build_harness()

        result = asyncio.run(h.actions.execute(
            _instance(doctor_id="doc-7"), _node(ActionType.SMS, message="Hi {{ first_name }}")
        ))

        assert result.success is True
        h.sms.send.assert_awaited_once_with("+1555doc-7", "+15550001111", "Hi Ana")
        record = h.communications.all()[0]
        assert record.channel == CommunicationChannel.SMS
        assert record.tier_used == "doctor"
        assert record.from_identity == "+1555doc-7"

    def test_sms_falls_back_to_patient_phone(self):
        h = build_harness()

        asyncio.run(h.actions.execute(
            _instance(doctor_id="doc-7", phone=None, patient_phone="+15559990000"),
            _node(ActionType.SMS, message="x"),
        ))

        assert h.sms.send.await_args.args[1] == "+15559990000"

    def test_whatsapp_sender(self):
        h = build_harness()

        asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), _node(ActionType.WHATSAPP, message="x")))

        h.whatsapp.send.assert_awaited_once()
        h.sms.send.assert_not_awaited()
        assert h.communications.all()[0].channel == CommunicationChannel.WHATSAPP

    def test_text_without_phone_fails(self):
        h = build_harness()

        result = asyncio.run(h.actions.execute(
            _instance(phone=None), _node(ActionType.SMS, message="x")
        ))

        assert result.success is False
        assert h.communications.all()[0].status == CommunicationStatus.FAILED

    def test_text_provider_failure_audited_with_identity(self):
        h = build_harness()
        h.sms.send = AsyncMock(side_effect=ExternalDeliveryError("sms", "unreachable"))

        result = asyncio.run(h.actions.execute(_instance(doctor_id="doc-7"), _node(ActionType.SMS, message="x")))

        assert result.success is False
        record = h.communications.all()[0]
        assert record.status == CommunicationStatus.FAILED
        assert record.from_identity == "+1555doc-7"


# ============================================================================
# APPOINTMENT MUTATIONS
# ============================================================================

class TestAppointmentActions:

    def test_cancel_updates_appointment_and_context(self):
        h = build_harness()
        h.appointments.add(Appointment(appointment_id="a-1", date=NOW + timedelta(days=1)))

        result = asyncio.run(h.actions.execute(_instance(), _node(ActionType.CANCEL_APPOINTMENT)))

        assert result.success is True
        assert h.appointments.appointments["a-1"].status == "cancelled"
        assert result.context_updates == {"appointment_status": "cancelled"}

    def test_cancel_without_appointment(self):
        h = build_harness()

        result = asyncio.run(h.actions.execute(
            _instance(appointment_id=None), _node(ActionType.CANCEL_APPOINTMENT)
        ))

        assert result.success is False
        assert h.appointments.updates == []

    def test_cancel_unknown_appointment(self):
        h = build_harness()

        result = asyncio.run(h.actions.execute(_instance(), _node(ActionType.CANCEL_APPOINTMENT)))

        assert result.success is False
        assert "not found" in result.message

    def test_waitlist_records_reason(self):
        h = build_harness()
        h.appointments.add(Appointment(appointment_id="a-1"))

        result = asyncio.run(h.actions.execute(
            _instance(), _node(ActionType.ADD_TO_WAITLIST, reason="Earlier slot wanted")
        ))

        assert result.success is True
        appointment = h.appointments.appointments["a-1"]
        assert appointment.waitlist_reason == "Earlier slot wanted"
        assert appointment.waitlist_added_at is not None

    def test_waitlist_default_reason(self):
        h = build_harness()
        h.appointments.add(Appointment(appointment_id="a-1"))

        asyncio.run(h.actions.execute(_instance(), _node(ActionType.ADD_TO_WAITLIST)))

        assert h.appointments.appointments["a-1"].waitlist_reason == "Workflow Action"

    def test_action_type_accepts_editor_case(self):
        assert ActionType("CANCEL_APPOINTMENT") == ActionType.CANCEL_APPOINTMENT
        assert ActionType("Email") == ActionType.EMAIL
