# ============================================================================
# ACTION DISPATCH
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Side effects performed by action nodes
# PURPOSE: Send email/SMS/WhatsApp and mutate appointments, with audit
# CREATED: 14 SEP 2026
# ============================================================================
"""
Action Dispatch

Performs the side effect an action node asks for.

Messaging actions (email, sms, whatsapp):
    1. Resolve the recipient from context
    2. Resolve the sender: context doctor_id -> appointment doctor ->
       tenant fallback account (if enabled)
    3. Render subject/body from the inline text or the stored template
    4. Send through the channel collaborator
    5. Write exactly one CommunicationRecord, SENT or FAILED

Appointment actions (cancel_appointment, add_to_waitlist) update the
appointment through the gateway. Cancel also merges the new status into
the instance context.

Failures are reported in ActionResult, never raised; the orchestrator
advances past an action regardless of outcome.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

from core.config import ChannelDefaults, TrackingDefaults
from core.contracts import (
    ActionType,
    CommunicationChannel,
    CommunicationStatus,
    LogStatus,
)
from core.errors import TemplateRenderError
from core.models import (
    ActionNode,
    CommunicationRecord,
    ContextKeys,
    ExecutionLogEntry,
    MessageTemplate,
    WorkflowInstance,
)
from orchestrator.engine.templates import TemplateRenderer
from repositories.base import CommunicationStore, ExecutionLogStore
from services.collaborators import Collaborators

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Notification"


@dataclass
class ActionResult:
    """Outcome of one action node."""
    success: bool
    message: str = ""
    context_updates: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **context_updates) -> "ActionResult":
        return cls(success=True, message=message, context_updates=context_updates)

    @classmethod
    def failed(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message)


@dataclass
class RenderedMessage:
    subject: str
    body: str


class ActionDispatcher:
    """
    Executes action nodes against the clinic collaborators.

    One dispatcher is shared by all instances; it holds no per-instance state.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        log_store: ExecutionLogStore,
        communications: CommunicationStore,
        renderer: Optional[TemplateRenderer] = None,
        channel_defaults: Optional[ChannelDefaults] = None,
        tracking_defaults: Optional[TrackingDefaults] = None,
    ):
        self.collaborators = collaborators
        self.log_store = log_store
        self.communications = communications
        self.renderer = renderer or TemplateRenderer()
        self.channel_defaults = channel_defaults or ChannelDefaults()
        self.tracking_defaults = tracking_defaults or TrackingDefaults()

    async def execute(self, instance: WorkflowInstance, node: ActionNode) -> ActionResult:
        """Dispatch on action type."""
        handlers = {
            ActionType.EMAIL: self._send_email,
            ActionType.SMS: self._send_sms,
            ActionType.WHATSAPP: self._send_whatsapp,
            ActionType.CANCEL_APPOINTMENT: self._cancel_appointment,
            ActionType.ADD_TO_WAITLIST: self._add_to_waitlist,
        }
        return await handlers[node.action_type](instance, node)

    # =========================================================================
    # SENDER & CONTENT RESOLUTION
    # =========================================================================

    async def resolve_sender(self, instance: WorkflowInstance) -> Optional[str]:
        """
        Account a message is sent on behalf of.

        Order: context doctor_id, the appointment's doctor, the tenant's
        fallback account (only when allow_fallback_sender is set).
        """
        context = instance.context_data
        if context.get(ContextKeys.DOCTOR_ID):
            return str(context[ContextKeys.DOCTOR_ID])

        appointment_id = instance.appointment_id or context.get(ContextKeys.APPOINTMENT_ID)
        if appointment_id:
            appointment = await self.collaborators.appointments.find_by_id(str(appointment_id))
            if appointment and appointment.doctor_id:
                return appointment.doctor_id

        if not self.channel_defaults.allow_fallback_sender:
            return None

        fallback = await self.collaborators.senders.fallback_sender_id(instance.tenant_id)
        if fallback:
            logger.warning(
                f"No doctor attributable for instance {instance.instance_id}; "
                f"using fallback sender {fallback}"
            )
        return fallback

    async def _load_template(self, template_id: Optional[str]) -> Optional[MessageTemplate]:
        if not template_id:
            return None
        template = await self.collaborators.templates.find_by_id(template_id)
        if template is None:
            logger.warning(f"Template {template_id} not found; using inline node content")
        return template

    def tracking_context(self, instance: WorkflowInstance, node: ActionNode) -> Dict[str, str]:
        """Open/click tracking URLs exposed to email templates."""
        base = self.tracking_defaults.public_base_url
        if not base:
            return {}
        path = f"{quote(instance.instance_id)}/{quote(node.id)}"
        open_url = f"{base}/api/v1/tracking/open/{path}"
        if node.template_id:
            open_url += f"?template_id={quote(node.template_id)}"
        return {
            "open_tracking_url": open_url,
            "click_tracking_base": f"{base}/api/v1/tracking/click/{path}",
        }

    async def render_message(
        self,
        instance: WorkflowInstance,
        node: ActionNode,
        prefer_html: bool,
        extra: Optional[Dict[str, Any]] = None,
    ) -> RenderedMessage:
        template = await self._load_template(node.template_id)

        # A found template replaces the node's inline text
        if template is not None:
            subject = template.subject or node.subject or DEFAULT_SUBJECT
            body = (template.body_html or template.body_text) if prefer_html else (
                template.body_text or template.body_html
            )
            body = body or node.message
        else:
            subject = node.subject or DEFAULT_SUBJECT
            body = node.message

        context = {**instance.context_data, **(extra or {})}
        rendered = self.renderer.render_many({"subject": subject, "body": body or ""}, context)
        return RenderedMessage(subject=rendered["subject"], body=rendered["body"])

    # =========================================================================
    # MESSAGING
    # =========================================================================

    async def _send_email(self, instance: WorkflowInstance, node: ActionNode) -> ActionResult:
        to = instance.context_data.get(ContextKeys.EMAIL)
        if not to:
            return await self._record_failure(
                instance, CommunicationChannel.EMAIL, None, "No recipient email in context"
            )

        sender_id = await self.resolve_sender(instance)
        if not sender_id:
            return await self._record_failure(
                instance, CommunicationChannel.EMAIL, to, "No sender account available"
            )

        tracking = self.tracking_context(instance, node)
        try:
            message = await self.render_message(instance, node, prefer_html=True, extra=tracking)
        except TemplateRenderError as e:
            return await self._record_failure(instance, CommunicationChannel.EMAIL, to, str(e))
        html = message.body
        if tracking and "</body>" in html:
            pixel = f'<img src="{tracking["open_tracking_url"]}" width="1" height="1" alt="" />'
            html = html.replace("</body>", f"{pixel}</body>", 1)

        await self.log_store.append(ExecutionLogEntry(
            instance_id=instance.instance_id,
            node_id=node.id,
            status=LogStatus.SENT,
            message=f"Sending email to {to}",
        ))

        content = f"Subject: {message.subject}\n\n{message.body}"
        try:
            await self.collaborators.mailer.send(sender_id, to, message.subject, html)
        except Exception as e:
            logger.warning(f"Email to {to} failed: {e}")
            await self._audit(instance, CommunicationChannel.EMAIL, CommunicationStatus.FAILED,
                              to, content, error=str(e))
            return ActionResult.failed(f"Email failed: {e}")

        await self._audit(instance, CommunicationChannel.EMAIL, CommunicationStatus.SENT, to, content)
        return ActionResult.ok(f"Email sent to {to}")

    async def _send_sms(self, instance: WorkflowInstance, node: ActionNode) -> ActionResult:
        context = instance.context_data
        to = context.get(ContextKeys.PHONE) or context.get(ContextKeys.PATIENT_PHONE)
        return await self._send_text(instance, node, CommunicationChannel.SMS, to)

    async def _send_whatsapp(self, instance: WorkflowInstance, node: ActionNode) -> ActionResult:
        to = instance.context_data.get(ContextKeys.PHONE)
        return await self._send_text(instance, node, CommunicationChannel.WHATSAPP, to)

    async def _send_text(
        self,
        instance: WorkflowInstance,
        node: ActionNode,
        channel: CommunicationChannel,
        to: Optional[str],
    ) -> ActionResult:
        label = channel.value.lower()
        if not to:
            return await self._record_failure(instance, channel, None, f"No phone number in context for {label}")

        sender_id = await self.resolve_sender(instance)
        if not sender_id:
            return await self._record_failure(instance, channel, to, "No sender account available")

        try:
            message = await self.render_message(instance, node, prefer_html=False)
        except TemplateRenderError as e:
            return await self._record_failure(instance, channel, to, str(e))
        sender = (
            self.collaborators.sms_sender if channel == CommunicationChannel.SMS
            else self.collaborators.whatsapp_sender
        )

        identity = None
        try:
            identity = await self.collaborators.identity_resolver.resolve(sender_id, label)
            await sender.send(identity.from_address, to, message.body)
        except Exception as e:
            logger.warning(f"{channel.value} to {to} failed: {e}")
            await self._audit(
                instance, channel, CommunicationStatus.FAILED, to, message.body,
                error=str(e),
                tier=identity.tier if identity else None,
                from_identity=identity.from_address if identity else None,
            )
            return ActionResult.failed(f"{channel.value} failed: {e}")

        await self._audit(
            instance, channel, CommunicationStatus.SENT, to, message.body,
            tier=identity.tier, from_identity=identity.from_address,
        )
        return ActionResult.ok(f"{channel.value} sent to {to} via {identity.tier}")

    async def _record_failure(
        self,
        instance: WorkflowInstance,
        channel: CommunicationChannel,
        to: Optional[str],
        reason: str,
    ) -> ActionResult:
        logger.warning(f"{channel.value} not sent for instance {instance.instance_id}: {reason}")
        await self._audit(instance, channel, CommunicationStatus.FAILED, to, "", error=reason)
        return ActionResult.failed(reason)

    async def _audit(
        self,
        instance: WorkflowInstance,
        channel: CommunicationChannel,
        status: CommunicationStatus,
        to: Optional[str],
        content: str,
        error: Optional[str] = None,
        tier: Optional[str] = None,
        from_identity: Optional[str] = None,
    ) -> None:
        await self.communications.record(CommunicationRecord(
            channel=channel,
            status=status,
            content=content,
            recipient=to,
            patient_id=instance.patient_id,
            tenant_id=instance.tenant_id,
            workflow_id=instance.workflow_id,
            instance_id=instance.instance_id,
            appointment_id=instance.appointment_id,
            tier_used=tier,
            from_identity=from_identity,
            error_message=error,
        ))

    # =========================================================================
    # APPOINTMENT MUTATIONS
    # =========================================================================

    def _appointment_id(self, instance: WorkflowInstance) -> Optional[str]:
        value = instance.appointment_id or instance.context_data.get(ContextKeys.APPOINTMENT_ID)
        return str(value) if value else None

    async def _cancel_appointment(self, instance: WorkflowInstance, node: ActionNode) -> ActionResult:
        appointment_id = self._appointment_id(instance)
        if not appointment_id:
            logger.warning(f"cancel_appointment on instance {instance.instance_id} without an appointment")
            return ActionResult.failed("No appointment to cancel")

        updated = await self.collaborators.appointments.update(appointment_id, {"status": "cancelled"})
        if updated is None:
            return ActionResult.failed(f"Appointment {appointment_id} not found")

        return ActionResult.ok(
            f"Appointment {appointment_id} cancelled",
            **{ContextKeys.APPOINTMENT_STATUS: "cancelled"},
        )

    async def _add_to_waitlist(self, instance: WorkflowInstance, node: ActionNode) -> ActionResult:
        appointment_id = self._appointment_id(instance)
        if not appointment_id:
            logger.warning(f"add_to_waitlist on instance {instance.instance_id} without an appointment")
            return ActionResult.failed("No appointment to waitlist")

        reason = node.reason or "Workflow Action"
        updated = await self.collaborators.appointments.update(appointment_id, {
            "waitlist_added_at": datetime.now(timezone.utc),
            "waitlist_reason": reason,
        })
        if updated is None:
            return ActionResult.failed(f"Appointment {appointment_id} not found")

        return ActionResult.ok(f"Appointment {appointment_id} added to waitlist ({reason})")


__all__ = ["ActionDispatcher", "ActionResult", "RenderedMessage"]
