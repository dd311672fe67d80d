# ============================================================================
# INPUT CORRELATOR
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Service - External-event resumption
# PURPOSE: Route patient replies and engagement events to workflow instances
# CREATED: 14 SEP 2026
# ============================================================================
"""
Input Correlator

Two kinds of external signal:

Patient replies (SMS, WhatsApp, email):
    Every WAITING_FOR_INPUT instance for the patient is checked against the
    branch map of the node it is parked on. A matching keyword resumes the
    instance at the branch target. Replies that match nothing are dropped.

Engagement tracking (email opened, link clicked):
    The originating instance is NOT resumed. The event is journaled against
    it and then dispatched like any business event, scoped to the originating
    tenant, so definitions triggered by EMAIL_OPENED / LINK_CLICKED start
    fresh instances seeded with the original context.
"""

import logging
from typing import Any, Dict, List, Optional

from core.contracts import LogStatus, TrackingEventType
from core.errors import InstanceConflictError
from core.logging import log_context
from core.models import ContextKeys, WaitForInputNode, WorkflowDefinition, WorkflowInstance
from orchestrator.core import WorkflowEngine
from orchestrator.engine.evaluator import InputMatcher
from repositories.base import DefinitionStore, InstanceStore
from services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


class InputCorrelator:
    """Resumes waiting instances and fans out tracking events."""

    def __init__(
        self,
        engine: WorkflowEngine,
        dispatcher: EventDispatcher,
        definitions: DefinitionStore,
        instances: InstanceStore,
        matcher: Optional[InputMatcher] = None,
    ):
        self.engine = engine
        self.dispatcher = dispatcher
        self.definitions = definitions
        self.instances = instances
        self.matcher = matcher or InputMatcher()

    # =========================================================================
    # PATIENT REPLIES
    # =========================================================================

    async def trigger_input_event(
        self,
        patient_id: str,
        channel: Optional[str],
        text: Optional[str],
    ) -> List[WorkflowInstance]:
        """
        Match a patient reply against every instance waiting on that patient.

        Args:
            patient_id: Patient who replied
            channel: Channel the reply arrived on (SMS, WHATSAPP, EMAIL)
            text: Reply body

        Returns:
            Instances that matched and were resumed
        """
        waiting = await self.instances.list_waiting_for_input(str(patient_id))
        if not waiting:
            logger.debug(f"No instances waiting for input from patient {patient_id}")
            return []

        resumed = []
        for instance in waiting:
            with log_context(instance_id=instance.instance_id, workflow_id=instance.workflow_id,
                             tenant_id=instance.tenant_id, patient_id=instance.patient_id):
                try:
                    if await self._correlate(instance, channel, text):
                        resumed.append(instance)
                except InstanceConflictError as e:
                    logger.warning(f"Reply not applied: {e}")
                except Exception as e:
                    logger.exception(f"Failed to correlate reply for {instance.instance_id}: {e}")
        return resumed

    async def _correlate(
        self,
        instance: WorkflowInstance,
        channel: Optional[str],
        text: Optional[str],
    ) -> bool:
        definition = await self.definitions.get(instance.workflow_id)
        if definition is None:
            logger.warning(f"Definition {instance.workflow_id} not found for waiting instance")
            return False

        node = definition.graph().node(instance.current_node_id) if instance.current_node_id else None
        if not isinstance(node, WaitForInputNode):
            logger.warning(
                f"Instance {instance.instance_id} is waiting on '{instance.current_node_id}', "
                f"which is not a wait_for_input node"
            )
            return False

        if node.input_channel and channel and node.input_channel.upper() != channel.upper():
            logger.debug(f"Reply on {channel} ignored; node {node.id} expects {node.input_channel}")
            return False

        match = self.matcher.match(text, node.branches)
        if match is None:
            logger.debug(f"Reply did not match any branch of node {node.id}")
            return False

        keyword, target = match
        await self.engine.journal(
            instance, node.id, LogStatus.INPUT_MATCHED,
            f"Reply matched '{keyword}' on {channel or 'unknown channel'}; resuming at {target}",
        )
        logger.info(f"Reply matched '{keyword}'; resuming at {target}")
        await self.engine.resume_at_node(instance, target)
        return True

    # =========================================================================
    # ENGAGEMENT TRACKING
    # =========================================================================

    async def handle_tracking_event(
        self,
        event_type: TrackingEventType,
        instance_id: str,
        step_id: str,
        template_id: Optional[str] = None,
        action: Optional[str] = None,
    ) -> List[WorkflowInstance]:
        """
        Journal an engagement event and start definitions triggered by it.

        Returns:
            Instances started by the event
        """
        event_type = TrackingEventType(event_type)
        source = await self.instances.get(instance_id)
        if source is None:
            logger.warning(f"Tracking event {event_type.value} for unknown instance {instance_id}")
            return []

        with log_context(instance_id=source.instance_id, tenant_id=source.tenant_id,
                         patient_id=source.patient_id):
            detail = template_id if event_type == TrackingEventType.EMAIL_OPENED else action
            await self.engine.journal(
                source, step_id, LogStatus.TRACKED,
                f"{event_type.value} ({detail or 'no detail'})",
            )

            trigger_data: Dict[str, Any] = {"step_id": step_id}
            if template_id:
                trigger_data["template_id"] = template_id
            if action:
                trigger_data["action"] = action

            context = {
                **source.context_data,
                ContextKeys.TENANT_ID: source.tenant_id,
                ContextKeys.PATIENT_ID: source.patient_id,
                ContextKeys.SOURCE_INSTANCE_ID: source.instance_id,
                ContextKeys.TRIGGER_EVENT: event_type.value,
                ContextKeys.TRIGGER_DATA: trigger_data,
            }

            def matches_trigger_value(definition: WorkflowDefinition) -> bool:
                return self.trigger_value_matches(definition, event_type, template_id, action)

            return await self.dispatcher.trigger_event(
                event_type.value, context, extra_filter=matches_trigger_value
            )

    @staticmethod
    def trigger_value_matches(
        definition: WorkflowDefinition,
        event_type: TrackingEventType,
        template_id: Optional[str],
        action: Optional[str],
    ) -> bool:
        """
        Opens: an unset trigger_value matches any template; a set one must equal it.
        Clicks: trigger_value must be set and equal the clicked action.
        """
        expected = definition.trigger_value
        if event_type == TrackingEventType.EMAIL_OPENED:
            return not expected or expected == template_id
        return bool(expected) and expected == action


__all__ = ["InputCorrelator"]
