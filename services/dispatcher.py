# ============================================================================
# EVENT DISPATCHER
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Service - Business event ingress
# PURPOSE: Match inbound events to active definitions and start instances
# CREATED: 14 SEP 2026
# ============================================================================
"""
Event Dispatcher

Entry point for business events (APPOINTMENT_CREATED, FORM_SUBMITTED, ...).

For each event:
1. Validate the context; tenant_id and patient_id are mandatory
2. Find active definitions for the event type in that tenant
3. Filter by patient segment and form scope
4. Start and drive one instance per match, in list order

Matches run one after another. A failure starting one definition is logged
and the next definition is still tried.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.config import EngineDefaults, get_defaults
from core.contracts import PatientSegment
from core.errors import GuardFailure
from core.logging import log_context
from core.models import ContextKeys, TriggerContext, WorkflowDefinition, WorkflowInstance
from orchestrator.core import WorkflowEngine
from repositories.base import DefinitionStore

logger = logging.getLogger(__name__)

DefinitionFilter = Callable[[WorkflowDefinition], bool]


class EventDispatcher:
    """Starts workflow instances for inbound business events."""

    def __init__(
        self,
        engine: WorkflowEngine,
        definitions: DefinitionStore,
        defaults: Optional[EngineDefaults] = None,
    ):
        self.engine = engine
        self.definitions = definitions
        self.defaults = defaults or get_defaults().engine

        # Metrics
        self._events_received = 0
        self._events_rejected = 0
        self._instances_started = 0
        self._start_failures = 0

    async def trigger_event(
        self,
        event_type: str,
        context: Dict[str, Any],
        extra_filter: Optional[DefinitionFilter] = None,
    ) -> List[WorkflowInstance]:
        """
        Start every definition that matches this event.

        Args:
            event_type: Trigger type (e.g. APPOINTMENT_CREATED)
            context: Event payload; becomes the instance's initial context
            extra_filter: Additional predicate on candidate definitions

        Returns:
            Instances created (possibly empty)
        """
        self._events_received += 1
        try:
            validated = self.validate_context(context)
        except GuardFailure as e:
            self._events_rejected += 1
            logger.warning(f"Rejected {event_type} event: {e}")
            return []

        tenant_id = validated[ContextKeys.TENANT_ID]
        with log_context(tenant_id=tenant_id, patient_id=validated[ContextKeys.PATIENT_ID]):
            matches = await self.find_matching(event_type, validated)
            if extra_filter is not None:
                matches = [d for d in matches if extra_filter(d)]

            if not matches:
                logger.debug(f"No active definitions for {event_type} in tenant {tenant_id}")
                return []

            logger.info(f"{event_type}: {len(matches)} matching definition(s)")
            created = []
            for definition in matches:
                with log_context(workflow_id=definition.workflow_id):
                    try:
                        instance = await self.engine.start_instance(definition, validated)
                    except Exception as e:
                        self._start_failures += 1
                        logger.exception(
                            f"Failed to start {definition.workflow_id} for {event_type}: {e}"
                        )
                        continue
                created.append(instance)
                self._instances_started += 1
            return created

    def validate_context(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize an event payload and enforce the scoping keys.

        Raises:
            GuardFailure: tenant_id or patient_id missing, or payload malformed
        """
        try:
            validated = TriggerContext.model_validate(context or {}).to_context()
        except ValidationError as e:
            raise GuardFailure(f"Malformed event context: {e.error_count()} error(s)")

        if not validated.get(ContextKeys.TENANT_ID):
            raise GuardFailure("Event context has no tenant_id", missing=ContextKeys.TENANT_ID)
        if not validated.get(ContextKeys.PATIENT_ID):
            raise GuardFailure("Event context has no patient_id", missing=ContextKeys.PATIENT_ID)

        validated.setdefault(ContextKeys.PATIENT_SEGMENT, self.defaults.default_patient_segment)
        return validated

    async def find_matching(
        self,
        event_type: str,
        context: Dict[str, Any],
    ) -> List[WorkflowDefinition]:
        """Active definitions in the context's tenant that this event should start."""
        candidates = await self.definitions.list_active(
            trigger_type=event_type,
            tenant_id=context[ContextKeys.TENANT_ID],
        )
        segment = str(context.get(ContextKeys.PATIENT_SEGMENT, "")).upper()
        form_id = context.get(ContextKeys.FORM_ID)

        matches = []
        for definition in candidates:
            if definition.tenant_id != context[ContextKeys.TENANT_ID]:
                continue
            if definition.patient_segment != PatientSegment.ALL and definition.patient_segment.value != segment:
                continue
            if definition.form_id and definition.form_id != form_id:
                continue
            try:
                definition.get_trigger_node()
            except ValueError:
                logger.warning(f"Definition {definition.workflow_id} has no trigger node; skipping")
                continue
            matches.append(definition)
        return matches

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "events_received": self._events_received,
            "events_rejected": self._events_rejected,
            "instances_started": self._instances_started,
            "start_failures": self._start_failures,
        }


__all__ = ["EventDispatcher", "DefinitionFilter"]
