# ============================================================================
# WORKFLOW ENGINE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Instance lifecycle and graph walking
# PURPOSE: Start, advance, suspend, resume and finish workflow instances
# CREATED: 14 SEP 2026
# ============================================================================
"""
Workflow Engine

Walks a definition's graph for one instance at a time:

    start_instance      create RUNNING at the trigger, then process it
    process_node        run nodes until the instance suspends or terminates
    transition_to_next  pick the outgoing edge and continue (or complete)
    resume_after_delay  continue past the delay node a WAITING instance sat on
    resume_at_node      jump to a branch target after an input matched

Processing is iterative; a long chain of pass-through nodes never grows the
call stack. A step guard fails instances whose graphs loop without ever
suspending.

Every state change is saved with a version check. When two drivers race on
the same instance, the loser gets InstanceConflictError from _save, stops,
and leaves the instance to the winner.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.config import EngineDefaults, get_defaults
from core.contracts import LogStatus
from core.errors import InstanceConflictError, NotFoundError, WorkflowEngineError
from core.logging import log_checkpoint, log_context
from core.models import (
    ContextKeys,
    ExecutionLogEntry,
    WorkflowDefinition,
    WorkflowInstance,
)
from orchestrator.engine.evaluator import ConditionEvaluator
from orchestrator.engine.executors import (
    ExecutionContext,
    NodeOutcome,
    OutcomeKind,
    get_executor,
)
from orchestrator.engine.timing import utcnow
from repositories.base import DefinitionStore, ExecutionLogStore, InstanceStore
from services.collaborators import AppointmentGateway, PatientGateway

logger = logging.getLogger(__name__)

WakeListener = Callable[[str, datetime], None]


class WorkflowEngine:
    """
    Drives workflow instances through their definition graphs.

    The engine owns no background tasks; the dispatcher, correlator and
    scheduler call into it.
    """

    def __init__(
        self,
        definitions: DefinitionStore,
        instances: InstanceStore,
        logs: ExecutionLogStore,
        actions,
        appointments: AppointmentGateway,
        patients: PatientGateway,
        evaluator: Optional[ConditionEvaluator] = None,
        defaults: Optional[EngineDefaults] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            definitions: Definition store
            instances: Instance store (version-checked updates)
            logs: Execution log store
            actions: ActionDispatcher for action nodes
            appointments: Clinic appointment gateway
            patients: Clinic patient gateway
            evaluator: Condition evaluator (default: new instance)
            defaults: Engine defaults (default: from environment)
            clock: Source of "now" (overridable in tests)
        """
        self.definitions = definitions
        self.instances = instances
        self.logs = logs
        self.actions = actions
        self.appointments = appointments
        self.patients = patients
        self.evaluator = evaluator or ConditionEvaluator()
        self.defaults = defaults or get_defaults().engine
        self.clock = clock

        self._wake_listeners: List[WakeListener] = []

        # Metrics
        self._instances_started = 0
        self._instances_completed = 0
        self._instances_failed = 0
        self._nodes_executed = 0
        self._conflicts = 0

    def add_wake_listener(self, listener: WakeListener) -> None:
        """Register a callback invoked with (instance_id, wake_at) on every timed suspend."""
        self._wake_listeners.append(listener)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def start_instance(
        self,
        definition: WorkflowDefinition,
        context: Dict[str, Any],
    ) -> WorkflowInstance:
        """
        Create a new instance at the definition's trigger node and run it.

        Args:
            definition: Definition to instantiate
            context: Initial context (must carry patient_id)

        Returns:
            The instance in whatever state processing left it

        Raises:
            WorkflowEngineError: Definition fails structural validation
                or context has no patient_id
        """
        problems = definition.validate_structure()
        if problems:
            raise WorkflowEngineError(
                f"Definition {definition.workflow_id} is invalid: {'; '.join(problems)}"
            )

        patient_id = context.get(ContextKeys.PATIENT_ID)
        if not patient_id:
            raise WorkflowEngineError("Cannot start instance without patient_id")

        trigger = definition.get_trigger_node()
        context_data = {**context, ContextKeys.TENANT_ID: definition.tenant_id}
        appointment_id = context.get(ContextKeys.APPOINTMENT_ID)

        instance = WorkflowInstance(
            workflow_id=definition.workflow_id,
            tenant_id=definition.tenant_id,
            patient_id=str(patient_id),
            appointment_id=str(appointment_id) if appointment_id else None,
            current_node_id=trigger.id,
            context_data=context_data,
        )
        await self.instances.create(instance)
        self._instances_started += 1

        with log_context(instance_id=instance.instance_id, workflow_id=definition.workflow_id,
                         tenant_id=definition.tenant_id, patient_id=instance.patient_id):
            log_checkpoint("instance_started", {"trigger_type": definition.trigger_type}, logger)
            await self.journal(
                instance, trigger.id, LogStatus.STARTED,
                f"Workflow '{definition.name}' started by {definition.trigger_type}",
            )
            return await self.process_node(instance, trigger.id, definition)

    async def process_node(
        self,
        instance: WorkflowInstance,
        node_id: str,
        definition: Optional[WorkflowDefinition] = None,
    ) -> WorkflowInstance:
        """
        Execute node_id and keep going until the instance suspends or ends.

        The instance must already be RUNNING with current_node_id == node_id
        persisted.
        """
        if definition is None:
            definition = await self._definition_for(instance)
            if definition is None:
                return instance

        graph = definition.graph()
        current: Optional[str] = node_id
        steps = 0

        try:
            while current is not None:
                steps += 1
                if steps > self.defaults.max_steps_per_run:
                    await self._fail(
                        instance, current,
                        f"Exceeded {self.defaults.max_steps_per_run} steps without suspending",
                    )
                    return instance

                node = graph.node(current)
                if node is None:
                    await self._fail(instance, current, f"Node '{current}' not found in definition")
                    return instance

                with log_context(instance_id=instance.instance_id, node_id=current):
                    try:
                        executor = get_executor(node.kind)
                        outcome = await executor(self._execution_context(instance, definition), node)
                    except Exception as e:
                        logger.exception(f"Node {current} ({node.kind}) failed: {e}")
                        await self._fail(instance, current, f"{node.kind} node '{current}' failed: {e}")
                        return instance

                    self._nodes_executed += 1
                    try:
                        current = await self._apply(instance, definition, current, outcome)
                    except InstanceConflictError:
                        raise
                    except Exception as e:
                        logger.exception(f"Recording outcome of node {current} failed: {e}")
                        await self._fail(instance, current, f"Could not record outcome of '{current}': {e}")
                        return instance

        except InstanceConflictError as e:
            self._conflicts += 1
            logger.warning(f"Stopped processing: {e}")

        return instance

    async def transition_to_next(
        self,
        instance: WorkflowInstance,
        node_id: str,
        branch_label: Optional[str] = None,
        definition: Optional[WorkflowDefinition] = None,
    ) -> WorkflowInstance:
        """
        Follow the first outgoing edge of node_id (matching branch_label when
        given) and process the target; complete the instance when none match.
        """
        if definition is None:
            definition = await self._definition_for(instance)
            if definition is None:
                return instance
        try:
            next_id = await self._advance(instance, definition, node_id, branch_label)
        except InstanceConflictError as e:
            self._conflicts += 1
            logger.warning(f"Stopped processing: {e}")
            return instance

        if next_id is None:
            return instance
        return await self.process_node(instance, next_id, definition)

    async def claim(self, instance: WorkflowInstance) -> bool:
        """Mark a suspended instance RUNNING. False when another driver got there first."""
        instance.mark_running()
        try:
            await self._save(instance)
        except InstanceConflictError:
            self._conflicts += 1
            return False
        return True

    async def resume_after_delay(self, instance: WorkflowInstance) -> WorkflowInstance:
        """
        Continue an instance that was WAITING on a delay node.

        The caller has already claimed it (status RUNNING, saved).
        """
        node_id = instance.current_node_id
        if not node_id:
            logger.warning(f"Instance {instance.instance_id} has no current node; cannot resume")
            return instance

        with log_context(instance_id=instance.instance_id, workflow_id=instance.workflow_id,
                         tenant_id=instance.tenant_id, patient_id=instance.patient_id):
            await self.journal(instance, node_id, LogStatus.RESUMED, "Delay elapsed; resuming")
            return await self.transition_to_next(instance, node_id)

    async def resume_at_node(
        self,
        instance: WorkflowInstance,
        node_id: str,
        context_updates: Optional[Dict[str, Any]] = None,
    ) -> WorkflowInstance:
        """
        Move a suspended instance directly to node_id and process from there.

        Raises:
            InstanceConflictError: Another driver already moved the instance
        """
        instance.move_to(node_id)
        if context_updates:
            instance.merge_context(context_updates)
        await self._save(instance)

        with log_context(instance_id=instance.instance_id, workflow_id=instance.workflow_id,
                         tenant_id=instance.tenant_id, patient_id=instance.patient_id):
            return await self.process_node(instance, node_id)

    # =========================================================================
    # OUTCOMES
    # =========================================================================

    async def _apply(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        node_id: str,
        outcome: NodeOutcome,
    ) -> Optional[str]:
        """Persist an outcome. Returns the next node to run, or None to stop."""
        if outcome.context_updates:
            instance.merge_context(outcome.context_updates)
        if outcome.log_status is not None:
            await self.journal(instance, node_id, outcome.log_status, outcome.message)

        if outcome.kind == OutcomeKind.ADVANCE:
            return await self._advance(instance, definition, node_id, outcome.branch_label)

        if outcome.kind == OutcomeKind.SUSPEND_UNTIL:
            instance.mark_waiting(node_id, outcome.wake_at)
            await self._save(instance)
            logger.info(f"Instance {instance.instance_id} waiting until {outcome.wake_at.isoformat()}")
            for listener in self._wake_listeners:
                listener(instance.instance_id, outcome.wake_at)
            return None

        if outcome.kind == OutcomeKind.SUSPEND_FOR_INPUT:
            instance.mark_waiting_for_input(node_id)
            await self._save(instance)
            logger.info(f"Instance {instance.instance_id} waiting for input at {node_id}")
            return None

        await self._complete(instance, node_id, outcome.message or "Workflow ended")
        return None

    async def _advance(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        node_id: str,
        branch_label: Optional[str],
    ) -> Optional[str]:
        edges = definition.graph().outgoing(node_id, branch_label)
        if not edges:
            detail = f" for branch '{branch_label}'" if branch_label else ""
            await self._complete(instance, node_id, f"No outgoing edge{detail}; workflow completed")
            return None

        target = edges[0].target
        instance.move_to(target)
        await self._save(instance)
        await self.journal(instance, target, LogStatus.TRANSITION, f"{node_id} -> {target}")
        return target

    async def _complete(self, instance: WorkflowInstance, node_id: str, message: str) -> None:
        instance.mark_completed()
        await self._save(instance)
        self._instances_completed += 1
        await self.journal(instance, node_id, LogStatus.COMPLETED, message)
        log_checkpoint("instance_completed", {"instance_id": instance.instance_id}, logger)

    async def _fail(self, instance: WorkflowInstance, node_id: Optional[str], error: str) -> None:
        instance.mark_failed(error)
        try:
            await self._save(instance)
        except InstanceConflictError as e:
            self._conflicts += 1
            logger.warning(f"Could not record failure: {e}")
            return
        self._instances_failed += 1
        try:
            await self.journal(instance, node_id, LogStatus.FAILED, error)
        except Exception as e:
            logger.exception(f"FAILED entry for {instance.instance_id} not journaled: {e}")
        logger.error(f"Instance {instance.instance_id} failed: {error}")

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def journal(
        self,
        instance: WorkflowInstance,
        node_id: Optional[str],
        status: LogStatus,
        message: str = "",
    ) -> ExecutionLogEntry:
        """Append one execution log entry for this instance."""
        entry = ExecutionLogEntry(
            instance_id=instance.instance_id,
            node_id=node_id,
            status=status,
            message=message[:4000],
        )
        return await self.logs.append(entry)

    async def _save(self, instance: WorkflowInstance) -> None:
        expected = instance.version
        if not await self.instances.update(instance):
            raise InstanceConflictError(instance.instance_id, expected)

    async def _definition_for(self, instance: WorkflowInstance) -> Optional[WorkflowDefinition]:
        definition = await self.definitions.get(instance.workflow_id)
        if definition is None:
            error = str(NotFoundError("Workflow definition", instance.workflow_id))
            await self._fail(instance, instance.current_node_id, error)
        return definition

    def _execution_context(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
    ) -> ExecutionContext:
        return ExecutionContext(
            instance=instance,
            definition=definition,
            now=self.clock(),
            evaluator=self.evaluator,
            appointments=self.appointments,
            patients=self.patients,
            actions=self.actions,
        )

    @property
    def stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "instances_started": self._instances_started,
            "instances_completed": self._instances_completed,
            "instances_failed": self._instances_failed,
            "nodes_executed": self._nodes_executed,
            "conflicts": self._conflicts,
        }


__all__ = ["WorkflowEngine", "WakeListener"]
