# ============================================================================
# NODE EXECUTORS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - One executor per node kind
# PURPOSE: Decide what happens at a node; the orchestrator applies the outcome
# CREATED: 14 SEP 2026
# ============================================================================
"""
Node Executors

Executors are registered per NodeKind at import time via decorator.
Each receives an ExecutionContext and returns a NodeOutcome describing
what the orchestrator should do next:

    ADVANCE            follow the outgoing edge (optionally by branch label)
    SUSPEND_UNTIL      park WAITING until wake_at
    SUSPEND_FOR_INPUT  park WAITING_FOR_INPUT
    COMPLETE           end the instance without following any edge

Executors do not persist instance state. Action side effects (sends,
appointment updates, audit rows) happen inside the action dispatcher.

Raising from an executor fails the instance, except for action nodes,
whose errors are converted into an ACTION_FAILED outcome that still advances.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.contracts import LogStatus, NodeKind, OnPastPolicy
from core.errors import NodeExecutionError
from core.models import (
    ActionNode,
    ConditionNode,
    ContextKeys,
    DelayNode,
    NodeBase,
    UnknownNode,
    WaitForInputNode,
    WorkflowDefinition,
    WorkflowInstance,
)
from orchestrator.engine.evaluator import ConditionEvaluator
from orchestrator.engine.timing import compute_wake
from services.collaborators import AppointmentGateway, PatientGateway

logger = logging.getLogger(__name__)


# ============================================================================
# EXECUTOR TYPES
# ============================================================================

class OutcomeKind(str, Enum):
    ADVANCE = "advance"
    SUSPEND_UNTIL = "suspend_until"
    SUSPEND_FOR_INPUT = "suspend_for_input"
    COMPLETE = "complete"


@dataclass
class NodeOutcome:
    """
    What the orchestrator should do after a node ran.

    log_status/message, when set, are written to the execution log before the
    outcome is applied.
    """
    kind: OutcomeKind
    branch_label: Optional[str] = None
    wake_at: Optional[datetime] = None
    log_status: Optional[LogStatus] = None
    message: str = ""
    context_updates: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def advance(cls, branch_label: Optional[str] = None, **kwargs) -> "NodeOutcome":
        return cls(kind=OutcomeKind.ADVANCE, branch_label=branch_label, **kwargs)

    @classmethod
    def suspend_until(cls, wake_at: datetime, **kwargs) -> "NodeOutcome":
        return cls(kind=OutcomeKind.SUSPEND_UNTIL, wake_at=wake_at, **kwargs)

    @classmethod
    def suspend_for_input(cls, **kwargs) -> "NodeOutcome":
        return cls(kind=OutcomeKind.SUSPEND_FOR_INPUT, **kwargs)

    @classmethod
    def complete(cls, **kwargs) -> "NodeOutcome":
        return cls(kind=OutcomeKind.COMPLETE, **kwargs)


@dataclass
class ExecutionContext:
    """Everything an executor may read."""
    instance: WorkflowInstance
    definition: WorkflowDefinition
    now: datetime
    evaluator: ConditionEvaluator
    appointments: AppointmentGateway
    patients: PatientGateway
    # ActionDispatcher; typed loosely to keep this module free of channel imports
    actions: Any = None


ExecutorFunc = Callable[[ExecutionContext, NodeBase], Awaitable[NodeOutcome]]


# ============================================================================
# REGISTRY
# ============================================================================

_executors: Dict[NodeKind, ExecutorFunc] = {}


def register_executor(kind: NodeKind) -> Callable[[ExecutorFunc], ExecutorFunc]:
    """
    Decorator to register the executor for a node kind.

    Example:
        @register_executor(NodeKind.TRIGGER)
        async def execute_trigger(ctx, node):
            return NodeOutcome.advance()
    """
    def decorator(func: ExecutorFunc) -> ExecutorFunc:
        if kind in _executors:
            raise ValueError(f"Executor already registered for {kind.value}")
        _executors[kind] = func
        logger.debug(f"Registered executor: {kind.value} ({func.__name__})")
        return func
    return decorator


def get_executor(kind: str) -> ExecutorFunc:
    """
    Raises:
        NodeExecutionError: No executor for this kind
    """
    try:
        return _executors[NodeKind(kind)]
    except (KeyError, ValueError):
        raise NodeExecutionError("?", f"No executor registered for node kind '{kind}'")


def missing_executors() -> List[NodeKind]:
    """Node kinds without an executor (empty when dispatch is exhaustive)."""
    return [kind for kind in NodeKind if kind not in _executors]


# ============================================================================
# EXECUTORS
# ============================================================================

@register_executor(NodeKind.TRIGGER)
async def execute_trigger(ctx: ExecutionContext, node: NodeBase) -> NodeOutcome:
    return NodeOutcome.advance()


@register_executor(NodeKind.ACTION)
async def execute_action(ctx: ExecutionContext, node: ActionNode) -> NodeOutcome:
    """Run the side effect; advance whether it succeeded or not."""
    try:
        result = await ctx.actions.execute(ctx.instance, node)
    except Exception as e:
        logger.exception(f"Action {node.action_type.value} at node {node.id} raised: {e}")
        return NodeOutcome.advance(
            log_status=LogStatus.ACTION_FAILED,
            message=f"{node.action_type.value} failed: {e}",
        )

    return NodeOutcome.advance(
        log_status=LogStatus.ACTION_COMPLETED if result.success else LogStatus.ACTION_FAILED,
        message=result.message,
        context_updates=result.context_updates,
    )


@register_executor(NodeKind.CONDITION)
async def execute_condition(ctx: ExecutionContext, node: ConditionNode) -> NodeOutcome:
    """Evaluate and follow the 'true' or 'false' edge."""
    overrides = {}
    if node.variable == ContextKeys.TAGS:
        patient = await ctx.patients.find_by_id(ctx.instance.patient_id)
        overrides[ContextKeys.TAGS] = patient.tags if patient else []

    result = ctx.evaluator.evaluate(
        node.variable, node.operator, node.value, ctx.instance.context_data, overrides
    )
    label = "true" if result else "false"
    return NodeOutcome.advance(
        branch_label=label,
        log_status=LogStatus.CONDITION,
        message=f"{node.variable} {node.operator} {node.value!r} -> {label}",
    )


@register_executor(NodeKind.DELAY)
async def execute_delay(ctx: ExecutionContext, node: DelayNode) -> NodeOutcome:
    """
    Compute the wake instant.

    Relative modes read the appointment date live; when there is no
    appointment to anchor on, the delay is skipped and the flow continues.
    """
    appointment_date = None
    if node.delay_mode.is_relative():
        instance = ctx.instance
        appointment_id = instance.appointment_id or instance.context_data.get(ContextKeys.APPOINTMENT_ID)
        appointment = None
        if appointment_id:
            appointment = await ctx.appointments.find_by_id(str(appointment_id))
        if appointment is None or appointment.date is None:
            logger.warning(
                f"{node.delay_mode.value} delay at node {node.id} has no appointment date; proceeding"
            )
            return NodeOutcome.advance(
                log_status=LogStatus.WARNING,
                message=f"{node.delay_mode.value} delay without appointment date; proceeding immediately",
            )
        appointment_date = appointment.date

    wake_at = compute_wake(
        node.delay_mode, node.delay_value, node.delay_unit, ctx.now, appointment_date
    )

    if wake_at <= ctx.now:
        if node.on_past == OnPastPolicy.SKIP and node.delay_mode.is_relative():
            return NodeOutcome.complete(
                log_status=LogStatus.SKIPPED,
                message=f"Wake time {wake_at.isoformat()} already passed; on_past=SKIP ends workflow",
            )
        return NodeOutcome.advance(
            log_status=LogStatus.TRANSITION,
            message=f"Wake time {wake_at.isoformat()} already passed; continuing",
        )

    return NodeOutcome.suspend_until(
        wake_at,
        log_status=LogStatus.SUSPENDED,
        message=f"Waiting until {wake_at.isoformat()}",
    )


@register_executor(NodeKind.WAIT_FOR_INPUT)
async def execute_wait_for_input(ctx: ExecutionContext, node: WaitForInputNode) -> NodeOutcome:
    keywords = ", ".join(node.branches) or "none"
    channel = node.input_channel or "any channel"
    return NodeOutcome.suspend_for_input(
        log_status=LogStatus.WAITING_FOR_INPUT,
        message=f"Waiting for reply on {channel} (keywords: {keywords})",
    )


@register_executor(NodeKind.UNKNOWN)
async def execute_unknown(ctx: ExecutionContext, node: UnknownNode) -> NodeOutcome:
    logger.warning(f"Unknown node type '{node.declared_type}' at node {node.id}; passing through")
    return NodeOutcome.advance(
        log_status=LogStatus.WARNING,
        message=f"Unknown node type '{node.declared_type}' passed through",
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "OutcomeKind",
    "NodeOutcome",
    "ExecutionContext",
    "register_executor",
    "get_executor",
    "missing_executors",
]
