# ============================================================================
# WORKFLOW INSTANCE MODEL
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core model - One execution of a workflow definition
# PURPOSE: Persisted state machine record (status, cursor, context, wake time)
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: WorkflowInstance
# DEPENDENCIES: pydantic
# ============================================================================
"""
Workflow Instance Model

A WorkflowInstance is one execution of a definition for one patient.

Invariants:
- current_node_id is None exactly when status is terminal
- next_run_at is set exactly when status is WAITING
- instances are never deleted; every write bumps `version`
"""

import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import InstanceStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowInstance(BaseModel):
    """
    A running (or finished) workflow.

    Maps to: workflow.workflow_instances table

    Lifecycle:
        1. Created RUNNING at the trigger node by the dispatcher or scheduler
        2. Parks WAITING / WAITING_FOR_INPUT at delay and input nodes
        3. Ends COMPLETED when no outgoing edge remains, FAILED on node errors
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "workflow_instances"
    __sql_schema__: ClassVar[str] = "workflow"
    __sql_primary_key__: ClassVar[List[str]] = ["instance_id"]
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_wf_inst_due", ["next_run_at"], "status = 'waiting'"),
        ("idx_wf_inst_patient_input", ["patient_id"], "status = 'waiting_for_input'"),
        ("idx_wf_inst_workflow_appt", ["workflow_id", "appointment_id"]),
        ("idx_wf_inst_tenant", ["tenant_id"]),
    ]

    instance_id: str = Field(default_factory=lambda: str(uuid.uuid4()), max_length=64)
    workflow_id: str = Field(..., max_length=64)
    tenant_id: str = Field(..., max_length=64)
    patient_id: str = Field(..., max_length=64)
    appointment_id: Optional[str] = Field(default=None, max_length=64)

    status: InstanceStatus = Field(default=InstanceStatus.RUNNING)
    current_node_id: Optional[str] = Field(default=None, max_length=64)
    context_data: Dict[str, Any] = Field(default_factory=dict)
    next_run_at: Optional[datetime] = Field(
        default=None,
        description="Wake instant while WAITING"
    )
    error_message: Optional[str] = Field(default=None, max_length=2000)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    # Optimistic locking
    version: int = Field(
        default=1,
        ge=1,
        description="Version for optimistic locking - incremented on each update"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    # =========================================================================
    # STATE TRANSITIONS (in-memory; persisted by InstanceStore.update)
    # =========================================================================

    def move_to(self, node_id: str) -> None:
        """Advance the cursor while RUNNING."""
        self.status = InstanceStatus.RUNNING
        self.current_node_id = node_id
        self.next_run_at = None

    def mark_waiting(self, node_id: str, wake_at: datetime) -> None:
        self.status = InstanceStatus.WAITING
        self.current_node_id = node_id
        self.next_run_at = wake_at

    def mark_waiting_for_input(self, node_id: str) -> None:
        self.status = InstanceStatus.WAITING_FOR_INPUT
        self.current_node_id = node_id
        self.next_run_at = None

    def mark_running(self) -> None:
        """Claim a suspended instance for resumption."""
        self.status = InstanceStatus.RUNNING
        self.next_run_at = None

    def mark_completed(self) -> None:
        self.status = InstanceStatus.COMPLETED
        self.current_node_id = None
        self.next_run_at = None
        self.completed_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = InstanceStatus.FAILED
        self.current_node_id = None
        self.next_run_at = None
        self.error_message = error[:2000]
        self.completed_at = _utcnow()

    def merge_context(self, updates: Dict[str, Any]) -> None:
        """Merge keys into context_data; existing keys not named are kept."""
        self.context_data = {**self.context_data, **updates}


__all__ = ["WorkflowInstance"]
