# ============================================================================
# EXECUTION LOG & COMMUNICATION AUDIT MODELS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core model - Append-only execution history
# PURPOSE: Per-instance execution timeline and outbound message audit
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: ExecutionLogEntry, CommunicationRecord
# DEPENDENCIES: pydantic
# ============================================================================
"""
Execution History Models

ExecutionLogEntry records every step an instance takes: start, transition,
suspension, resumption, action outcome, correlation, error. Entries are
only ever appended.

CommunicationRecord audits every outbound dispatch attempt (success or
failure) with the rendered content actually sent.
"""

import uuid
from datetime import datetime, timezone
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import (
    CommunicationChannel,
    CommunicationDirection,
    CommunicationStatus,
    LogStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionLogEntry(BaseModel):
    """
    A single entry in an instance's execution timeline.

    Maps to: workflow.workflow_execution_logs table
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "workflow_execution_logs"
    __sql_schema__: ClassVar[str] = "workflow"
    __sql_primary_key__: ClassVar[List[str]] = ["log_id"]
    __sql_foreign_keys__: ClassVar[Dict[str, str]] = {
        "instance_id": "workflow.workflow_instances(instance_id)"
    }
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_wf_logs_instance_created", ["instance_id", "created_at"]),
    ]

    log_id: str = Field(default_factory=lambda: str(uuid.uuid4()), max_length=64)
    instance_id: str = Field(..., max_length=64)
    node_id: Optional[str] = Field(default=None, max_length=64)
    status: LogStatus
    message: str = Field(default="", max_length=4000)
    created_at: datetime = Field(default_factory=_utcnow)


class CommunicationRecord(BaseModel):
    """
    Audit record for one outbound message attempt.

    Maps to: workflow.communication_logs table
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "communication_logs"
    __sql_schema__: ClassVar[str] = "workflow"
    __sql_primary_key__: ClassVar[List[str]] = ["record_id"]
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_comm_logs_patient", ["patient_id", "created_at"]),
        ("idx_comm_logs_instance", ["instance_id"], "instance_id IS NOT NULL"),
    ]

    record_id: str = Field(default_factory=lambda: str(uuid.uuid4()), max_length=64)
    channel: CommunicationChannel
    direction: CommunicationDirection = Field(default=CommunicationDirection.OUTBOUND)
    status: CommunicationStatus
    content: str = Field(default="")
    recipient: Optional[str] = Field(default=None, max_length=320)
    patient_id: Optional[str] = Field(default=None, max_length=64)
    tenant_id: Optional[str] = Field(default=None, max_length=64)
    workflow_id: Optional[str] = Field(default=None, max_length=64)
    instance_id: Optional[str] = Field(default=None, max_length=64)
    appointment_id: Optional[str] = Field(default=None, max_length=64)
    tier_used: Optional[str] = Field(default=None, max_length=32)
    from_identity: Optional[str] = Field(default=None, max_length=320)
    error_message: Optional[str] = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=_utcnow)


__all__ = ["ExecutionLogEntry", "CommunicationRecord"]
