# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 14 SEP 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from core.contracts import (
    CommunicationChannel,
    CommunicationDirection,
    CommunicationStatus,
    InstanceStatus,
    LogStatus,
)


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class EventCreate(BaseModel):
    """Business event that may start workflows."""
    event_type: str = Field(..., max_length=64, description="Trigger type, e.g. APPOINTMENT_CREATED")
    context: Dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload; must carry tenant_id and patient_id",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "event_type": "APPOINTMENT_CREATED",
                    "context": {
                        "tenant_id": "clinic-1",
                        "patient_id": "p-42",
                        "appointment_id": "a-7",
                        "email": "patient@example.com",
                    },
                }
            ]
        }
    }


class InputCreate(BaseModel):
    """Inbound patient reply."""
    patient_id: str = Field(..., max_length=64)
    channel: Optional[str] = Field(None, max_length=16, description="SMS, WHATSAPP or EMAIL")
    text: str = Field(..., max_length=4000)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class InstanceResponse(BaseModel):
    """Workflow instance state."""
    instance_id: str
    workflow_id: str
    tenant_id: str
    patient_id: str
    appointment_id: Optional[str] = None
    status: InstanceStatus
    current_node_id: Optional[str] = None
    context_data: Dict[str, Any] = Field(default_factory=dict)
    next_run_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    version: int


class EventResponse(BaseModel):
    """Result of dispatching a business event."""
    event_type: str
    instances_started: int
    instances: List[InstanceResponse] = Field(default_factory=list)


class InputResponse(BaseModel):
    """Result of correlating a patient reply."""
    patient_id: str
    matched: int
    instance_ids: List[str] = Field(default_factory=list)


class ExecutionLogResponse(BaseModel):
    log_id: str
    node_id: Optional[str] = None
    status: LogStatus
    message: str
    created_at: datetime


class ExecutionLogListResponse(BaseModel):
    instance_id: str
    logs: List[ExecutionLogResponse]


class CommunicationResponse(BaseModel):
    record_id: str
    channel: CommunicationChannel
    direction: CommunicationDirection
    status: CommunicationStatus
    recipient: Optional[str] = None
    content: Optional[str] = None
    tier_used: Optional[str] = None
    from_identity: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime


class CommunicationListResponse(BaseModel):
    instance_id: str
    communications: List[CommunicationResponse]


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None


__all__ = [
    "EventCreate",
    "InputCreate",
    "InstanceResponse",
    "EventResponse",
    "InputResponse",
    "ExecutionLogResponse",
    "ExecutionLogListResponse",
    "CommunicationResponse",
    "CommunicationListResponse",
    "ErrorResponse",
]
