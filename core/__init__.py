# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models, errors and schema utilities
# LAST_REVIEWED: 14 SEP 2026
# ============================================================================

from core.contracts import InstanceStatus, NodeKind, LogStatus
from core.errors import (
    WorkflowEngineError,
    GuardFailure,
    NotFoundError,
    NodeExecutionError,
    InstanceConflictError,
)
from core.models import (
    WorkflowDefinition,
    WorkflowInstance,
    ExecutionLogEntry,
    CommunicationRecord,
)
from core.schema import PydanticToSQL

__all__ = [
    # Enums
    "InstanceStatus",
    "NodeKind",
    "LogStatus",
    # Errors
    "WorkflowEngineError",
    "GuardFailure",
    "NotFoundError",
    "NodeExecutionError",
    "InstanceConflictError",
    # Models
    "WorkflowDefinition",
    "WorkflowInstance",
    "ExecutionLogEntry",
    "CommunicationRecord",
    # Schema
    "PydanticToSQL",
]
