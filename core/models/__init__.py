# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 14 SEP 2026
# ============================================================================
"""
Models Module - Central Export Point

Models define SQL metadata via __sql_* ClassVar attributes for DDL generation:
    - Pydantic models define structure
    - PydanticToSQL reads __sql_* metadata
    - PostgreSQL schema generated from models
"""

from core.models.workflow import (
    WorkflowDefinition,
    Node,
    NodeBase,
    Edge,
    WorkflowGraph,
    TriggerNode,
    ActionNode,
    ConditionNode,
    DelayNode,
    WaitForInputNode,
    UnknownNode,
)
from core.models.instance import WorkflowInstance
from core.models.events import ExecutionLogEntry, CommunicationRecord
from core.models.context import ContextKeys, TriggerContext
from core.models.clinic import Appointment, Patient, MessageTemplate, SenderIdentity

__all__ = [
    # Workflow
    "WorkflowDefinition",
    "Node",
    "NodeBase",
    "Edge",
    "WorkflowGraph",
    "TriggerNode",
    "ActionNode",
    "ConditionNode",
    "DelayNode",
    "WaitForInputNode",
    "UnknownNode",
    # Instance
    "WorkflowInstance",
    # History
    "ExecutionLogEntry",
    "CommunicationRecord",
    # Context
    "ContextKeys",
    "TriggerContext",
    # Clinic records
    "Appointment",
    "Patient",
    "MessageTemplate",
    "SenderIdentity",
]
