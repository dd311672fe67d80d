# ============================================================================
# ENGINE EXCEPTIONS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Typed failures raised by the engine, stores and channel clients
# CREATED: 14 SEP 2026
# ============================================================================
"""
Exception hierarchy for the workflow engine.

    WorkflowEngineError
    ├── GuardFailure            event rejected before any instance exists
    ├── NotFoundError           definition, instance or node missing
    ├── NodeExecutionError      a node could not run (fails the instance)
    ├── ExternalDeliveryError   a channel rejected an outbound message
    ├── InstanceConflictError   optimistic version check lost
    └── TemplateRenderError     strict render hit an undefined variable
"""

from typing import Optional


class WorkflowEngineError(Exception):
    """Base exception for workflow engine failures."""
    pass


class GuardFailure(WorkflowEngineError):
    """Raised when an inbound event is missing a mandatory scoping key."""

    def __init__(self, message: str, missing: Optional[str] = None):
        self.missing = missing
        super().__init__(message)


class NotFoundError(WorkflowEngineError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class NodeExecutionError(WorkflowEngineError):
    """Raised when a node cannot be executed."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}': {message}")


class ExternalDeliveryError(WorkflowEngineError):
    """Raised when a mailer or messaging provider rejects a send."""

    def __init__(self, channel: str, message: str, status_code: Optional[int] = None):
        self.channel = channel
        self.status_code = status_code
        super().__init__(f"{channel} delivery failed: {message}")


class InstanceConflictError(WorkflowEngineError):
    """Raised when an instance update loses the optimistic version check."""

    def __init__(self, instance_id: str, expected_version: int):
        self.instance_id = instance_id
        self.expected_version = expected_version
        super().__init__(
            f"Instance {instance_id} was modified concurrently "
            f"(expected version {expected_version})"
        )


class TemplateRenderError(WorkflowEngineError):
    """Raised in strict mode when a template references undefined variables."""
    pass


__all__ = [
    "WorkflowEngineError",
    "GuardFailure",
    "NotFoundError",
    "NodeExecutionError",
    "ExternalDeliveryError",
    "InstanceConflictError",
    "TemplateRenderError",
]
