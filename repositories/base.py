# ============================================================================
# STORE INTERFACES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Abstract persistence contracts
# PURPOSE: One interface per table, implemented by PostgreSQL and in-memory
#          repositories
# CREATED: 14 SEP 2026
# ============================================================================
"""
Store Interfaces

The engine, scheduler and services depend only on these abstract bases.
PostgreSQL repositories implement them for production; repositories.memory
implements them for local runs and tests.

InstanceStore.update is a compare-and-set on `version`: it returns False
when another writer got there first and leaves the caller's copy untouched.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from core.models import (
    CommunicationRecord,
    ExecutionLogEntry,
    WorkflowDefinition,
    WorkflowInstance,
)


class DefinitionStore(ABC):
    """Workflow definitions (read-mostly; authored elsewhere)."""

    @abstractmethod
    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        pass

    @abstractmethod
    async def list_active(
        self,
        trigger_type: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[WorkflowDefinition]:
        """Active definitions in stable (creation) order, optionally filtered."""
        pass

    @abstractmethod
    async def save(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Insert or replace a definition."""
        pass


class InstanceStore(ABC):
    """Workflow instances."""

    @abstractmethod
    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        pass

    @abstractmethod
    async def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        pass

    @abstractmethod
    async def update(self, instance: WorkflowInstance) -> bool:
        """
        Persist the instance if its version still matches storage.

        On success the instance's version is incremented in place.

        Returns:
            True if written, False on version conflict
        """
        pass

    @abstractmethod
    async def list_due(self, now: datetime, limit: int = 500) -> List[WorkflowInstance]:
        """WAITING instances whose next_run_at <= now, earliest first."""
        pass

    @abstractmethod
    async def list_waiting_for_input(self, patient_id: str) -> List[WorkflowInstance]:
        pass

    @abstractmethod
    async def exists_for(self, workflow_id: str, appointment_id: str) -> bool:
        """Whether any instance (any status) exists for this definition/appointment pair."""
        pass

    @abstractmethod
    async def count_by_status(self) -> Dict[str, int]:
        pass


class ExecutionLogStore(ABC):
    """Append-only execution log."""

    @abstractmethod
    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        pass

    @abstractmethod
    async def list_for_instance(self, instance_id: str) -> List[ExecutionLogEntry]:
        """Entries oldest first."""
        pass


class CommunicationStore(ABC):
    """Outbound communication audit."""

    @abstractmethod
    async def record(self, record: CommunicationRecord) -> CommunicationRecord:
        pass

    @abstractmethod
    async def list_for_instance(self, instance_id: str) -> List[CommunicationRecord]:
        pass


__all__ = [
    "DefinitionStore",
    "InstanceStore",
    "ExecutionLogStore",
    "CommunicationStore",
]
