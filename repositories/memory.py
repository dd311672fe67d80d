# ============================================================================
# IN-MEMORY STORES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Infrastructure - Process-local persistence
# PURPOSE: Store implementations for tests and single-process local runs
# CREATED: 14 SEP 2026
# ============================================================================
"""
In-memory implementations of the store interfaces.

Records are deep-copied on the way in and out so callers never share mutable
state with the store, which keeps the compare-and-set semantics of
InstanceStore.update identical to the PostgreSQL repository.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.contracts import InstanceStatus
from core.models import (
    CommunicationRecord,
    ExecutionLogEntry,
    WorkflowDefinition,
    WorkflowInstance,
)
from repositories.base import (
    CommunicationStore,
    DefinitionStore,
    ExecutionLogStore,
    InstanceStore,
)


class InMemoryDefinitionStore(DefinitionStore):
    """Definitions kept in insertion order."""

    def __init__(self, definitions: Optional[List[WorkflowDefinition]] = None) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        for definition in definitions or []:
            self._definitions[definition.workflow_id] = definition

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._definitions.get(workflow_id)

    async def list_active(
        self,
        trigger_type: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[WorkflowDefinition]:
        return [
            d for d in self._definitions.values()
            if d.is_active
            and (trigger_type is None or d.trigger_type == trigger_type)
            and (tenant_id is None or d.tenant_id == tenant_id)
        ]

    async def save(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        self._definitions[definition.workflow_id] = definition
        return definition


class InMemoryInstanceStore(InstanceStore):
    """Instances keyed by id with version compare-and-set."""

    def __init__(self) -> None:
        self._instances: Dict[str, WorkflowInstance] = {}

    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        if instance.instance_id in self._instances:
            raise ValueError(f"Instance already exists: {instance.instance_id}")
        self._instances[instance.instance_id] = instance.model_copy(deep=True)
        return instance

    async def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        stored = self._instances.get(instance_id)
        return stored.model_copy(deep=True) if stored else None

    async def update(self, instance: WorkflowInstance) -> bool:
        stored = self._instances.get(instance.instance_id)
        if stored is None or stored.version != instance.version:
            return False
        instance.version += 1
        instance.updated_at = datetime.now(timezone.utc)
        self._instances[instance.instance_id] = instance.model_copy(deep=True)
        return True

    async def list_due(self, now: datetime, limit: int = 500) -> List[WorkflowInstance]:
        due = [
            i for i in self._instances.values()
            if i.status == InstanceStatus.WAITING
            and i.next_run_at is not None
            and i.next_run_at <= now
        ]
        due.sort(key=lambda i: i.next_run_at)
        return [i.model_copy(deep=True) for i in due[:limit]]

    async def list_waiting_for_input(self, patient_id: str) -> List[WorkflowInstance]:
        return [
            i.model_copy(deep=True) for i in self._instances.values()
            if i.status == InstanceStatus.WAITING_FOR_INPUT and i.patient_id == patient_id
        ]

    async def exists_for(self, workflow_id: str, appointment_id: str) -> bool:
        return any(
            i.workflow_id == workflow_id and i.appointment_id == appointment_id
            for i in self._instances.values()
        )

    async def count_by_status(self) -> Dict[str, int]:
        return dict(Counter(i.status.value for i in self._instances.values()))

    def all(self) -> List[WorkflowInstance]:
        """Snapshot of every stored instance (test helper)."""
        return [i.model_copy(deep=True) for i in self._instances.values()]


class InMemoryExecutionLogStore(ExecutionLogStore):
    """Append-only list of log entries."""

    def __init__(self) -> None:
        self._entries: List[ExecutionLogEntry] = []

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self._entries.append(entry)
        return entry

    async def list_for_instance(self, instance_id: str) -> List[ExecutionLogEntry]:
        return [e for e in self._entries if e.instance_id == instance_id]


class InMemoryCommunicationStore(CommunicationStore):
    """Append-only list of communication records."""

    def __init__(self) -> None:
        self._records: List[CommunicationRecord] = []

    async def record(self, record: CommunicationRecord) -> CommunicationRecord:
        self._records.append(record)
        return record

    async def list_for_instance(self, instance_id: str) -> List[CommunicationRecord]:
        return [r for r in self._records if r.instance_id == instance_id]

    def all(self) -> List[CommunicationRecord]:
        return list(self._records)


__all__ = [
    "InMemoryDefinitionStore",
    "InMemoryInstanceStore",
    "InMemoryExecutionLogStore",
    "InMemoryCommunicationStore",
]
