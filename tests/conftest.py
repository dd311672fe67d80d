# ============================================================================
# TEST FIXTURES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Tests - Shared fakes and engine harness
# PURPOSE: In-memory collaborators and a fully wired engine for tests
# CREATED: 14 SEP 2026
# ============================================================================
"""
Shared test fixtures.

The harness wires a real WorkflowEngine, EventDispatcher, InputCorrelator and
ResumptionScheduler over the in-memory stores. Clinic data lives in small
fake gateways; channel senders are AsyncMocks so tests can make them fail.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from core.config import ChannelDefaults, EngineDefaults, TrackingDefaults
from core.models import (
    Appointment,
    MessageTemplate,
    Patient,
    SenderIdentity,
    WorkflowDefinition,
)
from orchestrator.actions import ActionDispatcher
from orchestrator.core import WorkflowEngine
from orchestrator.engine.templates import TemplateRenderer
from orchestrator.scheduler import ResumptionScheduler
from repositories.memory import (
    InMemoryCommunicationStore,
    InMemoryDefinitionStore,
    InMemoryExecutionLogStore,
    InMemoryInstanceStore,
)
from services.collaborators import (
    AppointmentGateway,
    ChannelIdentityResolver,
    Collaborators,
    PatientGateway,
    SenderDirectory,
    TemplateStore,
)
from services.correlator import InputCorrelator
from services.dispatcher import EventDispatcher

NOW = datetime(2026, 9, 14, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeAppointments(AppointmentGateway):

    def __init__(self, appointments: Optional[List[Appointment]] = None):
        self.appointments = {a.appointment_id: a for a in appointments or []}
        self.updates: List[tuple] = []

    def add(self, appointment: Appointment) -> None:
        self.appointments[appointment.appointment_id] = appointment

    async def find_by_id(self, appointment_id):
        return self.appointments.get(appointment_id)

    async def update(self, appointment_id, changes):
        current = self.appointments.get(appointment_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes)
        self.appointments[appointment_id] = updated
        self.updates.append((appointment_id, changes))
        return updated

    async def find_in_window(self, tenant_id, start, end, statuses):
        return [
            a for a in self.appointments.values()
            if a.tenant_id == tenant_id
            and a.date is not None
            and start <= a.date <= end
            and a.status in statuses
        ]


class FakePatients(PatientGateway):

    def __init__(self, patients: Optional[List[Patient]] = None):
        self.patients = {p.patient_id: p for p in patients or []}

    async def find_by_id(self, patient_id):
        return self.patients.get(patient_id)


class FakeTemplates(TemplateStore):

    def __init__(self, templates: Optional[List[MessageTemplate]] = None):
        self.templates = {t.template_id: t for t in templates or []}

    async def find_by_id(self, template_id):
        return self.templates.get(template_id)


class FakeSenders(SenderDirectory):

    def __init__(self, fallback: Optional[Dict[str, str]] = None):
        self.fallback = fallback or {}

    async def fallback_sender_id(self, tenant_id):
        return self.fallback.get(tenant_id)


class FakeIdentities(ChannelIdentityResolver):

    async def resolve(self, sender_id, channel):
        return SenderIdentity(from_address=f"+1555{sender_id}", tier="doctor")


class Clock:
    """Mutable clock handed to the engine."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ============================================================================
# HARNESS
# ============================================================================

@dataclass
class Harness:
    definitions: InMemoryDefinitionStore
    instances: InMemoryInstanceStore
    logs: InMemoryExecutionLogStore
    communications: InMemoryCommunicationStore
    appointments: FakeAppointments
    patients: FakePatients
    templates: FakeTemplates
    senders: FakeSenders
    mailer: AsyncMock
    sms: AsyncMock
    whatsapp: AsyncMock
    clock: Clock
    actions: ActionDispatcher
    engine: WorkflowEngine
    dispatcher: EventDispatcher
    correlator: InputCorrelator
    scheduler: ResumptionScheduler

    def add_definition(self, data: Dict[str, Any]) -> WorkflowDefinition:
        definition = WorkflowDefinition.model_validate(data)
        self.definitions._definitions[definition.workflow_id] = definition
        return definition

    async def log_statuses(self, instance_id: str) -> List[str]:
        return [e.status.value for e in await self.logs.list_for_instance(instance_id)]


def build_harness(
    channel_defaults: Optional[ChannelDefaults] = None,
    tracking_defaults: Optional[TrackingDefaults] = None,
    engine_defaults: Optional[EngineDefaults] = None,
    strict_templates: bool = False,
) -> Harness:
    definitions = InMemoryDefinitionStore()
    instances = InMemoryInstanceStore()
    logs = InMemoryExecutionLogStore()
    communications = InMemoryCommunicationStore()
    appointments = FakeAppointments()
    patients = FakePatients()
    templates = FakeTemplates()
    senders = FakeSenders({"clinic-1": "acct-fallback"})
    mailer = AsyncMock()
    mailer.send = AsyncMock(return_value="msg-1")
    sms = AsyncMock()
    sms.send = AsyncMock(return_value="sm-1")
    whatsapp = AsyncMock()
    whatsapp.send = AsyncMock(return_value="wa-1")
    clock = Clock()
    engine_defaults = engine_defaults or EngineDefaults()

    collaborators = Collaborators(
        mailer=mailer,
        sms_sender=sms,
        whatsapp_sender=whatsapp,
        identity_resolver=FakeIdentities(),
        templates=templates,
        appointments=appointments,
        patients=patients,
        senders=senders,
    )
    actions = ActionDispatcher(
        collaborators,
        logs,
        communications,
        renderer=TemplateRenderer(strict=strict_templates),
        channel_defaults=channel_defaults or ChannelDefaults(),
        tracking_defaults=tracking_defaults or TrackingDefaults(),
    )
    engine = WorkflowEngine(
        definitions, instances, logs, actions, appointments, patients,
        defaults=engine_defaults, clock=clock,
    )
    dispatcher = EventDispatcher(engine, definitions, engine_defaults)
    correlator = InputCorrelator(engine, dispatcher, definitions, instances)
    scheduler = ResumptionScheduler(engine, definitions, instances, appointments, engine_defaults)

    return Harness(
        definitions=definitions,
        instances=instances,
        logs=logs,
        communications=communications,
        appointments=appointments,
        patients=patients,
        templates=templates,
        senders=senders,
        mailer=mailer,
        sms=sms,
        whatsapp=whatsapp,
        clock=clock,
        actions=actions,
        engine=engine,
        dispatcher=dispatcher,
        correlator=correlator,
        scheduler=scheduler,
    )


@pytest.fixture
def harness() -> Harness:
    return build_harness()


# ============================================================================
# DEFINITION BUILDERS
# ============================================================================

def trigger(node_id: str = "t1", **data) -> Dict[str, Any]:
    return {"id": node_id, "type": "trigger", "data": data}


def action(node_id: str, action_type: str, **data) -> Dict[str, Any]:
    return {"id": node_id, "type": "action", "data": {"actionType": action_type, **data}}


def condition(node_id: str, variable: str, operator: str, value: Any) -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": "condition",
        "data": {"variable": variable, "operator": operator, "value": value},
    }


def delay(node_id: str, mode: str = "FIXED", value: Any = 0, unit: str = "MINUTES", on_past: str = "RUN"):
    return {
        "id": node_id,
        "type": "delay",
        "data": {"delayMode": mode, "delayValue": value, "delayUnit": unit, "onPast": on_past},
    }


def wait_for_input(node_id: str, branches: Dict[str, str], channel: Optional[str] = None):
    data: Dict[str, Any] = {"branches": branches}
    if channel:
        data["inputType"] = channel
    return {"id": node_id, "type": "wait_for_input", "data": data}


def edge(source: str, target: str, label: Optional[str] = None) -> Dict[str, Any]:
    e = {"id": f"{source}-{target}", "source": source, "target": target}
    if label:
        e["sourceHandle"] = label
    return e


def definition(
    workflow_id: str,
    nodes: List[Dict[str, Any]],
    edges: List[Dict[str, Any]],
    trigger_type: str = "APPOINTMENT_CREATED",
    tenant_id: str = "clinic-1",
    **extra,
) -> Dict[str, Any]:
    return {
        "id": workflow_id,
        "name": workflow_id.replace("-", " ").title(),
        "clinicId": tenant_id,
        "triggerType": trigger_type,
        "nodes": nodes,
        "edges": edges,
        **extra,
    }


def event_context(**overrides) -> Dict[str, Any]:
    context = {
        "tenant_id": "clinic-1",
        "patient_id": "p-1",
        "appointment_id": "a-1",
        "email": "pat@example.com",
        "phone": "+15550001111",
        "doctor_id": "doc-7",
        "first_name": "Ana",
    }
    context.update(overrides)
    return {k: v for k, v in context.items() if v is not None}
