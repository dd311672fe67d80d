# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Ingress and collaborator interfaces
# PURPOSE: Event dispatch, input correlation and definition loading
# CREATED: 14 SEP 2026
# ============================================================================
"""
Services Module

Ingress services sit between the API and the engine; the collaborator
interfaces describe everything the engine reads from or sends through.

The ingress services import the engine, which itself imports the
collaborator interfaces, so they are imported from their own modules:

    from services.dispatcher import EventDispatcher

    dispatcher = EventDispatcher(engine, definitions)
    instances = await dispatcher.trigger_event("APPOINTMENT_CREATED", context)
"""

from .collaborators import (
    Collaborators,
    Mailer,
    TextMessageSender,
    ChannelIdentityResolver,
    TemplateStore,
    AppointmentGateway,
    PatientGateway,
    SenderDirectory,
)
from .definition_loader import DefinitionLoader

__all__ = [
    "Collaborators",
    "Mailer",
    "TextMessageSender",
    "ChannelIdentityResolver",
    "TemplateStore",
    "AppointmentGateway",
    "PatientGateway",
    "SenderDirectory",
    "DefinitionLoader",
]
