# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Service - Narrow interfaces to clinic systems and channels
# PURPOSE: Decouple the engine from appointment storage, templates and
#          messaging providers
# CREATED: 14 SEP 2026
# ============================================================================
"""
Collaborator Interfaces

The engine never talks to clinic databases or messaging providers directly.
Everything it needs goes through these abstract bases; HTTP implementations
live in infrastructure/, and tests substitute mocks.

Senders raise ExternalDeliveryError on provider rejection. Lookups return
None for missing records rather than raising.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from core.models import Appointment, MessageTemplate, Patient, SenderIdentity


# ============================================================================
# CHANNELS
# ============================================================================

class Mailer(ABC):
    """Outbound email."""

    @abstractmethod
    async def send(self, sender_id: str, to: str, subject: str, html: str) -> Optional[str]:
        """
        Send an email on behalf of a clinic account.

        Args:
            sender_id: Account the email is sent as
            to: Recipient address
            subject: Rendered subject
            html: Rendered body

        Returns:
            Provider message id, if any

        Raises:
            ExternalDeliveryError: Provider rejected the send
        """
        pass


class TextMessageSender(ABC):
    """Outbound SMS or WhatsApp."""

    @abstractmethod
    async def send(self, from_address: str, to: str, body: str) -> Optional[str]:
        """
        Raises:
            ExternalDeliveryError: Provider rejected the send
        """
        pass


class ChannelIdentityResolver(ABC):
    """Resolves which number/identity a text message is sent from."""

    @abstractmethod
    async def resolve(self, sender_id: str, channel: str) -> SenderIdentity:
        """
        Args:
            sender_id: Account the message is sent on behalf of
            channel: "sms" or "whatsapp"

        Returns:
            SenderIdentity with the from address and the tier that supplied it
        """
        pass


# ============================================================================
# CLINIC DATA
# ============================================================================

class TemplateStore(ABC):
    """Stored message templates."""

    @abstractmethod
    async def find_by_id(self, template_id: str) -> Optional[MessageTemplate]:
        pass


class AppointmentGateway(ABC):
    """Appointment reads and the two mutations actions may perform."""

    @abstractmethod
    async def find_by_id(self, appointment_id: str) -> Optional[Appointment]:
        pass

    @abstractmethod
    async def update(self, appointment_id: str, changes: Dict[str, Any]) -> Optional[Appointment]:
        """Apply field changes; returns the updated record or None if missing."""
        pass

    @abstractmethod
    async def find_in_window(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        statuses: Sequence[str],
    ) -> List[Appointment]:
        """Appointments for a tenant whose date falls within [start, end]."""
        pass


class PatientGateway(ABC):
    """Patient reads (tags for conditions)."""

    @abstractmethod
    async def find_by_id(self, patient_id: str) -> Optional[Patient]:
        pass


class SenderDirectory(ABC):
    """Fallback sender when no doctor can be attributed to a message."""

    @abstractmethod
    async def fallback_sender_id(self, tenant_id: str) -> Optional[str]:
        pass


# ============================================================================
# BUNDLE
# ============================================================================

@dataclass
class Collaborators:
    """Everything the action dispatcher and engine read from or send through."""
    mailer: Mailer
    sms_sender: TextMessageSender
    whatsapp_sender: TextMessageSender
    identity_resolver: ChannelIdentityResolver
    templates: TemplateStore
    appointments: AppointmentGateway
    patients: PatientGateway
    senders: SenderDirectory


__all__ = [
    "Mailer",
    "TextMessageSender",
    "ChannelIdentityResolver",
    "TemplateStore",
    "AppointmentGateway",
    "PatientGateway",
    "SenderDirectory",
    "Collaborators",
]
