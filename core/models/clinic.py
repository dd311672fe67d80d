# ============================================================================
# CLINIC COLLABORATOR RECORDS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core model - Records read from external clinic services
# PURPOSE: Typed views of appointments, patients, templates and senders
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: Appointment, Patient, MessageTemplate, SenderIdentity
# DEPENDENCIES: pydantic
# ============================================================================
"""
Clinic Records

The engine does not own appointments, patients or templates. These models
are the narrow views it reads through the collaborator gateways.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Appointment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    appointment_id: str
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    tenant_id: Optional[str] = None
    date: Optional[datetime] = None
    status: str = "scheduled"
    waitlist_added_at: Optional[datetime] = None
    waitlist_reason: Optional[str] = None


class Patient(BaseModel):
    model_config = ConfigDict(extra="ignore")

    patient_id: str
    tags: List[str] = Field(default_factory=list)
    email: Optional[str] = None
    phone: Optional[str] = None


class MessageTemplate(BaseModel):
    """Stored email/text template (Handlebars or Jinja syntax)."""
    model_config = ConfigDict(extra="ignore")

    template_id: str
    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None

    @property
    def body(self) -> Optional[str]:
        return self.body_html or self.body_text


class SenderIdentity(BaseModel):
    """Resolved 'from' identity for an SMS/WhatsApp send."""
    from_address: str
    tier: str = Field(default="platform", description="Which account tier supplied the identity")


__all__ = ["Appointment", "Patient", "MessageTemplate", "SenderIdentity"]
