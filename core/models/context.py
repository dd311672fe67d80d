# ============================================================================
# CONTEXT DATA MODEL
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core model - Instance context keys and ingress validation
# PURPOSE: Name the reserved context keys and validate event payloads
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: ContextKeys, TriggerContext
# DEPENDENCIES: pydantic
# ============================================================================
"""
Context Data

Context data is an open key/value map copied into each instance at start and
read by templates and conditions. A handful of keys are reserved because the
engine itself reads or writes them; everything else passes through untouched.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ContextKeys:
    """Reserved context keys."""
    PATIENT_ID = "patient_id"
    APPOINTMENT_ID = "appointment_id"
    TENANT_ID = "tenant_id"
    PATIENT_SEGMENT = "patient_segment"
    FORM_ID = "form_id"
    EMAIL = "email"
    PHONE = "phone"
    PATIENT_PHONE = "patient_phone"
    DOCTOR_ID = "doctor_id"
    APPOINTMENT_STATUS = "appointment_status"
    SOURCE_INSTANCE_ID = "source_instance_id"
    TRIGGER_EVENT = "trigger_event"
    TRIGGER_DATA = "trigger_data"
    TRIGGER = "trigger"

    # Condition variable that reads the patient's live tag set
    TAGS = "tags"


# Producers that still send camelCase keys
_CAMEL_ALIASES = {
    "patientId": ContextKeys.PATIENT_ID,
    "appointmentId": ContextKeys.APPOINTMENT_ID,
    "clinicId": ContextKeys.TENANT_ID,
    "tenantId": ContextKeys.TENANT_ID,
    "patientType": ContextKeys.PATIENT_SEGMENT,
    "formId": ContextKeys.FORM_ID,
    "patientPhone": ContextKeys.PATIENT_PHONE,
    "doctorId": ContextKeys.DOCTOR_ID,
}


class TriggerContext(BaseModel):
    """
    Validated event context handed to the dispatcher.

    Known keys are typed; unknown keys are preserved as extras and flow into
    the instance context unchanged.
    """
    model_config = ConfigDict(extra="allow")

    tenant_id: Optional[str] = None
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None
    patient_segment: Optional[str] = None
    form_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    doctor_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def translate_camel_case(cls, data):
        if not isinstance(data, dict):
            return data
        out = dict(data)
        for camel, snake in _CAMEL_ALIASES.items():
            if camel in out:
                value = out.pop(camel)
                out.setdefault(snake, value)
        for key in ("tenant_id", "patient_id", "appointment_id", "doctor_id", "form_id"):
            if out.get(key) is not None and not isinstance(out[key], str):
                out[key] = str(out[key])
        return out

    def to_context(self) -> Dict[str, Any]:
        """Flatten to the plain dict stored on the instance (None values dropped)."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


__all__ = ["ContextKeys", "TriggerContext"]
