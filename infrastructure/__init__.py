# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Infrastructure - External HTTP integrations
# PURPOSE: Clinic API gateways and outbound messaging providers
# CREATED: 14 SEP 2026
# ============================================================================
"""
Infrastructure module for the workflow engine.

Provides:
- ClinicApiClient and gateways: appointments, patients, templates, senders
- ResendMailer: email via the Resend API
- TwilioTextSender: SMS and WhatsApp via Twilio

Usage:
    from infrastructure import ClinicApiClient, ClinicAppointmentGateway

    api = ClinicApiClient()
    appointments = ClinicAppointmentGateway(api)
    appointment = await appointments.find_by_id("appt-1")
"""

from infrastructure.channels import ResendMailer, TwilioTextSender
from infrastructure.clinic_api import (
    ClinicApiClient,
    ClinicAppointmentGateway,
    ClinicPatientGateway,
    ClinicTemplateStore,
    ClinicIdentityResolver,
    ClinicSenderDirectory,
)

__all__ = [
    "ResendMailer",
    "TwilioTextSender",
    "ClinicApiClient",
    "ClinicAppointmentGateway",
    "ClinicPatientGateway",
    "ClinicTemplateStore",
    "ClinicIdentityResolver",
    "ClinicSenderDirectory",
]
