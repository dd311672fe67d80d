# ============================================================================
# CLINIC API GATEWAYS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Infrastructure - Clinic data over HTTP
# PURPOSE: httpx gateways for appointments, patients, templates and senders
# CREATED: 14 SEP 2026
# ============================================================================
"""
Clinic API Gateways

The clinic application owns appointments, patients, templates and sender
accounts. These gateways read (and, for two appointment actions, write) them
over its REST API with one shared async httpx client.

Responses may use camelCase keys; they are converted to snake_case and an
"id" field is mapped onto the entity's id before model validation.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx

from core.config import ChannelDefaults, get_defaults
from core.errors import ExternalDeliveryError
from core.models import Appointment, MessageTemplate, Patient, SenderIdentity
from infrastructure.channels import default_timeout
from services.collaborators import (
    AppointmentGateway,
    ChannelIdentityResolver,
    PatientGateway,
    SenderDirectory,
    TemplateStore,
)

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(data: Dict[str, Any], id_field: Optional[str] = None) -> Dict[str, Any]:
    """Convert top-level camelCase keys to snake_case; map 'id' to id_field."""
    out = {_CAMEL_RE.sub("_", k).lower(): v for k, v in data.items()}
    if id_field and "id" in out and id_field not in out:
        out[id_field] = out.pop("id")
    for key, value in list(out.items()):
        if key.endswith("_id") and value is not None and not isinstance(value, str):
            out[key] = str(value)
    return out


class ClinicApiClient:
    """Thin async wrapper around the clinic REST API."""

    def __init__(
        self,
        defaults: Optional[ChannelDefaults] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.defaults = defaults or get_defaults().channels
        headers = {}
        if self.defaults.clinic_api_token:
            headers["Authorization"] = f"Bearer {self.defaults.clinic_api_token}"
        self._client = client or httpx.AsyncClient(
            base_url=self.defaults.clinic_api_url,
            timeout=default_timeout(self.defaults),
            headers=headers,
        )

    async def request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        """
        Returns:
            Parsed JSON body, or None on 404

        Raises:
            ExternalDeliveryError: Transport failure or non-404 error status
        """
        try:
            resp = await self._client.request(method, path, json=json_body, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Clinic API {method} {path} failed: {e}")
            raise ExternalDeliveryError("clinic_api", f"{type(e).__name__}: {e}")

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.error(f"Clinic API {method} {path} -> {resp.status_code}")
            raise ExternalDeliveryError("clinic_api", resp.text[:500], status_code=resp.status_code)
        if not resp.content:
            return {}
        return resp.json()

    async def close(self) -> None:
        await self._client.aclose()


class ClinicAppointmentGateway(AppointmentGateway):

    def __init__(self, api: ClinicApiClient):
        self.api = api

    async def find_by_id(self, appointment_id: str) -> Optional[Appointment]:
        body = await self.api.request("GET", f"/appointments/{appointment_id}")
        return Appointment.model_validate(to_snake(body, "appointment_id")) if body else None

    async def update(self, appointment_id: str, changes: Dict[str, Any]) -> Optional[Appointment]:
        payload = {
            k: v.isoformat() if isinstance(v, datetime) else v
            for k, v in changes.items()
        }
        body = await self.api.request("PATCH", f"/appointments/{appointment_id}", json_body=payload)
        if body is None:
            return None
        return Appointment.model_validate(to_snake({"id": appointment_id, **body}, "appointment_id"))

    async def find_in_window(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        statuses: Sequence[str],
    ) -> List[Appointment]:
        body = await self.api.request(
            "GET",
            "/appointments",
            params={
                "tenant_id": tenant_id,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "status": ",".join(statuses),
            },
        )
        items = body.get("items", []) if isinstance(body, dict) else (body or [])
        return [Appointment.model_validate(to_snake(item, "appointment_id")) for item in items]


class ClinicPatientGateway(PatientGateway):

    def __init__(self, api: ClinicApiClient):
        self.api = api

    async def find_by_id(self, patient_id: str) -> Optional[Patient]:
        body = await self.api.request("GET", f"/patients/{patient_id}")
        return Patient.model_validate(to_snake(body, "patient_id")) if body else None


class ClinicTemplateStore(TemplateStore):

    def __init__(self, api: ClinicApiClient):
        self.api = api

    async def find_by_id(self, template_id: str) -> Optional[MessageTemplate]:
        body = await self.api.request("GET", f"/templates/{template_id}")
        return MessageTemplate.model_validate(to_snake(body, "template_id")) if body else None


class ClinicIdentityResolver(ChannelIdentityResolver):
    """
    Asks the clinic which identity a sender uses on a channel.

    The clinic answers with the tier that supplied it (doctor, clinic or
    platform); a missing identity falls back to the platform tier.
    """

    def __init__(self, api: ClinicApiClient, platform_address: str = ""):
        self.api = api
        self.platform_address = platform_address

    async def resolve(self, sender_id: str, channel: str) -> SenderIdentity:
        body = await self.api.request(
            "GET", f"/accounts/{sender_id}/identity", params={"channel": channel}
        )
        from_address = (body or {}).get("from") or (body or {}).get("fromAddress")
        if not from_address:
            return SenderIdentity(from_address=self.platform_address, tier="platform")
        return SenderIdentity(
            from_address=from_address,
            tier=body.get("tier", "platform"),
        )


class ClinicSenderDirectory(SenderDirectory):

    def __init__(self, api: ClinicApiClient):
        self.api = api

    async def fallback_sender_id(self, tenant_id: str) -> Optional[str]:
        body = await self.api.request("GET", f"/tenants/{tenant_id}/fallback-sender")
        if not body:
            return None
        sender_id = body.get("sender_id") or body.get("senderId")
        return str(sender_id) if sender_id is not None else None


__all__ = [
    "to_snake",
    "ClinicApiClient",
    "ClinicAppointmentGateway",
    "ClinicPatientGateway",
    "ClinicTemplateStore",
    "ClinicIdentityResolver",
    "ClinicSenderDirectory",
]
