# ============================================================================
# CHANNEL CLIENTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Infrastructure - Outbound messaging providers
# PURPOSE: httpx clients for Resend email and Twilio SMS/WhatsApp
# CREATED: 14 SEP 2026
# ============================================================================
"""
Channel Clients

Async httpx implementations of the Mailer and TextMessageSender interfaces.

There is no retry layer: a rejected or timed-out send raises
ExternalDeliveryError and the action dispatcher records it as FAILED.
"""

import logging
from typing import Optional

import httpx

from core.config import ChannelDefaults, get_defaults
from core.errors import ExternalDeliveryError
from services.collaborators import ChannelIdentityResolver, Mailer, TextMessageSender

logger = logging.getLogger(__name__)


def default_timeout(defaults: ChannelDefaults) -> httpx.Timeout:
    return httpx.Timeout(defaults.request_timeout_sec, connect=min(5.0, defaults.request_timeout_sec))


class ResendMailer(Mailer):
    """
    Sends email through the Resend HTTP API.

    The from address is resolved per sender account; when the resolver has
    nothing, mail goes out as notifications@EMAIL_FROM_DOMAIN.
    """

    def __init__(
        self,
        defaults: Optional[ChannelDefaults] = None,
        identity_resolver: Optional[ChannelIdentityResolver] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.defaults = defaults or get_defaults().channels
        self.identity_resolver = identity_resolver
        self._client = client or httpx.AsyncClient(
            base_url=self.defaults.resend_api_url,
            timeout=default_timeout(self.defaults),
            headers={"Authorization": f"Bearer {self.defaults.resend_api_key}"},
        )

    async def _from_address(self, sender_id: str) -> str:
        if self.identity_resolver is not None:
            try:
                identity = await self.identity_resolver.resolve(sender_id, "email")
                if identity.from_address:
                    return identity.from_address
            except Exception as e:
                logger.warning(f"Could not resolve email identity for {sender_id}: {e}")
        return f"notifications@{self.defaults.email_from_domain}"

    async def send(self, sender_id: str, to: str, subject: str, html: str) -> Optional[str]:
        payload = {
            "from": await self._from_address(sender_id),
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            resp = await self._client.post("/emails", json=payload)
        except httpx.HTTPError as e:
            raise ExternalDeliveryError("email", f"{type(e).__name__}: {e}")

        if resp.status_code >= 400:
            raise ExternalDeliveryError("email", resp.text[:500], status_code=resp.status_code)

        message_id = resp.json().get("id")
        logger.debug(f"Resend accepted email {message_id}")
        return message_id

    async def close(self) -> None:
        await self._client.aclose()


class TwilioTextSender(TextMessageSender):
    """
    Sends SMS or WhatsApp messages through the Twilio Messages API.

    WhatsApp addresses are prefixed with "whatsapp:" as Twilio expects.
    """

    def __init__(
        self,
        channel: str = "sms",
        defaults: Optional[ChannelDefaults] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.channel = channel.lower()
        self.defaults = defaults or get_defaults().channels
        self._client = client or httpx.AsyncClient(
            base_url=self.defaults.twilio_api_url,
            timeout=default_timeout(self.defaults),
            auth=(self.defaults.twilio_account_sid, self.defaults.twilio_auth_token),
        )

    def _address(self, number: str) -> str:
        if self.channel == "whatsapp" and not number.startswith("whatsapp:"):
            return f"whatsapp:{number}"
        return number

    async def send(self, from_address: str, to: str, body: str) -> Optional[str]:
        path = f"/Accounts/{self.defaults.twilio_account_sid}/Messages.json"
        form = {
            "From": self._address(from_address),
            "To": self._address(to),
            "Body": body,
        }
        try:
            resp = await self._client.post(path, data=form)
        except httpx.HTTPError as e:
            raise ExternalDeliveryError(self.channel, f"{type(e).__name__}: {e}")

        if resp.status_code >= 400:
            raise ExternalDeliveryError(self.channel, resp.text[:500], status_code=resp.status_code)

        sid = resp.json().get("sid")
        logger.debug(f"Twilio accepted {self.channel} message {sid}")
        return sid

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["ResendMailer", "TwilioTextSender", "default_timeout"]
