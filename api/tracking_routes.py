# ============================================================================
# TRACKING ROUTES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Engagement tracking endpoints
# PURPOSE: Email open pixel and click redirect
# CREATED: 14 SEP 2026
# ============================================================================
"""
Tracking Routes

    GET /tracking/open/{instance_id}/{step_id}?template_id=
        Always answers with a 1x1 transparent GIF. The EMAIL_OPENED event is
        handled after the response is sent, so a slow or failing workflow
        start never breaks image loading in the mail client.

    GET /tracking/click/{instance_id}/{step_id}?action=&url=
        302 to url after recording LINK_CLICKED. Absolute destinations must
        be on the redirect allow-list; relative ones are always allowed.
"""

import base64
import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from fastapi.responses import RedirectResponse, Response

from core.config import get_defaults
from core.contracts import TrackingEventType

logger = logging.getLogger(__name__)

router = APIRouter()

PIXEL_GIF = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}

_correlator = None
_tracking_defaults = None


def set_services(correlator, tracking_defaults=None):
    """Set service instances for dependency injection."""
    global _correlator, _tracking_defaults
    _correlator = correlator
    _tracking_defaults = tracking_defaults


def get_tracking_defaults():
    return _tracking_defaults or get_defaults().tracking


async def _track(
    event_type: TrackingEventType,
    instance_id: str,
    step_id: str,
    template_id: Optional[str] = None,
    action: Optional[str] = None,
) -> None:
    if _correlator is None:
        logger.warning(f"Tracking event {event_type.value} dropped: services not initialized")
        return
    try:
        await _correlator.handle_tracking_event(
            event_type, instance_id, step_id, template_id=template_id, action=action
        )
    except Exception as e:
        logger.exception(f"Tracking {event_type.value} for {instance_id}/{step_id} failed: {e}")


def is_safe_redirect(url: str) -> bool:
    """Relative paths pass; absolute URLs need http(s) and an allow-listed host."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url):
        return False
    # Browsers read "//host", "/\host" and "\\host" as protocol-relative
    if url.startswith("//") or "\\" in url[:2]:
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("", "http", "https"):
        return False
    if not parsed.netloc:
        return not parsed.scheme
    if not parsed.hostname:
        return False
    return get_tracking_defaults().is_redirect_allowed(parsed.hostname)


@router.get("/tracking/open/{instance_id}/{step_id}", tags=["Tracking"])
async def track_open(
    instance_id: str,
    step_id: str,
    background_tasks: BackgroundTasks,
    template_id: Optional[str] = Query(None),
):
    """Email open pixel."""
    background_tasks.add_task(
        _track, TrackingEventType.EMAIL_OPENED, instance_id, step_id, template_id=template_id
    )
    return Response(content=PIXEL_GIF, media_type="image/gif", headers=NO_CACHE_HEADERS)


@router.get("/tracking/click/{instance_id}/{step_id}", tags=["Tracking"])
async def track_click(
    instance_id: str,
    step_id: str,
    background_tasks: BackgroundTasks,
    url: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
):
    """Link click redirect."""
    if not url:
        raise HTTPException(400, "Missing url")
    if not is_safe_redirect(url):
        logger.warning(f"Refused click redirect to {url!r} for {instance_id}/{step_id}")
        raise HTTPException(400, "Redirect destination not allowed")

    background_tasks.add_task(
        _track,
        TrackingEventType.LINK_CLICKED,
        instance_id,
        step_id,
        action=action or get_tracking_defaults().default_click_action,
    )
    return RedirectResponse(url=url, status_code=302)


__all__ = ["router", "set_services", "is_safe_redirect", "PIXEL_GIF"]
