# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for events, replies, instances and the scheduler
# CREATED: 14 SEP 2026
# ============================================================================
"""
API Routes

FastAPI routes for the workflow engine. Mounted under /api/v1 by main.py;
the health endpoint is mounted at the root.
"""

import logging

from fastapi import APIRouter, HTTPException

from .schemas import (
    CommunicationListResponse,
    CommunicationResponse,
    ErrorResponse,
    EventCreate,
    EventResponse,
    ExecutionLogListResponse,
    ExecutionLogResponse,
    InputCreate,
    InputResponse,
    InstanceResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
health_router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_dispatcher = None
_correlator = None
_instances = None
_logs = None
_communications = None
_scheduler = None


def set_services(dispatcher, correlator, instances, logs, communications, scheduler=None):
    """Set service instances for dependency injection."""
    global _dispatcher, _correlator, _instances, _logs, _communications, _scheduler
    _dispatcher = dispatcher
    _correlator = correlator
    _instances = instances
    _logs = logs
    _communications = communications
    _scheduler = scheduler


def get_dispatcher():
    if _dispatcher is None:
        raise HTTPException(500, "Services not initialized")
    return _dispatcher


def get_correlator():
    if _correlator is None:
        raise HTTPException(500, "Services not initialized")
    return _correlator


def get_instance_store():
    if _instances is None:
        raise HTTPException(500, "Services not initialized")
    return _instances


def get_scheduler():
    if _scheduler is None:
        raise HTTPException(500, "Scheduler not initialized")
    return _scheduler


# ============================================================================
# HEALTH
# ============================================================================

@health_router.get("/health", tags=["Health"])
async def health():
    """Liveness plus scheduler state."""
    scheduler_running = _scheduler.is_running if _scheduler is not None else False
    return {
        "status": "ok" if _dispatcher is not None else "starting",
        "scheduler": "running" if scheduler_running else "stopped",
    }


# ============================================================================
# EVENTS
# ============================================================================

@router.post(
    "/events",
    response_model=EventResponse,
    status_code=202,
    tags=["Events"],
    responses={
        202: {"description": "Event dispatched"},
        500: {"model": ErrorResponse, "description": "Dispatch failed"},
    },
)
async def post_event(request: EventCreate):
    """
    Dispatch a business event.

    Matching definitions are started and driven to their first suspension
    point before the response is returned. An event without tenant_id or
    patient_id is accepted but starts nothing.
    """
    dispatcher = get_dispatcher()
    try:
        instances = await dispatcher.trigger_event(request.event_type, request.context)
    except Exception as e:
        logger.exception(f"Error dispatching {request.event_type}: {e}")
        raise HTTPException(500, str(e))

    return EventResponse(
        event_type=request.event_type,
        instances_started=len(instances),
        instances=[InstanceResponse.model_validate(i.model_dump()) for i in instances],
    )


@router.post("/inputs", response_model=InputResponse, status_code=202, tags=["Events"])
async def post_input(request: InputCreate):
    """
    Deliver a patient reply to instances waiting for input.

    Replies that match nothing are dropped; the response reports how many
    instances resumed.
    """
    correlator = get_correlator()
    try:
        resumed = await correlator.trigger_input_event(request.patient_id, request.channel, request.text)
    except Exception as e:
        logger.exception(f"Error correlating reply for patient {request.patient_id}: {e}")
        raise HTTPException(500, str(e))

    return InputResponse(
        patient_id=request.patient_id,
        matched=len(resumed),
        instance_ids=[i.instance_id for i in resumed],
    )


# ============================================================================
# INSTANCES
# ============================================================================

@router.get("/instances/{instance_id}", response_model=InstanceResponse, tags=["Instances"])
async def get_instance(instance_id: str):
    """Get a workflow instance."""
    instance = await get_instance_store().get(instance_id)
    if instance is None:
        raise HTTPException(404, f"Instance not found: {instance_id}")
    return InstanceResponse.model_validate(instance.model_dump())


@router.get("/instances/{instance_id}/logs", response_model=ExecutionLogListResponse, tags=["Instances"])
async def get_instance_logs(instance_id: str):
    """Execution timeline for an instance, oldest first."""
    if await get_instance_store().get(instance_id) is None:
        raise HTTPException(404, f"Instance not found: {instance_id}")
    entries = await _logs.list_for_instance(instance_id)
    return ExecutionLogListResponse(
        instance_id=instance_id,
        logs=[ExecutionLogResponse.model_validate(e.model_dump()) for e in entries],
    )


@router.get(
    "/instances/{instance_id}/communications",
    response_model=CommunicationListResponse,
    tags=["Instances"],
)
async def get_instance_communications(instance_id: str):
    """Outbound message audit for an instance."""
    if await get_instance_store().get(instance_id) is None:
        raise HTTPException(404, f"Instance not found: {instance_id}")
    records = await _communications.list_for_instance(instance_id)
    return CommunicationListResponse(
        instance_id=instance_id,
        communications=[CommunicationResponse.model_validate(r.model_dump()) for r in records],
    )


# ============================================================================
# SCHEDULER
# ============================================================================

@router.get("/scheduler/status", tags=["Scheduler"])
async def get_scheduler_status():
    """
    Get scheduler status and statistics.

    Returns metrics about the sweep and secondary trigger loops plus the
    engine's instance counters.
    """
    stats = get_scheduler().stats
    return {
        "status": "running" if stats["running"] else "stopped",
        "started_at": stats["started_at"],
        "uptime_seconds": stats["uptime_seconds"],
        "next_wake_at": stats["next_wake_at"],
        "metrics": {
            "sweeps": stats["sweeps"],
            "resumed": stats["resumed"],
            "claims_lost": stats["claims_lost"],
            "secondary_scans": stats["secondary_scans"],
            "secondary_started": stats["secondary_started"],
            "pending_wakes": stats["pending_wakes"],
            "errors": stats["errors"],
        },
        "engine": stats["engine"],
    }


@router.post("/scheduler/sweep", tags=["Scheduler"])
async def run_sweep():
    """Run one sweep now (resume every due instance)."""
    scheduler = get_scheduler()
    try:
        resumed = await scheduler.sweep_due()
    except Exception as e:
        logger.exception(f"Manual sweep failed: {e}")
        raise HTTPException(500, str(e))
    return {"resumed": resumed}


__all__ = ["router", "health_router", "set_services"]
