# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for events, replies, tracking and instance inspection
# CREATED: 14 SEP 2026
# ============================================================================
"""
API Module

FastAPI routes for the workflow engine.
"""

from .routes import router, health_router
from .tracking_routes import router as tracking_router
from .schemas import (
    EventCreate,
    InputCreate,
    InstanceResponse,
)

__all__ = [
    "router",
    "health_router",
    "tracking_router",
    "EventCreate",
    "InputCreate",
    "InstanceResponse",
]
