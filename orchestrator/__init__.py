# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Workflow execution
# PURPOSE: Drive workflow instances through their graphs
# CREATED: 14 SEP 2026
# ============================================================================
"""
Orchestrator Module

The engine that walks workflow graphs, the action dispatcher that performs
side effects, and the scheduler that wakes suspended instances.

Usage:
    from orchestrator import WorkflowEngine, ResumptionScheduler

    engine = WorkflowEngine(definitions, instances, logs, actions, appointments, patients)
    scheduler = ResumptionScheduler(engine, definitions, instances, appointments)
    await scheduler.start()
"""

from .core import WorkflowEngine
from .actions import ActionDispatcher, ActionResult
from .scheduler import ResumptionScheduler

__all__ = [
    "WorkflowEngine",
    "ActionDispatcher",
    "ActionResult",
    "ResumptionScheduler",
]
