# ============================================================================
# RESUMPTION SCHEDULER
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Time-based resumption and secondary triggers
# PURPOSE: Wake delayed instances and start appointment-relative workflows
# CREATED: 14 SEP 2026
# ============================================================================
"""
Resumption Scheduler

Two background loops:

1. Sweep (every SCHEDULER_SWEEP_INTERVAL seconds)
   - Find WAITING instances whose next_run_at has passed
   - Claim each one (status RUNNING, version-checked)
   - Resume it past its delay node
   Only the driver that wins the claim resumes the instance, so running
   several schedulers against one database is safe.

2. Secondary trigger scan (every SCHEDULER_SECONDARY_INTERVAL seconds)
   - For each active definition whose trigger is "n units BEFORE/AFTER
     the appointment", look up the tenant's appointments in the current
     window and start one instance per appointment not already covered.

A min-heap of known wake times (fed by the engine on every timed suspend)
lets the sweep loop wake early when a delay ends before the next tick. The
database remains the source of truth; the heap is an in-process hint.
"""

import asyncio
import heapq
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from core.config import EngineDefaults, get_defaults
from core.logging import log_context
from core.models import ContextKeys, TriggerNode, WorkflowDefinition
from orchestrator.core import WorkflowEngine
from orchestrator.engine.timing import secondary_window, utcnow
from repositories.base import DefinitionStore, InstanceStore
from services.collaborators import AppointmentGateway

logger = logging.getLogger(__name__)


class ResumptionScheduler:
    """
    Periodic driver for delayed instances and secondary triggers.

    Usage:
        scheduler = ResumptionScheduler(engine, definitions, instances, appointments)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        definitions: DefinitionStore,
        instances: InstanceStore,
        appointments: AppointmentGateway,
        defaults: Optional[EngineDefaults] = None,
    ):
        self.engine = engine
        self.definitions = definitions
        self.instances = instances
        self.appointments = appointments
        self.defaults = defaults or get_defaults().engine

        # (wake_at, instance_id) min-heap
        self._wake_heap: List[Tuple[datetime, str]] = []
        engine.add_wake_listener(self.notify_wake)

        # State
        self._running = False
        self._stop_event = asyncio.Event()
        self._sweep_task: Optional[asyncio.Task] = None
        self._secondary_task: Optional[asyncio.Task] = None

        # Metrics
        self._started_at: Optional[datetime] = None
        self._sweeps = 0
        self._resumed = 0
        self._claims_lost = 0
        self._secondary_scans = 0
        self._secondary_started = 0
        self._errors = 0
        self._last_sweep_at: Optional[datetime] = None
        self._last_secondary_scan_at: Optional[datetime] = None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._stop_event.clear()

        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="scheduler-sweep")
        self._secondary_task = asyncio.create_task(self._secondary_loop(), name="scheduler-secondary")
        logger.info(
            f"Scheduler started (sweep={self.defaults.sweep_interval_sec}s, "
            f"secondary={self.defaults.secondary_scan_interval_sec}s)"
        )

    async def stop(self) -> None:
        """Signal both loops to stop and wait for them."""
        self._running = False
        self._stop_event.set()

        for task in (self._sweep_task, self._secondary_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._sweep_task = None
        self._secondary_task = None
        logger.info(
            f"Scheduler stopped (sweeps={self._sweeps}, resumed={self._resumed}, "
            f"secondary_started={self._secondary_started})"
        )

    async def _sweep_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.sweep_due()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._errors += 1
                logger.exception(f"Error in scheduler sweep: {e}")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._sweep_sleep(),
                )
                break
            except asyncio.TimeoutError:
                pass

    async def _secondary_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.scan_secondary_triggers()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._errors += 1
                logger.exception(f"Error in secondary trigger scan: {e}")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.defaults.secondary_scan_interval_sec,
                )
                break
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # SWEEP
    # =========================================================================

    async def sweep_due(self, now: Optional[datetime] = None) -> int:
        """
        Resume every WAITING instance whose wake time has passed.

        Returns:
            Number of instances this scheduler claimed and resumed
        """
        now = now or utcnow()
        due = await self.instances.list_due(now, limit=self.defaults.sweep_batch_size)
        self._sweeps += 1
        self._last_sweep_at = now
        self._drop_heap_until(now)

        resumed = 0
        for instance in due:
            with log_context(instance_id=instance.instance_id, workflow_id=instance.workflow_id):
                if not instance.current_node_id:
                    logger.warning(f"Due instance {instance.instance_id} has no current node; skipping")
                    continue

                if not await self.engine.claim(instance):
                    self._claims_lost += 1
                    logger.debug(f"Instance {instance.instance_id} claimed by another driver")
                    continue

                try:
                    await self.engine.resume_after_delay(instance)
                except Exception as e:
                    self._errors += 1
                    logger.exception(f"Failed to resume instance {instance.instance_id}: {e}")
                    continue
                resumed += 1

        self._resumed += resumed
        if due:
            logger.info(f"Sweep resumed {resumed}/{len(due)} due instances")
        return resumed

    def notify_wake(self, instance_id: str, wake_at: datetime) -> None:
        heapq.heappush(self._wake_heap, (wake_at, instance_id))

    def next_wake(self) -> Optional[datetime]:
        return self._wake_heap[0][0] if self._wake_heap else None

    def _drop_heap_until(self, now: datetime) -> None:
        while self._wake_heap and self._wake_heap[0][0] <= now:
            heapq.heappop(self._wake_heap)

    def _sweep_sleep(self) -> float:
        """Seconds until the next sweep: the regular tick, or sooner if a known wake is due first."""
        interval = float(self.defaults.sweep_interval_sec)
        next_wake = self.next_wake()
        if next_wake is None:
            return interval
        until_wake = (next_wake - utcnow()).total_seconds()
        return max(0.5, min(interval, until_wake))

    # =========================================================================
    # SECONDARY TRIGGERS
    # =========================================================================

    async def scan_secondary_triggers(self, now: Optional[datetime] = None) -> int:
        """
        Start instances for appointment-relative triggers due in this window.

        Returns:
            Number of instances started
        """
        now = now or utcnow()
        self._secondary_scans += 1
        self._last_secondary_scan_at = now

        started = 0
        for definition in await self.definitions.list_active():
            try:
                trigger = definition.get_trigger_node()
            except ValueError:
                continue
            if not trigger.is_secondary:
                continue
            try:
                started += await self._scan_definition(definition, trigger, now)
            except Exception as e:
                self._errors += 1
                logger.exception(f"Secondary scan failed for {definition.workflow_id}: {e}")

        self._secondary_started += started
        if started:
            logger.info(f"Secondary scan started {started} instances")
        return started

    async def _scan_definition(
        self,
        definition: WorkflowDefinition,
        trigger: TriggerNode,
        now: datetime,
    ) -> int:
        window = secondary_window(
            trigger.timing_direction,
            trigger.timing_value,
            trigger.timing_unit,
            now,
            self.defaults.secondary_window_minutes,
        )
        if window is None:
            return 0
        start, end = window

        appointments = await self.appointments.find_in_window(
            definition.tenant_id, start, end, list(self.defaults.secondary_appointment_statuses)
        )

        started = 0
        for appointment in appointments:
            if await self.instances.exists_for(definition.workflow_id, appointment.appointment_id):
                continue

            context = {
                ContextKeys.PATIENT_ID: appointment.patient_id,
                ContextKeys.APPOINTMENT_ID: appointment.appointment_id,
                ContextKeys.TENANT_ID: definition.tenant_id,
                ContextKeys.DOCTOR_ID: appointment.doctor_id,
                ContextKeys.APPOINTMENT_STATUS: appointment.status,
                ContextKeys.TRIGGER: trigger.timing_label,
            }
            context = {k: v for k, v in context.items() if v is not None}
            try:
                await self.engine.start_instance(definition, context)
            except Exception as e:
                self._errors += 1
                logger.exception(
                    f"Failed to start {definition.workflow_id} for appointment "
                    f"{appointment.appointment_id}: {e}"
                )
                continue
            started += 1
        return started

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        uptime_seconds = None
        if self._started_at:
            uptime_seconds = (datetime.now(timezone.utc) - self._started_at).total_seconds()
        next_wake = self.next_wake()

        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime_seconds,
            "sweep_interval": self.defaults.sweep_interval_sec,
            "secondary_interval": self.defaults.secondary_scan_interval_sec,
            "sweeps": self._sweeps,
            "resumed": self._resumed,
            "claims_lost": self._claims_lost,
            "secondary_scans": self._secondary_scans,
            "secondary_started": self._secondary_started,
            "errors": self._errors,
            "pending_wakes": len(self._wake_heap),
            "next_wake_at": next_wake.isoformat() if next_wake else None,
            "last_sweep_at": self._last_sweep_at.isoformat() if self._last_sweep_at else None,
            "last_secondary_scan_at": (
                self._last_secondary_scan_at.isoformat() if self._last_secondary_scan_at else None
            ),
            "engine": self.engine.stats,
        }


__all__ = ["ResumptionScheduler"]
