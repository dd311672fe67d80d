# ============================================================================
# RESUMPTION SCHEDULER TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Tests - Sweep, secondary triggers and loop lifecycle
# PURPOSE: Verify due-instance resumption and appointment-relative starts
# CREATED: 14 SEP 2026
# ============================================================================
"""
ResumptionScheduler Tests

Sweeps and scans are called directly with an explicit `now`; the background
loops are only started to check the lifecycle.

Run with:
    pytest tests/test_scheduler.py -v
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from core.config import EngineDefaults
from core.contracts import InstanceStatus
from core.models import Appointment

from conftest import (
    NOW,
    action,
    build_harness,
    definition,
    delay,
    edge,
    event_context,
    trigger,
)


def _waiting(workflow_id="wait", minutes=10):
    return definition(
        workflow_id,
        [trigger(), delay("d1", "FIXED", minutes), action("e1", "EMAIL", message="x")],
        [edge("t1", "d1"), edge("d1", "e1")],
    )


def _day_before(workflow_id="day-before", tenant_id="clinic-1"):
    return definition(
        workflow_id,
        [
            trigger(timingDirection="BEFORE", timingValue=24, timingUnit="HOURS"),
            action("s1", "SMS", message="Tomorrow at the clinic"),
        ],
        [edge("t1", "s1")],
        tenant_id=tenant_id,
    )


def _appointment(appointment_id, when, tenant_id="clinic-1", status="scheduled", patient_id="p-1"):
    return Appointment(
        appointment_id=appointment_id,
        patient_id=patient_id,
        doctor_id="doc-7",
        tenant_id=tenant_id,
        date=when,
        status=status,
    )


# ============================================================================
# SWEEP
# ============================================================================

class TestSweep:

    def test_resumes_only_due_instances(self):
        h = build_harness()
        h.add_definition(_waiting("short", minutes=10))
        h.add_definition(_waiting("long", minutes=60))
        asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        resumed = asyncio.run(h.scheduler.sweep_due(now=NOW + timedelta(minutes=15)))

        assert resumed == 1
        by_workflow = {i.workflow_id: i for i in h.instances.all()}
        assert by_workflow["short"].status == InstanceStatus.COMPLETED
        assert by_workflow["long"].status == InstanceStatus.WAITING

    def test_second_sweep_finds_nothing(self):
        h = build_harness()
        h.add_definition(_waiting())
        asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        later = NOW + timedelta(minutes=10)
        assert asyncio.run(h.scheduler.sweep_due(now=later)) == 1
        assert asyncio.run(h.scheduler.sweep_due(now=later)) == 0
        h.mailer.send.assert_awaited_once()

    def test_resume_logged(self):
        h = build_harness()
        h.add_definition(_waiting())
        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        asyncio.run(h.scheduler.sweep_due(now=NOW + timedelta(minutes=10)))

        statuses = asyncio.run(h.log_statuses(started[0].instance_id))
        assert statuses.index("RESUMED") > statuses.index("SUSPENDED")
        assert statuses[-1] == "COMPLETED"

    def test_lost_claim_counted_and_skipped(self):
        h = build_harness()
        h.add_definition(_waiting())
        asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))
        h.engine.claim = AsyncMock(return_value=False)

        resumed = asyncio.run(h.scheduler.sweep_due(now=NOW + timedelta(minutes=10)))

        assert resumed == 0
        assert h.scheduler.stats["claims_lost"] == 1
        h.mailer.send.assert_not_awaited()

    def test_resume_error_does_not_stop_sweep(self):
        h = build_harness()
        h.add_definition(_waiting("a"))
        h.add_definition(_waiting("b"))
        asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))
        original = h.engine.resume_after_delay
        calls = []

        async def flaky(instance):
            calls.append(instance.workflow_id)
            if len(calls) == 1:
                raise RuntimeError("transient")
            return await original(instance)

        h.engine.resume_after_delay = flaky

        resumed = asyncio.run(h.scheduler.sweep_due(now=NOW + timedelta(minutes=10)))

        assert len(calls) == 2
        assert resumed == 1
        assert h.scheduler.stats["errors"] == 1

    def test_wake_heap_tracks_next_wake(self):
        h = build_harness()
        h.add_definition(_waiting("short", minutes=10))
        h.add_definition(_waiting("long", minutes=60))
        asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert h.scheduler.next_wake() == NOW + timedelta(minutes=10)
        asyncio.run(h.scheduler.sweep_due(now=NOW + timedelta(minutes=15)))
        assert h.scheduler.next_wake() == NOW + timedelta(minutes=60)
        assert h.scheduler.stats["pending_wakes"] == 1


# ============================================================================
# SECONDARY TRIGGERS
# ============================================================================

class TestSecondaryTriggers:

    def test_starts_instance_for_appointment_in_window(self):
        h = build_harness()
        h.add_definition(_day_before())
        h.appointments.add(_appointment("a-1", NOW + timedelta(hours=24, minutes=5)))

        started = asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW))

        assert started == 1
        instance = h.instances.all()[0]
        assert instance.appointment_id == "a-1"
        assert instance.context_data["trigger"] == "BEFORE_24_HOURS"
        assert instance.context_data["doctor_id"] == "doc-7"
        assert instance.context_data["appointment_status"] == "scheduled"
        assert instance.status == InstanceStatus.COMPLETED

    def test_scan_twice_starts_once(self):
        h = build_harness()
        h.add_definition(_day_before())
        h.appointments.add(_appointment("a-1", NOW + timedelta(hours=24, minutes=5)))

        first = asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW))
        second = asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW + timedelta(minutes=1)))

        assert (first, second) == (1, 0)
        assert len(h.instances.all()) == 1

    def test_appointments_outside_window_ignored(self):
        h = build_harness()
        h.add_definition(_day_before())
        h.appointments.add(_appointment("soon", NOW + timedelta(hours=2)))
        h.appointments.add(_appointment("later", NOW + timedelta(hours=30)))

        assert asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW)) == 0

    def test_cancelled_appointments_ignored(self):
        h = build_harness()
        h.add_definition(_day_before())
        h.appointments.add(_appointment("a-1", NOW + timedelta(hours=24), status="cancelled"))

        assert asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW)) == 0

    def test_scan_is_tenant_scoped(self):
        h = build_harness()
        h.add_definition(_day_before())
        h.appointments.add(_appointment("a-9", NOW + timedelta(hours=24), tenant_id="clinic-2"))

        assert asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW)) == 0

    def test_after_trigger_looks_back(self):
        h = build_harness()
        h.add_definition(definition(
            "follow-up",
            [
                trigger(timingDirection="AFTER", timingValue=2, timingUnit="DAYS"),
                action("e1", "EMAIL", message="How did it go?"),
            ],
            [edge("t1", "e1")],
        ))
        h.appointments.add(_appointment("a-1", NOW - timedelta(days=2) + timedelta(minutes=3), status="completed"))

        assert asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW)) == 1

    def test_immediate_definitions_skipped(self):
        h = build_harness()
        h.add_definition(_waiting())
        h.appointments.add(_appointment("a-1", NOW))

        assert asyncio.run(h.scheduler.scan_secondary_triggers(now=NOW)) == 0


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestLifecycle:

    def test_start_and_stop(self):
        h = build_harness(engine_defaults=EngineDefaults(
            sweep_interval_sec=0.05, secondary_scan_interval_sec=0.05
        ))

        async def run():
            await h.scheduler.start()
            assert h.scheduler.is_running
            await asyncio.sleep(0.2)
            await h.scheduler.stop()

        asyncio.run(run())

        stats = h.scheduler.stats
        assert stats["running"] is False
        assert stats["sweeps"] >= 1
        assert stats["secondary_scans"] >= 1

    def test_stats_before_start(self):
        h = build_harness()

        stats = h.scheduler.stats

        assert stats["running"] is False
        assert stats["started_at"] is None
        assert stats["next_wake_at"] is None
        assert stats["engine"]["instances_started"] == 0
