# ============================================================================
# EVENT DISPATCHER TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Tests - Business event ingress
# PURPOSE: Verify guards, definition matching and per-definition isolation
# CREATED: 14 SEP 2026
# ============================================================================
"""
EventDispatcher Tests

Run with:
    pytest tests/test_dispatcher.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.contracts import InstanceStatus
from core.errors import GuardFailure

from conftest import action, build_harness, definition, edge, event_context, trigger


def _simple(workflow_id, **extra):
    return definition(
        workflow_id,
        [trigger(), action("e1", "EMAIL", message=workflow_id)],
        [edge("t1", "e1")],
        **extra,
    )


# ============================================================================
# GUARDS
# ============================================================================

class TestGuards:

    def test_missing_tenant_starts_nothing(self):
        h = build_harness()
        h.add_definition(_simple("welcome"))

        started = asyncio.run(h.dispatcher.trigger_event(
            "APPOINTMENT_CREATED", event_context(tenant_id=None)
        ))

        assert started == []
        assert h.instances.all() == []
        assert h.dispatcher.stats["events_rejected"] == 1

    def test_missing_patient_starts_nothing(self):
        h = build_harness()
        h.add_definition(_simple("welcome"))

        started = asyncio.run(h.dispatcher.trigger_event(
            "APPOINTMENT_CREATED", event_context(patient_id=None)
        ))

        assert started == []
        assert h.instances.all() == []

    def test_validate_context_reports_missing_key(self):
        h = build_harness()

        with pytest.raises(GuardFailure) as exc_info:
            h.dispatcher.validate_context({"patient_id": "p-1"})

        assert exc_info.value.missing == "tenant_id"

    def test_camel_case_payload_accepted(self):
        h = build_harness()

        validated = h.dispatcher.validate_context({
            "clinicId": "clinic-1",
            "patientId": 42,
            "appointmentId": "a-1",
            "note": "kept",
        })

        assert validated["tenant_id"] == "clinic-1"
        assert validated["patient_id"] == "42"
        assert validated["note"] == "kept"
        assert validated["patient_segment"] == "NEW"


# ============================================================================
# MATCHING
# ============================================================================

class TestMatching:

    def test_other_tenant_definitions_ignored(self):
        h = build_harness()
        h.add_definition(_simple("ours"))
        h.add_definition(_simple("theirs", tenant_id="clinic-2"))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert [i.workflow_id for i in started] == ["ours"]

    def test_other_trigger_types_ignored(self):
        h = build_harness()
        h.add_definition(_simple("welcome"))

        started = asyncio.run(h.dispatcher.trigger_event("FORM_SUBMITTED", event_context()))

        assert started == []

    def test_inactive_definitions_ignored(self):
        h = build_harness()
        h.add_definition(_simple("retired", isActive=False))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert started == []

    @pytest.mark.parametrize("segment,expected", [
        ("NEW", ["all", "new"]),
        ("RECURRING", ["all", "recurring"]),
    ])
    def test_segment_matching(self, segment, expected):
        h = build_harness()
        h.add_definition(_simple("all", patientType="ALL"))
        h.add_definition(_simple("new", patientType="NEW"))
        h.add_definition(_simple("recurring", patientType="RECURRING"))

        started = asyncio.run(h.dispatcher.trigger_event(
            "APPOINTMENT_CREATED", event_context(patient_segment=segment)
        ))

        assert [i.workflow_id for i in started] == expected

    def test_segment_defaults_to_new(self):
        h = build_harness()
        h.add_definition(_simple("recurring", patientType="RECURRING"))
        h.add_definition(_simple("new", patientType="NEW"))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert [i.workflow_id for i in started] == ["new"]

    def test_form_scoped_definition_needs_matching_form(self):
        h = build_harness()
        h.add_definition(_simple("intake", trigger_type="FORM_SUBMITTED", formId="form-9"))

        other = asyncio.run(h.dispatcher.trigger_event(
            "FORM_SUBMITTED", event_context(form_id="form-1")
        ))
        same = asyncio.run(h.dispatcher.trigger_event(
            "FORM_SUBMITTED", event_context(form_id="form-9")
        ))

        assert other == []
        assert [i.workflow_id for i in same] == ["intake"]

    def test_timed_trigger_definitions_also_start_on_events(self):
        h = build_harness()
        h.add_definition(definition(
            "day-before",
            [trigger(timingDirection="BEFORE", timingValue=24, timingUnit="HOURS")],
            [],
        ))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert [i.workflow_id for i in started] == ["day-before"]

    def test_event_start_covers_appointment_for_later_scan(self):
        h = build_harness()
        d = h.add_definition(definition(
            "day-before",
            [trigger(timingDirection="BEFORE", timingValue=24, timingUnit="HOURS")],
            [],
        ))

        asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        covered = asyncio.run(h.instances.exists_for(d.workflow_id, event_context()["appointment_id"]))
        assert covered is True


# ============================================================================
# ISOLATION
# ============================================================================

class TestIsolation:

    def test_each_match_gets_its_own_instance(self):
        h = build_harness()
        h.add_definition(_simple("first"))
        h.add_definition(_simple("second"))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert [i.workflow_id for i in started] == ["first", "second"]
        assert len({i.instance_id for i in started}) == 2
        assert all(i.status == InstanceStatus.COMPLETED for i in started)
        assert h.mailer.send.await_count == 2

    def test_one_failing_definition_does_not_block_others(self):
        h = build_harness()
        h.add_definition(definition("broken", [trigger()], [edge("t1", "missing")]))
        h.add_definition(_simple("healthy"))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert [i.workflow_id for i in started] == ["healthy"]
        assert h.dispatcher.stats["start_failures"] == 1

    def test_engine_exception_logged_and_skipped(self):
        h = build_harness()
        h.add_definition(_simple("welcome"))
        h.engine.start_instance = AsyncMock(side_effect=RuntimeError("db down"))

        started = asyncio.run(h.dispatcher.trigger_event("APPOINTMENT_CREATED", event_context()))

        assert started == []
        assert h.dispatcher.stats["start_failures"] == 1
