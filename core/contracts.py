# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Foundation - Core enums shared by models, engine and storage
# PURPOSE: Define status and vocabulary enums for the workflow engine
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: InstanceStatus, NodeKind, ActionType, PatientSegment, DelayMode,
#          OnPastPolicy, TimeUnit, TimingDirection, ConditionOperator,
#          InputChannel, TrackingEventType, LogStatus, CommunicationChannel,
#          CommunicationStatus, CommunicationDirection
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the workflow automation engine.

These enums cross three boundaries:
- SQL (PostgreSQL enum types generated from the models)
- HTTP (event ingress, tracking endpoints)
- Python (node dispatch inside the engine)
"""

from enum import Enum
from typing import Optional


# ============================================================================
# STATUS ENUMS
# ============================================================================

class InstanceStatus(str, Enum):
    """
    Workflow instance lifecycle states.

    State transitions:
        RUNNING -> WAITING            (delay node, wake time in the future)
                -> WAITING_FOR_INPUT  (wait_for_input node)
                -> COMPLETED          (no outgoing edge, or on-past SKIP)
                -> FAILED             (unrecoverable node error)
        WAITING -> RUNNING            (scheduler sweep, wake time reached)
        WAITING_FOR_INPUT -> RUNNING  (matching patient reply)
    """
    RUNNING = "running"
    WAITING = "waiting"
    WAITING_FOR_INPUT = "waiting_for_input"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (InstanceStatus.COMPLETED, InstanceStatus.FAILED)

    def is_suspended(self) -> bool:
        """Check if the instance is parked waiting for time or input."""
        return self in (InstanceStatus.WAITING, InstanceStatus.WAITING_FOR_INPUT)


class LogStatus(str, Enum):
    """Status tags written to the execution log."""
    STARTED = "STARTED"
    TRANSITION = "TRANSITION"
    SUSPENDED = "SUSPENDED"
    WAITING_FOR_INPUT = "WAITING_FOR_INPUT"
    RESUMED = "RESUMED"
    INPUT_MATCHED = "INPUT_MATCHED"
    SENT = "SENT"
    ACTION_COMPLETED = "ACTION_COMPLETED"
    ACTION_FAILED = "ACTION_FAILED"
    CONDITION = "CONDITION"
    SKIPPED = "SKIPPED"
    WARNING = "WARNING"
    TRACKED = "TRACKED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ============================================================================
# NODE VOCABULARY
# ============================================================================

class NodeKind(str, Enum):
    """Node discriminator. UNKNOWN covers editor types the engine cannot run."""
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    WAIT_FOR_INPUT = "wait_for_input"
    UNKNOWN = "unknown"


class ActionType(str, Enum):
    """Side effects an action node can perform."""
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    CANCEL_APPOINTMENT = "cancel_appointment"
    ADD_TO_WAITLIST = "add_to_waitlist"

    @classmethod
    def _missing_(cls, value):
        # Editor exports use upper case ("EMAIL", "CANCEL_APPOINTMENT")
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None

    def is_messaging(self) -> bool:
        return self in (ActionType.EMAIL, ActionType.SMS, ActionType.WHATSAPP)


class PatientSegment(str, Enum):
    """Patient segment a definition applies to."""
    ALL = "ALL"
    NEW = "NEW"
    RECURRING = "RECURRING"


class DelayMode(str, Enum):
    """
    How a delay node computes its wake instant.

    FIXED:        now + magnitude
    UNTIL_BEFORE: appointment date - magnitude
    UNTIL_AFTER:  appointment date + magnitude
    """
    FIXED = "FIXED"
    UNTIL_BEFORE = "UNTIL_BEFORE"
    UNTIL_AFTER = "UNTIL_AFTER"

    def is_relative(self) -> bool:
        """Relative modes need the live appointment date."""
        return self in (DelayMode.UNTIL_BEFORE, DelayMode.UNTIL_AFTER)


class OnPastPolicy(str, Enum):
    """What a relative delay does when its wake instant is already past."""
    RUN = "RUN"
    SKIP = "SKIP"


class TimeUnit(str, Enum):
    """Units accepted for delays and secondary trigger offsets."""
    MINUTES = "MINUTES"
    HOURS = "HOURS"
    DAYS = "DAYS"

    @property
    def minutes(self) -> int:
        return {TimeUnit.MINUTES: 1, TimeUnit.HOURS: 60, TimeUnit.DAYS: 1440}[self]


class TimingDirection(str, Enum):
    """Secondary trigger timing relative to an appointment."""
    IMMEDIATE = "IMMEDIATE"
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class ConditionOperator(str, Enum):
    """Comparison operators for condition nodes."""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    CONTAINS = "CONTAINS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"

    @classmethod
    def parse(cls, raw: str) -> Optional["ConditionOperator"]:
        """Resolve an operator name or symbolic alias; None if unrecognized."""
        if raw is None:
            return None
        key = str(raw).strip()
        alias = _OPERATOR_ALIASES.get(key)
        if alias is not None:
            return alias
        try:
            return cls(key.upper())
        except ValueError:
            return None


_OPERATOR_ALIASES = {
    "==": ConditionOperator.EQUALS,
    "!=": ConditionOperator.NOT_EQUALS,
    ">": ConditionOperator.GREATER_THAN,
    "<": ConditionOperator.LESS_THAN,
}


class InputChannel(str, Enum):
    """Channels a patient reply can arrive on."""
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"
    EMAIL = "EMAIL"


class TrackingEventType(str, Enum):
    """Engagement events emitted by the tracking endpoints."""
    EMAIL_OPENED = "EMAIL_OPENED"
    LINK_CLICKED = "LINK_CLICKED"


# ============================================================================
# COMMUNICATION AUDIT
# ============================================================================

class CommunicationChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"


class CommunicationStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"


class CommunicationDirection(str, Enum):
    OUTBOUND = "OUTBOUND"
    INBOUND = "INBOUND"


__all__ = [
    "InstanceStatus",
    "LogStatus",
    "NodeKind",
    "ActionType",
    "PatientSegment",
    "DelayMode",
    "OnPastPolicy",
    "TimeUnit",
    "TimingDirection",
    "ConditionOperator",
    "InputChannel",
    "TrackingEventType",
    "CommunicationChannel",
    "CommunicationStatus",
    "CommunicationDirection",
]
