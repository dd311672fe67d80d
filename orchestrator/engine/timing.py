# ============================================================================
# TIME ARITHMETIC
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Delay wake instants and secondary trigger windows
# PURPOSE: Pure date arithmetic shared by the delay executor and scheduler
# CREATED: 14 SEP 2026
# ============================================================================
"""
Time Arithmetic

All functions are pure and take `now` explicitly so callers (and tests)
control the clock. Datetimes are timezone-aware UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from core.contracts import DelayMode, TimeUnit, TimingDirection


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes from storage as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def start_of_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def offset(value: int, unit: TimeUnit) -> timedelta:
    """Convert a magnitude + unit into a timedelta."""
    return timedelta(minutes=int(value) * TimeUnit(unit).minutes)


def compute_wake(
    mode: DelayMode,
    value: int,
    unit: TimeUnit,
    now: datetime,
    appointment_date: Optional[datetime] = None,
) -> datetime:
    """
    Compute the wake instant for a delay node.

    FIXED is relative to `now`; UNTIL_BEFORE / UNTIL_AFTER are relative to the
    appointment date, which the caller must supply for those modes.

    Raises:
        ValueError: Relative mode without an appointment date
    """
    delta = offset(value, unit)
    if mode == DelayMode.FIXED:
        return now + delta
    if appointment_date is None:
        raise ValueError(f"{mode.value} delay requires an appointment date")
    anchor = ensure_aware(appointment_date)
    if mode == DelayMode.UNTIL_BEFORE:
        return anchor - delta
    return anchor + delta


def secondary_window(
    direction: TimingDirection,
    value: int,
    unit: TimeUnit,
    now: datetime,
    width_minutes: int = 15,
) -> Optional[Tuple[datetime, datetime]]:
    """
    Appointment date window a secondary trigger looks at on this tick.

    BEFORE n: appointments starting n from now (window starts at now + n).
    AFTER n: appointments that started n ago (window starts at now - n).

    Returns:
        (start, end) inclusive bounds, or None for IMMEDIATE timing
    """
    anchor = start_of_minute(now)
    delta = offset(value, unit)
    if direction == TimingDirection.BEFORE:
        start = anchor + delta
    elif direction == TimingDirection.AFTER:
        start = anchor - delta
    else:
        return None
    return start, start + timedelta(minutes=width_minutes)


__all__ = [
    "utcnow",
    "ensure_aware",
    "start_of_minute",
    "offset",
    "compute_wake",
    "secondary_window",
]
