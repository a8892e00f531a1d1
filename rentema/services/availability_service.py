"""Availability schedules and slot queries.

Schedules are stored one per (manager, schedule type). Slot computation
itself lives in slot_generator; this module loads the inputs for it.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from rentema.core.errors import ValidationError
from rentema.db.enums import AppointmentStatus, AppointmentType
from rentema.db.models import Appointment, AvailabilitySchedule, PropertyManager
from rentema.services.slot_generator import (
    ScheduleSpec,
    SlotResult,
    TimeSlot,
    get_timezone,
    generate_slots,
    validate_blocked_dates,
    validate_weekly_blocks,
)


# =============================================================================
# Schedules
# =============================================================================


def get_schedule(
    db: Session,
    manager_id: UUID,
    schedule_type: str,
) -> AvailabilitySchedule | None:
    return db.query(AvailabilitySchedule).filter(
        AvailabilitySchedule.manager_id == manager_id,
        AvailabilitySchedule.schedule_type == schedule_type,
    ).first()


def list_schedules(db: Session, manager_id: UUID) -> list[AvailabilitySchedule]:
    return db.query(AvailabilitySchedule).filter(
        AvailabilitySchedule.manager_id == manager_id,
    ).order_by(AvailabilitySchedule.schedule_type).all()


def save_schedule(
    db: Session,
    manager_id: UUID,
    schedule_type: str,
    recurring_weekly: dict[str, list[dict[str, Any]]],
    blocked_dates: list[dict[str, Any]],
) -> AvailabilitySchedule:
    """
    Create or replace the schedule for one appointment type.

    Raises:
        ValidationError: unknown type, bad HH:MM, start >= end, overlapping
            blocks, or malformed blocked ranges. Nothing is persisted.
    """
    if not AppointmentType.has_value(schedule_type):
        raise ValidationError(f"Unknown schedule type: {schedule_type}")

    problems = validate_weekly_blocks(recurring_weekly) + validate_blocked_dates(blocked_dates)
    if problems:
        raise ValidationError("Invalid availability schedule", problems=problems)

    # Stored blocks are ordered by start time within a day
    ordered_weekly = {
        weekday: sorted(blocks, key=lambda block: block["startTime"])
        for weekday, blocks in recurring_weekly.items()
        if blocks
    }

    schedule = get_schedule(db, manager_id, schedule_type)
    if schedule:
        schedule.recurring_weekly = ordered_weekly
        schedule.blocked_dates = list(blocked_dates)
    else:
        schedule = AvailabilitySchedule(
            manager_id=manager_id,
            schedule_type=schedule_type,
            recurring_weekly=ordered_weekly,
            blocked_dates=list(blocked_dates),
        )
        db.add(schedule)

    db.commit()
    db.refresh(schedule)
    return schedule


# =============================================================================
# Slots
# =============================================================================


def get_existing_appointments(
    db: Session,
    manager_id: UUID,
    appointment_type: str,
    on_date: date,
    timezone_name: str | None,
) -> list[Appointment]:
    """Scheduled appointments that could touch ``on_date`` in the manager's timezone."""
    tz = get_timezone(timezone_name)
    # Pad by a day so appointments crossing local midnight are included
    window_start = datetime.combine(on_date - timedelta(days=1), time.min, tzinfo=tz)
    window_end = datetime.combine(on_date + timedelta(days=2), time.min, tzinfo=tz)
    return db.query(Appointment).filter(
        Appointment.manager_id == manager_id,
        Appointment.appointment_type == appointment_type,
        Appointment.status == AppointmentStatus.SCHEDULED.value,
        Appointment.scheduled_time >= window_start.astimezone(timezone.utc),
        Appointment.scheduled_time < window_end.astimezone(timezone.utc),
    ).all()


def slots_for_schedule(
    db: Session,
    manager: PropertyManager,
    schedule: AvailabilitySchedule,
    on_date: date,
    duration_minutes: int,
    now: datetime | None = None,
) -> SlotResult:
    appointments = get_existing_appointments(
        db, manager.id, schedule.schedule_type, on_date, manager.timezone
    )
    return generate_slots(
        ScheduleSpec.from_model(schedule, manager.timezone),
        appointments,
        on_date,
        schedule.schedule_type,
        duration_minutes,
        now or datetime.now(timezone.utc),
    )


def get_available_slots(
    db: Session,
    manager: PropertyManager,
    on_date: date,
    appointment_type: str,
    duration_minutes: int,
    now: datetime | None = None,
) -> SlotResult:
    """Open slots for one date; no schedule of that type means no slots."""
    schedule = get_schedule(db, manager.id, appointment_type)
    if not schedule:
        return SlotResult([], [f"no {appointment_type} schedule"])
    return slots_for_schedule(db, manager, schedule, on_date, duration_minutes, now)


def collect_upcoming_slots(
    db: Session,
    manager: PropertyManager,
    schedule: AvailabilitySchedule,
    duration_minutes: int,
    days_ahead: int,
    max_slots: int,
    now: datetime | None = None,
) -> list[TimeSlot]:
    """Earliest open slots from today (manager's wall clock) over ``days_ahead`` days."""
    now = now or datetime.now(timezone.utc)
    today = now.astimezone(get_timezone(manager.timezone)).date()

    collected: list[TimeSlot] = []
    for offset in range(max(days_ahead, 0)):
        result = slots_for_schedule(
            db, manager, schedule, today + timedelta(days=offset), duration_minutes, now
        )
        collected.extend(result.slots)
        if len(collected) >= max_slots:
            break
    return collected[:max_slots]


def slot_is_open(
    db: Session,
    manager: PropertyManager,
    schedule: AvailabilitySchedule,
    slot_date: date,
    slot_start: datetime,
    duration_minutes: int,
    now: datetime | None = None,
) -> bool:
    """Re-run the generator for ``slot_date`` and look for the exact slot."""
    result = slots_for_schedule(db, manager, schedule, slot_date, duration_minutes, now)
    target = slot_start.astimezone(timezone.utc)
    return any(slot.start == target for slot in result.slots)
