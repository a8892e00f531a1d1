"""Appointment service - booking, cancellation, completion.

The serializing guard for the appointment table:
1. lock the manager's schedule row for the appointment type (FOR UPDATE)
2. re-run the slot generator under that lock
3. insert; the partial unique index on (manager, type, start) for
   scheduled rows is the last line of defence and surfaces as
   IntegrityError
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentema.core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    SlotNoLongerAvailableError,
    StateError,
)
from rentema.core.structured_logging import build_log_context
from rentema.db.enums import AppointmentStatus, InquiryStatus, OverrideType, WorkflowActor
from rentema.db.models import Appointment, AvailabilitySchedule, Inquiry, Property, PropertyManager
from rentema.services import availability_service
from rentema.services.slot_generator import get_timezone

logger = logging.getLogger(__name__)


# =============================================================================
# Guard helpers (no commit)
# =============================================================================


def lock_schedule(
    db: Session,
    manager_id: UUID,
    appointment_type: str,
) -> AvailabilitySchedule | None:
    """Per-manager-per-type mutex: hold the schedule row until commit/rollback."""
    return db.execute(
        select(AvailabilitySchedule)
        .where(
            AvailabilitySchedule.manager_id == manager_id,
            AvailabilitySchedule.schedule_type == appointment_type,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def insert_appointment(
    db: Session,
    *,
    inquiry_id: UUID,
    manager_id: UUID,
    appointment_type: str,
    scheduled_time: datetime,
    duration_minutes: int,
) -> Appointment:
    """
    Insert a scheduled appointment and flush.

    Raises:
        IntegrityError: another scheduled appointment already holds this start
    """
    appointment = Appointment(
        inquiry_id=inquiry_id,
        manager_id=manager_id,
        appointment_type=appointment_type,
        scheduled_time=scheduled_time.astimezone(timezone.utc),
        duration_minutes=duration_minutes,
        status=AppointmentStatus.SCHEDULED.value,
    )
    db.add(appointment)
    db.flush()
    return appointment


def cancel_active_appointments(db: Session, inquiry_id: UUID) -> list[Appointment]:
    """Cancel every scheduled appointment of an inquiry; the slots free up immediately."""
    now = datetime.now(timezone.utc)
    appointments = db.query(Appointment).filter(
        Appointment.inquiry_id == inquiry_id,
        Appointment.status == AppointmentStatus.SCHEDULED.value,
    ).all()
    for appointment in appointments:
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = now
    return appointments


def complete_active_appointment(db: Session, inquiry_id: UUID) -> Appointment | None:
    appointment = db.query(Appointment).filter(
        Appointment.inquiry_id == inquiry_id,
        Appointment.status == AppointmentStatus.SCHEDULED.value,
    ).order_by(Appointment.scheduled_time.desc()).first()
    if appointment:
        appointment.status = AppointmentStatus.COMPLETED.value
        appointment.completed_at = datetime.now(timezone.utc)
    return appointment


# =============================================================================
# Manager operations
# =============================================================================


def book_slot(
    db: Session,
    manager: PropertyManager,
    inquiry_id: UUID,
    appointment_type: str,
    scheduled_time: datetime,
    duration_minutes: int,
    now: datetime | None = None,
) -> Appointment:
    """
    Manager books an explicit slot for a qualified inquiry.

    Same guard as public token confirmation, without a token.

    Raises:
        NotFoundError: inquiry not owned by this manager
        StateError: inquiry is not qualified
        SlotNoLongerAvailableError: slot is not offered by the schedule
        ConcurrencyConflictError: unique index rejected the insert
    """
    from rentema.services import booking_token_service, inquiry_workflow_service

    now = now or datetime.now(timezone.utc)
    if scheduled_time.tzinfo is None:
        scheduled_time = scheduled_time.replace(tzinfo=timezone.utc)

    _get_owned_inquiry(db, manager.id, inquiry_id)

    schedule = lock_schedule(db, manager.id, appointment_type)
    inquiry = inquiry_workflow_service.lock_inquiry(db, inquiry_id)
    if inquiry.status != InquiryStatus.QUALIFIED.value:
        db.rollback()
        raise StateError(
            f"Inquiry must be qualified to book, not {inquiry.status}",
            current_status=inquiry.status,
        )

    slot_date = scheduled_time.astimezone(get_timezone(manager.timezone)).date()
    if schedule is None or not availability_service.slot_is_open(
        db, manager, schedule, slot_date, scheduled_time, duration_minutes, now
    ):
        db.rollback()
        raise SlotNoLongerAvailableError()

    try:
        appointment = insert_appointment(
            db,
            inquiry_id=inquiry.id,
            manager_id=manager.id,
            appointment_type=appointment_type,
            scheduled_time=scheduled_time,
            duration_minutes=duration_minutes,
        )
    except IntegrityError:
        db.rollback()
        logger.warning(
            "Appointment insert rejected by unique index",
            extra=build_log_context(manager_id=manager.id, inquiry_id=inquiry_id),
        )
        raise ConcurrencyConflictError("This time was just booked. Please choose another time.")

    inquiry_workflow_service.mark_scheduled(
        db,
        inquiry,
        appointment_id=appointment.id,
        actor=WorkflowActor.MANAGER,
        actor_id=manager.id,
    )
    booking_token_service.invalidate_outstanding(db, inquiry.id)
    db.commit()
    db.refresh(appointment)
    logger.info(
        "Appointment booked by manager",
        extra=build_log_context(
            manager_id=manager.id, inquiry_id=inquiry.id, appointment_id=appointment.id
        ),
    )
    return appointment


def cancel_appointment(db: Session, manager_id: UUID, appointment_id: UUID) -> Appointment:
    """
    Cancel an appointment through the inquiry's cancel_appointment override.

    Already-cancelled appointments are returned unchanged.
    """
    from rentema.services import inquiry_workflow_service

    appointment = get_appointment(db, manager_id, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED.value:
        return appointment
    if appointment.status == AppointmentStatus.COMPLETED.value:
        raise StateError("Completed appointments cannot be cancelled", current_status=appointment.status)

    inquiry_workflow_service.apply_override(
        db,
        appointment.inquiry_id,
        OverrideType.CANCEL_APPOINTMENT,
        manager_id=manager_id,
        reason="appointment cancelled",
    )
    db.refresh(appointment)
    return appointment


def get_appointment(db: Session, manager_id: UUID, appointment_id: UUID) -> Appointment:
    appointment = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.manager_id == manager_id,
    ).first()
    if not appointment:
        raise NotFoundError("Appointment not found", appointment_id=str(appointment_id))
    return appointment


def list_appointments(
    db: Session,
    manager_id: UUID,
    status: str | None = None,
    appointment_type: str | None = None,
    date_start: date | None = None,
    date_end: date | None = None,
    timezone_name: str | None = None,
) -> list[Appointment]:
    """List a manager's appointments, soonest first. Dates are manager-local and inclusive."""
    query = db.query(Appointment).filter(Appointment.manager_id == manager_id)
    if status:
        query = query.filter(Appointment.status == status)
    if appointment_type:
        query = query.filter(Appointment.appointment_type == appointment_type)

    tz = get_timezone(timezone_name)
    if date_start:
        start = datetime.combine(date_start, time.min, tzinfo=tz).astimezone(timezone.utc)
        query = query.filter(Appointment.scheduled_time >= start)
    if date_end:
        end = datetime.combine(date_end, time.max, tzinfo=tz).astimezone(timezone.utc)
        query = query.filter(Appointment.scheduled_time <= end)

    return query.order_by(Appointment.scheduled_time).all()


def _get_owned_inquiry(db: Session, manager_id: UUID, inquiry_id: UUID) -> Inquiry:
    inquiry = db.query(Inquiry).join(Property, Property.id == Inquiry.property_id).filter(
        Inquiry.id == inquiry_id,
        Property.manager_id == manager_id,
    ).first()
    if not inquiry:
        raise NotFoundError("Inquiry not found", inquiry_id=str(inquiry_id))
    return inquiry
