"""Scheduling router - availability schedules, slots and appointments.

Internal authenticated endpoints for managers. Tenants book through
``public_booking``.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rentema.core.config import settings
from rentema.core.deps import get_current_manager, get_db, require_csrf_header
from rentema.db.enums import AppointmentStatus, AppointmentType
from rentema.db.models import PropertyManager
from rentema.schemas.scheduling import (
    AppointmentCreate,
    AppointmentRead,
    AvailabilityScheduleRead,
    AvailabilityScheduleSave,
    SlotRead,
    SlotsResponse,
)
from rentema.services import appointment_service, availability_service
from rentema.services.slot_generator import get_timezone, local_start_time

router = APIRouter()


# =============================================================================
# Availability
# =============================================================================

@router.post(
    "/availability",
    response_model=AvailabilityScheduleRead,
    dependencies=[Depends(require_csrf_header)],
)
def save_availability(
    data: AvailabilityScheduleSave,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Create or replace the schedule for one appointment type."""
    payload = data.model_dump(by_alias=True, mode="json")
    return availability_service.save_schedule(
        db,
        manager.id,
        data.schedule_type.value,
        payload["recurringWeekly"],
        payload["blockedDates"],
    )


@router.get("/availability", response_model=list[AvailabilityScheduleRead])
def list_availability(
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    return availability_service.list_schedules(db, manager.id)


@router.get("/availability/slots", response_model=SlotsResponse)
def get_slots(
    slot_date: date = Query(..., alias="date"),
    appointment_type: AppointmentType = Query(..., alias="appointmentType"),
    duration: int = Query(settings.DEFAULT_SLOT_DURATION_MINUTES, ge=5, le=480),
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Open slots for one date in the manager's timezone."""
    result = availability_service.get_available_slots(
        db, manager, slot_date, appointment_type.value, duration
    )
    return SlotsResponse(
        slot_date=slot_date,
        appointment_type=appointment_type.value,
        duration=duration,
        timezone=get_timezone(manager.timezone).key,
        slots=[
            SlotRead(
                start=slot.start,
                end=slot.end,
                local_start_time=local_start_time(slot, manager.timezone),
            )
            for slot in result.slots
        ],
        diagnostics=result.diagnostics,
    )


# =============================================================================
# Appointments
# =============================================================================

@router.post(
    "/appointments",
    response_model=AppointmentRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_appointment(
    data: AppointmentCreate,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Book an explicit slot for a qualified inquiry."""
    appointment = appointment_service.book_slot(
        db,
        manager,
        data.inquiry_id,
        data.type.value,
        data.scheduled_time,
        data.duration,
    )
    return AppointmentRead.from_model(appointment)


@router.get("/appointments", response_model=list[AppointmentRead])
def list_appointments(
    status: AppointmentStatus | None = Query(None),
    appointment_type: AppointmentType | None = Query(None, alias="appointmentType"),
    date_start: date | None = Query(None, alias="dateStart"),
    date_end: date | None = Query(None, alias="dateEnd"),
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    appointments = appointment_service.list_appointments(
        db,
        manager.id,
        status=status.value if status else None,
        appointment_type=appointment_type.value if appointment_type else None,
        date_start=date_start,
        date_end=date_end,
        timezone_name=manager.timezone,
    )
    return [AppointmentRead.from_model(a) for a in appointments]


@router.delete(
    "/appointments/{appointment_id}",
    response_model=AppointmentRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_appointment(
    appointment_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Cancel an appointment; the inquiry returns to qualified and the slot frees up."""
    appointment = appointment_service.cancel_appointment(db, manager.id, appointment_id)
    return AppointmentRead.from_model(appointment)
