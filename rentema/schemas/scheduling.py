"""Scheduling schemas - availability, slots, appointments."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import Field, model_validator

from rentema.db.enums import AppointmentType
from rentema.schemas.common import CamelModel


Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


# =============================================================================
# Availability
# =============================================================================


class TimeBlock(CamelModel):
    """Wall-clock block in the manager's timezone."""

    start_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="HH:MM format")
    end_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="HH:MM format")


class BlockedDateRange(CamelModel):
    """Inclusive on both ends."""

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class AvailabilityScheduleSave(CamelModel):
    schedule_type: AppointmentType
    recurring_weekly: dict[Weekday, list[TimeBlock]] = Field(default_factory=dict)
    blocked_dates: list[BlockedDateRange] = Field(default_factory=list)


class AvailabilityScheduleRead(CamelModel):
    id: UUID
    schedule_type: str
    recurring_weekly: dict[str, list[TimeBlock]]
    blocked_dates: list[BlockedDateRange]
    updated_at: datetime


# =============================================================================
# Slots
# =============================================================================


class SlotRead(CamelModel):
    start: datetime
    end: datetime
    local_start_time: str


class SlotsResponse(CamelModel):
    slot_date: date
    appointment_type: str
    duration: int
    timezone: str
    slots: list[SlotRead]
    diagnostics: list[str] = Field(default_factory=list)


# =============================================================================
# Appointments
# =============================================================================


class AppointmentCreate(CamelModel):
    """Manager books an explicit slot for a qualified inquiry."""

    inquiry_id: UUID
    type: AppointmentType
    scheduled_time: datetime
    duration: int = Field(30, ge=5, le=480)


class AppointmentRead(CamelModel):
    id: UUID
    inquiry_id: UUID
    manager_id: UUID
    type: str
    scheduled_time: datetime
    duration: int
    status: str
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_model(cls, appointment) -> "AppointmentRead":
        return cls(
            id=appointment.id,
            inquiry_id=appointment.inquiry_id,
            manager_id=appointment.manager_id,
            type=appointment.appointment_type,
            scheduled_time=appointment.scheduled_time,
            duration=appointment.duration_minutes,
            status=appointment.status,
            cancelled_at=appointment.cancelled_at,
            completed_at=appointment.completed_at,
            created_at=appointment.created_at,
        )
