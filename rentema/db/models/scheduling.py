"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentema.db.base import Base
from rentema.db.enums import DEFAULT_APPOINTMENT_STATUS
from rentema.db.models.managers import utc_now
from rentema.db.models.qualification import JSONVariant

if TYPE_CHECKING:
    from rentema.db.models import Inquiry, PropertyManager


class AvailabilitySchedule(Base):
    """
    Recurring weekly availability for one appointment type.

    ``recurring_weekly`` maps a lowercase weekday name to an ordered list of
    ``{"startTime": "HH:MM", "endTime": "HH:MM"}`` blocks in the manager's
    local wall clock. ``blocked_dates`` is a list of inclusive
    ``{"startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"}`` ranges.

    The row doubles as the per-manager-per-type mutex during booking.
    """

    __tablename__ = "availability_schedules"
    __table_args__ = (
        UniqueConstraint("manager_id", "schedule_type", name="uq_schedule_manager_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    manager_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("property_managers.id", ondelete="CASCADE"), nullable=False
    )
    schedule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recurring_weekly: Mapped[dict[str, Any]] = mapped_column(
        JSONVariant, default=dict, nullable=False
    )
    blocked_dates: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONVariant, default=list, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now, nullable=False)

    manager: Mapped["PropertyManager"] = relationship(back_populates="schedules")


class Appointment(Base):
    """
    A booked viewing or video call.

    Only ``scheduled`` appointments occupy their slot; the partial unique
    index rejects a second scheduled appointment at the same start.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_manager_time", "manager_id", "scheduled_time"),
        Index("idx_appointments_inquiry", "inquiry_id"),
        Index(
            "uq_appointments_manager_type_time_scheduled",
            "manager_id",
            "appointment_type",
            "scheduled_time",
            unique=True,
            postgresql_where=text("status = 'scheduled'"),
            sqlite_where=text("status = 'scheduled'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("property_managers.id", ondelete="CASCADE"), nullable=False
    )
    appointment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scheduled_time: Mapped[datetime] = mapped_column(nullable=False)  # UTC
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_APPOINTMENT_STATUS.value, nullable=False
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now, nullable=False)

    inquiry: Mapped["Inquiry"] = relationship(back_populates="appointments")


class BookingToken(Base):
    """
    Single-use public booking link for one offered slot.

    Lifecycle: issued → consumed, or issued → expired (lazily, at read time).
    A token whose ``generation`` is behind its inquiry's ``offer_generation``
    has been superseded and reads as expired.
    """

    __tablename__ = "booking_tokens"
    __table_args__ = (
        Index("idx_booking_tokens_inquiry", "inquiry_id", "generation"),
        Index("idx_booking_tokens_expires", "expires_at"),
    )

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("property_managers.id", ondelete="CASCADE"), nullable=False
    )

    # Offered slot
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM local
    slot_start: Mapped[datetime] = mapped_column(nullable=False)  # UTC
    appointment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    generation: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    invalidated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
