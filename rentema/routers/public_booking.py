"""Public booking router - tenant-facing booking links.

Unauthenticated endpoints; the token in the path is the only credential.
Token errors surface as 404 (unknown), 410 (expired or superseded) and
409 (already used or slot taken) through the app-level error handler.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from rentema.core.deps import get_db
from rentema.core.rate_limit import PUBLIC_LIMIT, limiter
from rentema.schemas.booking import BookingConfirmResponse, BookingDetailsRead
from rentema.schemas.scheduling import AppointmentRead
from rentema.services import booking_token_service

router = APIRouter(prefix="/public/booking", tags=["public-booking"])


@router.get("/{token}", response_model=BookingDetailsRead)
@limiter.limit(PUBLIC_LIMIT)
def get_booking(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """Slot details for a booking link."""
    details = booking_token_service.get_booking_details(db, token)
    record = details.token
    return BookingDetailsRead(
        property_address=details.property_address,
        appointment_type=record.appointment_type,
        slot_date=record.slot_date,
        start_time=record.slot_start_time,
        slot_start=record.slot_start,
        duration=record.duration_minutes,
        timezone=details.timezone,
        expires_at=record.expires_at,
    )


@router.post("/{token}/confirm", response_model=BookingConfirmResponse)
@limiter.limit(PUBLIC_LIMIT)
def confirm_booking(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Book the slot behind a link.

    Exactly one confirmation per link succeeds.
    """
    appointment = booking_token_service.confirm(db, token)
    return BookingConfirmResponse(
        message="Your appointment is booked.",
        appointment=AppointmentRead.from_model(appointment),
    )
