"""Booking token service - public single-use booking links.

Token lifecycle: issued → consumed, or issued → expired. Expiry is lazy
(checked when the token is read). Issuing a new batch bumps the inquiry's
``offer_generation`` and invalidates unconsumed tokens from older batches,
so only the latest offer can be booked.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import NamedTuple
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentema.core.config import settings
from rentema.core.errors import (
    ConcurrencyConflictError,
    EngineError,
    NotFoundError,
    SlotNoLongerAvailableError,
    StateError,
    TokenAlreadyConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from rentema.core.security import generate_token
from rentema.core.structured_logging import build_log_context
from rentema.db.enums import (
    InquiryStatus,
    TokenFailureReason,
    WorkflowActor,
    WorkflowEventType,
)
from rentema.db.models import (
    Appointment,
    BookingToken,
    Inquiry,
    Property,
    PropertyManager,
)
from rentema.services import availability_service
from rentema.services.slot_generator import TimeSlot, get_timezone, local_start_time

logger = logging.getLogger(__name__)


class BookingDetails(NamedTuple):
    """Public view of a booking token."""

    token: BookingToken
    property_address: str
    timezone: str


def booking_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/booking/{token}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Issuing
# =============================================================================


def invalidate_outstanding(db: Session, inquiry_id: UUID, now: datetime | None = None) -> int:
    """Void every unconsumed, still-valid token of an inquiry. Returns the count."""
    result = db.execute(
        update(BookingToken)
        .where(
            BookingToken.inquiry_id == inquiry_id,
            BookingToken.consumed_at.is_(None),
            BookingToken.invalidated_at.is_(None),
        )
        .values(invalidated_at=now or _now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def issue_tokens(
    db: Session,
    inquiry: Inquiry,
    slots: list[TimeSlot],
    appointment_type: str,
    duration_minutes: int,
    *,
    manager: PropertyManager,
    now: datetime | None = None,
) -> list[BookingToken]:
    """
    Issue one token per slot as a new offer batch.

    Caller holds the inquiry lock and commits.
    """
    now = now or _now()
    tz = get_timezone(manager.timezone)

    invalidate_outstanding(db, inquiry.id, now)
    inquiry.offer_generation = (inquiry.offer_generation or 0) + 1
    expires_at = now + timedelta(hours=settings.BOOKING_TOKEN_TTL_HOURS)

    tokens = []
    for slot in slots:
        token = BookingToken(
            token=generate_token(),
            inquiry_id=inquiry.id,
            manager_id=manager.id,
            slot_date=slot.start.astimezone(tz).date(),
            slot_start_time=local_start_time(slot, manager.timezone),
            slot_start=slot.start,
            appointment_type=appointment_type,
            duration_minutes=duration_minutes,
            generation=inquiry.offer_generation,
            expires_at=expires_at,
        )
        db.add(token)
        tokens.append(token)
    db.flush()
    return tokens


def issue_token(
    db: Session,
    inquiry: Inquiry,
    slot: TimeSlot,
    appointment_type: str,
    duration_minutes: int,
    *,
    manager: PropertyManager,
    now: datetime | None = None,
) -> BookingToken:
    """Issue a batch of one."""
    return issue_tokens(
        db, inquiry, [slot], appointment_type, duration_minutes, manager=manager, now=now
    )[0]


def offer_slots(
    db: Session,
    inquiry_id: UUID,
    appointment_type: str | None = None,
    duration_minutes: int | None = None,
    days_ahead: int | None = None,
    max_slots: int | None = None,
    *,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
    now: datetime | None = None,
) -> list[BookingToken]:
    """
    Collect upcoming open slots and issue a booking token for each.

    Returns an empty list (and issues nothing) when there are no open
    slots. Appends a ``slots_offered`` workflow event otherwise.

    Raises:
        StateError: inquiry is not qualified
        NotFoundError: manager has no schedule for the appointment type
    """
    from rentema.services import inquiry_workflow_service

    appointment_type = appointment_type or settings.DEFAULT_OFFER_TYPE
    duration_minutes = duration_minutes or settings.DEFAULT_SLOT_DURATION_MINUTES
    days_ahead = days_ahead or settings.OFFER_DAYS_AHEAD
    max_slots = max_slots or settings.OFFER_MAX_SLOTS
    now = now or _now()

    inquiry = inquiry_workflow_service.lock_inquiry(db, inquiry_id)
    if inquiry.status != InquiryStatus.QUALIFIED.value:
        db.rollback()
        raise StateError(
            f"Slots can only be offered to qualified inquiries, not {inquiry.status}",
            current_status=inquiry.status,
        )

    manager = _manager_for_inquiry(db, inquiry)
    schedule = availability_service.get_schedule(db, manager.id, appointment_type)
    if not schedule:
        db.rollback()
        raise NotFoundError(f"No {appointment_type} availability schedule")

    slots = availability_service.collect_upcoming_slots(
        db, manager, schedule, duration_minutes, days_ahead, max_slots, now
    )
    if not slots:
        db.rollback()
        return []

    tokens = issue_tokens(
        db, inquiry, slots, appointment_type, duration_minutes, manager=manager, now=now
    )
    inquiry_workflow_service.record_event(
        db,
        inquiry,
        WorkflowEventType.SLOTS_OFFERED,
        actor=actor,
        actor_id=actor_id,
        from_status=inquiry.status,
        to_status=inquiry.status,
        metadata={
            "generation": inquiry.offer_generation,
            "appointment_type": appointment_type,
            "duration_minutes": duration_minutes,
            "slots": [
                {
                    "token": token.token,
                    "booking_url": booking_url(token.token),
                    "slot_start": token.slot_start.isoformat(),
                }
                for token in tokens
            ],
        },
    )
    db.commit()
    logger.info(
        f"Offered {len(tokens)} {appointment_type} slots (generation {inquiry.offer_generation})",
        extra=build_log_context(inquiry_id=inquiry.id, manager_id=manager.id),
    )
    return tokens


# =============================================================================
# Reading and confirming
# =============================================================================


def _load_token(db: Session, token: str) -> BookingToken:
    record = db.execute(
        select(BookingToken)
        .where(BookingToken.token == token)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not record:
        raise TokenNotFoundError()
    return record


def _ensure_usable(record: BookingToken, offer_generation: int, now: datetime) -> None:
    if record.consumed_at is not None:
        raise TokenAlreadyConsumedError()
    # Superseded by a newer batch reads as expired
    if record.invalidated_at is not None or record.generation < offer_generation:
        raise TokenExpiredError()
    if record.expires_at <= now:
        raise TokenExpiredError()


def _current_generation(db: Session, inquiry_id: UUID) -> int:
    return db.execute(
        select(Inquiry.offer_generation).where(Inquiry.id == inquiry_id)
    ).scalar_one()


def _manager_for_inquiry(db: Session, inquiry: Inquiry) -> PropertyManager:
    return db.execute(
        select(PropertyManager)
        .join(Property, Property.manager_id == PropertyManager.id)
        .where(Property.id == inquiry.property_id)
    ).scalar_one()


def get_booking_details(db: Session, token: str, now: datetime | None = None) -> BookingDetails:
    """
    Public view of a token.

    Raises:
        TokenNotFoundError, TokenExpiredError, TokenAlreadyConsumedError
    """
    record = _load_token(db, token)
    _ensure_usable(record, _current_generation(db, record.inquiry_id), now or _now())

    property_address, manager_timezone = db.execute(
        select(Property.address, PropertyManager.timezone)
        .join(Inquiry, Inquiry.property_id == Property.id)
        .join(PropertyManager, PropertyManager.id == Property.manager_id)
        .where(Inquiry.id == record.inquiry_id)
    ).one()
    return BookingDetails(record, property_address, manager_timezone)


def _claim(db: Session, token: str, now: datetime) -> bool:
    """Conditional UPDATE; only one concurrent caller gets a row back."""
    result = db.execute(
        update(BookingToken)
        .where(
            BookingToken.token == token,
            BookingToken.consumed_at.is_(None),
            BookingToken.invalidated_at.is_(None),
        )
        .values(consumed_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _record_failure(db: Session, token: str, reason: TokenFailureReason, now: datetime) -> None:
    db.execute(
        update(BookingToken)
        .where(BookingToken.token == token)
        .values(
            consumed_at=now,
            failure_reason=reason.value,
        )
        .execution_options(synchronize_session=False)
    )


def confirm(db: Session, token: str, now: datetime | None = None) -> Appointment:
    """
    Book the slot bound to a token.

    Steps: validate → lock the schedule row and the inquiry → re-validate
    and claim the token atomically → re-run the slot generator → insert the
    appointment and move the inquiry to appointment_scheduled in one
    transaction. The lock order matches manual booking and slot offers.

    Raises:
        TokenNotFoundError, TokenExpiredError, TokenAlreadyConsumedError
        SlotNoLongerAvailableError: slot taken or removed since the offer;
            the token is consumed and cannot be retried
        ConcurrencyConflictError: insert lost a race; a fresh batch is offered once
        StateError: inquiry is no longer qualified
    """
    from rentema.services import appointment_service, inquiry_workflow_service

    now = now or _now()
    record = _load_token(db, token)
    _ensure_usable(record, _current_generation(db, record.inquiry_id), now)

    inquiry_id = record.inquiry_id
    manager_id = record.manager_id
    log_context = build_log_context(inquiry_id=inquiry_id, manager_id=manager_id)

    # Lock order everywhere: schedule row, inquiry row, then token rows
    schedule = appointment_service.lock_schedule(db, manager_id, record.appointment_type)
    inquiry = inquiry_workflow_service.lock_inquiry(db, inquiry_id)
    try:
        _ensure_usable(_load_token(db, token), inquiry.offer_generation, now)
    except EngineError:
        db.rollback()
        raise
    if inquiry.status != InquiryStatus.QUALIFIED.value:
        db.rollback()
        raise StateError(
            f"Inquiry can no longer be booked ({inquiry.status})",
            current_status=inquiry.status,
        )

    if not _claim(db, token, now):
        db.rollback()
        record = _load_token(db, token)
        if record.consumed_at is not None:
            raise TokenAlreadyConsumedError()
        raise TokenExpiredError()
    record = _load_token(db, token)

    manager = db.get(PropertyManager, manager_id)
    if schedule is None or not availability_service.slot_is_open(
        db,
        manager,
        schedule,
        record.slot_date,
        record.slot_start,
        record.duration_minutes,
        now,
    ):
        _record_failure(db, token, TokenFailureReason.SLOT_UNAVAILABLE, now)
        db.commit()
        logger.info("Booking token slot no longer available", extra=log_context)
        raise SlotNoLongerAvailableError()

    try:
        appointment = appointment_service.insert_appointment(
            db,
            inquiry_id=inquiry.id,
            manager_id=manager_id,
            appointment_type=record.appointment_type,
            scheduled_time=record.slot_start,
            duration_minutes=record.duration_minutes,
        )
    except IntegrityError:
        db.rollback()
        _record_failure(db, token, TokenFailureReason.CONCURRENCY_CONFLICT, now)
        db.commit()
        logger.warning("Booking insert lost a race; re-offering slots", extra=log_context)
        _reoffer_once(db, inquiry_id)
        raise ConcurrencyConflictError(
            "This time was just booked by someone else. We've sent you new times."
        )

    record.appointment_id = appointment.id
    inquiry_workflow_service.mark_scheduled(db, inquiry, appointment_id=appointment.id)
    # Sibling links from the same batch are void once one is booked
    invalidate_outstanding(db, inquiry.id, now)
    db.commit()
    db.refresh(appointment)
    logger.info(
        "Booking token confirmed",
        extra=build_log_context(
            inquiry_id=inquiry_id, manager_id=manager_id, appointment_id=appointment.id
        ),
    )
    return appointment


def _reoffer_once(db: Session, inquiry_id: UUID) -> None:
    try:
        offer_slots(db, inquiry_id)
    except EngineError as exc:
        db.rollback()
        logger.warning(
            f"Re-offer after conflict failed: {exc.code}",
            extra=build_log_context(inquiry_id=inquiry_id),
        )


# =============================================================================
# Housekeeping
# =============================================================================


def list_tokens_for_inquiry(db: Session, inquiry_id: UUID) -> list[BookingToken]:
    return db.query(BookingToken).filter(
        BookingToken.inquiry_id == inquiry_id,
    ).order_by(BookingToken.generation.desc(), BookingToken.slot_start).all()


def purge_expired_tokens(db: Session, older_than_hours: int = 24, now: datetime | None = None) -> int:
    """
    Delete unconsumed tokens expired for longer than ``older_than_hours``.

    Storage hygiene only; expiry is enforced lazily at read time.
    """
    cutoff = (now or _now()) - timedelta(hours=older_than_hours)
    result = db.execute(
        delete(BookingToken)
        .where(
            BookingToken.expires_at < cutoff,
            BookingToken.consumed_at.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0
