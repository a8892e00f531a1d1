"""Tests for booking token offers and confirmation."""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from rentema.core.errors import (
    ConcurrencyConflictError,
    SlotNoLongerAvailableError,
    StateError,
    TokenAlreadyConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from rentema.db.enums import InquirySource, InquiryStatus, WorkflowEventType
from rentema.db.models import Appointment, BookingToken, Property, WorkflowEvent
from rentema.services import (
    appointment_service,
    availability_service,
    booking_token_service,
    inquiry_service,
    inquiry_workflow_service,
)
from rentema.services.slot_generator import TimeSlot


def qualified_inquiry(db: Session, prop: Property, screening: dict, suffix: str = "1"):
    inquiry = inquiry_service.create_inquiry(
        db,
        prop,
        platform_id="zillow",
        external_inquiry_id=f"ext-{suffix}",
        prospective_tenant_id=f"tenant-{suffix}",
        source_type=InquirySource.PLATFORM_API,
    )
    inquiry_workflow_service.send_questionnaire(db, inquiry.id)
    return inquiry_workflow_service.complete_questionnaire(
        db, inquiry.id, {screening["income"]: 5000, screening["pets"]: False}
    )


def current_tokens(db: Session, inquiry) -> list[BookingToken]:
    db.expire_all()
    return [
        token
        for token in booking_token_service.list_tokens_for_inquiry(db, inquiry.id)
        if token.generation == inquiry.offer_generation
    ]


def occupy(db: Session, manager, other_inquiry, token: BookingToken) -> Appointment:
    """Put another inquiry's scheduled appointment on the token's slot."""
    appointment = Appointment(
        inquiry_id=other_inquiry.id,
        manager_id=manager.id,
        appointment_type=token.appointment_type,
        scheduled_time=token.slot_start,
        duration_minutes=token.duration_minutes,
    )
    db.add(appointment)
    db.commit()
    return appointment


def test_qualification_offers_slots_automatically(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)

    assert inquiry.offer_generation == 1
    tokens = current_tokens(db, inquiry)
    assert 0 < len(tokens) <= 10
    assert all(token.appointment_type == "video_call" for token in tokens)
    offered = db.query(WorkflowEvent).filter(
        WorkflowEvent.inquiry_id == inquiry.id,
        WorkflowEvent.event_type == WorkflowEventType.SLOTS_OFFERED.value,
    ).one()
    assert len(offered.event_metadata["slots"]) == len(tokens)


def test_no_schedule_leaves_inquiry_qualified_without_tokens(db, rental, screening):
    inquiry = qualified_inquiry(db, rental, screening)

    assert inquiry.status == InquiryStatus.QUALIFIED.value
    assert booking_token_service.list_tokens_for_inquiry(db, inquiry.id) == []


def test_confirm_books_slot_and_schedules_inquiry(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    token = current_tokens(db, inquiry)[0]

    appointment = booking_token_service.confirm(db, token.token)

    assert appointment.scheduled_time == token.slot_start
    assert appointment.status == "scheduled"
    db.refresh(inquiry)
    assert inquiry.status == InquiryStatus.APPOINTMENT_SCHEDULED.value


def test_confirm_locks_schedule_and_inquiry_before_claiming_token(
    db, rental, screening, video_schedule, monkeypatch
):
    inquiry = qualified_inquiry(db, rental, screening)
    token = current_tokens(db, inquiry)[0]
    calls = []

    def record(name, original):
        def wrapped(*args, **kwargs):
            calls.append(name)
            return original(*args, **kwargs)

        return wrapped

    monkeypatch.setattr(
        appointment_service, "lock_schedule", record("schedule", appointment_service.lock_schedule)
    )
    monkeypatch.setattr(
        inquiry_workflow_service,
        "lock_inquiry",
        record("inquiry", inquiry_workflow_service.lock_inquiry),
    )
    monkeypatch.setattr(booking_token_service, "_claim", record("claim", booking_token_service._claim))

    booking_token_service.confirm(db, token.token)

    assert calls[:3] == ["schedule", "inquiry", "claim"]


def test_confirm_on_inquiry_no_longer_qualified_leaves_token_unclaimed(
    db, rental, screening, video_schedule
):
    inquiry = qualified_inquiry(db, rental, screening)
    token = current_tokens(db, inquiry)[0]
    inquiry.status = InquiryStatus.DISQUALIFIED.value
    db.commit()

    with pytest.raises(StateError):
        booking_token_service.confirm(db, token.token)

    db.expire_all()
    assert db.get(BookingToken, token.token).consumed_at is None


def test_second_confirm_of_same_token_fails(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    token = current_tokens(db, inquiry)[0].token

    booking_token_service.confirm(db, token)
    with pytest.raises(TokenAlreadyConsumedError):
        booking_token_service.confirm(db, token)

    assert db.query(Appointment).filter(Appointment.inquiry_id == inquiry.id).count() == 1


def test_sibling_tokens_are_void_after_booking(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    first, second = current_tokens(db, inquiry)[:2]

    booking_token_service.confirm(db, first.token)

    with pytest.raises(TokenExpiredError):
        booking_token_service.confirm(db, second.token)


def test_unknown_token(db):
    with pytest.raises(TokenNotFoundError):
        booking_token_service.get_booking_details(db, "nope")


def test_expired_token(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    token = current_tokens(db, inquiry)[0]
    later = token.expires_at + timedelta(seconds=1)

    with pytest.raises(TokenExpiredError):
        booking_token_service.get_booking_details(db, token.token, now=later)
    with pytest.raises(TokenExpiredError):
        booking_token_service.confirm(db, token.token, now=later)


def test_new_offer_supersedes_previous_batch(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    old = current_tokens(db, inquiry)[0].token

    booking_token_service.offer_slots(db, inquiry.id)

    db.refresh(inquiry)
    assert inquiry.offer_generation == 2
    with pytest.raises(TokenExpiredError):
        booking_token_service.confirm(db, old)
    assert booking_token_service.confirm(db, current_tokens(db, inquiry)[0].token)


def test_issue_single_token_starts_new_batch(db, manager, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    old = current_tokens(db, inquiry)
    slot = TimeSlot(old[-1].slot_start, old[-1].slot_start + timedelta(minutes=30))

    fresh = booking_token_service.issue_token(
        db, inquiry, slot, "video_call", 30, manager=manager
    )
    db.commit()

    assert fresh.generation == 2
    assert fresh.slot_start_time == old[-1].slot_start_time
    with pytest.raises(TokenExpiredError):
        booking_token_service.get_booking_details(db, old[0].token)
    assert booking_token_service.get_booking_details(db, fresh.token).token.token == fresh.token


def test_offer_requires_qualified_inquiry(db, rental, screening, video_schedule):
    inquiry = inquiry_service.create_inquiry(
        db,
        rental,
        platform_id="zillow",
        external_inquiry_id="ext-new",
        prospective_tenant_id="tenant-new",
    )
    with pytest.raises(StateError):
        booking_token_service.offer_slots(db, inquiry.id)


def test_taken_slot_consumes_token_with_failure_reason(
    db, manager, rental, screening, video_schedule
):
    inquiry = qualified_inquiry(db, rental, screening, "a")
    other = qualified_inquiry(db, rental, screening, "b")
    token = current_tokens(db, inquiry)[0]
    occupy(db, manager, other, token)

    with pytest.raises(SlotNoLongerAvailableError):
        booking_token_service.confirm(db, token.token)

    db.expire_all()
    record = db.get(BookingToken, token.token)
    assert record.consumed_at is not None
    assert record.failure_reason == "slot_unavailable"
    with pytest.raises(TokenAlreadyConsumedError):
        booking_token_service.confirm(db, token.token)
    db.refresh(inquiry)
    assert inquiry.status == InquiryStatus.QUALIFIED.value


def test_insert_race_reports_conflict_and_reoffers_once(
    db, manager, rental, screening, video_schedule, monkeypatch
):
    inquiry = qualified_inquiry(db, rental, screening, "a")
    other = qualified_inquiry(db, rental, screening, "b")
    token = current_tokens(db, inquiry)[0]
    occupy(db, manager, other, token)
    # Simulate losing the race after the generator re-check
    monkeypatch.setattr(availability_service, "slot_is_open", lambda *args, **kwargs: True)

    with pytest.raises(ConcurrencyConflictError):
        booking_token_service.confirm(db, token.token)

    db.expire_all()
    assert db.get(BookingToken, token.token).failure_reason == "concurrency_conflict"
    db.refresh(inquiry)
    assert inquiry.status == InquiryStatus.QUALIFIED.value
    assert inquiry.offer_generation == 2
    scheduled = db.query(Appointment).filter(
        Appointment.scheduled_time == token.slot_start,
        Appointment.status == "scheduled",
    ).count()
    assert scheduled == 1


def test_cancelling_appointment_frees_the_slot(db, manager, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    token = current_tokens(db, inquiry)[0]
    appointment = booking_token_service.confirm(db, token.token)

    taken = availability_service.get_available_slots(
        db, manager, token.slot_date, "video_call", token.duration_minutes
    )
    assert token.slot_start not in [slot.start for slot in taken.slots]

    appointment_service.cancel_appointment(db, manager.id, appointment.id)

    freed = availability_service.get_available_slots(
        db, manager, token.slot_date, "video_call", token.duration_minutes
    )
    assert token.slot_start in [slot.start for slot in freed.slots]
    db.refresh(inquiry)
    assert inquiry.status == InquiryStatus.CANCELLED.value


def test_purge_removes_long_expired_unconsumed_tokens(db, rental, screening, video_schedule):
    inquiry = qualified_inquiry(db, rental, screening)
    tokens = current_tokens(db, inquiry)
    far_future = tokens[0].expires_at + timedelta(days=2)

    removed = booking_token_service.purge_expired_tokens(db, now=far_future)

    assert removed == len(tokens)
    assert booking_token_service.list_tokens_for_inquiry(db, inquiry.id) == []
