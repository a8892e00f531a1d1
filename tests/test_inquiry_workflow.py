"""Tests for the inquiry workflow state machine."""

import pytest
from sqlalchemy.orm import Session

from rentema.core.errors import StateError, ValidationError
from rentema.db.enums import InquiryStatus, InquirySource, OverrideType, WorkflowEventType
from rentema.db.models import BookingToken, Property, WorkflowEvent
from rentema.services import (
    inquiry_service,
    inquiry_workflow_service,
    property_service,
    qualification_service,
)


def make_inquiry(db: Session, prop: Property, suffix: str = "1"):
    return inquiry_service.create_inquiry(
        db,
        prop,
        platform_id="zillow",
        external_inquiry_id=f"ext-{suffix}",
        prospective_tenant_id=f"tenant-{suffix}",
        prospective_tenant_name="Jordan",
        source_type=InquirySource.PLATFORM_API,
    )


def answer(db: Session, inquiry, screening: dict, income, pets):
    inquiry_workflow_service.send_questionnaire(db, inquiry.id)
    return inquiry_workflow_service.complete_questionnaire(
        db, inquiry.id, {screening["income"]: income, screening["pets"]: pets}
    )


def status_trail(db: Session, inquiry_id):
    events = db.query(WorkflowEvent).filter(
        WorkflowEvent.inquiry_id == inquiry_id,
        WorkflowEvent.event_type == WorkflowEventType.STATUS_CHANGED.value,
    ).order_by(WorkflowEvent.created_at).all()
    return [e.to_status for e in events]


def test_transition_table_has_no_exits_from_terminal_states():
    for status in (InquiryStatus.APPOINTMENT_COMPLETED, InquiryStatus.CANCELLED):
        assert inquiry_workflow_service.TRANSITIONS[status] == frozenset()
    assert not inquiry_workflow_service.can_transition("new", "qualified")
    assert inquiry_workflow_service.can_transition("qualified", "appointment_scheduled")


def test_send_questionnaire_snapshots_questions(db, rental, screening):
    inquiry = make_inquiry(db, rental)
    inquiry, token = inquiry_workflow_service.send_questionnaire(db, inquiry.id)

    assert inquiry.status == InquiryStatus.QUESTIONNAIRE_SENT.value
    assert token is not None
    assert [q["id"] for q in inquiry.question_snapshot] == [screening["income"], screening["pets"]]


def test_passing_answers_qualify(db, rental, screening):
    inquiry = answer(db, make_inquiry(db, rental), screening, 5000, False)

    assert inquiry.status == InquiryStatus.QUALIFIED.value
    assert inquiry.qualification_result == {"qualified": True, "failedCriteria": []}
    assert status_trail(db, inquiry.id) == [
        "new",
        "questionnaire_sent",
        "questionnaire_completed",
        "pre_qualifying",
        "qualified",
    ]


def test_failing_answers_disqualify_with_failed_criteria(db, rental, screening):
    inquiry = answer(db, make_inquiry(db, rental), screening, 1000, False)

    assert inquiry.status == InquiryStatus.DISQUALIFIED.value
    failed = inquiry.qualification_result["failedCriteria"]
    assert len(failed) == 1
    assert failed[0]["questionId"] == screening["income"]


def test_missing_answer_is_rejected_and_nothing_changes(db, rental, screening):
    inquiry = make_inquiry(db, rental)
    inquiry_workflow_service.send_questionnaire(db, inquiry.id)

    with pytest.raises(ValidationError) as exc_info:
        inquiry_workflow_service.complete_questionnaire(db, inquiry.id, {screening["income"]: 5000})

    assert exc_info.value.details["missing_question_ids"] == [screening["pets"]]
    db.refresh(inquiry)
    assert inquiry.status == InquiryStatus.QUESTIONNAIRE_SENT.value
    assert inquiry_service.get_answers(db, inquiry.id) == {}


def test_property_without_questions_qualifies_on_send(db, rental):
    inquiry = make_inquiry(db, rental)
    inquiry, token = inquiry_workflow_service.send_questionnaire(db, inquiry.id)

    assert token is None
    assert inquiry.status == InquiryStatus.QUALIFIED.value


def test_submitted_answers_reach_evaluation_in_same_transaction(db, rental, screening):
    income_id = screening["income"]
    qualification_service.save_criteria(
        db,
        rental,
        [{"question_id": income_id, "operator": "greater_than", "expected_value": 700}],
    )

    inquiry = answer(db, make_inquiry(db, rental), screening, 750, True)

    assert inquiry.status == InquiryStatus.QUALIFIED.value
    assert inquiry.qualification_result == {"qualified": True, "failedCriteria": []}
    assert inquiry_service.get_answers(db, inquiry.id) == {
        screening["income"]: 750,
        screening["pets"]: True,
    }


def test_non_finite_answer_disqualifies_instead_of_raising(db, rental, screening):
    inquiry = answer(db, make_inquiry(db, rental), screening, float("nan"), False)

    assert inquiry.status == InquiryStatus.DISQUALIFIED.value
    failed = inquiry.qualification_result["failedCriteria"]
    assert [c["questionId"] for c in failed] == [screening["income"]]
    assert inquiry_service.get_answers(db, inquiry.id)[screening["income"]] == "nan"


def test_evaluate_inquiry_only_runs_from_pre_qualifying(db, rental, screening):
    inquiry = make_inquiry(db, rental)
    inquiry, _ = inquiry_workflow_service.send_questionnaire(db, inquiry.id)

    with pytest.raises(StateError):
        inquiry_workflow_service.evaluate_inquiry(db, inquiry.id)
    db.rollback()

    inquiry_service.save_answers(
        db, inquiry, {screening["income"]: "1800", screening["pets"]: "yes"}
    )
    inquiry.status = InquiryStatus.PRE_QUALIFYING.value
    db.commit()

    verdict = inquiry_workflow_service.evaluate_inquiry(db, inquiry.id)

    assert not verdict.qualified
    assert len(verdict.failed_criteria) == 2
    db.refresh(inquiry)
    assert inquiry.status == InquiryStatus.DISQUALIFIED.value


def test_qualify_override_from_new_is_a_state_error(db, manager, rental):
    inquiry = make_inquiry(db, rental)

    with pytest.raises(StateError) as exc_info:
        inquiry_workflow_service.apply_override(
            db, inquiry.id, OverrideType.QUALIFY, manager_id=manager.id
        )
    assert exc_info.value.current_status == "new"


def test_qualify_override_rescues_disqualified_inquiry(db, manager, rental, screening):
    inquiry = answer(db, make_inquiry(db, rental), screening, 1000, True)
    assert inquiry.status == InquiryStatus.DISQUALIFIED.value

    inquiry = inquiry_workflow_service.apply_override(
        db, inquiry.id, OverrideType.QUALIFY, manager_id=manager.id, reason="guarantor"
    )

    assert inquiry.status == InquiryStatus.QUALIFIED.value
    assert inquiry.qualification_result["qualified"] is True
    last = db.query(WorkflowEvent).filter(
        WorkflowEvent.inquiry_id == inquiry.id,
    ).order_by(WorkflowEvent.created_at.desc()).first()
    assert last.actor == "manager"
    assert last.actor_id == manager.id
    assert last.reason == "guarantor"


def test_override_into_current_status_is_idempotent(db, manager, rental, screening):
    inquiry = answer(db, make_inquiry(db, rental), screening, 5000, False)
    before = len(status_trail(db, inquiry.id))

    inquiry = inquiry_workflow_service.apply_override(
        db, inquiry.id, OverrideType.QUALIFY, manager_id=manager.id
    )

    assert inquiry.status == InquiryStatus.QUALIFIED.value
    assert len(status_trail(db, inquiry.id)) == before


def test_disqualify_override_voids_outstanding_booking_tokens(
    db, manager, rental, screening, video_schedule
):
    inquiry = answer(db, make_inquiry(db, rental), screening, 5000, False)
    tokens = db.query(BookingToken).filter(BookingToken.inquiry_id == inquiry.id).all()
    assert tokens

    inquiry_workflow_service.apply_override(
        db, inquiry.id, OverrideType.DISQUALIFY, manager_id=manager.id
    )

    for token in db.query(BookingToken).filter(BookingToken.inquiry_id == inquiry.id):
        assert token.invalidated_at is not None


def test_cancel_appointment_override_requires_scheduled_inquiry(db, manager, rental, screening):
    inquiry = answer(db, make_inquiry(db, rental), screening, 5000, False)

    with pytest.raises(StateError):
        inquiry_workflow_service.apply_override(
            db, inquiry.id, OverrideType.CANCEL_APPOINTMENT, manager_id=manager.id
        )


def test_terminal_inquiry_cannot_be_cancelled_again(db, rental):
    inquiry = make_inquiry(db, rental)
    inquiry_workflow_service.cancel_inquiry(db, inquiry.id, reason="withdrawn")

    with pytest.raises(StateError):
        inquiry_workflow_service.cancel_inquiry(db, inquiry.id)


def test_archiving_property_cancels_open_inquiries(db, manager, rental, screening):
    open_inquiry = make_inquiry(db, rental, "open")
    done = answer(db, make_inquiry(db, rental, "done"), screening, 1000, False)
    inquiry_workflow_service.cancel_inquiry(db, done.id)

    prop, cancelled = property_service.archive_property(db, manager.id, rental.id)

    assert prop.is_archived is True
    assert cancelled == 1
    db.refresh(open_inquiry)
    assert open_inquiry.status == InquiryStatus.CANCELLED.value


def test_archived_property_rejects_new_inquiries(db, manager, rental):
    property_service.archive_property(db, manager.id, rental.id)

    with pytest.raises(ValidationError):
        make_inquiry(db, rental)
