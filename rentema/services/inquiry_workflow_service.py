"""Inquiry workflow state machine.

Every status change goes through ``transition``, which checks the edge
against TRANSITIONS and appends an immutable WorkflowEvent. Public
operations lock the inquiry row (SELECT ... FOR UPDATE) so concurrent
transitions on one inquiry serialize; different inquiries never block
each other.

The state machine never sends messages. The messaging collaborator reads
workflow events.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentema.core.config import settings
from rentema.core.errors import NotFoundError, StateError, ValidationError
from rentema.core.structured_logging import build_log_context
from rentema.db.enums import (
    InquiryStatus,
    OverrideType,
    WorkflowActor,
    WorkflowEventType,
)
from rentema.db.models import (
    AvailabilitySchedule,
    Inquiry,
    InquiryResponse,
    Property,
    QualificationCriteria,
    Question,
    QuestionnaireToken,
    WorkflowEvent,
)
from rentema.services import criteria_evaluator

logger = logging.getLogger(__name__)


S = InquiryStatus

TRANSITIONS: dict[InquiryStatus, frozenset[InquiryStatus]] = {
    S.NEW: frozenset({S.QUESTIONNAIRE_SENT, S.CANCELLED}),
    S.QUESTIONNAIRE_SENT: frozenset({S.QUESTIONNAIRE_COMPLETED, S.CANCELLED}),
    S.QUESTIONNAIRE_COMPLETED: frozenset({S.PRE_QUALIFYING, S.CANCELLED}),
    S.PRE_QUALIFYING: frozenset({S.QUALIFIED, S.DISQUALIFIED, S.CANCELLED}),
    S.QUALIFIED: frozenset({S.APPOINTMENT_SCHEDULED, S.DISQUALIFIED, S.CANCELLED}),
    # Leaves disqualified only through the qualify override
    S.DISQUALIFIED: frozenset({S.QUALIFIED, S.CANCELLED}),
    S.APPOINTMENT_SCHEDULED: frozenset({S.APPOINTMENT_COMPLETED, S.CANCELLED}),
    S.APPOINTMENT_COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

if set(TRANSITIONS) != set(InquiryStatus):
    raise RuntimeError("TRANSITIONS must cover every InquiryStatus")

# override → (target status, statuses it may be applied from)
OVERRIDE_RULES: dict[OverrideType, tuple[InquiryStatus, frozenset[InquiryStatus]]] = {
    OverrideType.QUALIFY: (S.QUALIFIED, frozenset({S.DISQUALIFIED})),
    OverrideType.DISQUALIFY: (S.DISQUALIFIED, frozenset({S.QUALIFIED, S.PRE_QUALIFYING})),
    OverrideType.CANCEL_APPOINTMENT: (S.CANCELLED, frozenset({S.APPOINTMENT_SCHEDULED})),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return InquiryStatus(target) in TRANSITIONS[InquiryStatus(current)]
    except ValueError:
        return False


# =============================================================================
# Low-level helpers (no commit)
# =============================================================================


def lock_inquiry(db: Session, inquiry_id: UUID) -> Inquiry:
    """Load an inquiry with a row lock held until the transaction ends."""
    inquiry = db.execute(
        select(Inquiry)
        .where(Inquiry.id == inquiry_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not inquiry:
        raise NotFoundError("Inquiry not found", inquiry_id=str(inquiry_id))
    return inquiry


def record_event(
    db: Session,
    inquiry: Inquiry,
    event_type: WorkflowEventType,
    *,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> WorkflowEvent:
    event = WorkflowEvent(
        inquiry_id=inquiry.id,
        event_type=event_type.value,
        from_status=from_status,
        to_status=to_status,
        actor=actor.value,
        actor_id=actor_id,
        reason=reason,
        event_metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    return event


def transition(
    db: Session,
    inquiry: Inquiry,
    target: InquiryStatus,
    *,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> WorkflowEvent:
    """
    Move an inquiry along one edge of TRANSITIONS.

    Caller must hold the inquiry lock and commit.

    Raises:
        StateError: edge not defined for the current status
    """
    current = inquiry.status
    if not can_transition(current, target.value):
        raise StateError(
            f"Cannot move inquiry from {current} to {target.value}",
            current_status=current,
        )

    inquiry.status = target.value
    event = record_event(
        db,
        inquiry,
        WorkflowEventType.STATUS_CHANGED,
        actor=actor,
        actor_id=actor_id,
        from_status=current,
        to_status=target.value,
        reason=reason,
        metadata=metadata,
    )
    logger.info(
        f"Inquiry status {current} -> {target.value} by {actor.value}",
        extra=build_log_context(inquiry_id=inquiry.id, property_id=inquiry.property_id),
    )
    return event


def _require_status(inquiry: Inquiry, *allowed: InquiryStatus) -> None:
    if inquiry.status not in {status.value for status in allowed}:
        raise StateError(
            f"Operation not allowed while inquiry is {inquiry.status}",
            current_status=inquiry.status,
        )


def _manager_id_for(db: Session, inquiry: Inquiry) -> UUID:
    return db.execute(
        select(Property.manager_id).where(Property.id == inquiry.property_id)
    ).scalar_one()


def _evaluate_locked(db: Session, inquiry: Inquiry) -> criteria_evaluator.QualificationVerdict:
    """Run the criteria against stored answers and move to qualified/disqualified."""
    _require_status(inquiry, S.PRE_QUALIFYING)

    criteria = (
        db.execute(
            select(QualificationCriteria)
            .where(QualificationCriteria.property_id == inquiry.property_id)
            .order_by(QualificationCriteria.position)
        )
        .scalars()
        .all()
    )
    live_questions = (
        db.execute(select(Question).where(Question.property_id == inquiry.property_id))
        .scalars()
        .all()
    )
    # Snapshot wins; questions added after the snapshot have no answer and fail closed
    questions: dict[str, Any] = {str(q.id): q for q in live_questions}
    for snap in inquiry.question_snapshot or []:
        questions[str(snap["id"])] = snap

    answers = {
        str(response.question_id): response.value
        for response in db.execute(
            select(InquiryResponse).where(InquiryResponse.inquiry_id == inquiry.id)
        ).scalars()
    }

    verdict = criteria_evaluator.evaluate(answers, criteria, questions)
    inquiry.qualification_result = {
        "qualified": verdict.qualified,
        "failedCriteria": criteria_evaluator.failed_criteria_payload(verdict.failed_criteria),
    }
    if verdict.diagnostics:
        logger.info(
            f"Qualification diagnostics: {len(verdict.diagnostics)} failing criteria",
            extra=build_log_context(inquiry_id=inquiry.id),
        )

    transition(
        db,
        inquiry,
        S.QUALIFIED if verdict.qualified else S.DISQUALIFIED,
        reason="criteria evaluated",
        metadata={"failed_count": len(verdict.failed_criteria)},
    )
    return verdict


def _invalidate_outstanding_tokens(db: Session, inquiry: Inquiry) -> int:
    from rentema.services import booking_token_service

    return booking_token_service.invalidate_outstanding(db, inquiry.id)


def _auto_offer(db: Session, inquiry_id: UUID) -> None:
    """
    Offer booking slots after an inquiry becomes qualified.

    Runs in its own transaction after the qualifying one committed. No
    schedule or no open slots leaves the inquiry qualified.
    """
    from rentema.services import booking_token_service

    inquiry = db.get(Inquiry, inquiry_id)
    if inquiry is None or inquiry.status != S.QUALIFIED.value:
        return

    manager_id = _manager_id_for(db, inquiry)
    schedule_id = db.execute(
        select(AvailabilitySchedule.id).where(
            AvailabilitySchedule.manager_id == manager_id,
            AvailabilitySchedule.schedule_type == settings.DEFAULT_OFFER_TYPE,
        )
    ).scalar_one_or_none()
    if schedule_id is None:
        logger.info(
            f"No {settings.DEFAULT_OFFER_TYPE} schedule; inquiry stays qualified",
            extra=build_log_context(inquiry_id=inquiry_id, manager_id=manager_id),
        )
        return

    tokens = booking_token_service.offer_slots(db, inquiry_id)
    if not tokens:
        logger.info(
            "No open slots to offer; inquiry stays qualified",
            extra=build_log_context(inquiry_id=inquiry_id, manager_id=manager_id),
        )


# =============================================================================
# Workflow operations
# =============================================================================


def send_questionnaire(
    db: Session,
    inquiry_id: UUID,
    *,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
) -> tuple[Inquiry, QuestionnaireToken | None]:
    """
    new → questionnaire_sent, snapshotting the property's questions.

    A property without questions walks straight on to evaluation, which
    qualifies (no criteria can reference a missing question).

    Returns:
        (inquiry, questionnaire token or None when nothing needs answering)
    """
    from rentema.services import inquiry_service, questionnaire_service

    inquiry = lock_inquiry(db, inquiry_id)
    _require_status(inquiry, S.NEW)
    snapshot = inquiry_service.snapshot_questions(db, inquiry)

    token = questionnaire_service.issue_token(db, inquiry) if snapshot else None
    transition(
        db,
        inquiry,
        S.QUESTIONNAIRE_SENT,
        actor=actor,
        actor_id=actor_id,
        metadata={
            "question_count": len(snapshot),
            "questionnaire_url": questionnaire_service.questionnaire_url(token.token)
            if token
            else None,
        },
    )

    if not snapshot:
        transition(db, inquiry, S.QUESTIONNAIRE_COMPLETED, reason="no questions configured")
        transition(db, inquiry, S.PRE_QUALIFYING)
        _evaluate_locked(db, inquiry)

    db.commit()
    db.refresh(inquiry)

    if inquiry.status == S.QUALIFIED.value:
        _auto_offer(db, inquiry.id)
        db.refresh(inquiry)
    return inquiry, token


def complete_questionnaire(
    db: Session,
    inquiry_id: UUID,
    answers: dict[str, Any],
    *,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
) -> Inquiry:
    """
    Store answers, then questionnaire_sent → questionnaire_completed → pre_qualifying → verdict.

    Raises:
        ValidationError: a snapshot question has no answer (nothing is persisted)
    """
    from rentema.services import inquiry_service

    inquiry = lock_inquiry(db, inquiry_id)
    _require_status(inquiry, S.QUESTIONNAIRE_SENT)

    normalized = {str(k): v for k, v in answers.items()}
    existing = inquiry_service.get_answers(db, inquiry.id)
    merged = {**existing, **normalized}
    missing = [
        str(q["id"])
        for q in inquiry.question_snapshot or []
        if merged.get(str(q["id"])) in (None, "")
    ]
    if missing:
        db.rollback()
        raise ValidationError("Every question must be answered", missing_question_ids=missing)

    inquiry_service.save_answers(db, inquiry, normalized)
    transition(db, inquiry, S.QUESTIONNAIRE_COMPLETED, actor=actor, actor_id=actor_id)
    transition(db, inquiry, S.PRE_QUALIFYING)
    _evaluate_locked(db, inquiry)
    db.commit()
    db.refresh(inquiry)

    if inquiry.status == S.QUALIFIED.value:
        _auto_offer(db, inquiry.id)
        db.refresh(inquiry)
    return inquiry


def evaluate_inquiry(db: Session, inquiry_id: UUID) -> criteria_evaluator.QualificationVerdict:
    """Evaluate an inquiry sitting in pre_qualifying."""
    inquiry = lock_inquiry(db, inquiry_id)
    verdict = _evaluate_locked(db, inquiry)
    db.commit()
    if verdict.qualified:
        _auto_offer(db, inquiry_id)
    return verdict


def mark_scheduled(
    db: Session,
    inquiry: Inquiry,
    *,
    appointment_id: UUID,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
) -> WorkflowEvent:
    """
    qualified → appointment_scheduled.

    Runs inside the booking transaction; the caller holds the inquiry lock
    and commits together with the appointment insert.
    """
    return transition(
        db,
        inquiry,
        S.APPOINTMENT_SCHEDULED,
        actor=actor,
        actor_id=actor_id,
        metadata={"appointment_id": str(appointment_id)},
    )


def complete_appointment(db: Session, inquiry_id: UUID, *, manager_id: UUID) -> Inquiry:
    """appointment_scheduled → appointment_completed; the appointment is marked completed."""
    from rentema.services import appointment_service

    inquiry = lock_inquiry(db, inquiry_id)
    _require_status(inquiry, S.APPOINTMENT_SCHEDULED)
    appointment = appointment_service.complete_active_appointment(db, inquiry.id)
    transition(
        db,
        inquiry,
        S.APPOINTMENT_COMPLETED,
        actor=WorkflowActor.MANAGER,
        actor_id=manager_id,
        metadata={"appointment_id": str(appointment.id)} if appointment else None,
    )
    db.commit()
    db.refresh(inquiry)
    return inquiry


def cancel_inquiry(
    db: Session,
    inquiry_id: UUID,
    *,
    actor: WorkflowActor = WorkflowActor.SYSTEM,
    actor_id: UUID | None = None,
    reason: str | None = None,
    commit: bool = True,
) -> Inquiry:
    """Any non-terminal status → cancelled. Frees appointments and voids booking links."""
    from rentema.services import appointment_service

    inquiry = lock_inquiry(db, inquiry_id)
    transition(db, inquiry, S.CANCELLED, actor=actor, actor_id=actor_id, reason=reason)
    appointment_service.cancel_active_appointments(db, inquiry.id)
    _invalidate_outstanding_tokens(db, inquiry)
    if commit:
        db.commit()
        db.refresh(inquiry)
    return inquiry


def apply_override(
    db: Session,
    inquiry_id: UUID,
    override: OverrideType,
    *,
    manager_id: UUID,
    reason: str | None = None,
) -> Inquiry:
    """
    Manager-forced transition that bypasses criteria.

    Idempotent when the inquiry already sits in the override's target
    status.

    Raises:
        StateError: override is not defined from the current status
    """
    from rentema.services import appointment_service

    inquiry = lock_inquiry(db, inquiry_id)
    target, allowed_from = OVERRIDE_RULES[override]

    if inquiry.status == target.value:
        db.rollback()
        return inquiry
    if inquiry.status not in {status.value for status in allowed_from}:
        raise StateError(
            f"Cannot apply {override.value} while inquiry is {inquiry.status}",
            current_status=inquiry.status,
        )

    metadata: dict[str, Any] = {"override": override.value}
    if override == OverrideType.QUALIFY:
        inquiry.qualification_result = {"qualified": True, "failedCriteria": [], "overridden": True}
    elif override == OverrideType.DISQUALIFY:
        previous = inquiry.qualification_result or {}
        inquiry.qualification_result = {
            "qualified": False,
            "failedCriteria": previous.get("failedCriteria", []),
            "overridden": True,
        }
        metadata["invalidated_tokens"] = _invalidate_outstanding_tokens(db, inquiry)
    elif override == OverrideType.CANCEL_APPOINTMENT:
        cancelled = appointment_service.cancel_active_appointments(db, inquiry.id)
        metadata["appointment_ids"] = [str(appt.id) for appt in cancelled]
        metadata["invalidated_tokens"] = _invalidate_outstanding_tokens(db, inquiry)

    transition(
        db,
        inquiry,
        target,
        actor=WorkflowActor.MANAGER,
        actor_id=manager_id,
        reason=reason,
        metadata=metadata,
    )
    db.commit()
    db.refresh(inquiry)

    if inquiry.status == S.QUALIFIED.value:
        _auto_offer(db, inquiry.id)
        db.refresh(inquiry)
    return inquiry
