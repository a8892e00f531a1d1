"""Inquiry service - creation, answers, notes, listing."""

from __future__ import annotations

import logging
import math
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from rentema.core.errors import NotFoundError, ValidationError
from rentema.core.security import generate_token
from rentema.core.structured_logging import build_log_context
from rentema.db.enums import (
    TERMINAL_INQUIRY_STATUSES,
    InquirySource,
    InquiryStatus,
    WorkflowEventType,
)
from rentema.db.models import Inquiry, InquiryNote, InquiryResponse, Property, Question
from rentema.services import property_service

logger = logging.getLogger(__name__)

TEST_PLATFORM_ID = "test"


def create_inquiry(
    db: Session,
    prop: Property,
    *,
    platform_id: str,
    external_inquiry_id: str,
    prospective_tenant_id: str,
    prospective_tenant_name: str | None = None,
    source_type: InquirySource = InquirySource.MANUAL,
    source_metadata: dict[str, Any] | None = None,
) -> Inquiry:
    """Create an inquiry in ``new`` status."""
    from rentema.services import inquiry_workflow_service

    if prop.is_archived:
        raise ValidationError("Archived properties do not accept inquiries")

    inquiry = Inquiry(
        property_id=prop.id,
        platform_id=platform_id,
        external_inquiry_id=external_inquiry_id,
        prospective_tenant_id=prospective_tenant_id,
        prospective_tenant_name=prospective_tenant_name,
        status=InquiryStatus.NEW.value,
        source_type=source_type.value,
        source_metadata=source_metadata or {},
        offer_generation=0,
    )
    db.add(inquiry)
    db.flush()
    inquiry_workflow_service.record_event(
        db,
        inquiry,
        WorkflowEventType.STATUS_CHANGED,
        to_status=InquiryStatus.NEW.value,
        reason="inquiry received",
        metadata={"source_type": source_type.value},
    )
    db.commit()
    db.refresh(inquiry)
    logger.info(
        f"Inquiry created from {source_type.value}",
        extra=build_log_context(inquiry_id=inquiry.id, property_id=prop.id),
    )
    return inquiry


def create_test_inquiry(
    db: Session,
    manager_id: UUID,
    property_id: UUID,
    message: str | None = None,
    prospective_tenant_name: str | None = None,
) -> Inquiry:
    """
    Synthetic inquiry for a test-mode property.

    Runs through the same state machine as a real one: it is created
    ``new`` and the questionnaire is sent straight away.
    """
    from rentema.services import inquiry_workflow_service

    prop = property_service.get_property(db, manager_id, property_id)
    if not prop.is_test_mode:
        raise ValidationError("Property must be in test mode to simulate inquiries")

    suffix = generate_token(8)
    inquiry = create_inquiry(
        db,
        prop,
        platform_id=TEST_PLATFORM_ID,
        external_inquiry_id=f"test-{suffix}",
        prospective_tenant_id=f"test-tenant-{suffix}",
        prospective_tenant_name=prospective_tenant_name or "Test Tenant",
        source_type=InquirySource.MANUAL,
        source_metadata={"test_mode": True, "message": message or ""},
    )
    inquiry, _ = inquiry_workflow_service.send_questionnaire(db, inquiry.id)
    return inquiry


# =============================================================================
# Questionnaire snapshot and answers
# =============================================================================


def snapshot_questions(db: Session, inquiry: Inquiry) -> list[dict[str, Any]]:
    """Freeze the property's current questions onto the inquiry (no commit)."""
    questions = db.query(Question).filter(
        Question.property_id == inquiry.property_id,
    ).order_by(Question.order).all()
    snapshot = [
        {
            "id": str(q.id),
            "text": q.text,
            "response_type": q.response_type,
            "options": q.options,
            "order": q.order,
        }
        for q in questions
    ]
    inquiry.question_snapshot = snapshot
    return snapshot


def get_answers(db: Session, inquiry_id: UUID) -> dict[str, Any]:
    return {
        str(response.question_id): response.value
        for response in db.query(InquiryResponse).filter(
            InquiryResponse.inquiry_id == inquiry_id,
        )
    }


def save_answers(db: Session, inquiry: Inquiry, answers: dict[str, Any]) -> list[InquiryResponse]:
    """
    Upsert one response per question and flush (no commit).

    Raises:
        ValidationError: an answer targets a question outside the snapshot
    """
    snapshot_ids = {str(q["id"]) for q in inquiry.question_snapshot or []}
    unknown = sorted(qid for qid in answers if qid not in snapshot_ids)
    if unknown:
        raise ValidationError("Answers reference unknown questions", question_ids=unknown)

    existing = {
        str(response.question_id): response
        for response in db.query(InquiryResponse).filter(
            InquiryResponse.inquiry_id == inquiry.id,
        )
    }
    saved = []
    for question_id, value in answers.items():
        # JSON columns cannot hold NaN or infinities; the string form still fails evaluation
        if isinstance(value, float) and not math.isfinite(value):
            value = str(value)
        response = existing.get(question_id)
        if response:
            response.value = value
        else:
            response = InquiryResponse(
                inquiry_id=inquiry.id,
                question_id=UUID(question_id),
                value=value,
            )
            db.add(response)
        saved.append(response)
    db.flush()
    return saved


# =============================================================================
# Notes
# =============================================================================


def add_note(db: Session, inquiry: Inquiry, note: str, created_by: UUID | None) -> InquiryNote:
    text = note.strip()
    if not text:
        raise ValidationError("Note cannot be empty")
    record = InquiryNote(inquiry_id=inquiry.id, note=text, created_by=created_by)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


# =============================================================================
# Queries
# =============================================================================


def get_inquiry(db: Session, manager_id: UUID, inquiry_id: UUID) -> Inquiry:
    """Inquiry owned (through its property) by the manager."""
    inquiry = db.query(Inquiry).join(Property, Property.id == Inquiry.property_id).filter(
        Inquiry.id == inquiry_id,
        Property.manager_id == manager_id,
    ).first()
    if not inquiry:
        raise NotFoundError("Inquiry not found", inquiry_id=str(inquiry_id))
    return inquiry


def list_inquiries(
    db: Session,
    manager_id: UUID,
    property_id: UUID | None = None,
    status: str | None = None,
) -> list[Inquiry]:
    query = db.query(Inquiry).join(Property, Property.id == Inquiry.property_id).filter(
        Property.manager_id == manager_id,
    )
    if property_id:
        query = query.filter(Inquiry.property_id == property_id)
    if status:
        query = query.filter(Inquiry.status == status)
    return query.order_by(Inquiry.created_at.desc()).all()


def list_open_inquiry_ids(db: Session, property_id: UUID) -> list[UUID]:
    """Ids of the property's inquiries that are not in a terminal status."""
    terminal = [status.value for status in TERMINAL_INQUIRY_STATUSES]
    rows = db.query(Inquiry.id).filter(
        Inquiry.property_id == property_id,
        Inquiry.status.notin_(terminal),
    ).all()
    return [row.id for row in rows]

