"""Inquiries router - workflow inspection and manual control for managers."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rentema.core.deps import get_current_manager, get_db, require_csrf_header
from rentema.db.enums import InquiryStatus, WorkflowActor
from rentema.db.models import Inquiry, PropertyManager
from rentema.schemas.inquiry import (
    InquiryDetail,
    InquiryNoteCreate,
    InquiryNoteRead,
    InquiryRead,
    InquiryResponseRead,
    OfferedSlotRead,
    OfferSlotsRequest,
    OfferSlotsResponse,
    OverrideRequest,
    QuestionnaireSentResponse,
    WorkflowEventRead,
)
from rentema.schemas.scheduling import AppointmentRead
from rentema.services import booking_token_service, inquiry_service, inquiry_workflow_service
from rentema.services import questionnaire_service

router = APIRouter()


def _to_detail(inquiry: Inquiry) -> InquiryDetail:
    base = InquiryRead.model_validate(inquiry)
    return InquiryDetail(
        **base.model_dump(),
        source_metadata=inquiry.source_metadata,
        question_snapshot=inquiry.question_snapshot,
        responses=[InquiryResponseRead.model_validate(r) for r in inquiry.responses],
        notes=[InquiryNoteRead.model_validate(n) for n in inquiry.notes],
        events=[WorkflowEventRead.from_model(e) for e in inquiry.events],
        appointments=[AppointmentRead.from_model(a) for a in inquiry.appointments],
    )


@router.get("", response_model=list[InquiryRead])
def list_inquiries(
    property_id: UUID | None = Query(None, alias="propertyId"),
    status: InquiryStatus | None = Query(None),
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """List the manager's inquiries, newest first."""
    return inquiry_service.list_inquiries(
        db,
        manager.id,
        property_id=property_id,
        status=status.value if status else None,
    )


@router.get("/{inquiry_id}", response_model=InquiryDetail)
def get_inquiry(
    inquiry_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Inquiry with its responses, notes, workflow history and appointments."""
    inquiry = inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    return _to_detail(inquiry)


@router.post(
    "/{inquiry_id}/override",
    response_model=InquiryRead,
    dependencies=[Depends(require_csrf_header)],
)
def override_inquiry(
    inquiry_id: UUID,
    data: OverrideRequest,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Force qualify, disqualify or cancel_appointment regardless of criteria."""
    inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    return inquiry_workflow_service.apply_override(
        db,
        inquiry_id,
        data.type,
        manager_id=manager.id,
        reason=data.reason,
    )


@router.post(
    "/{inquiry_id}/notes",
    response_model=InquiryNoteRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def add_note(
    inquiry_id: UUID,
    data: InquiryNoteCreate,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    inquiry = inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    return inquiry_service.add_note(db, inquiry, data.note, created_by=manager.id)


@router.post(
    "/{inquiry_id}/questionnaire",
    response_model=QuestionnaireSentResponse,
    dependencies=[Depends(require_csrf_header)],
)
def send_questionnaire(
    inquiry_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Send the property's questionnaire to a new inquiry."""
    inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    inquiry, token = inquiry_workflow_service.send_questionnaire(
        db,
        inquiry_id,
        actor=WorkflowActor.MANAGER,
        actor_id=manager.id,
    )
    return QuestionnaireSentResponse(
        inquiry=InquiryRead.model_validate(inquiry),
        questionnaire_url=questionnaire_service.questionnaire_url(token.token) if token else None,
    )


@router.post(
    "/{inquiry_id}/offer-slots",
    response_model=OfferSlotsResponse,
    dependencies=[Depends(require_csrf_header)],
)
def offer_slots(
    inquiry_id: UUID,
    data: OfferSlotsRequest,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """
    Issue a fresh batch of booking links for a qualified inquiry.

    Links from earlier batches stop working.
    """
    inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    tokens = booking_token_service.offer_slots(
        db,
        inquiry_id,
        appointment_type=data.appointment_type.value if data.appointment_type else None,
        duration_minutes=data.duration,
        days_ahead=data.days_ahead,
        max_slots=data.max_slots,
        actor=WorkflowActor.MANAGER,
        actor_id=manager.id,
    )
    inquiry = inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    return OfferSlotsResponse(
        generation=inquiry.offer_generation,
        slots=[
            OfferedSlotRead(
                token=token.token,
                booking_url=booking_token_service.booking_url(token.token),
                slot_start=token.slot_start,
                slot_date=token.slot_date.isoformat(),
                start_time=token.slot_start_time,
                expires_at=token.expires_at,
            )
            for token in tokens
        ],
    )


@router.post(
    "/{inquiry_id}/complete",
    response_model=InquiryRead,
    dependencies=[Depends(require_csrf_header)],
)
def complete_appointment(
    inquiry_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Mark the scheduled appointment as held."""
    inquiry_service.get_inquiry(db, manager.id, inquiry_id)
    return inquiry_workflow_service.complete_appointment(db, inquiry_id, manager_id=manager.id)
