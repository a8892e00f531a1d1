"""Inquiry schemas - workflow inspection and manual control."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from rentema.db.enums import AppointmentType, OverrideType
from rentema.schemas.common import CamelModel
from rentema.schemas.scheduling import AppointmentRead


class InquiryRead(CamelModel):
    id: UUID
    property_id: UUID
    platform_id: str
    external_inquiry_id: str
    prospective_tenant_id: str
    prospective_tenant_name: str | None
    status: str
    qualification_result: dict[str, Any] | None
    source_type: str
    offer_generation: int
    created_at: datetime
    updated_at: datetime


class InquiryResponseRead(CamelModel):
    question_id: UUID
    value: Any
    created_at: datetime


class InquiryNoteCreate(CamelModel):
    note: str = Field(..., min_length=1, max_length=5000)


class InquiryNoteRead(CamelModel):
    id: UUID
    inquiry_id: UUID
    note: str
    created_by: UUID | None
    created_at: datetime


class WorkflowEventRead(CamelModel):
    id: UUID
    event_type: str
    from_status: str | None
    to_status: str | None
    actor: str
    actor_id: UUID | None
    reason: str | None
    metadata: dict[str, Any] | None
    created_at: datetime

    @classmethod
    def from_model(cls, event) -> "WorkflowEventRead":
        return cls(
            id=event.id,
            event_type=event.event_type,
            from_status=event.from_status,
            to_status=event.to_status,
            actor=event.actor,
            actor_id=event.actor_id,
            reason=event.reason,
            metadata=event.event_metadata,
            created_at=event.created_at,
        )


class InquiryDetail(InquiryRead):
    source_metadata: dict[str, Any] | None
    question_snapshot: list[dict[str, Any]] | None
    responses: list[InquiryResponseRead]
    notes: list[InquiryNoteRead]
    events: list[WorkflowEventRead]
    appointments: list[AppointmentRead]


class OverrideRequest(CamelModel):
    type: OverrideType
    reason: str | None = Field(None, max_length=1000)


class OfferSlotsRequest(CamelModel):
    appointment_type: AppointmentType | None = None
    duration: int | None = Field(None, ge=5, le=480)
    days_ahead: int | None = Field(None, ge=1, le=60)
    max_slots: int | None = Field(None, ge=1, le=50)


class OfferedSlotRead(CamelModel):
    token: str
    booking_url: str
    slot_start: datetime
    slot_date: str
    start_time: str
    expires_at: datetime


class OfferSlotsResponse(CamelModel):
    generation: int
    slots: list[OfferedSlotRead]


class QuestionnaireSentResponse(CamelModel):
    inquiry: InquiryRead
    questionnaire_url: str | None


class TestInquiryCreate(CamelModel):
    property_id: UUID
    message: str | None = Field(None, max_length=5000)
    prospective_tenant_name: str | None = Field(None, max_length=255)
