"""Public booking and questionnaire schemas (tenant-facing, no auth)."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from rentema.schemas.common import CamelModel
from rentema.schemas.scheduling import AppointmentRead


class BookingDetailsRead(CamelModel):
    property_address: str
    appointment_type: str
    slot_date: date
    start_time: str
    slot_start: datetime
    duration: int
    timezone: str
    expires_at: datetime


class BookingConfirmResponse(CamelModel):
    success: bool = True
    message: str
    appointment: AppointmentRead


class PublicQuestion(CamelModel):
    id: UUID
    text: str
    response_type: str
    options: list[str] | None = None
    order: int


class PublicQuestionnaireRead(CamelModel):
    tenant_name: str
    property_address: str
    questions: list[PublicQuestion]


class QuestionAnswer(CamelModel):
    question_id: UUID
    value: Any


class QuestionnaireSubmit(CamelModel):
    responses: list[QuestionAnswer] = Field(..., min_length=0)


class QuestionnaireSubmitResponse(CamelModel):
    success: bool = True
    message: str
    status: str
