"""Qualification schemas - questions and criteria configuration."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from rentema.db.enums import CriteriaOperator, ResponseType
from rentema.schemas.common import CamelModel


class QuestionInput(CamelModel):
    """A question in a save request. Include ``id`` to keep an existing question."""

    id: UUID | None = None
    text: str = Field(..., min_length=1, max_length=1000)
    response_type: ResponseType
    options: list[str] | None = None
    order: int | None = Field(None, ge=0)


class QuestionsSave(CamelModel):
    questions: list[QuestionInput]


class QuestionRead(CamelModel):
    id: UUID
    property_id: UUID
    text: str
    response_type: str
    options: list[str] | None
    order: int
    created_at: datetime


class CriterionInput(CamelModel):
    question_id: UUID
    operator: CriteriaOperator
    expected_value: Any


class CriteriaSave(CamelModel):
    criteria: list[CriterionInput]


class CriterionRead(CamelModel):
    id: UUID
    property_id: UUID
    question_id: UUID
    operator: str
    expected_value: Any
    created_at: datetime
