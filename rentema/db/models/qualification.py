"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentema.db.base import Base
from rentema.db.models.managers import utc_now

if TYPE_CHECKING:
    from rentema.db.models import Property


JSONVariant = JSON().with_variant(JSONB, "postgresql")


class Question(Base):
    """
    Pre-qualification question asked of every prospective tenant.

    ``order`` is a dense 0-based sequence per property.
    ``options`` is present iff ``response_type`` is multiple_choice.
    """

    __tablename__ = "questions"
    __table_args__ = (Index("idx_questions_property_order", "property_id", "order"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    response_type: Mapped[str] = mapped_column(String(30), nullable=False)
    options: Mapped[list[str] | None] = mapped_column(JSONVariant, nullable=True)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    property: Mapped["Property"] = relationship(back_populates="questions")


class QualificationCriteria(Base):
    """A single conjunctive rule: the answer to ``question_id`` must satisfy ``operator``."""

    __tablename__ = "qualification_criteria"
    __table_args__ = (Index("idx_criteria_property", "property_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    operator: Mapped[str] = mapped_column(String(30), nullable=False)
    expected_value: Mapped[Any] = mapped_column(JSONVariant, nullable=False)
    # Evaluation and failure reporting follow this order
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    property: Mapped["Property"] = relationship(back_populates="criteria")
