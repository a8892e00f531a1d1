"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentema.db.base import Base
from rentema.db.enums import DEFAULT_INQUIRY_SOURCE, DEFAULT_INQUIRY_STATUS
from rentema.db.models.managers import utc_now
from rentema.db.models.qualification import JSONVariant

if TYPE_CHECKING:
    from rentema.db.models import Appointment, Property


class Inquiry(Base):
    """
    A prospective tenant's inquiry about a property.

    Status changes only through inquiry_workflow_service; rows are never deleted.
    ``question_snapshot`` freezes the questions asked when the questionnaire was sent.
    ``offer_generation`` increases every time a new batch of booking tokens is issued.
    """

    __tablename__ = "inquiries"
    __table_args__ = (
        Index("idx_inquiries_property_status", "property_id", "status"),
        Index("idx_inquiries_created", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    platform_id: Mapped[str] = mapped_column(String(100), nullable=False)
    external_inquiry_id: Mapped[str] = mapped_column(String(255), nullable=False)
    prospective_tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    prospective_tenant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(40), default=DEFAULT_INQUIRY_STATUS.value, nullable=False
    )
    qualification_result: Mapped[dict[str, Any] | None] = mapped_column(
        JSONVariant, nullable=True
    )
    source_type: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_INQUIRY_SOURCE.value, nullable=False
    )
    source_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONVariant, nullable=True)
    question_snapshot: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONVariant, nullable=True
    )
    offer_generation: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now, nullable=False)

    property: Mapped["Property"] = relationship()
    responses: Mapped[list["InquiryResponse"]] = relationship(
        back_populates="inquiry", order_by="InquiryResponse.created_at"
    )
    notes: Mapped[list["InquiryNote"]] = relationship(
        back_populates="inquiry", order_by="InquiryNote.created_at"
    )
    events: Mapped[list["WorkflowEvent"]] = relationship(
        back_populates="inquiry", order_by="WorkflowEvent.created_at"
    )
    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="inquiry", order_by="Appointment.created_at"
    )


class InquiryResponse(Base):
    """Answer to one question. Re-answering replaces the stored value."""

    __tablename__ = "inquiry_responses"
    __table_args__ = (
        UniqueConstraint("inquiry_id", "question_id", name="uq_inquiry_response_question"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False
    )
    # Snapshot question id; the live question may since have been deleted
    question_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    value: Mapped[Any] = mapped_column(JSONVariant, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    inquiry: Mapped["Inquiry"] = relationship(back_populates="responses")


class InquiryNote(Base):
    __tablename__ = "inquiry_notes"
    __table_args__ = (Index("idx_inquiry_notes_inquiry", "inquiry_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False
    )
    note: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("property_managers.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    inquiry: Mapped["Inquiry"] = relationship(back_populates="notes")


class WorkflowEvent(Base):
    """
    Immutable workflow log entry.

    Appended for every status transition and slot offer. The messaging
    collaborator reads these; the engine itself never sends messages.
    """

    __tablename__ = "workflow_events"
    __table_args__ = (Index("idx_workflow_events_inquiry", "inquiry_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    actor: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONVariant, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    inquiry: Mapped["Inquiry"] = relationship(back_populates="events")


class QuestionnaireToken(Base):
    """Public link that lets the tenant answer the pre-qualification questions."""

    __tablename__ = "questionnaire_tokens"
    __table_args__ = (Index("idx_questionnaire_tokens_inquiry", "inquiry_id"),)

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
