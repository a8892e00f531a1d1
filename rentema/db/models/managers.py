"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentema.db.base import Base

if TYPE_CHECKING:
    from rentema.db.models import AvailabilitySchedule, Question, QualificationCriteria


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PropertyManager(Base):
    """
    A property manager account.

    Owns properties, availability schedules and appointments. Wall-clock
    availability blocks are interpreted in ``timezone``.
    """

    __tablename__ = "property_managers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(50), default="America/Los_Angeles", nullable=False
    )
    # Bumped to revoke every outstanding session cookie
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    properties: Mapped[list["Property"]] = relationship(back_populates="manager")
    schedules: Mapped[list["AvailabilitySchedule"]] = relationship(back_populates="manager")


class Property(Base):
    """A rental listing. Questions and criteria are configured per property."""

    __tablename__ = "properties"
    __table_args__ = (Index("idx_properties_manager", "manager_id", "is_archived"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    manager_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("property_managers.id", ondelete="CASCADE"), nullable=False
    )
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    rent_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Decimal | None] = mapped_column(Numeric(3, 1), nullable=True)

    # Test-mode properties accept synthetic inquiries
    is_test_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now, nullable=False)

    manager: Mapped["PropertyManager"] = relationship(back_populates="properties")
    questions: Mapped[list["Question"]] = relationship(
        back_populates="property", order_by="Question.order", cascade="all, delete-orphan"
    )
    criteria: Mapped[list["QualificationCriteria"]] = relationship(
        back_populates="property",
        order_by="QualificationCriteria.position",
        cascade="all, delete-orphan",
    )
