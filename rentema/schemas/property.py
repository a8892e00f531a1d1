"""Property schemas - Pydantic models for properties API."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from rentema.schemas.common import CamelModel


class PropertyCreate(CamelModel):
    address: str = Field(..., min_length=1, max_length=500)
    rent_amount: Decimal | None = Field(None, ge=0)
    bedrooms: int | None = Field(None, ge=0, le=50)
    bathrooms: Decimal | None = Field(None, ge=0, le=50)
    is_test_mode: bool = False


class PropertyRead(CamelModel):
    id: UUID
    manager_id: UUID
    address: str
    rent_amount: Decimal | None
    bedrooms: int | None
    bathrooms: Decimal | None
    is_test_mode: bool
    is_archived: bool
    created_at: datetime


class PropertyArchiveResponse(CamelModel):
    property: PropertyRead
    cancelled_inquiries: int
