"""Property service - listing CRUD and archival."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from rentema.core.errors import NotFoundError
from rentema.core.structured_logging import build_log_context
from rentema.db.enums import WorkflowActor
from rentema.db.models import Property

logger = logging.getLogger(__name__)


def create_property(
    db: Session,
    manager_id: UUID,
    address: str,
    rent_amount: Decimal | None = None,
    bedrooms: int | None = None,
    bathrooms: Decimal | None = None,
    is_test_mode: bool = False,
) -> Property:
    prop = Property(
        manager_id=manager_id,
        address=address.strip(),
        rent_amount=rent_amount,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        is_test_mode=is_test_mode,
        is_archived=False,
    )
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


def get_property(db: Session, manager_id: UUID, property_id: UUID) -> Property:
    """Property owned by the manager; anything else reads as not found."""
    prop = db.query(Property).filter(
        Property.id == property_id,
        Property.manager_id == manager_id,
    ).first()
    if not prop:
        raise NotFoundError("Property not found", property_id=str(property_id))
    return prop


def list_properties(
    db: Session,
    manager_id: UUID,
    include_archived: bool = False,
) -> list[Property]:
    query = db.query(Property).filter(Property.manager_id == manager_id)
    if not include_archived:
        query = query.filter(Property.is_archived.is_(False))
    return query.order_by(Property.created_at.desc()).all()


def archive_property(db: Session, manager_id: UUID, property_id: UUID) -> tuple[Property, int]:
    """
    Archive a property and cancel its open inquiries.

    Returns:
        (property, number of inquiries cancelled)
    """
    from rentema.services import inquiry_service, inquiry_workflow_service

    prop = get_property(db, manager_id, property_id)
    if prop.is_archived:
        return prop, 0

    inquiry_ids = inquiry_service.list_open_inquiry_ids(db, prop.id)
    for inquiry_id in inquiry_ids:
        inquiry_workflow_service.cancel_inquiry(
            db,
            inquiry_id,
            actor=WorkflowActor.MANAGER,
            actor_id=manager_id,
            reason="property archived",
            commit=False,
        )

    prop.is_archived = True
    db.commit()
    db.refresh(prop)
    logger.info(
        f"Property archived; {len(inquiry_ids)} inquiries cancelled",
        extra=build_log_context(manager_id=manager_id, property_id=prop.id),
    )
    return prop, len(inquiry_ids)
