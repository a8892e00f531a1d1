"""Properties router - listings plus their pre-qualification configuration."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rentema.core.deps import get_current_manager, get_db, require_csrf_header
from rentema.db.models import PropertyManager
from rentema.schemas.property import PropertyArchiveResponse, PropertyCreate, PropertyRead
from rentema.schemas.qualification import (
    CriteriaSave,
    CriterionRead,
    QuestionRead,
    QuestionsSave,
)
from rentema.services import property_service, qualification_service

router = APIRouter()


# =============================================================================
# Properties
# =============================================================================

@router.post(
    "",
    response_model=PropertyRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_property(
    data: PropertyCreate,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Create a property for the current manager."""
    return property_service.create_property(
        db=db,
        manager_id=manager.id,
        address=data.address,
        rent_amount=data.rent_amount,
        bedrooms=data.bedrooms,
        bathrooms=data.bathrooms,
        is_test_mode=data.is_test_mode,
    )


@router.get("", response_model=list[PropertyRead])
def list_properties(
    include_archived: bool = Query(False, alias="includeArchived"),
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    return property_service.list_properties(db, manager.id, include_archived=include_archived)


@router.get("/{property_id}", response_model=PropertyRead)
def get_property(
    property_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    return property_service.get_property(db, manager.id, property_id)


@router.post(
    "/{property_id}/archive",
    response_model=PropertyArchiveResponse,
    dependencies=[Depends(require_csrf_header)],
)
def archive_property(
    property_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Archive a property; its open inquiries are cancelled."""
    prop, cancelled = property_service.archive_property(db, manager.id, property_id)
    return PropertyArchiveResponse(
        property=PropertyRead.model_validate(prop),
        cancelled_inquiries=cancelled,
    )


# =============================================================================
# Questions
# =============================================================================

@router.get("/{property_id}/questions", response_model=list[QuestionRead])
def list_questions(
    property_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    prop = property_service.get_property(db, manager.id, property_id)
    return qualification_service.list_questions(db, prop.id)


def _save_questions(db: Session, manager: PropertyManager, property_id: UUID, data: QuestionsSave):
    prop = property_service.get_property(db, manager.id, property_id)
    return qualification_service.save_questions(
        db,
        prop,
        [
            {
                "id": question.id,
                "text": question.text,
                "response_type": question.response_type.value,
                "options": question.options,
                "order": question.order,
            }
            for question in data.questions
        ],
    )


@router.post(
    "/{property_id}/questions",
    response_model=list[QuestionRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_questions(
    property_id: UUID,
    data: QuestionsSave,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Set the property's questionnaire."""
    return _save_questions(db, manager, property_id, data)


@router.put(
    "/{property_id}/questions",
    response_model=list[QuestionRead],
    dependencies=[Depends(require_csrf_header)],
)
def replace_questions(
    property_id: UUID,
    data: QuestionsSave,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """
    Replace the property's questionnaire.

    Questions sent with their ``id`` are edited in place; questions left
    out are deleted together with their criteria.
    """
    return _save_questions(db, manager, property_id, data)


# =============================================================================
# Criteria
# =============================================================================

@router.get("/{property_id}/criteria", response_model=list[CriterionRead])
def list_criteria(
    property_id: UUID,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    prop = property_service.get_property(db, manager.id, property_id)
    return qualification_service.list_criteria(db, prop.id)


def _save_criteria(db: Session, manager: PropertyManager, property_id: UUID, data: CriteriaSave):
    prop = property_service.get_property(db, manager.id, property_id)
    return qualification_service.save_criteria(
        db,
        prop,
        [
            {
                "question_id": criterion.question_id,
                "operator": criterion.operator.value,
                "expected_value": criterion.expected_value,
            }
            for criterion in data.criteria
        ],
    )


@router.post(
    "/{property_id}/criteria",
    response_model=list[CriterionRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_criteria(
    property_id: UUID,
    data: CriteriaSave,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    return _save_criteria(db, manager, property_id, data)


@router.put(
    "/{property_id}/criteria",
    response_model=list[CriterionRead],
    dependencies=[Depends(require_csrf_header)],
)
def replace_criteria(
    property_id: UUID,
    data: CriteriaSave,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """Replace all criteria; every criterion must reference one of the property's questions."""
    return _save_criteria(db, manager, property_id, data)
