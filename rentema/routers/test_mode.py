"""Test mode router - synthetic inquiries for properties in test mode."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rentema.core.deps import get_current_manager, get_db, require_csrf_header
from rentema.db.models import PropertyManager
from rentema.schemas.inquiry import InquiryRead, TestInquiryCreate
from rentema.services import inquiry_service

router = APIRouter(prefix="/test", tags=["test-mode"])


@router.post(
    "/inquiries",
    response_model=InquiryRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_test_inquiry(
    data: TestInquiryCreate,
    manager: PropertyManager = Depends(get_current_manager),
    db: Session = Depends(get_db),
):
    """
    Simulate an inquiry on a test-mode property.

    The inquiry goes through the same workflow as a real one, starting
    with the questionnaire.
    """
    return inquiry_service.create_test_inquiry(
        db,
        manager.id,
        data.property_id,
        message=data.message,
        prospective_tenant_name=data.prospective_tenant_name,
    )
