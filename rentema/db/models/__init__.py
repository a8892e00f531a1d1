"""SQLAlchemy ORM models."""

from rentema.db.models.managers import Property, PropertyManager
from rentema.db.models.qualification import QualificationCriteria, Question
from rentema.db.models.inquiries import (
    Inquiry,
    InquiryNote,
    InquiryResponse,
    QuestionnaireToken,
    WorkflowEvent,
)
from rentema.db.models.scheduling import Appointment, AvailabilitySchedule, BookingToken

__all__ = [
    "Appointment",
    "AvailabilitySchedule",
    "BookingToken",
    "Inquiry",
    "InquiryNote",
    "InquiryResponse",
    "Property",
    "PropertyManager",
    "QualificationCriteria",
    "Question",
    "QuestionnaireToken",
    "WorkflowEvent",
]
