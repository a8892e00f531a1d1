"""Enum definitions for application constants."""

from rentema.db.enums.appointments import (
    AppointmentStatus,
    AppointmentType,
    DEFAULT_APPOINTMENT_STATUS,
    TokenFailureReason,
    WEEKDAYS,
)
from rentema.db.enums.inquiries import (
    DEFAULT_INQUIRY_SOURCE,
    DEFAULT_INQUIRY_STATUS,
    InquirySource,
    InquiryStatus,
    OverrideType,
    TERMINAL_INQUIRY_STATUSES,
    WorkflowActor,
    WorkflowEventType,
)
from rentema.db.enums.qualification import (
    ALLOWED_OPERATORS,
    CriteriaOperator,
    ResponseType,
)

__all__ = [
    "ALLOWED_OPERATORS",
    "AppointmentStatus",
    "AppointmentType",
    "CriteriaOperator",
    "DEFAULT_APPOINTMENT_STATUS",
    "DEFAULT_INQUIRY_SOURCE",
    "DEFAULT_INQUIRY_STATUS",
    "InquirySource",
    "InquiryStatus",
    "OverrideType",
    "ResponseType",
    "TERMINAL_INQUIRY_STATUSES",
    "TokenFailureReason",
    "WEEKDAYS",
    "WorkflowActor",
    "WorkflowEventType",
]
