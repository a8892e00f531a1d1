"""Inquiry lifecycle enums."""

from enum import Enum


class InquiryStatus(str, Enum):
    """
    Inquiry workflow status.

    Flow: new → questionnaire_sent → questionnaire_completed → pre_qualifying
              → qualified → appointment_scheduled → appointment_completed
              ↘ disqualified
          cancelled is reachable from any non-terminal status.
    """

    NEW = "new"
    QUESTIONNAIRE_SENT = "questionnaire_sent"
    QUESTIONNAIRE_COMPLETED = "questionnaire_completed"
    PRE_QUALIFYING = "pre_qualifying"
    QUALIFIED = "qualified"
    DISQUALIFIED = "disqualified"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    APPOINTMENT_COMPLETED = "appointment_completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_INQUIRY_STATUSES


TERMINAL_INQUIRY_STATUSES = frozenset(
    {InquiryStatus.APPOINTMENT_COMPLETED, InquiryStatus.CANCELLED}
)


class InquirySource(str, Enum):
    """Where the inquiry came from."""

    EMAIL = "email"
    PLATFORM_API = "platform_api"
    MANUAL = "manual"


class OverrideType(str, Enum):
    """Manager-initiated workflow overrides."""

    QUALIFY = "qualify"
    DISQUALIFY = "disqualify"
    CANCEL_APPOINTMENT = "cancel_appointment"


class WorkflowActor(str, Enum):
    SYSTEM = "system"
    MANAGER = "manager"


class WorkflowEventType(str, Enum):
    STATUS_CHANGED = "status_changed"
    SLOTS_OFFERED = "slots_offered"


DEFAULT_INQUIRY_STATUS = InquiryStatus.NEW
DEFAULT_INQUIRY_SOURCE = InquirySource.MANUAL
