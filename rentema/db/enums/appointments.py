"""Appointment and scheduling enums."""

from enum import Enum


class AppointmentType(str, Enum):
    """Kind of appointment; each has its own availability schedule."""

    VIDEO_CALL = "video_call"
    TOUR = "tour"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: scheduled → completed
              ↘ cancelled
    """

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"  # Frees the slot immediately
    COMPLETED = "completed"


class TokenFailureReason(str, Enum):
    """Why a consumed booking token did not produce an appointment."""

    SLOT_UNAVAILABLE = "slot_unavailable"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)  # Index matches date.weekday()


# Default appointment status
DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.SCHEDULED
