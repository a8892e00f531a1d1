"""Engine error hierarchy.

Every error carries a stable ``code`` and an HTTP status used by the
app-level exception handler in ``rentema.main``. Token errors are shown
verbatim on the public booking page, so their messages are written for
the prospective tenant.
"""

from typing import Any


class EngineError(Exception):
    """Base exception for workflow engine errors."""

    status_code: int = 400
    code: str = "EngineError"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        body.update(self.details)
        return body


class ConfigurationError(EngineError):
    """Malformed question/criteria configuration."""

    status_code = 422
    code = "ConfigurationError"


class ValidationError(EngineError):
    """Input rejected before persistence (missing answers, overlapping blocks)."""

    status_code = 400
    code = "ValidationError"


class NotFoundError(EngineError):
    """Referenced entity does not exist (or is not visible to the caller)."""

    status_code = 404
    code = "NotFound"


class StateError(EngineError):
    """Transition not defined for the inquiry's current status."""

    status_code = 409
    code = "StateError"

    def __init__(self, message: str, current_status: str):
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class TokenError(EngineError):
    """Base class for booking token failures."""

    status_code = 400
    code = "TokenError"


class TokenNotFoundError(TokenError):
    status_code = 404
    code = "TokenNotFound"

    def __init__(self, message: str = "This booking link is not valid."):
        super().__init__(message)


class TokenExpiredError(TokenError):
    status_code = 410
    code = "TokenExpired"

    def __init__(self, message: str = "This booking link has expired. Please request new times."):
        super().__init__(message)


class TokenAlreadyConsumedError(TokenError):
    status_code = 409
    code = "TokenAlreadyConsumed"

    def __init__(self, message: str = "This booking link has already been used."):
        super().__init__(message)


class SlotNoLongerAvailableError(TokenError):
    status_code = 409
    code = "SlotNoLongerAvailable"

    def __init__(
        self,
        message: str = "This time is no longer available. Please choose another time.",
    ):
        super().__init__(message)


class ConcurrencyConflictError(EngineError):
    """Overlap detected at insert time despite the slot looking free."""

    status_code = 409
    code = "ConcurrencyConflict"
