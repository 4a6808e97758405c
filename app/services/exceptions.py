"""Error taxonomy for survey and response services.

Every failure a caller can act on is one of these exceptions. The HTTP
layer maps each class to a status code; services raise them after rolling
back any open transaction.
"""

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from app.services.response_validation import AnswerError


class SurveyEngineError(Exception):
    """Base class for survey engine errors."""

    status_code = 500
    error = "Survey engine error"


class NotFoundError(SurveyEngineError):
    """Raised when a survey, question, response or draft does not exist."""

    status_code = 404
    error = "Not found"


class InvalidStateError(SurveyEngineError):
    """Raised when an operation is not allowed in the current status."""

    status_code = 400
    error = "Invalid state"


class OutOfWindowError(SurveyEngineError):
    """Raised when a submission falls outside the survey's date window."""

    status_code = 400
    error = "Out of window"


class ConflictError(SurveyEngineError):
    """Raised on duplicate submissions or deletes blocked by responses."""

    status_code = 409
    error = "Conflict"


class ValidationFailedError(SurveyEngineError):
    """Raised when answers fail validation.

    Attributes:
        errors: Every violation found, one per offending answer
    """

    status_code = 400
    error = "Validation failed"

    def __init__(self, errors: Sequence["AnswerError"], message: Optional[str] = None):
        self.errors = list(errors)
        if message is None:
            message = "; ".join(error.message for error in self.errors) or "Validation failed"
        super().__init__(message)
