"""Pydantic schemas for survey responses.

This module defines request bodies for submitting responses and saving
drafts, the read models returned to callers, and the value shapes used
when validating answers.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.schemas.survey import QuestionType


class ResponseStatus(str, Enum):
    """Lifecycle status of a survey response."""
    DRAFT = "draft"
    SUBMITTED = "submitted"


class ExportFormat(str, Enum):
    """Supported export artifact formats."""
    CSV = "csv"
    JSON = "json"


def reject_non_finite(value: Any) -> Any:
    """Reject NaN and infinities anywhere in a JSON-like value.

    Stored answers and metadata must stay serializable as strict JSON.

    Raises:
        ValueError: If a float inside the value is not finite
    """
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("NaN and infinite numbers are not allowed")
    if isinstance(value, dict):
        for item in value.values():
            reject_non_finite(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            reject_non_finite(item)
    return value


class FileDescriptor(BaseModel):
    """Descriptor of an uploaded file, produced by the upload layer.

    Attributes:
        original_name: File name as uploaded by the respondent
        filename: Stored file name
        mimetype: MIME type reported at upload
        size: Size in bytes
        path: Storage path
    """
    original_name: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    mimetype: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    path: str = Field(..., min_length=1)


class LocationValue(BaseModel):
    """Answer value for location questions.

    Extra keys supplied by the client (e.g. altitude) are preserved.
    """
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class AnswerSubmission(BaseModel):
    """One answer in a submit or draft request.

    Attributes:
        question_id: ID of the answered question
        answer: Raw answer value; its shape depends on the question type
        files: File descriptors for file/audio/video questions
    """
    question_id: str = Field(..., min_length=1)
    answer: Any = None
    files: Optional[list[FileDescriptor]] = None

    @field_validator("answer")
    @classmethod
    def answer_is_finite(cls, value: Any) -> Any:
        return reject_non_finite(value)


class ResponseMetadata(BaseModel):
    """Respondent metadata captured with a response."""
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[LocationValue] = None
    duration: Optional[float] = Field(None, ge=0, description="Seconds spent answering")
    device: Optional[str] = None

    @model_validator(mode="after")
    def extras_are_finite(self) -> "ResponseMetadata":
        reject_non_finite(self.model_extra or {})
        return self


class SubmitResponseRequest(BaseModel):
    """Body of a submit request."""
    answers: list[AnswerSubmission] = Field(default_factory=list)
    metadata: Optional[ResponseMetadata] = None


class SaveDraftRequest(SubmitResponseRequest):
    """Body of a draft save request.

    ``response_id`` names an existing draft whose answers are replaced.
    """
    response_id: Optional[int] = Field(None, ge=1)


class QuestionSummary(BaseModel):
    """Question metadata attached to answers and exports."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    type: QuestionType


class AnswerRead(BaseModel):
    """Answer as returned to callers."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: str
    answer: Any = None
    files: Optional[list[dict[str, Any]]] = None
    question: Optional[QuestionSummary] = None


class SurveyResponseRead(BaseModel):
    """Survey response as returned to callers."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    survey_id: str
    user_id: Optional[str] = None
    status: ResponseStatus
    submitted_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
    )
    created_at: Optional[datetime] = None
    answers: list[AnswerRead] = Field(default_factory=list)


class AnswerErrorRead(BaseModel):
    """One validation problem reported to callers."""
    question_id: str
    label: Optional[str] = None
    message: str
