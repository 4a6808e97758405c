"""Pydantic schemas for survey definitions.

This module defines the structure and validation rules for surveys and
their questions, both as authored (create/update payloads and YAML
definition files) and as loaded from the database. Loaded questions are
immutable and are the unit of truth for logic evaluation, answer
validation and export.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class QuestionType(str, Enum):
    """Valid question types in survey definitions."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"
    LOCATION = "location"
    AUDIO = "audio"
    VIDEO = "video"


# Question types answered by picking from `options`
CHOICE_TYPES = frozenset({QuestionType.SELECT, QuestionType.RADIO, QuestionType.CHECKBOX})

# Question types answered with uploaded files
FILE_TYPES = frozenset({QuestionType.FILE, QuestionType.AUDIO, QuestionType.VIDEO})


class SurveyStatus(str, Enum):
    """Publication status of a survey."""
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class LogicOperator(str, Enum):
    """Comparison operators available in logic conditions."""
    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    CONTAINS = "contains"
    IN = "in"


class LogicAction(str, Enum):
    """Action applied to a question when its logic conditions hold."""
    SHOW = "show"
    HIDE = "hide"
    SKIP = "skip"


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone-aware datetime, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class QuestionOption(BaseModel):
    """A single choice option for select/radio/checkbox questions.

    Attributes:
        label: Text shown to the respondent
        value: Value stored as the answer
        order: Optional display order
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    label: str = Field(..., min_length=1, description="Display text for option")
    value: str = Field(..., min_length=1, description="Value stored as answer")
    order: Optional[int] = Field(None, description="Display order")


class ValidationRules(BaseModel):
    """Validation rules for question answers.

    Different question types use different validation fields:
    - number: min, max
    - text/textarea: min_length, max_length, pattern
    - file/audio/video: accepted_file_types, max_file_size (enforced by
      the upload layer)
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    min: Optional[float] = Field(None, description="Minimum numeric value (inclusive)")
    max: Optional[float] = Field(None, description="Maximum numeric value (inclusive)")
    min_length: Optional[int] = Field(None, ge=0, description="Minimum text length")
    max_length: Optional[int] = Field(None, ge=0, description="Maximum text length")
    pattern: Optional[str] = Field(None, description="Regex pattern for validation")
    accepted_file_types: Optional[list[str]] = Field(None, description="Accepted MIME types")
    max_file_size: Optional[int] = Field(None, ge=1, description="Maximum file size in bytes")

    @field_validator('max')
    @classmethod
    def max_greater_than_min(cls, v, info):
        """Ensure max >= min if both are set."""
        if v is not None and info.data.get('min') is not None:
            if v < info.data['min']:
                raise ValueError('max must be >= min')
        return v

    @field_validator('max_length')
    @classmethod
    def max_length_greater_than_min(cls, v, info):
        """Ensure max_length >= min_length if both are set."""
        if v is not None and info.data.get('min_length') is not None:
            if v < info.data['min_length']:
                raise ValueError('max_length must be >= min_length')
        return v

    @field_validator('pattern')
    @classmethod
    def pattern_compiles(cls, v):
        """Reject patterns that are not valid regular expressions."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f'Invalid regex pattern: {e}')
        return v


class LogicCondition(BaseModel):
    """One condition over another question's answer.

    Attributes:
        question_id: ID of the question whose answer is tested
        operator: Comparison operator
        value: Value compared against the answer
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    question_id: str = Field(..., min_length=1, description="Referenced question ID")
    operator: LogicOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value compared against the answer")

    @model_validator(mode='after')
    def validate_in_operand(self):
        """The 'in' operator needs a collection to test membership against."""
        if self.operator == LogicOperator.IN and not isinstance(self.value, (list, tuple)):
            raise ValueError("Operator 'in' requires a list value")
        return self


class QuestionLogic(BaseModel):
    """Conditional logic clause attached to a question.

    All conditions are combined with AND. The action says what happens to
    the owning question when they all hold.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    conditions: list[LogicCondition] = Field(default_factory=list)
    action: LogicAction = Field(default=LogicAction.SHOW)


class QuestionBase(BaseModel):
    """Fields shared by authored and stored questions."""

    type: QuestionType = Field(..., description="Question type")
    label: str = Field(..., min_length=1, description="Question text")
    description: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    order: int = Field(default=0, description="Sort key within the survey")
    options: Optional[list[QuestionOption]] = None
    validation: Optional[ValidationRules] = None
    logic: Optional[QuestionLogic] = None
    parent_question_id: Optional[str] = None
    group_id: Optional[str] = None
    allow_other: bool = False
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
    )

    @model_validator(mode='after')
    def validate_question_requirements(self):
        """Validate type-specific requirements."""
        if self.type in CHOICE_TYPES:
            if not self.options:
                raise ValueError(f"Question '{self.label}' of type {self.type.value} must have options")
            values = [option.value for option in self.options]
            if len(values) != len(set(values)):
                raise ValueError(f"Question '{self.label}' has duplicate option values")
        return self

    def option_values(self) -> list[str]:
        """Return the values of this question's options."""
        return [option.value for option in self.options or []]

    @property
    def has_logic(self) -> bool:
        """Check if the question carries at least one logic condition."""
        return self.logic is not None and len(self.logic.conditions) > 0

    def referenced_question_ids(self) -> list[str]:
        """Return IDs of the questions this question's logic depends on."""
        if self.logic is None:
            return []
        return [condition.question_id for condition in self.logic.conditions]


class QuestionCreate(QuestionBase):
    """Question as authored in a create/update payload or YAML file.

    ``id`` is an optional authoring key. Logic conditions and
    ``parent_question_id`` may refer to sibling questions by this key; the
    survey service assigns stored IDs and rewrites those references.
    """
    id: Optional[str] = Field(None, min_length=1, description="Authoring reference key")


class Question(QuestionBase):
    """Immutable question as stored in a survey.

    Built from the ORM row with ``Question.model_validate(row)``.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    survey_id: Optional[str] = None
    position: int = 0


class SurveySettings(BaseModel):
    """Participation settings for a survey.

    Attributes:
        allow_anonymous: Whether responses without a user are accepted
        require_auth: Whether respondents must be identified
        allow_multiple_submissions: Whether a user may submit more than once
        show_progress_bar: Presentation hint
        shuffle_questions: Presentation hint
        time_limit_minutes: Presentation hint for timed surveys
        start_date: Submissions are rejected before this instant
        end_date: Submissions are rejected after this instant
    """
    model_config = ConfigDict(frozen=True)

    allow_anonymous: bool = True
    require_auth: bool = False
    allow_multiple_submissions: bool = False
    show_progress_bar: bool = True
    shuffle_questions: bool = False
    time_limit_minutes: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_window(self):
        """Ensure the submission window is not inverted."""
        if self.start_date is not None and self.end_date is not None:
            if ensure_utc(self.end_date) < ensure_utc(self.start_date):
                raise ValueError("end_date must be after start_date")
        return self

    def has_started(self, now: datetime) -> bool:
        """Check if the submission window has opened at ``now``."""
        return self.start_date is None or ensure_utc(now) >= ensure_utc(self.start_date)

    def has_ended(self, now: datetime) -> bool:
        """Check if the submission window has closed at ``now``."""
        return self.end_date is not None and ensure_utc(now) > ensure_utc(self.end_date)


class SurveyCreate(BaseModel):
    """Payload for creating a survey."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    settings: SurveySettings = Field(default_factory=SurveySettings)
    status: SurveyStatus = SurveyStatus.DRAFT
    questions: list[QuestionCreate] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='after')
    def validate_question_keys(self):
        """Check for duplicate authoring keys."""
        keys = [question.id for question in self.questions if question.id is not None]
        if len(keys) != len(set(keys)):
            duplicates = sorted({key for key in keys if keys.count(key) > 1})
            raise ValueError(f"Duplicate question IDs found: {duplicates}")
        return self


class SurveyUpdate(BaseModel):
    """Payload for updating a survey. Omitted fields are left unchanged.

    When ``questions`` is given the survey's questions are replaced
    wholesale.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    settings: Optional[SurveySettings] = None
    status: Optional[SurveyStatus] = None
    questions: Optional[list[QuestionCreate]] = None
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode='after')
    def validate_question_keys(self):
        """Check for duplicate authoring keys."""
        if self.questions:
            keys = [question.id for question in self.questions if question.id is not None]
            if len(keys) != len(set(keys)):
                raise ValueError("Duplicate question IDs found")
        return self


class Survey(BaseModel):
    """Complete survey definition as loaded from the database.

    Questions are in declared order: by ``order``, then authoring position.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    title: str
    slug: str
    description: Optional[str] = None
    settings: SurveySettings = Field(default_factory=SurveySettings)
    status: SurveyStatus = SurveyStatus.DRAFT
    questions: list[Question] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
    )
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('settings', mode='before')
    @classmethod
    def settings_default(cls, v):
        """Treat a NULL settings column as default settings."""
        return v if v is not None else {}

    def get_question(self, question_id: str) -> Optional[Question]:
        """Get question by ID.

        Args:
            question_id: Question identifier

        Returns:
            Question if found, None otherwise
        """
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def ordered_questions(self) -> list[Question]:
        """Return questions in declared order (stable on ties)."""
        return sorted(self.questions, key=lambda q: (q.order, q.position))
