"""Pydantic schemas for data validation.

This package contains all Pydantic models for survey definitions and
survey responses.
"""

from app.schemas.survey import (
    QuestionType,
    SurveyStatus,
    LogicOperator,
    LogicAction,
    QuestionOption,
    ValidationRules,
    LogicCondition,
    QuestionLogic,
    QuestionCreate,
    Question,
    SurveySettings,
    SurveyCreate,
    SurveyUpdate,
    Survey,
)
from app.schemas.response import (
    ResponseStatus,
    ExportFormat,
    FileDescriptor,
    LocationValue,
    AnswerSubmission,
    ResponseMetadata,
    SubmitResponseRequest,
    SaveDraftRequest,
    AnswerRead,
    SurveyResponseRead,
    AnswerErrorRead,
)

__all__ = [
    "QuestionType",
    "SurveyStatus",
    "LogicOperator",
    "LogicAction",
    "QuestionOption",
    "ValidationRules",
    "LogicCondition",
    "QuestionLogic",
    "QuestionCreate",
    "Question",
    "SurveySettings",
    "SurveyCreate",
    "SurveyUpdate",
    "Survey",
    "ResponseStatus",
    "ExportFormat",
    "FileDescriptor",
    "LocationValue",
    "AnswerSubmission",
    "ResponseMetadata",
    "SubmitResponseRequest",
    "SaveDraftRequest",
    "AnswerRead",
    "SurveyResponseRead",
    "AnswerErrorRead",
]
