"""Answer validation service for survey responses.

This module validates a single answer value against its question's type
and validation rules, normalizes the value, and generates error messages
that name the offending question.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import ValidationError

from app.schemas.response import LocationValue
from app.schemas.survey import FILE_TYPES, Question, QuestionType
from app.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """Result of answer validation.

    Attributes:
        is_valid: Whether the answer passed validation
        normalized_value: Validated value to store
        error_message: Error message if validation failed
    """
    is_valid: bool
    normalized_value: Any
    error_message: Optional[str]


def _format_bound(bound: float) -> str:
    """Render a numeric bound without a trailing .0 for whole numbers."""
    if float(bound).is_integer():
        return str(int(bound))
    return str(bound)


class AnswerValidator:
    """Service for validating answers against question rules."""

    @staticmethod
    def validate(question: Question, raw_value: Any) -> ValidationResult:
        """Validate an answer value against a question's type and rules.

        Handles validation for all question types:
        - number: numeric, inclusive min/max
        - text/textarea: string, min_length, max_length, pattern
        - select/radio: one of the option values
        - checkbox: list of option values
        - date/time: parseable date/time string
        - location: object with latitude and longitude
        - file/audio/video: accepted as given

        Args:
            question: Question with type and validation rules
            raw_value: Answer value as submitted

        Returns:
            ValidationResult with validation status and normalized value

        Example:
            >>> question = Question(id="q1", type="number", label="Age",
            ...                     validation=ValidationRules(min=0, max=10))
            >>> AnswerValidator.validate(question, 15).error_message
            'Question "Age": value must be at most 10'
        """
        if question.type in FILE_TYPES:
            # File bytes and descriptors are the upload layer's concern
            return AnswerValidator._valid(raw_value)

        if question.type == QuestionType.NUMBER:
            return AnswerValidator._validate_number(question, raw_value)
        elif question.type in (QuestionType.TEXT, QuestionType.TEXTAREA):
            return AnswerValidator._validate_text(question, raw_value)
        elif question.type in (QuestionType.SELECT, QuestionType.RADIO):
            return AnswerValidator._validate_choice(question, raw_value)
        elif question.type == QuestionType.CHECKBOX:
            return AnswerValidator._validate_checkbox(question, raw_value)
        elif question.type in (QuestionType.DATE, QuestionType.TIME):
            return AnswerValidator._validate_datetime(question, raw_value)
        elif question.type == QuestionType.LOCATION:
            return AnswerValidator._validate_location(question, raw_value)
        else:
            logger.error(f"Unknown question type: {question.type}")
            return AnswerValidator._invalid(question, "has an unsupported question type")

    @staticmethod
    def _valid(value: Any) -> ValidationResult:
        return ValidationResult(is_valid=True, normalized_value=value, error_message=None)

    @staticmethod
    def _invalid(question: Question, message: str) -> ValidationResult:
        return ValidationResult(
            is_valid=False,
            normalized_value=None,
            error_message=f'Question "{question.label}": {message}'
        )

    @staticmethod
    def _validate_number(question: Question, value: Any) -> ValidationResult:
        """Validate a numeric answer against inclusive min/max bounds.

        Booleans are rejected even though Python treats them as integers,
        and so are NaN and infinities.
        """
        if isinstance(value, bool) or not isinstance(value, Real):
            return AnswerValidator._invalid(question, "invalid number")
        if isinstance(value, float) and not math.isfinite(value):
            return AnswerValidator._invalid(question, "invalid number")

        rules = question.validation
        if rules is not None:
            if rules.min is not None and value < rules.min:
                return AnswerValidator._invalid(
                    question, f"value must be at least {_format_bound(rules.min)}"
                )
            if rules.max is not None and value > rules.max:
                return AnswerValidator._invalid(
                    question, f"value must be at most {_format_bound(rules.max)}"
                )

        return AnswerValidator._valid(value)

    @staticmethod
    def _validate_text(question: Question, value: Any) -> ValidationResult:
        """Validate text input against length and pattern rules."""
        if not isinstance(value, str):
            return AnswerValidator._invalid(question, "invalid text")

        rules = question.validation
        if rules is None:
            return AnswerValidator._valid(value)

        if rules.min_length is not None and len(value) < rules.min_length:
            return AnswerValidator._invalid(
                question, f"text must be at least {rules.min_length} characters"
            )

        if rules.max_length is not None and len(value) > rules.max_length:
            return AnswerValidator._invalid(
                question, f"text must be at most {rules.max_length} characters"
            )

        if rules.pattern is not None:
            try:
                if re.search(rules.pattern, value) is None:
                    return AnswerValidator._invalid(question, "invalid format")
            except re.error as e:
                logger.error(f"Invalid regex pattern in question {question.id}: {e}")
                return AnswerValidator._invalid(question, "invalid validation pattern")

        return AnswerValidator._valid(value)

    @staticmethod
    def _validate_choice(question: Question, value: Any) -> ValidationResult:
        """Validate a single choice against the question's option values."""
        if value not in question.option_values():
            return AnswerValidator._invalid(question, f'invalid option "{value}"')
        return AnswerValidator._valid(value)

    @staticmethod
    def _validate_checkbox(question: Question, value: Any) -> ValidationResult:
        """Validate a multiple choice answer; every element must be an option."""
        if not isinstance(value, (list, tuple)):
            return AnswerValidator._invalid(question, "invalid selection")

        allowed = question.option_values()
        for item in value:
            if item not in allowed:
                return AnswerValidator._invalid(question, f'invalid option "{item}"')

        return AnswerValidator._valid(list(value))

    @staticmethod
    def _validate_datetime(question: Question, value: Any) -> ValidationResult:
        """Validate that a date or time answer parses.

        The submitted string is stored unchanged.
        """
        if not isinstance(value, str) or not value.strip():
            return AnswerValidator._invalid(question, "invalid date/time")

        try:
            date_parser.parse(value)
        except (ValueError, OverflowError) as e:
            logger.debug(f"Unparseable date/time for question {question.id}: {e}")
            return AnswerValidator._invalid(question, "invalid date/time")

        return AnswerValidator._valid(value)

    @staticmethod
    def _validate_location(question: Question, value: Any) -> ValidationResult:
        """Validate a location object carrying latitude and longitude."""
        if not isinstance(value, Mapping):
            return AnswerValidator._invalid(question, "invalid location")
        if value.get("latitude") is None or value.get("longitude") is None:
            return AnswerValidator._invalid(question, "invalid location")

        try:
            location = LocationValue.model_validate(dict(value))
        except ValidationError as e:
            logger.debug(f"Invalid location for question {question.id}: {e}")
            return AnswerValidator._invalid(question, "invalid location")

        return AnswerValidator._valid(location.model_dump(exclude_none=True))
