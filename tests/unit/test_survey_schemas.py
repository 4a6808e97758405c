"""Unit tests for survey and response schemas.

Tests Pydantic validation of survey definitions and request bodies.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from app.schemas.response import AnswerSubmission, LocationValue, ResponseMetadata, SaveDraftRequest
from app.schemas.survey import (
    LogicCondition,
    Question,
    QuestionCreate,
    QuestionType,
    Survey,
    SurveyCreate,
    SurveySettings,
    ValidationRules,
)


class TestValidationRules:
    """Tests for ValidationRules schema."""

    def test_max_must_not_be_below_min(self):
        """Test numeric bounds are consistent."""
        with pytest.raises(ValidationError, match="max must be >= min"):
            ValidationRules(min=10, max=5)

    def test_max_length_must_not_be_below_min_length(self):
        """Test length bounds are consistent."""
        with pytest.raises(ValidationError, match="max_length must be >= min_length"):
            ValidationRules(min_length=10, max_length=5)

    def test_pattern_must_compile(self):
        """Test invalid regular expressions are rejected at authoring time."""
        with pytest.raises(ValidationError, match="Invalid regex pattern"):
            ValidationRules(pattern="[unclosed")


class TestQuestionSchemas:
    """Tests for question schemas."""

    def test_choice_question_requires_options(self):
        """Test select/radio/checkbox questions need options."""
        with pytest.raises(ValidationError, match="must have options"):
            QuestionCreate(type="select", label="Pick one")

    def test_duplicate_option_values(self):
        """Test option values must be unique."""
        with pytest.raises(ValidationError, match="duplicate option values"):
            QuestionCreate(
                type="radio",
                label="Pick one",
                options=[{"label": "A", "value": "a"}, {"label": "Also A", "value": "a"}],
            )

    def test_unknown_question_type(self):
        """Test unsupported types are rejected."""
        with pytest.raises(ValidationError):
            QuestionCreate(type="slider", label="Slide")

    def test_in_operator_requires_list(self):
        """Test the in operator's operand is a list."""
        with pytest.raises(ValidationError, match="requires a list value"):
            LogicCondition(question_id="q1", operator="in", value="a")

    def test_metadata_accepts_meta_alias(self):
        """Test question metadata can be read from the ORM attribute name."""
        question = Question(id="q1", type="text", label="Name", meta={"hint": "x"})
        assert question.metadata == {"hint": "x"}

    def test_referenced_question_ids(self):
        """Test referenced IDs come from logic conditions."""
        question = QuestionCreate(
            type="text",
            label="Follow up",
            logic={"conditions": [
                {"question_id": "a", "operator": "=", "value": 1},
                {"question_id": "b", "operator": "!=", "value": 2},
            ]},
        )

        assert question.referenced_question_ids() == ["a", "b"]
        assert question.has_logic
        assert question.logic.action.value == "show"

    def test_questions_are_immutable(self):
        """Test stored questions cannot be modified."""
        question = Question(id="q1", type=QuestionType.TEXT, label="Name")
        with pytest.raises(ValidationError):
            question.label = "Other"


class TestSurveySettings:
    """Tests for SurveySettings schema."""

    def test_defaults(self):
        """Test default participation settings."""
        settings = SurveySettings()

        assert settings.allow_anonymous is True
        assert settings.require_auth is False
        assert settings.allow_multiple_submissions is False

    def test_inverted_window_rejected(self):
        """Test end_date before start_date is rejected."""
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError, match="end_date must be after start_date"):
            SurveySettings(start_date=now, end_date=now - timedelta(days=1))

    def test_window_checks(self):
        """Test has_started and has_ended, with naive dates read as UTC."""
        settings = SurveySettings(start_date=datetime(2024, 1, 1), end_date=datetime(2024, 1, 31))

        assert not settings.has_started(datetime(2023, 12, 31, tzinfo=timezone.utc))
        assert settings.has_started(datetime(2024, 1, 15, tzinfo=timezone.utc))
        assert not settings.has_ended(datetime(2024, 1, 15, tzinfo=timezone.utc))
        assert settings.has_ended(datetime(2024, 2, 1, tzinfo=timezone.utc))


class TestSurveySchemas:
    """Tests for SurveyCreate and Survey schemas."""

    def test_duplicate_question_keys(self):
        """Test authoring keys must be unique."""
        with pytest.raises(ValidationError, match="Duplicate question IDs"):
            SurveyCreate(
                title="Dupes",
                questions=[
                    {"id": "q1", "type": "text", "label": "One"},
                    {"id": "q1", "type": "text", "label": "Two"},
                ],
            )

    def test_null_settings_use_defaults(self):
        """Test a NULL settings column loads as default settings."""
        survey = Survey(id="s1", title="T", slug="t", settings=None)
        assert survey.settings == SurveySettings()

    def test_ordered_questions_and_lookup(self):
        """Test questions sort by order then position."""
        survey = Survey(
            id="s1",
            title="T",
            slug="t",
            questions=[
                Question(id="late", type="text", label="Late", order=2, position=0),
                Question(id="tie_b", type="text", label="Tie B", order=1, position=2),
                Question(id="tie_a", type="text", label="Tie A", order=1, position=1),
            ],
        )

        assert [q.id for q in survey.ordered_questions()] == ["tie_a", "tie_b", "late"]
        assert survey.get_question("late").label == "Late"
        assert survey.get_question("missing") is None


class TestResponseSchemas:
    """Tests for response request schemas."""

    def test_answer_value_can_be_any_shape(self):
        """Test answers accept scalars, lists and objects."""
        for value in ("text", 3, ["a"], {"latitude": 1, "longitude": 2}, None):
            assert AnswerSubmission(question_id="q1", answer=value).answer == value

    def test_draft_response_id_must_be_positive(self):
        """Test draft IDs are positive integers."""
        with pytest.raises(ValidationError):
            SaveDraftRequest(answers=[], response_id=0)

    def test_location_bounds(self):
        """Test latitude and longitude ranges."""
        assert LocationValue(latitude=-90, longitude=180).latitude == -90
        with pytest.raises(ValidationError):
            LocationValue(latitude=0, longitude=181)

    @pytest.mark.parametrize("value", [
        float("nan"),
        float("inf"),
        [1, float("-inf")],
        {"latitude": float("nan"), "longitude": 2},
    ])
    def test_answer_rejects_non_finite_numbers(self, value):
        """Test NaN and infinities are rejected at any depth of an answer."""
        with pytest.raises(ValidationError, match="not allowed"):
            AnswerSubmission(question_id="q1", answer=value)

    def test_metadata_rejects_non_finite_numbers(self):
        """Test metadata fields and extras must be finite."""
        with pytest.raises(ValidationError):
            ResponseMetadata(duration=float("inf"))
        with pytest.raises(ValidationError, match="not allowed"):
            ResponseMetadata(score=float("nan"))
