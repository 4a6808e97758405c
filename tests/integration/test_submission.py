"""Integration tests for the submission coordinator.

These tests verify the respondent flow against a real database:
- Eligibility checks (status, window, auth, duplicates)
- Validation failures leave nothing behind
- Draft creation and wholesale answer replacement
- The database-level single submission guarantee
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event, func, select

from app.models.response import Answer, SurveyResponse
from app.schemas.response import AnswerSubmission, ResponseMetadata
from app.schemas.survey import ensure_utc
from app.services.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    OutOfWindowError,
    ValidationFailedError,
)
from app.services.submission import SubmissionCoordinator


def answers(**values):
    return [AnswerSubmission(question_id=key, answer=value) for key, value in values.items()]


def count_responses(db_session) -> int:
    return db_session.execute(select(func.count(SurveyResponse.id))).scalar_one()


def count_answers(db_session) -> int:
    return db_session.execute(select(func.count(Answer.id))).scalar_one()


@pytest.fixture
def failing_answer_insert():
    """Make every Answer INSERT fail inside the flush."""
    def fail(mapper, connection, target):
        raise RuntimeError("answer insert failed")

    event.listen(Answer, "before_insert", fail)
    yield
    event.remove(Answer, "before_insert", fail)


@pytest.fixture
def score_survey(make_survey):
    """Published survey with one required number question (0..10)."""
    return make_survey({
        "title": "Score",
        "status": "published",
        "questions": [{
            "type": "number",
            "label": "Score",
            "required": True,
            "validation": {"min": 0, "max": 10},
        }],
    })


class TestSubmit:
    """Tests for SubmissionCoordinator.submit."""

    def test_valid_submission(self, db_session, score_survey):
        """Test a valid answer is stored with the response."""
        question_id = score_survey.questions[0].id

        response = SubmissionCoordinator(db_session).submit(
            score_survey.id,
            [AnswerSubmission(question_id=question_id, answer=7)],
            metadata=ResponseMetadata(user_agent="pytest", duration=12.5),
        )

        assert response.status == "submitted"
        assert response.submitted_at is not None
        assert len(response.uuid) == 36
        assert response.meta == {"user_agent": "pytest", "duration": 12.5}
        assert response.answer_map() == {question_id: 7}
        assert response.answers[0].question.label == "Score"

    def test_out_of_range_answer(self, db_session, score_survey):
        """Test an invalid answer fails and stores nothing."""
        question_id = score_survey.questions[0].id

        with pytest.raises(ValidationFailedError) as exc_info:
            SubmissionCoordinator(db_session).submit(
                score_survey.id, [AnswerSubmission(question_id=question_id, answer=15)]
            )

        assert "must be at most 10" in str(exc_info.value)
        assert exc_info.value.errors[0].question_id == question_id
        assert count_responses(db_session) == 0

    def test_missing_required_answer(self, db_session, score_survey):
        """Test the required question is named in the error."""
        with pytest.raises(ValidationFailedError, match='Question "Score" is required'):
            SubmissionCoordinator(db_session).submit(score_survey.id, [])

    def test_unknown_survey(self, db_session):
        """Test submitting to a survey that does not exist."""
        with pytest.raises(NotFoundError):
            SubmissionCoordinator(db_session).submit("missing", [])

    def test_draft_survey_not_accepting(self, db_session, make_survey):
        """Test unpublished surveys reject submissions."""
        survey = make_survey({"title": "Draft", "status": "draft"})

        with pytest.raises(InvalidStateError, match="Survey is not accepting responses"):
            SubmissionCoordinator(db_session).submit(survey.id, [])

    def test_not_started(self, db_session, make_survey):
        """Test a survey starting tomorrow rejects submissions."""
        tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
        survey = make_survey({
            "title": "Future",
            "status": "published",
            "settings": {"start_date": tomorrow.isoformat()},
        })

        with pytest.raises(OutOfWindowError, match="Survey has not started yet"):
            SubmissionCoordinator(db_session).submit(survey.id, [])

    def test_ended(self, db_session, make_survey):
        """Test a survey that ended rejects submissions."""
        survey = make_survey({
            "title": "Past",
            "status": "published",
            "settings": {"end_date": "2020-01-01T00:00:00Z"},
        })

        with pytest.raises(OutOfWindowError, match="Survey has ended"):
            SubmissionCoordinator(db_session).submit(survey.id, [])

    def test_injected_clock(self, db_session, make_survey):
        """Test the window is checked against the coordinator's clock."""
        survey = make_survey({
            "title": "Past",
            "status": "published",
            "settings": {"end_date": "2020-01-01T00:00:00Z"},
        })
        coordinator = SubmissionCoordinator(
            db_session, clock=lambda: datetime(2019, 6, 1, tzinfo=timezone.utc)
        )

        response = coordinator.submit(survey.id, [])

        assert response.status == "submitted"
        assert ensure_utc(response.submitted_at) == datetime(2019, 6, 1, tzinfo=timezone.utc)

    def test_require_auth(self, db_session, make_survey):
        """Test surveys requiring authentication reject anonymous calls."""
        survey = make_survey({
            "title": "Members",
            "status": "published",
            "settings": {"require_auth": True},
        })
        coordinator = SubmissionCoordinator(db_session)

        with pytest.raises(InvalidStateError, match="authenticated"):
            coordinator.submit(survey.id, [])

        assert coordinator.submit(survey.id, [], user_id="user-1").user_id == "user-1"

    def test_duplicate_submission(self, db_session, score_survey):
        """Test a second submission by the same user is a conflict."""
        question_id = score_survey.questions[0].id
        coordinator = SubmissionCoordinator(db_session)

        coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=1)], user_id="u1")

        with pytest.raises(ConflictError, match="already submitted"):
            coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=2)], user_id="u1")

        # Other users and anonymous respondents are unaffected
        coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=3)], user_id="u2")
        coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=4)])
        coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=5)])
        assert count_responses(db_session) == 4

    def test_unique_constraint_backs_duplicate_check(self, db_session, score_survey, monkeypatch):
        """Test the database rejects a duplicate even if the pre-check passes."""
        question_id = score_survey.questions[0].id
        coordinator = SubmissionCoordinator(db_session)
        coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=1)], user_id="u1")

        # Simulate a concurrent request that raced past the pre-check
        monkeypatch.setattr(SurveyResponse, "has_submitted", classmethod(lambda cls, db, s, u: False))

        with pytest.raises(ConflictError, match="already submitted"):
            coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=2)], user_id="u1")

        assert count_responses(db_session) == 1

    def test_failed_answer_insert_stores_nothing(self, db_session, score_survey, failing_answer_insert):
        """Test a failure while inserting answers rolls back the response too."""
        question_id = score_survey.questions[0].id

        with pytest.raises(RuntimeError, match="answer insert failed"):
            SubmissionCoordinator(db_session).submit(
                score_survey.id, [AnswerSubmission(question_id=question_id, answer=4)], user_id="u1"
            )

        assert count_responses(db_session) == 0
        assert count_answers(db_session) == 0
        assert not SurveyResponse.has_submitted(db_session, score_survey.id, "u1")

    def test_multiple_submissions_allowed(self, db_session, make_survey):
        """Test surveys allowing multiple submissions accept repeats."""
        survey = make_survey({
            "title": "Repeatable",
            "status": "published",
            "settings": {"allow_multiple_submissions": True},
        })
        coordinator = SubmissionCoordinator(db_session)

        coordinator.submit(survey.id, [], user_id="u1")
        coordinator.submit(survey.id, [], user_id="u1")

        assert count_responses(db_session) == 2

    def test_logic_scenarios(self, db_session, make_survey, feedback_payload, ids_by_label):
        """Test show logic gates a required question."""
        survey = make_survey(feedback_payload)
        ids = ids_by_label(survey)
        coordinator = SubmissionCoordinator(db_session)

        # Rating hidden when the gate answer is "no"
        response = coordinator.submit(survey.id, [
            AnswerSubmission(question_id=ids["Did you visit?"], answer="no"),
        ])
        assert response.status == "submitted"

        # Rating required when shown
        with pytest.raises(ValidationFailedError, match='Question "Rating" is required'):
            coordinator.submit(survey.id, [
                AnswerSubmission(question_id=ids["Did you visit?"], answer="yes"),
            ])

    def test_collects_all_errors(self, db_session, make_survey, feedback_payload, ids_by_label):
        """Test every invalid answer is reported in one failure."""
        survey = make_survey(feedback_payload)
        ids = ids_by_label(survey)

        with pytest.raises(ValidationFailedError) as exc_info:
            SubmissionCoordinator(db_session).submit(survey.id, [
                AnswerSubmission(question_id=ids["Did you visit?"], answer="yes"),
                AnswerSubmission(question_id=ids["Rating"], answer=15),
                AnswerSubmission(question_id=ids["Departments"], answer=["a", "d"]),
            ])

        messages = [error.message for error in exc_info.value.errors]
        assert len(messages) == 2
        assert "must be at most 10" in messages[0]
        assert 'invalid option "d"' in messages[1]

    def test_unknown_question_rejected(self, db_session, score_survey):
        """Test answers to questions of another survey are rejected."""
        with pytest.raises(ValidationFailedError, match="does not belong to this survey"):
            SubmissionCoordinator(db_session).submit(score_survey.id, [
                AnswerSubmission(question_id=score_survey.questions[0].id, answer=1),
                AnswerSubmission(question_id="not-a-question", answer="x"),
            ])

    def test_location_is_normalized(self, db_session, make_survey):
        """Test validated values are what gets stored."""
        survey = make_survey({
            "title": "Where",
            "status": "published",
            "questions": [{"type": "location", "label": "Where are you?"}],
        })
        question_id = survey.questions[0].id

        response = SubmissionCoordinator(db_session).submit(survey.id, [
            AnswerSubmission(question_id=question_id, answer={"latitude": 10, "longitude": 20, "accuracy": None}),
        ])

        assert response.answer_map()[question_id] == {"latitude": 10.0, "longitude": 20.0}


class TestSaveDraft:
    """Tests for SubmissionCoordinator.save_draft."""

    def test_draft_skips_validation(self, db_session, score_survey):
        """Test drafts store invalid and missing answers as given."""
        question_id = score_survey.questions[0].id

        draft = SubmissionCoordinator(db_session).save_draft(
            score_survey.id, [AnswerSubmission(question_id=question_id, answer=99)]
        )

        assert draft.status == "draft"
        assert draft.submitted_at is None
        assert draft.answer_map() == {question_id: 99}

    def test_draft_resave_replaces_answers(self, db_session, make_survey, feedback_payload, ids_by_label):
        """Test re-saving a draft replaces the answer set wholesale."""
        survey = make_survey(feedback_payload)
        ids = ids_by_label(survey)
        coordinator = SubmissionCoordinator(db_session)

        draft = coordinator.save_draft(survey.id, [
            AnswerSubmission(question_id=ids["Did you visit?"], answer="yes"),
            AnswerSubmission(question_id=ids["Rating"], answer=3),
        ], metadata=ResponseMetadata(device="phone"))

        updated = coordinator.save_draft(
            survey.id,
            [AnswerSubmission(question_id=ids["Comments"], answer="later")],
            response_id=draft.id,
        )

        assert updated.id == draft.id
        assert updated.uuid == draft.uuid
        assert updated.answer_map() == {ids["Comments"]: "later"}
        assert updated.meta == {"device": "phone"}
        assert db_session.execute(select(func.count(Answer.id))).scalar_one() == 1

    def test_failed_resave_keeps_previous_answers(self, db_session, score_survey, monkeypatch):
        """Test a re-save failing at commit leaves the stored draft untouched."""
        question_id = score_survey.questions[0].id
        coordinator = SubmissionCoordinator(db_session)
        draft = coordinator.save_draft(
            score_survey.id,
            [AnswerSubmission(question_id=question_id, answer=3)],
            metadata=ResponseMetadata(device="tablet"),
        )

        def fail_commit():
            raise RuntimeError("commit failed")

        monkeypatch.setattr(db_session, "commit", fail_commit)
        with pytest.raises(RuntimeError, match="commit failed"):
            coordinator.save_draft(
                score_survey.id,
                [AnswerSubmission(question_id=question_id, answer=8)],
                metadata=ResponseMetadata(device="phone"),
                response_id=draft.id,
            )
        monkeypatch.undo()

        reloaded = coordinator.get_response(draft.id)
        assert reloaded.answer_map() == {question_id: 3}
        assert reloaded.meta == {"device": "tablet"}
        assert count_answers(db_session) == 1

    def test_draft_for_unpublished_survey(self, db_session, make_survey):
        """Test drafts can be saved before a survey is published."""
        survey = make_survey({"title": "Soon", "status": "draft"})

        assert SubmissionCoordinator(db_session).save_draft(survey.id, []).status == "draft"

    def test_unknown_draft(self, db_session, score_survey):
        """Test continuing a draft that does not exist."""
        with pytest.raises(NotFoundError, match="Draft response not found"):
            SubmissionCoordinator(db_session).save_draft(score_survey.id, [], response_id=999)

    def test_submitted_response_is_not_a_draft(self, db_session, score_survey):
        """Test submitted responses cannot be reopened as drafts."""
        question_id = score_survey.questions[0].id
        coordinator = SubmissionCoordinator(db_session)
        submitted = coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=5)])

        with pytest.raises(NotFoundError, match="Draft response not found"):
            coordinator.save_draft(score_survey.id, [], response_id=submitted.id)

        assert coordinator.get_response(submitted.id).answer_map() == {question_id: 5}

    def test_draft_owned_by_other_user(self, db_session, score_survey):
        """Test a user's draft cannot be continued by someone else."""
        coordinator = SubmissionCoordinator(db_session)
        draft = coordinator.save_draft(score_survey.id, [], user_id="owner")

        with pytest.raises(NotFoundError):
            coordinator.save_draft(score_survey.id, [], user_id="intruder", response_id=draft.id)

    def test_draft_structure_checked(self, db_session, score_survey):
        """Test drafts still reject unknown and duplicate questions."""
        question_id = score_survey.questions[0].id

        with pytest.raises(ValidationFailedError, match="more than once"):
            SubmissionCoordinator(db_session).save_draft(score_survey.id, [
                AnswerSubmission(question_id=question_id, answer=1),
                AnswerSubmission(question_id=question_id, answer=2),
            ])


class TestGetByUuid:
    """Tests for SubmissionCoordinator.get_by_uuid."""

    def test_lookup(self, db_session, score_survey):
        """Test loading a response by UUID."""
        coordinator = SubmissionCoordinator(db_session)
        question_id = score_survey.questions[0].id
        response = coordinator.submit(score_survey.id, [AnswerSubmission(question_id=question_id, answer=4)])

        loaded = coordinator.get_by_uuid(response.uuid)

        assert loaded.id == response.id
        assert loaded.answers[0].question.type == "number"

    def test_missing(self, db_session):
        """Test unknown UUIDs."""
        with pytest.raises(NotFoundError):
            SubmissionCoordinator(db_session).get_by_uuid("00000000-0000-0000-0000-000000000000")
