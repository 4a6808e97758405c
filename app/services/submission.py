"""Submission coordinator for survey responses.

This module orchestrates the respondent flow: eligibility checks (survey
status, date window, authentication, duplicate submissions), answer
validation, and persisting a response with all of its answers in a single
transaction. Drafts skip content validation and can be saved repeatedly.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.models.response import (
    RESPONSE_STATUS_DRAFT,
    SINGLE_SUBMISSION_CONSTRAINT,
    Answer,
    SurveyResponse,
)
from app.schemas.response import AnswerSubmission, ResponseMetadata
from app.schemas.survey import Survey, SurveyStatus
from app.services.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SurveyEngineError,
    ValidationFailedError,
)
from app.services.response_validation import ResponseValidationPipeline, check_answer_structure
from app.services.survey_service import SurveyService, check_submission_window
from app.logging_config import get_logger

logger = get_logger(__name__)

DUPLICATE_SUBMISSION_MESSAGE = "You have already submitted a response to this survey"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionCoordinator:
    """Service for submitting responses and saving drafts."""

    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        """Initialize submission coordinator.

        Args:
            db: SQLAlchemy database session
            clock: Returns the current time (defaults to UTC now)
        """
        self.db = db
        self.clock = clock or _utcnow
        self.surveys = SurveyService(db)

    def submit(
        self,
        survey_id: str,
        answers: Sequence[AnswerSubmission],
        metadata: Optional[ResponseMetadata] = None,
        user_id: Optional[str] = None,
    ) -> SurveyResponse:
        """Validate and store a completed response.

        Checks run in this order, and the first failing check wins:
        survey exists, survey is published, submission window, respondent
        authentication, duplicate submission, answer validation. Nothing is
        written unless every check passes; the response and its answers are
        then committed together.

        Args:
            survey_id: Survey being answered
            answers: Submitted answers
            metadata: Respondent metadata
            user_id: Authenticated respondent, None when anonymous

        Returns:
            The stored response with answers loaded

        Raises:
            NotFoundError: If the survey does not exist
            InvalidStateError: If the survey is not published or requires
                authentication and no user is given
            OutOfWindowError: If the survey has not started or has ended
            ConflictError: If the user already submitted and the survey
                allows one submission per user
            ValidationFailedError: If any answer is invalid (all errors are
                reported)
        """
        survey = self.surveys.get_definition(survey_id)

        if survey.status != SurveyStatus.PUBLISHED:
            raise InvalidStateError("Survey is not accepting responses")

        now = self.clock()
        check_submission_window(survey, now)
        self._check_auth(survey, user_id)

        single_submission = not survey.settings.allow_multiple_submissions
        if single_submission and user_id and SurveyResponse.has_submitted(self.db, survey_id, user_id):
            logger.info(
                f"Duplicate submission rejected for survey {survey_id}",
                extra={"survey_id": survey_id, "user_id": user_id},
            )
            raise ConflictError(DUPLICATE_SUBMISSION_MESSAGE)

        result = ResponseValidationPipeline.run(survey, answers)
        if not result.is_valid:
            raise ValidationFailedError(result.errors)

        response = SurveyResponse(
            survey_id=survey_id,
            user_id=user_id,
            meta=self._dump_metadata(metadata),
        )
        response.mark_submitted(single_submission=single_submission, now=now)
        response.answers = [
            self._build_answer(answer, result.normalized.get(answer.question_id, answer.answer))
            for answer in answers
        ]

        try:
            self.db.add(response)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._conflict_from(e, survey_id, user_id) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Response {response.uuid} submitted for survey {survey_id} with {len(answers)} answers",
            extra={"survey_id": survey_id, "response_id": response.uuid, "user_id": user_id},
        )
        return self.get_response(response.id)

    def save_draft(
        self,
        survey_id: str,
        answers: Sequence[AnswerSubmission],
        metadata: Optional[ResponseMetadata] = None,
        user_id: Optional[str] = None,
        response_id: Optional[int] = None,
    ) -> SurveyResponse:
        """Store a partial response without validating answer content.

        With ``response_id`` the existing draft's answers are replaced by the
        given set; otherwise a new draft is created. Either way the change is
        committed as one transaction. Drafts may be saved for unpublished
        surveys and outside the submission window.

        Args:
            survey_id: Survey being answered
            answers: Answers collected so far
            metadata: Respondent metadata (kept when None on update)
            user_id: Authenticated respondent, None when anonymous
            response_id: Draft to update

        Returns:
            The stored draft with answers loaded

        Raises:
            NotFoundError: If the survey or the draft does not exist
            InvalidStateError: If the survey requires authentication and no
                user is given
            ValidationFailedError: If answers reference unknown questions or
                answer a question twice
        """
        survey = self.surveys.get_definition(survey_id)
        self._check_auth(survey, user_id)

        structure_errors = check_answer_structure(survey, answers)
        if structure_errors:
            raise ValidationFailedError(structure_errors)

        try:
            if response_id is not None:
                response = self._get_draft(survey_id, response_id, user_id)
                self.db.execute(delete(Answer).where(Answer.response_id == response.id))
                if metadata is not None:
                    response.meta = self._dump_metadata(metadata)
            else:
                response = SurveyResponse(
                    survey_id=survey_id,
                    user_id=user_id,
                    status=RESPONSE_STATUS_DRAFT,
                    meta=self._dump_metadata(metadata),
                )
                self.db.add(response)
                self.db.flush()

            self.db.add_all([
                self._build_answer(answer, answer.answer, response_id=response.id)
                for answer in answers
            ])
            self.db.commit()
        except SurveyEngineError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise self._conflict_from(e, survey_id, user_id) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Draft {response.uuid} saved for survey {survey_id} with {len(answers)} answers",
            extra={"survey_id": survey_id, "response_id": response.uuid, "user_id": user_id},
        )
        return self.get_response(response.id)

    def get_response(self, response_id: int) -> SurveyResponse:
        """Get a response by primary key with answers loaded.

        Raises:
            NotFoundError: If the response does not exist
        """
        response = self._load_response(SurveyResponse.id == response_id)
        if response is None:
            raise NotFoundError(f"Response with ID {response_id} not found")
        return response

    def get_by_uuid(self, response_uuid: str) -> SurveyResponse:
        """Get a response by its external UUID with answers loaded.

        Raises:
            NotFoundError: If the response does not exist
        """
        response = self._load_response(SurveyResponse.uuid == response_uuid)
        if response is None:
            raise NotFoundError("Response not found")
        return response

    def _load_response(self, criterion: Any) -> Optional[SurveyResponse]:
        return self.db.execute(
            select(SurveyResponse)
            .options(selectinload(SurveyResponse.answers).selectinload(Answer.question))
            .where(criterion)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _get_draft(self, survey_id: str, response_id: int, user_id: Optional[str]) -> SurveyResponse:
        """Load a draft of this survey owned by ``user_id``.

        Drafts saved by a signed-in user can only be continued by that user.
        """
        response = self.db.execute(
            select(SurveyResponse).where(
                SurveyResponse.id == response_id,
                SurveyResponse.survey_id == survey_id,
                SurveyResponse.status == RESPONSE_STATUS_DRAFT,
            )
        ).scalar_one_or_none()

        if response is None or (response.user_id is not None and response.user_id != user_id):
            raise NotFoundError("Draft response not found")
        return response

    @staticmethod
    def _check_auth(survey: Survey, user_id: Optional[str]) -> None:
        if survey.settings.require_auth and not user_id:
            raise InvalidStateError("Survey requires an authenticated respondent")

    @staticmethod
    def _build_answer(
        submission: AnswerSubmission,
        value: Any,
        response_id: Optional[int] = None,
    ) -> Answer:
        files = None
        if submission.files:
            files = [descriptor.model_dump(mode="json") for descriptor in submission.files]
        return Answer(
            response_id=response_id,
            question_id=submission.question_id,
            answer=value,
            files=files,
        )

    @staticmethod
    def _dump_metadata(metadata: Optional[ResponseMetadata]) -> dict[str, Any]:
        if metadata is None:
            return {}
        return metadata.model_dump(mode="json", exclude_none=True)

    @staticmethod
    def _conflict_from(error: IntegrityError, survey_id: str, user_id: Optional[str]) -> ConflictError:
        """Translate a storage constraint violation into a ConflictError."""
        detail = str(error.orig) if error.orig is not None else str(error)
        if SINGLE_SUBMISSION_CONSTRAINT in detail or "single_submission_key" in detail:
            logger.info(
                f"Concurrent duplicate submission rejected for survey {survey_id}",
                extra={"survey_id": survey_id, "user_id": user_id},
            )
            return ConflictError(DUPLICATE_SUBMISSION_MESSAGE)

        logger.error(f"Integrity error storing response for survey {survey_id}: {detail}")
        return ConflictError("Response conflicts with existing data")
