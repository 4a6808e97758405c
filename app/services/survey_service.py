"""Survey authoring service.

This module creates, updates, lists and deletes surveys, generates unique
slugs, and computes basic per-question statistics over submitted
responses.
"""

import re
import unicodedata
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.config import Settings, get_settings
from app.models.response import RESPONSE_STATUS_SUBMITTED, Answer, SurveyResponse
from app.models.survey import Question, Survey, generate_uuid
from app.schemas.survey import (
    CHOICE_TYPES,
    QuestionCreate,
    Survey as SurveyDefinition,
    SurveyCreate,
    SurveyStatus,
    SurveyUpdate,
    ensure_utc,
)
from app.services.exceptions import ConflictError, NotFoundError, OutOfWindowError
from app.services.response_validation import is_blank
from app.services.survey_validator import SurveyValidator
from app.logging_config import get_logger

logger = get_logger(__name__)


def slugify_title(title: str) -> str:
    """Convert a title into a lowercase, URL-safe slug.

    Example:
        >>> slugify_title("Café Survey: 2024 Edition!")
        'cafe-survey-2024-edition'
    """
    normalized = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "survey"


def check_submission_window(survey: SurveyDefinition, now: Optional[datetime] = None) -> None:
    """Raise if ``now`` is outside the survey's start/end dates.

    Raises:
        OutOfWindowError: If the survey has not started or has ended
    """
    now = now or datetime.now(timezone.utc)
    if not survey.settings.has_started(now):
        raise OutOfWindowError("Survey has not started yet")
    if survey.settings.has_ended(now):
        raise OutOfWindowError("Survey has ended")


class SurveyService:
    """Service for managing survey definitions."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        """Initialize survey service.

        Args:
            db: SQLAlchemy database session
            settings: Application settings (defaults to global settings)
        """
        self.db = db
        self.settings = settings or get_settings()

    def create(self, payload: SurveyCreate, user_id: Optional[str] = None) -> Survey:
        """Create a survey with its questions in one transaction.

        Args:
            payload: Survey definition
            user_id: ID of the authoring user

        Returns:
            The persisted survey with questions loaded

        Raises:
            SurveyStructureError: If the logic graph is invalid
            ConflictError: If the slug was taken concurrently
        """
        SurveyValidator.validate_questions(payload.questions)

        try:
            survey = Survey(
                title=payload.title,
                slug=self._unique_slug(payload.title),
                description=payload.description,
                settings=payload.settings.model_dump(mode="json"),
                status=payload.status.value,
                meta=dict(payload.metadata),
                created_by=user_id,
            )
            self.db.add(survey)
            self.db.flush()

            self._add_questions(survey, payload.questions)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error creating survey '{payload.title}': {e}")
            raise ConflictError("A survey with this slug already exists") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Created survey {survey.id} ({survey.slug}) with {len(payload.questions)} questions",
            extra={"survey_id": survey.id, "user_id": user_id},
        )
        return self.get(survey.id)

    def update(self, survey_id: str, payload: SurveyUpdate) -> Survey:
        """Update survey fields; replace questions wholesale when given.

        The slug is kept when the title changes so existing links stay valid.

        Args:
            survey_id: Survey to update
            payload: Fields to change

        Returns:
            The updated survey

        Raises:
            NotFoundError: If the survey does not exist
            SurveyStructureError: If the new logic graph is invalid
            ConflictError: If questions are replaced on a survey with responses
        """
        survey = self.get(survey_id)

        if payload.questions is not None:
            SurveyValidator.validate_questions(payload.questions)
            if SurveyResponse.count_for_survey(self.db, survey_id) > 0:
                raise ConflictError("Cannot replace questions of a survey with existing responses")

        changes = payload.model_dump(exclude_unset=True, exclude={"questions"})

        try:
            if "title" in changes and payload.title is not None:
                survey.title = payload.title
            if "description" in changes:
                survey.description = payload.description
            if "settings" in changes and payload.settings is not None:
                survey.settings = payload.settings.model_dump(mode="json")
            if "status" in changes and payload.status is not None:
                survey.status = payload.status.value
            if "metadata" in changes and payload.metadata is not None:
                survey.meta = dict(payload.metadata)

            if payload.questions is not None:
                survey.questions.clear()
                self.db.flush()
                self._add_questions(survey, payload.questions)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Updated survey {survey_id}", extra={"survey_id": survey_id})
        return self.get(survey_id)

    def get(self, survey_id: str) -> Survey:
        """Get a survey with its questions.

        Raises:
            NotFoundError: If the survey does not exist
        """
        survey = self.db.execute(
            select(Survey)
            .options(selectinload(Survey.questions))
            .where(Survey.id == survey_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if survey is None:
            logger.info(f"Survey not found: {survey_id}")
            raise NotFoundError(f"Survey with ID {survey_id} not found")
        return survey

    def get_definition(self, survey_id: str) -> SurveyDefinition:
        """Get a survey as an immutable definition.

        Raises:
            NotFoundError: If the survey does not exist
        """
        return SurveyDefinition.model_validate(self.get(survey_id))

    def get_by_slug(self, slug: str, now: Optional[datetime] = None) -> Survey:
        """Get a published survey by slug for public access.

        Raises:
            NotFoundError: If no published survey has this slug
            OutOfWindowError: If the survey is outside its date window
        """
        survey = self.db.execute(
            select(Survey)
            .options(selectinload(Survey.questions))
            .where(Survey.slug == slug)
        ).scalar_one_or_none()

        if survey is None:
            raise NotFoundError(f"Survey with slug {slug} not found")
        if survey.status != SurveyStatus.PUBLISHED.value:
            raise NotFoundError("Survey not available")

        check_submission_window(SurveyDefinition.model_validate(survey), now)
        return survey

    def list_surveys(
        self,
        status: Optional[SurveyStatus] = None,
        search: Optional[str] = None,
        created_by: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        active_only: bool = False,
        now: Optional[datetime] = None,
    ) -> list[Survey]:
        """List surveys, newest first.

        Args:
            status: Only surveys in this status
            search: Case-insensitive match on title or description
            created_by: Only surveys created by this user
            created_from: Only surveys created at or after this time
            created_to: Only surveys created at or before this time
            active_only: Only published surveys inside their date window
            now: Reference time for ``active_only``

        Returns:
            Matching surveys with questions loaded
        """
        query = select(Survey).options(selectinload(Survey.questions))

        if status is not None:
            query = query.where(Survey.status == status.value)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(Survey.title.ilike(pattern), Survey.description.ilike(pattern)))
        if created_by is not None:
            query = query.where(Survey.created_by == created_by)
        if created_from is not None:
            query = query.where(Survey.created_at >= ensure_utc(created_from).astimezone(timezone.utc))
        if created_to is not None:
            query = query.where(Survey.created_at <= ensure_utc(created_to).astimezone(timezone.utc))
        if active_only:
            query = query.where(Survey.status == SurveyStatus.PUBLISHED.value)

        surveys = list(self.db.execute(query.order_by(Survey.created_at.desc())).scalars().all())

        if active_only:
            # Date windows live in the settings JSON document
            now = now or datetime.now(timezone.utc)
            surveys = [
                survey for survey in surveys
                if self._in_window(SurveyDefinition.model_validate(survey), now)
            ]
        return surveys

    def remove(self, survey_id: str) -> None:
        """Delete a survey and its questions.

        Raises:
            NotFoundError: If the survey does not exist
            ConflictError: If the survey has responses
        """
        survey = self.get(survey_id)

        response_count = SurveyResponse.count_for_survey(self.db, survey_id)
        if response_count > 0:
            logger.warning(
                f"Refusing to delete survey {survey_id} with {response_count} responses",
                extra={"survey_id": survey_id},
            )
            raise ConflictError("Cannot delete survey with existing responses")

        try:
            self.db.delete(survey)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Deleted survey {survey_id}", extra={"survey_id": survey_id})

    def get_statistics(self, survey_id: str) -> dict[str, Any]:
        """Compute basic statistics over submitted responses.

        For every question: how many submitted responses answered it and,
        for choice questions, how often each option value was chosen.

        Raises:
            NotFoundError: If the survey does not exist
        """
        definition = self.get_definition(survey_id)
        total = SurveyResponse.count_for_survey(self.db, survey_id, RESPONSE_STATUS_SUBMITTED)

        answers = self.db.execute(
            select(Answer)
            .join(SurveyResponse, Answer.response_id == SurveyResponse.id)
            .where(
                SurveyResponse.survey_id == survey_id,
                SurveyResponse.status == RESPONSE_STATUS_SUBMITTED,
            )
        ).scalars().all()

        answered: Counter = Counter()
        distributions: dict[str, Counter] = {}
        for answer in answers:
            if is_blank(answer.answer) and not answer.files:
                continue
            answered[answer.question_id] += 1
            values = answer.answer if isinstance(answer.answer, list) else [answer.answer]
            counter = distributions.setdefault(answer.question_id, Counter())
            for value in values:
                if isinstance(value, (str, int, float, bool)):
                    counter[value] += 1

        question_stats = []
        for question in definition.ordered_questions():
            distribution = None
            if question.type in CHOICE_TYPES:
                counter = distributions.get(question.id, Counter())
                distribution = [
                    {"value": option.value, "label": option.label, "count": counter.get(option.value, 0)}
                    for option in question.options or []
                ]
            question_stats.append({
                "id": question.id,
                "label": question.label,
                "type": question.type.value,
                "response_count": answered.get(question.id, 0),
                "value_distribution": distribution,
            })

        return {
            "survey": {
                "id": definition.id,
                "title": definition.title,
                "total_questions": len(definition.questions),
            },
            "total_responses": total,
            "question_stats": question_stats,
        }

    def _unique_slug(self, title: str) -> str:
        """Generate a slug not used by any survey.

        Tries the bare slug, then numeric suffixes up to
        ``slug_max_attempts``; after that falls back to a random suffix.
        """
        base = slugify_title(title)
        candidate = base

        for counter in range(1, self.settings.slug_max_attempts + 1):
            exists = self.db.execute(
                select(Survey.id).where(Survey.slug == candidate)
            ).first()
            if exists is None:
                return candidate
            candidate = f"{base}-{counter}"

        fallback = f"{base}-{uuid.uuid4().hex[:8]}"
        logger.warning(
            f"Slug '{base}' exhausted {self.settings.slug_max_attempts} suffixes, using {fallback}"
        )
        return fallback

    def _add_questions(self, survey: Survey, questions: Sequence[QuestionCreate]) -> None:
        """Add questions to a survey, assigning stored IDs.

        Authoring keys used in logic conditions and parent references are
        rewritten to the generated IDs.
        """
        new_ids = [generate_uuid() for _ in questions]
        key_map = {
            question.id: new_ids[index]
            for index, question in enumerate(questions)
            if question.id is not None
        }

        rows: list[Question] = []
        for index, question in enumerate(questions):
            logic = None
            if question.logic is not None:
                logic = question.logic.model_dump(mode="json")
                for condition in logic["conditions"]:
                    condition["question_id"] = key_map[condition["question_id"]]

            row = Question(
                id=new_ids[index],
                type=question.type.value,
                label=question.label,
                description=question.description,
                placeholder=question.placeholder,
                required=question.required,
                order=question.order,
                position=index,
                options=(
                    [option.model_dump(mode="json") for option in question.options]
                    if question.options else None
                ),
                validation=(
                    question.validation.model_dump(mode="json", exclude_none=True)
                    if question.validation else None
                ),
                logic=logic,
                group_id=question.group_id,
                allow_other=question.allow_other,
                meta=dict(question.metadata),
            )
            survey.questions.append(row)
            rows.append(row)

        # Parents may come later in the payload, so link after insert
        self.db.flush()
        for row, question in zip(rows, questions):
            if question.parent_question_id is not None:
                row.parent_question_id = key_map[question.parent_question_id]
        self.db.flush()

    @staticmethod
    def _in_window(survey: SurveyDefinition, now: datetime) -> bool:
        return survey.settings.has_started(now) and not survey.settings.has_ended(now)
