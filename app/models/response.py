"""SurveyResponse and Answer models for collected responses.

This module defines the SurveyResponse model, one respondent's answer set
to a survey in draft or submitted state, and the Answer model, which stores
one question's value within a response.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.models.database import Base
from app.models.survey import generate_uuid

RESPONSE_STATUS_DRAFT = "draft"
RESPONSE_STATUS_SUBMITTED = "submitted"

# Name of the constraint that guards single submissions per user
SINGLE_SUBMISSION_CONSTRAINT = "uq_responses_single_submission"


class SurveyResponse(Base):
    """Model for one respondent's answers to a survey.

    Responses own their answers, which are deleted with the response
    (CASCADE). ``submitted_at`` is set if and only if the status is
    ``submitted``; a check constraint enforces this.

    ``single_submission_key`` holds the user ID for submitted responses to
    surveys that disallow multiple submissions and is NULL otherwise. The
    unique constraint on (survey_id, single_submission_key) makes the
    database reject a second submission from the same user even when two
    requests race past the application-level check.

    Attributes:
        id: Primary key
        survey_id: Foreign key to surveys table
        user_id: Respondent user ID (NULL for anonymous responses)
        uuid: Externally addressable identifier
        status: draft or submitted
        submitted_at: When the response was submitted
        single_submission_key: User ID when one submission per user applies
        meta: JSON respondent metadata (column "metadata")
        created_at: Creation timestamp
        updated_at: Last update timestamp
        answers: Answers belonging to this response
        survey: Relationship to parent Survey
    """

    __tablename__ = "survey_responses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    survey_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("surveys.id"),
        nullable=False,
        index=True,
        comment="Foreign key to surveys table"
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Respondent user ID (NULL when anonymous)"
    )
    uuid: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=generate_uuid,
        comment="Externally addressable response identifier"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RESPONSE_STATUS_DRAFT,
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the response was submitted (NULL for drafts)"
    )
    single_submission_key: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="User ID when the survey allows one submission per user"
    )

    meta: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
        comment="Respondent metadata (user agent, device, duration, ...)"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    answers: Mapped[list["Answer"]] = relationship(
        "Answer",
        back_populates="response",
        cascade="all, delete-orphan",
        order_by="Answer.id",
    )
    survey: Mapped["Survey"] = relationship("Survey")

    __table_args__ = (
        UniqueConstraint(
            "survey_id",
            "single_submission_key",
            name=SINGLE_SUBMISSION_CONSTRAINT,
        ),
        CheckConstraint(
            "(status = 'submitted' AND submitted_at IS NOT NULL) "
            "OR (status = 'draft' AND submitted_at IS NULL)",
            name="ck_responses_submitted_at",
        ),
        # Index for export and duplicate-submission lookups
        Index("idx_responses_survey_status", "survey_id", "status"),
    )

    @property
    def is_draft(self) -> bool:
        """Check if the response is still a draft."""
        return self.status == RESPONSE_STATUS_DRAFT

    def mark_submitted(self, single_submission: bool = False, now: Optional[datetime] = None) -> None:
        """Put the response into the submitted state.

        Args:
            single_submission: Whether the survey allows only one submission
                per user, in which case the user ID becomes the
                single-submission key
            now: Submission time (defaults to UTC now)
        """
        self.status = RESPONSE_STATUS_SUBMITTED
        self.submitted_at = now or datetime.now(timezone.utc)
        if single_submission and self.user_id:
            self.single_submission_key = self.user_id

    def answer_map(self) -> dict[str, Any]:
        """Return answers keyed by question ID."""
        return {answer.question_id: answer.answer for answer in self.answers}

    @classmethod
    def has_submitted(cls, db: Session, survey_id: str, user_id: str) -> bool:
        """Check if a user already has a submitted response for a survey.

        Args:
            db: Database session
            survey_id: Survey to check
            user_id: Respondent user ID

        Returns:
            bool: True if a submitted response exists
        """
        result = db.execute(
            select(cls.id).where(
                cls.survey_id == survey_id,
                cls.user_id == user_id,
                cls.status == RESPONSE_STATUS_SUBMITTED,
            )
        ).first()
        return result is not None

    @classmethod
    def count_for_survey(
        cls,
        db: Session,
        survey_id: str,
        status: Optional[str] = None
    ) -> int:
        """Count responses for a survey, optionally filtered by status.

        Args:
            db: Database session
            survey_id: Survey to count responses for
            status: Only count responses in this status

        Returns:
            int: Number of matching responses
        """
        query = select(func.count(cls.id)).where(cls.survey_id == survey_id)
        if status is not None:
            query = query.where(cls.status == status)
        return db.execute(query).scalar_one()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SurveyResponse(id={self.id}, "
            f"uuid={self.uuid}, "
            f"survey_id={self.survey_id}, "
            f"status={self.status})>"
        )


class Answer(Base):
    """Model for one question's answer within a response.

    The ``answer`` column holds a JSON value whose shape depends on the
    owning question's type (string, number, list of option values, or a
    location object). ``files`` holds file descriptors produced by the
    upload layer.

    Attributes:
        id: Primary key
        response_id: Foreign key to survey_responses table
        question_id: Foreign key to questions table
        answer: Answer value
        files: List of {original_name, filename, mimetype, size, path}
        created_at: When the answer row was written
        response: Relationship to parent SurveyResponse
        question: Relationship to the answered Question
    """

    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    response_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("survey_responses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    answer: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    files: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    response: Mapped["SurveyResponse"] = relationship(
        "SurveyResponse",
        back_populates="answers",
    )
    question: Mapped["Question"] = relationship("Question")

    __table_args__ = (
        UniqueConstraint("response_id", "question_id", name="uq_answers_response_question"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Answer(id={self.id}, "
            f"response_id={self.response_id}, "
            f"question_id={self.question_id})>"
        )
