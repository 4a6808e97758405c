"""Survey and Question models for survey definitions.

This module defines the Survey model, which holds participation settings
and publication status, and the Question model, which holds one typed
prompt together with its validation rules and conditional logic.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base


def generate_uuid() -> str:
    """Return a new random UUID as a string."""
    return str(uuid.uuid4())


class Survey(Base):
    """Model for a survey definition.

    A survey owns an ordered list of questions; deleting a survey deletes
    its questions (CASCADE). Responses are not cascaded: the survey
    service refuses to delete a survey that has responses.

    Attributes:
        id: UUID primary key
        title: Human-readable title
        slug: Globally unique, URL-safe identifier derived from the title
        description: Optional longer description
        settings: JSON participation settings (windows, submission policy)
        status: draft, published or closed
        meta: JSON metadata map (column "metadata")
        created_by: ID of the user who created the survey
        created_at: Creation timestamp
        updated_at: Last update timestamp
        questions: Questions ordered by (order, position)
    """

    __tablename__ = "surveys"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Survey title"
    )
    slug: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Globally unique URL-safe identifier"
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    settings: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Participation settings (submission policy, time window)"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        comment="draft, published or closed"
    )
    meta: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    created_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="User ID of the survey author"
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

    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="[Question.order, Question.position]",
    )

    __table_args__ = (
        Index("idx_surveys_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Survey(id={self.id}, "
            f"slug={self.slug}, "
            f"status={self.status})>"
        )


class Question(Base):
    """Model for a single survey question.

    ``options``, ``validation`` and ``logic`` are stored as JSON documents
    and parsed into the immutable question schema before use.

    Attributes:
        id: UUID primary key
        survey_id: Foreign key to owning survey
        type: Question type (text, number, checkbox, ...)
        label: Question text shown to respondents
        description: Optional help text
        placeholder: Optional input placeholder
        required: Whether an answer is required when the question applies
        order: Sort key within the survey (not necessarily unique)
        position: Index in the authoring payload, breaks ties on ``order``
        options: Choice options for select/radio/checkbox
        validation: Validation rules (min, max, min_length, pattern, ...)
        logic: Conditional logic clause (conditions + action)
        parent_question_id: Optional parent for branching UIs
        group_id: Optional group identifier
        allow_other: Whether an "other" free-text choice is offered
        meta: JSON metadata map (column "metadata")
    """

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    survey_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Question type"
    )
    label: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    placeholder: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Ordering
    order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Index in authoring payload, tie-breaker for order"
    )

    options: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    validation: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    logic: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    parent_question_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("questions.id", ondelete="SET NULL"),
        nullable=True,
    )
    group_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    allow_other: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    meta: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    survey: Mapped["Survey"] = relationship(
        "Survey",
        back_populates="questions",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Question(id={self.id}, "
            f"survey_id={self.survey_id}, "
            f"type={self.type}, "
            f"order={self.order})>"
        )
