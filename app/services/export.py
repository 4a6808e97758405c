"""Export of submitted survey responses.

Builds a complete in-memory artifact from a survey's submitted responses,
either as a JSON document or as CSV text with one column per question.
"""

import csv
import io
import json
from typing import Any, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models.response import RESPONSE_STATUS_SUBMITTED, SurveyResponse
from app.schemas.response import ExportFormat
from app.schemas.survey import Question, Survey, ensure_utc
from app.services.exceptions import InvalidStateError
from app.services.survey_service import SurveyService
from app.logging_config import get_logger

logger = get_logger(__name__)

FIXED_CSV_HEADERS = ["Response ID", "User ID", "Submitted At"]
ANONYMOUS_USER = "Anonymous"


def format_csv_value(value: Any) -> str:
    """Render a stored answer value as a CSV cell.

    Example:
        >>> format_csv_value(["a", "b"])
        'a, b'
        >>> format_csv_value(True)
        'true'
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_csv_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)


def unique_headers(questions: Sequence[Question]) -> list[str]:
    """Return one column header per question, suffixing repeated labels.

    Example:
        Labels ["Age", "Age", "Name"] become ["Age", "Age (2)", "Name"].
    """
    seen: dict[str, int] = {}
    headers = []
    for question in questions:
        count = seen.get(question.label, 0) + 1
        seen[question.label] = count
        headers.append(question.label if count == 1 else f"{question.label} ({count})")
    return headers


class ExportEngine:
    """Service for exporting submitted responses."""

    def __init__(self, db: Session):
        """Initialize export engine.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def export(self, survey_id: str, fmt: Union[ExportFormat, str]) -> Union[str, dict[str, Any]]:
        """Export a survey's submitted responses.

        Args:
            survey_id: Survey to export
            fmt: "csv" or "json"

        Returns:
            CSV text for csv, a JSON-serializable dict for json

        Raises:
            NotFoundError: If the survey does not exist
            InvalidStateError: If the format is not supported
        """
        try:
            export_format = ExportFormat(fmt)
        except ValueError:
            logger.warning(f"Unsupported export format requested: {fmt}")
            raise InvalidStateError(f"Unsupported export format: {fmt}")

        survey = SurveyService(self.db).get_definition(survey_id)
        responses = self._submitted_responses(survey_id)

        logger.info(
            f"Exporting {len(responses)} responses for survey {survey_id} as {export_format.value}",
            extra={"survey_id": survey_id},
        )

        if export_format == ExportFormat.CSV:
            return self.to_csv(survey, responses)
        return self.to_json(survey, responses)

    def to_json(self, survey: Survey, responses: Sequence[SurveyResponse]) -> dict[str, Any]:
        """Build the JSON export document."""
        return {
            "survey": {
                "id": survey.id,
                "title": survey.title,
                "questions": [
                    {"id": question.id, "label": question.label, "type": question.type.value}
                    for question in survey.ordered_questions()
                ],
            },
            "responses": [
                {
                    "id": response.id,
                    "uuid": response.uuid,
                    "user_id": response.user_id,
                    "submitted_at": self._timestamp(response),
                    "answers": response.answer_map(),
                }
                for response in responses
            ],
        }

    def to_csv(self, survey: Survey, responses: Sequence[SurveyResponse]) -> str:
        """Build the CSV export text, one row per response."""
        questions = survey.ordered_questions()
        buffer = io.StringIO()
        writer = csv.writer(buffer)

        writer.writerow(FIXED_CSV_HEADERS + unique_headers(questions))
        for response in responses:
            answers = response.answer_map()
            writer.writerow(
                [
                    response.uuid,
                    response.user_id or ANONYMOUS_USER,
                    self._timestamp(response) or "",
                ]
                + [format_csv_value(answers.get(question.id)) for question in questions]
            )

        return buffer.getvalue()

    def _submitted_responses(self, survey_id: str) -> list[SurveyResponse]:
        """Load submitted responses with answers, newest first."""
        return list(
            self.db.execute(
                select(SurveyResponse)
                .options(selectinload(SurveyResponse.answers))
                .where(
                    SurveyResponse.survey_id == survey_id,
                    SurveyResponse.status == RESPONSE_STATUS_SUBMITTED,
                )
                .order_by(SurveyResponse.submitted_at.desc(), SurveyResponse.id.desc())
            ).scalars().all()
        )

    @staticmethod
    def _timestamp(response: SurveyResponse):
        if response.submitted_at is None:
            return None
        return ensure_utc(response.submitted_at).isoformat()
