"""Response validation pipeline.

Validates a complete answer set against a survey: filters questions by
their logic clauses, enforces required answers, and runs per-type answer
validation. Every violation is collected so callers can report all
problems at once instead of one per round trip.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from app.schemas.response import AnswerSubmission
from app.schemas.survey import Survey
from app.services.logic import LogicEvaluator
from app.services.validation import AnswerValidator
from app.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnswerError:
    """One validation violation.

    Attributes:
        question_id: ID of the offending question (or the unknown ID given)
        label: Label of the offending question, None for unknown IDs
        message: User-facing message naming the question
    """
    question_id: str
    label: Optional[str]
    message: str


def is_blank(value: Any) -> bool:
    """Check if an answer value counts as not answered."""
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return True
    return False


def check_answer_structure(survey: Survey, answers: Iterable[AnswerSubmission]) -> list[AnswerError]:
    """Check that answers reference survey questions at most once each.

    Used for both submissions and drafts; drafts skip content validation
    but must still be storable.

    Args:
        survey: Survey the answers belong to
        answers: Submitted answers

    Returns:
        List of errors, empty when the structure is valid
    """
    errors: list[AnswerError] = []
    seen: set[str] = set()

    for answer in answers:
        question = survey.get_question(answer.question_id)
        if question is None:
            errors.append(AnswerError(
                question_id=answer.question_id,
                label=None,
                message=f'Question "{answer.question_id}" does not belong to this survey',
            ))
            continue
        if answer.question_id in seen:
            errors.append(AnswerError(
                question_id=question.id,
                label=question.label,
                message=f'Question "{question.label}" is answered more than once',
            ))
        seen.add(answer.question_id)

    return errors


@dataclass
class PipelineResult:
    """Outcome of running the pipeline.

    Attributes:
        errors: Every violation found
        normalized: Validated values keyed by question ID, for answers that
            passed type validation
    """
    errors: list[AnswerError] = field(default_factory=list)
    normalized: dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """Check if no violations were found."""
        return not self.errors


class ResponseValidationPipeline:
    """Service for validating a full answer set against a survey."""

    @staticmethod
    def validate(survey: Survey, answers: Sequence[AnswerSubmission]) -> list[AnswerError]:
        """Validate answers against every question of a survey.

        Args:
            survey: Survey with its questions
            answers: Submitted answers

        Returns:
            List of errors, empty when the answer set is valid
        """
        return ResponseValidationPipeline.run(survey, answers).errors

    @staticmethod
    def run(survey: Survey, answers: Sequence[AnswerSubmission]) -> PipelineResult:
        """Validate answers and collect normalized values.

        Questions are visited in declared order. A question whose logic
        makes it not applicable is skipped entirely: no required check, no
        type check. An applicable required question with a blank answer
        (and no attached files) yields a required error; otherwise a
        non-blank answer is validated against the question's rules.

        The pipeline does not stop at the first problem: the result holds
        every violation found.

        Args:
            survey: Survey with its questions
            answers: Submitted answers

        Returns:
            PipelineResult with errors and normalized values
        """
        result = PipelineResult(errors=check_answer_structure(survey, answers))

        answered_so_far = {answer.question_id: answer.answer for answer in answers}
        answers_by_question = {answer.question_id: answer for answer in answers}

        for question in survey.ordered_questions():
            logic_result = LogicEvaluator.evaluate(question, answered_so_far)
            if not logic_result.applicable:
                if logic_result.skipped:
                    logger.debug(f"Question {question.id} skipped by logic")
                continue

            submission = answers_by_question.get(question.id)
            value = submission.answer if submission is not None else None
            has_files = bool(submission is not None and submission.files)

            if is_blank(value):
                if question.required and not has_files:
                    result.errors.append(AnswerError(
                        question_id=question.id,
                        label=question.label,
                        message=f'Question "{question.label}" is required',
                    ))
                continue

            validation = AnswerValidator.validate(question, value)
            if validation.is_valid:
                result.normalized[question.id] = validation.normalized_value
            else:
                result.errors.append(AnswerError(
                    question_id=question.id,
                    label=question.label,
                    message=validation.error_message,
                ))

        if result.errors:
            logger.info(
                f"Response for survey {survey.id} failed validation with {len(result.errors)} error(s)",
                extra={"survey_id": survey.id},
            )
        return result
