"""Response submission, draft and lookup endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.middleware.identity import get_current_user_id
from app.models.database import get_db
from app.schemas.response import SaveDraftRequest, SubmitResponseRequest, SurveyResponseRead
from app.services.submission import SubmissionCoordinator
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/surveys/{survey_id}/responses", status_code=201, response_model=SurveyResponseRead)
async def submit_response(
    survey_id: str,
    payload: SubmitResponseRequest,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> SurveyResponseRead:
    """Submit a completed response.

    Example request:
        {
            "answers": [{"question_id": "...", "answer": 7}],
            "metadata": {"user_agent": "Mozilla/5.0"}
        }

    Raises:
        400: If the survey is closed, out of its window, or answers are
            invalid (every violation is listed in ``errors``)
        404: If the survey does not exist
        409: If the user already submitted
    """
    response = SubmissionCoordinator(db).submit(
        survey_id,
        payload.answers,
        metadata=payload.metadata,
        user_id=user_id,
    )
    return SurveyResponseRead.model_validate(response)


@router.post("/surveys/{survey_id}/responses/draft", status_code=201, response_model=SurveyResponseRead)
async def save_draft(
    survey_id: str,
    payload: SaveDraftRequest,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> SurveyResponseRead:
    """Save a partial response; ``response_id`` continues an existing draft."""
    response = SubmissionCoordinator(db).save_draft(
        survey_id,
        payload.answers,
        metadata=payload.metadata,
        user_id=user_id,
        response_id=payload.response_id,
    )
    return SurveyResponseRead.model_validate(response)


@router.get("/responses/{response_uuid}", response_model=SurveyResponseRead)
async def get_response(response_uuid: str, db: Session = Depends(get_db)) -> SurveyResponseRead:
    """Get a response with its answers and question metadata."""
    return SurveyResponseRead.model_validate(SubmissionCoordinator(db).get_by_uuid(response_uuid))
