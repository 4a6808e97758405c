"""Survey authoring, public access, statistics and export endpoints."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import get_settings
from app.middleware.identity import get_current_user_id
from app.models.database import get_db
from app.schemas.response import ExportFormat
from app.schemas.survey import Survey, SurveyCreate, SurveyStatus, SurveyUpdate
from app.services.export import ExportEngine
from app.services.survey_loader import get_survey_loader
from app.services.survey_service import SurveyService
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/surveys")


@router.post("", status_code=201, response_model=Survey)
async def create_survey(
    payload: SurveyCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> Survey:
    """Create a survey with its questions.

    Returns:
        Survey: The stored survey, with generated slug and question IDs
    """
    survey = SurveyService(db).create(payload, user_id=user_id)
    return Survey.model_validate(survey)


@router.get("", response_model=list[Survey])
async def list_surveys(
    status: Optional[SurveyStatus] = None,
    search: Optional[str] = None,
    created_by: Optional[str] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
) -> list[Survey]:
    """List surveys, newest first.

    ``created_from`` and ``created_to`` bound the creation time inclusively.
    """
    surveys = SurveyService(db).list_surveys(
        status=status,
        search=search,
        created_by=created_by,
        created_from=created_from,
        created_to=created_to,
        active_only=active_only,
    )
    return [Survey.model_validate(survey) for survey in surveys]


@router.get("/definitions")
async def list_definitions() -> dict:
    """List survey definition files available for import."""
    return {"definitions": get_survey_loader().list_definitions()}


@router.post("/definitions/{name}", status_code=201, response_model=Survey)
async def import_definition(
    name: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> Survey:
    """Create a survey from a YAML definition file.

    Raises:
        404: If the definition file does not exist
        400: If the definition is invalid
    """
    definition = get_survey_loader().load_definition(name)
    survey = SurveyService(db).create(definition, user_id=user_id)
    logger.info(f"Imported survey definition {name} as {survey.id}", extra={"survey_id": survey.id})
    return Survey.model_validate(survey)


@router.get("/public/{slug}", response_model=Survey)
async def get_public_survey(slug: str, db: Session = Depends(get_db)) -> Survey:
    """Get a published survey by slug for respondents.

    Raises:
        404: If no published survey has this slug
        400: If the survey has not started or has ended
    """
    return Survey.model_validate(SurveyService(db).get_by_slug(slug))


@router.get("/{survey_id}", response_model=Survey)
async def get_survey(survey_id: str, db: Session = Depends(get_db)) -> Survey:
    """Get a survey with its questions."""
    return SurveyService(db).get_definition(survey_id)


@router.patch("/{survey_id}", response_model=Survey)
async def update_survey(
    survey_id: str,
    payload: SurveyUpdate,
    db: Session = Depends(get_db),
) -> Survey:
    """Update a survey; ``questions`` replaces the question list.

    Raises:
        409: If questions are replaced on a survey with responses
    """
    return Survey.model_validate(SurveyService(db).update(survey_id, payload))


@router.delete("/{survey_id}", status_code=204)
async def delete_survey(survey_id: str, db: Session = Depends(get_db)) -> Response:
    """Delete a survey without responses.

    Raises:
        409: If the survey has responses
    """
    SurveyService(db).remove(survey_id)
    return Response(status_code=204)


@router.get("/{survey_id}/statistics")
async def get_statistics(survey_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Get response counts and option distributions for a survey."""
    return SurveyService(db).get_statistics(survey_id)


@router.get("/{survey_id}/export")
async def export_responses(
    survey_id: str,
    format: str = Query(ExportFormat.CSV.value),
    db: Session = Depends(get_db),
) -> Response:
    """Export submitted responses as CSV or JSON.

    CSV is returned as a file download.

    Raises:
        404: If the survey does not exist
        400: If the format is not supported
    """
    artifact = ExportEngine(db).export(survey_id, format)

    if isinstance(artifact, str):
        filename = get_settings().export_filename
        return Response(
            content=artifact,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return JSONResponse(content=artifact)
