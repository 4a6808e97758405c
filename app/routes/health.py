"""Health check endpoint for monitoring and deployment verification.

Verifies the application is running, the database is reachable and the
survey tables exist.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.models.survey import Survey
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)) -> dict:
    """Health check endpoint.

    Returns:
        dict: Health status, database status and number of surveys

    Raises:
        HTTPException: If the database query fails (503 Service Unavailable)

    Example response:
        {
            "status": "healthy",
            "database": "connected",
            "surveys": 3
        }
    """
    try:
        survey_count = db.execute(select(func.count(Survey.id))).scalar_one()
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail="Service unavailable - database connection failed"
        )

    logger.debug("Health check passed")
    return {
        "status": "healthy",
        "database": "connected",
        "surveys": survey_count,
    }
