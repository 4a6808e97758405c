"""Database models and session management.

This package contains all SQLAlchemy ORM models and database utilities.
"""

from app.models.database import Base, engine, SessionLocal, get_db
from app.models.survey import Survey, Question
from app.models.response import Answer, SurveyResponse

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "Survey",
    "Question",
    "SurveyResponse",
    "Answer",
]
