"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from typing import Callable, Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

from app.models.database import Base, get_db
from app.schemas.survey import SurveyCreate
from app.services.survey_service import SurveyService


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with SQLite in-memory database.

    Yields:
        Engine: SQLAlchemy engine for testing

    Note:
        StaticPool keeps a single connection so the in-memory database is
        shared between the test and the app running under TestClient.
        Database is created fresh for each test function.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,  # Set to True for SQL debugging
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session.

    Args:
        db_engine: Test database engine fixture

    Yields:
        Session: SQLAlchemy session for testing
    """
    TestSessionLocal = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def client(db_session):
    """FastAPI TestClient whose requests use the test database session."""
    from fastapi.testclient import TestClient

    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def feedback_payload() -> dict:
    """Survey payload with a gate question, logic and several types.

    Returns:
        dict: Survey creation payload using authoring keys
    """
    return {
        "title": "Customer Feedback",
        "description": "Tell us about your visit",
        "status": "published",
        "questions": [
            {
                "id": "visited",
                "type": "radio",
                "label": "Did you visit?",
                "required": True,
                "options": [
                    {"label": "Yes", "value": "yes"},
                    {"label": "No", "value": "no"},
                ],
            },
            {
                "id": "rating",
                "type": "number",
                "label": "Rating",
                "required": True,
                "validation": {"min": 0, "max": 10},
                "logic": {
                    "action": "show",
                    "conditions": [{"question_id": "visited", "operator": "=", "value": "yes"}],
                },
            },
            {
                "id": "departments",
                "type": "checkbox",
                "label": "Departments",
                "options": [
                    {"label": "A", "value": "a"},
                    {"label": "B", "value": "b"},
                    {"label": "C", "value": "c"},
                ],
            },
            {
                "id": "comments",
                "type": "text",
                "label": "Comments",
            },
        ],
    }


@pytest.fixture
def make_survey(db_session) -> Callable:
    """Factory creating surveys through SurveyService.

    Returns:
        Callable taking a payload dict (and optional user_id) and returning
        the stored survey as an immutable definition
    """
    def _make(payload: dict, user_id: str = None):
        service = SurveyService(db_session)
        survey = service.create(SurveyCreate.model_validate(payload), user_id=user_id)
        return service.get_definition(survey.id)

    return _make


@pytest.fixture
def ids_by_label() -> Callable:
    """Map a survey's question labels to stored question IDs."""
    def _ids(survey) -> dict:
        return {question.label: question.id for question in survey.questions}

    return _ids
