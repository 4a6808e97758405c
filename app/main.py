"""FastAPI application entry point for the Survey Response Engine.

This module initializes the FastAPI application, sets up logging,
registers routers, and translates service errors into JSON responses.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.logging_config import request_id_var, setup_logging, get_logger
from app.models.database import Base, engine
from app.routes import health, responses, surveys
from app.schemas.response import AnswerErrorRead
from app.services.exceptions import SurveyEngineError, ValidationFailedError
from app.services.survey_loader import SurveyDefinitionError, SurveyDefinitionNotFoundError
from app.services.survey_validator import SurveyStructureError

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Configure logging
    - Create missing tables
    - Log application startup information

    Shutdown:
    - Log shutdown event

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    settings = get_settings()
    setup_logging()
    Base.metadata.create_all(bind=engine)

    logger.info(
        f"Survey Response Engine starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'configured'}"
    )

    yield

    # Shutdown
    logger.info("Survey Response Engine shutting down")


# Initialize FastAPI application
app = FastAPI(
    title="Survey Response Engine",
    description="Survey definition, validation and response collection API",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every log record of a request with its request ID.

    Uses the caller's X-Request-ID header when present and echoes the ID
    back on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with basic API information.

    Returns:
        dict: API information and status
    """
    settings = get_settings()
    return {
        "service": "Survey Response Engine",
        "version": "1.0.0",
        "environment": settings.environment,
        "status": "operational"
    }


# Register routers
app.include_router(health.router, tags=["Health"])
app.include_router(surveys.router, tags=["Surveys"])
app.include_router(responses.router, tags=["Responses"])


@app.exception_handler(SurveyEngineError)
async def survey_engine_exception_handler(request: Request, exc: SurveyEngineError) -> JSONResponse:
    """Translate service errors into JSON error responses.

    Validation failures list every offending answer under ``errors``.

    Args:
        request: FastAPI request object
        exc: Service error that was raised

    Returns:
        JSONResponse: Error response with the exception's status code
    """
    content = {"error": exc.error, "message": str(exc)}
    if isinstance(exc, ValidationFailedError):
        content["errors"] = [
            AnswerErrorRead(
                question_id=error.question_id, label=error.label, message=error.message
            ).model_dump()
            for error in exc.errors
        ]

    logger.info(
        f"{request.method} {request.url.path} failed with {exc.status_code}: {exc}"
    )
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters.

    Rejected input values are left out of the body; they may not be
    representable as JSON (e.g. NaN).
    """
    logger.info(f"Request validation failed for {request.method} {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        errors.append({
            "field": " -> ".join(str(part) for part in loc[1:]) if len(loc) > 1 else "unknown field",
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "message": "Request validation failed", "errors": errors}
    )


@app.exception_handler(SurveyStructureError)
async def survey_structure_exception_handler(request: Request, exc: SurveyStructureError) -> JSONResponse:
    """Reject survey definitions whose logic graph is invalid."""
    logger.info(f"Rejected survey structure for {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid survey structure", "message": str(exc)}
    )


@app.exception_handler(SurveyDefinitionNotFoundError)
async def definition_not_found_handler(request: Request, exc: SurveyDefinitionNotFoundError) -> JSONResponse:
    """Report a missing survey definition file."""
    return JSONResponse(
        status_code=404,
        content={"error": "Not found", "message": str(exc)}
    )


@app.exception_handler(SurveyDefinitionError)
async def definition_error_handler(request: Request, exc: SurveyDefinitionError) -> JSONResponse:
    """Report an unreadable or invalid survey definition file."""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid survey definition", "message": str(exc)}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled exceptions.

    Logs all unhandled exceptions and returns a generic error response
    to prevent leaking sensitive information.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Generic error response
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
