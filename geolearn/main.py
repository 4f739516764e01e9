"""
GeoLearn Progress Engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from geolearn.api.deps import DbSession
from geolearn.api.middleware.request_id import RequestIdMiddleware
from geolearn.api.v1 import router as api_v1_router
from geolearn.config import get_settings
from geolearn.database import async_session_maker, close_db, init_db
from geolearn.engines.errors import ImmutableStateViolation, StageLocked, ValidationFailure, WorkflowError
from geolearn.logging_config import configure_logging, get_logger
from geolearn.orchestration.registry import SessionRegistry
from geolearn.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Startup creates the tables and the learner session registry; shutdown
    writes pending drafts and queued syncs before closing the database.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    app.state.registry = SessionRegistry.from_settings(settings, async_session_maker)
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await app.state.registry.close()
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Progress, gamification and LKPD workflow engine for the geometry
    learning platform.

    - **Progress**: tab visits per module, completion percentage, lessons
    - **Gamification**: XP, levels, daily streaks, badges
    - **LKPD**: six-stage guided project with validation gates and auto-save
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:5173",
]

# add_middleware stacks innermost-first: CORS last so it wraps every response
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, content: dict) -> JSONResponse:
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
        content.setdefault("request_id", req_id)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error_response(request, exc.status_code, {"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": "Validation error", "code": "request_validation", "errors": errors},
    )


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Caller-correctable engine errors: incomplete stage, locked stage, submitted project."""
    if isinstance(exc, ValidationFailure):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, (StageLocked, ImmutableStateViolation)):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    logger.info("Workflow request rejected", extra={"code": exc.code, "detail": exc.message})
    return _error_response(request, status_code, exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Out-of-range inputs rejected by the engines."""
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        {"detail": str(exc), "code": "bad_request"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__}
    else:
        content = {"detail": "Internal server error"}
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, content)


@app.exception_handler(ValidationError)
async def model_validation_exception_handler(request: Request, exc: ValidationError):
    """
    A model rejected data the app built itself. That is a server bug, so
    it must not reach the ValueError handler as a 400.
    """
    return await general_exception_handler(request, exc)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db: DbSession):
    """Check application health."""
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.warning("Health check database probe failed: %s", e)
        database = "unavailable"
    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        version=settings.version,
        database=database,
    )


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "geolearn.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
