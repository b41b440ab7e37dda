"""Factory Pulse stage transition service: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# CRITICAL ORDER: configure_structlog MUST be called before all other factory_pulse imports
# to avoid the structlog cache pitfall (structlog caches the processor chain on first use).
from factory_pulse.core.logging import configure_structlog
from factory_pulse.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else _early_settings.log_level,
    json_logs=_early_settings.json_logs and not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from factory_pulse.api.routes import api_router
from factory_pulse.core.config import get_settings
from factory_pulse.core.exceptions import (
    AuthenticationError,
    BypassNotPermittedError,
    ConfigurationError,
    FactoryPulseError,
    NotFoundError,
    PersistenceError,
    StaleTransitionError,
    ValidationError,
)
from factory_pulse.db import init_db, close_db
from factory_pulse.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)
from factory_pulse.schemas.stage_transitions import PrerequisiteResultResponse
from factory_pulse.services.stage_events import StageEventHub

logger = structlog.get_logger(__name__)

# Most specific first: StaleTransitionError is a PersistenceError
_ERROR_STATUS: list[tuple[type[FactoryPulseError], int]] = [
    (ValidationError, 409),
    (StaleTransitionError, 409),
    (ConfigurationError, 422),
    (AuthenticationError, 401),
    (BypassNotPermittedError, 403),
    (NotFoundError, 404),
    (PersistenceError, 503),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Graceful shutdown flag: SIGTERM handler flips this so the health check returns 503
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    # Startup
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    app.state.stage_events = StageEventHub()

    yield

    # Shutdown
    logger.info("shutdown_begin")
    app.state.stage_events.deactivate()
    await close_db()
    logger.info("shutdown_complete")


def status_for_error(exc: FactoryPulseError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def factory_pulse_exception_handler(request: Request, exc: FactoryPulseError) -> JSONResponse:
    """Map domain errors to HTTP responses with debug_id tracking.

    Validation failures carry the prerequisite result so the client can show what to fix.
    """
    debug_id = str(uuid.uuid4())
    status_code = status_for_error(exc)

    log = logger.warning if status_code < 500 else logger.error
    log(
        "domain_error",
        status_code=status_code,
        error_type=type(exc).__name__,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=str(exc),
    )

    content = {"detail": str(exc), "error_type": type(exc).__name__, "debug_id": debug_id}
    if isinstance(exc, ValidationError) and exc.result is not None:
        content["prerequisites"] = PrerequisiteResultResponse.model_validate(exc.result).model_dump(mode="json")
    if isinstance(exc, PersistenceError):
        content["retryable"] = True

    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())
    corr_id = get_correlation_id()

    # Extract user_id if available
    user_id = getattr(request.state, "user_id", None)

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=corr_id,
        path=request.url.path,
        method=request.method,
        user_id=user_id,
        detail=exc.detail,
    )

    # Return sanitized response (no stack traces, no secrets)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())
    corr_id = get_correlation_id()

    # Extract user_id if available
    user_id = getattr(request.state, "user_id", None)

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=corr_id,
        path=request.url.path,
        method=request.method,
        user_id=user_id,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    # Return generic 500 (no internal details leaked)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Stage transitions and prerequisite validation for manufacturing projects",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    # Exception handlers
    app.exception_handler(FactoryPulseError)(factory_pulse_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix="/api")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "factory_pulse.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
