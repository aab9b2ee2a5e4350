"""CRM email drafts API - main FastAPI application."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from src.api.routes import email_drafts
from src.core.circuit_breaker import CircuitBreakerOpen, CircuitState, get_all_circuit_breakers
from src.core.config import settings
from src.core.exceptions import CRMException, sanitize_error
from src.middleware.performance import RequestIDMiddleware, RequestTimingMiddleware


# Configure logging: JSON for production (stdout is collected), text for dev
def _configure_logging() -> None:
    """Set up logging based on LOG_FORMAT.

    json: Structured JSON via python-json-logger.
    text: Human-readable format for local development.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if settings.LOG_FORMAT == "json":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "crm-email-drafts"},
        )
        handler.setFormatter(formatter)
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> Any:
    """Application lifespan handler for startup and shutdown events."""
    settings.validate_startup()
    logger.info("Starting CRM email drafts API (env=%s)", settings.APP_ENV)
    yield
    logger.info("Shutting down CRM email drafts API...")


app = FastAPI(
    title="CRM Email Drafts API",
    description="AI reply drafts for CRM inboxes, with learning from user feedback",
    version="1.0.0",
    lifespan=lifespan,
)

CORS_ORIGINS = settings.cors_origins_list
logger.info("CORS allowed origins: %s", CORS_ORIGINS)

# In Starlette, last-added = outermost, so add timing first, then ID.
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(RequestIDMiddleware)

# CORS added last so it's outermost (handles preflight first)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(email_drafts.router, prefix="/api")


@app.get("/health", tags=["system"])
async def root_health_check() -> dict[str, Any]:
    """Liveness check with the state of each dependency circuit."""
    breakers = get_all_circuit_breakers()
    degraded = any(breaker.state != CircuitState.CLOSED for breaker in breakers.values())
    return {
        "status": "degraded" if degraded else "healthy",
        "circuits": {name: breaker.state.value for name, breaker in breakers.items()},
    }


@app.get("/", tags=["system"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "CRM Email Drafts API",
        "version": "1.0.0",
        "description": "AI reply drafts with feedback-driven pattern learning",
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


@app.exception_handler(CRMException)
async def crm_exception_handler(request: Request, exc: CRMException) -> JSONResponse:
    """Render application exceptions as ``{error, code, request_id, details}``.

    Args:
        request: The incoming request.
        exc: The application exception.

    Returns:
        JSON error response with consistent format.
    """
    request_id = _request_id(request)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed: %s",
        exc.message,
        extra={
            "code": exc.code,
            "status_code": exc.status_code,
            "request_id": request_id,
            "path": request.url.path,
        },
    )
    content: dict[str, Any] = {
        "error": exc.message,
        "code": exc.code,
        "request_id": request_id,
    }
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(CircuitBreakerOpen)
async def circuit_open_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """A dependency is failing fast; ask the client to retry later."""
    request_id = _request_id(request)
    logger.warning(
        "Circuit open for %s",
        exc.service_name,
        extra={"request_id": request_id, "path": request.url.path},
    )
    return JSONResponse(
        status_code=503,
        content={
            "error": sanitize_error(exc),
            "code": "SERVICE_UNAVAILABLE",
            "request_id": request_id,
        },
    )


@app.exception_handler(PydanticValidationError)
async def pydantic_validation_handler(
    request: Request, exc: PydanticValidationError
) -> JSONResponse:
    """Render model validation failures inside handlers as 400."""
    request_id = _request_id(request)
    logger.warning(
        "Validation error",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error_count": exc.error_count(),
        },
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "code": "VALIDATION_ERROR",
            "request_id": request_id,
            "details": exc.errors(include_url=False, include_context=False),
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request parsing failures as 400."""
    request_id = _request_id(request)
    logger.warning(
        "Request validation error",
        extra={"request_id": request_id, "path": request.url.path},
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": "Request validation error",
            "code": "REQUEST_VALIDATION_ERROR",
            "request_id": request_id,
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                for err in exc.errors()
            ],
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions.

    Sets CORS headers explicitly so the browser doesn't mask the real error
    as a CORS failure.
    """
    request_id = _request_id(request)
    logger.exception(
        "Unhandled exception occurred",
        exc_info=exc,
        extra={"request_id": request_id, "path": request.url.path},
    )

    origin = request.headers.get("origin", "")
    response = JSONResponse(
        status_code=500,
        content={
            "error": "An internal server error occurred",
            "code": "INTERNAL_ERROR",
            "request_id": request_id,
        },
    )
    if origin in CORS_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response
