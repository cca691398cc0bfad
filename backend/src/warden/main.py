"""Warden API - Main FastAPI Application

Identity, session, MFA, workflow and audit kernel for multi-tenant
document management.

This module creates and configures the FastAPI application:
- API routers under /api/v1
- Request ID correlation and CORS middleware
- Exception handlers mapping domain errors to {"error", "message"}
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .errors import register_exception_handlers
from .observability.logging_config import configure_logging
from .observability.middleware import RequestIDMiddleware
from .observability.health import router as health_router

# Authentication, sessions and MFA
from .auth.router import router as auth_router
from .sessions.router import router as sessions_router
from .sessions.internal import router as internal_sessions_router
from .mfa.router import router as mfa_router

# Administration
from .users.router import router as users_router
from .rbac.router import router as rbac_router
from .audit.router import router as audit_router
from .alerts.router import router as alerts_router

# Documents
from .workflow.router import router as documents_router

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Warden API starting up", extra={"env": settings.ENV, "debug": settings.DEBUG})
    yield
    logger.info("Warden API shutting down")


_docs_enabled = settings.ENV != "production"

app = FastAPI(
    title="Warden API",
    description="Trust and workflow kernel: sessions, MFA, permissions, document workflow and audit",
    version="0.1.0",
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
    openapi_url="/openapi.json" if _docs_enabled else None,
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

register_exception_handlers(app)


_HTTP_ERROR_CODES = {
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


def jsonable_errors(exc: RequestValidationError) -> list:
    # Input values are dropped; they may contain passwords or codes
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Pydantic validation errors, with field-level details."""
    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra={"error_count": len(exc.errors())},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (404 routes, 429 rate limiting) in the common shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database errors: logged in full, reported generically."""
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "INTERNAL_ERROR", "message": "A database error occurred. Please try again later."},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Uncaught exceptions: logged in full, reported generically."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred. Please try again later."},
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(health_router)

app.include_router(auth_router, prefix="/api/v1")
app.include_router(sessions_router, prefix="/api/v1")
app.include_router(mfa_router, prefix="/api/v1")

app.include_router(users_router, prefix="/api/v1")
app.include_router(rbac_router, prefix="/api/v1")
app.include_router(audit_router, prefix="/api/v1")
app.include_router(alerts_router, prefix="/api/v1")

app.include_router(documents_router, prefix="/api/v1")

# Internal-only; not under the public API prefix
app.include_router(internal_sessions_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    return {
        "name": "Warden API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs" if _docs_enabled else None,
    }


def create_app() -> FastAPI:
    """Return the configured application (ASGI servers and tests)."""
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "warden.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENV == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
