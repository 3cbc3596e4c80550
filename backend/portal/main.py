"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Composition root: session codec, rate limiters, email service and
  config cache built once and stored on app.state
- Request gate, security headers and CORS middleware
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from portal.api.v1.router import router as v1_router
from portal.core.config import Settings, settings
from portal.core.database import async_session_factory
from portal.core.email import EmailTransport
from portal.core.errors import APIError, RateLimitedError
from portal.core.logging import setup_logging
from portal.core.rate_limiting import (
    limiter,
    rate_limit_exceeded_handler,
    retry_after_seconds,
)
from portal.core.request_gate import RequestGateMiddleware
from portal.core.responses import ErrorDetail, ErrorResponse
from portal.core.session import SessionCodec
from portal.services.config_service import ConfigCache, check_configured
from portal.services.email_service import EmailService
from portal.services.rate_limit_service import RateLimiters

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Cache-Control: Prevents caching of API responses (session data)
    - Content-Security-Policy: API responses load no resources
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    def __init__(self, app: ASGIApp, *, environment: str) -> None:
        super().__init__(app)
        self.environment = environment

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Session and account data must never be cached
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"
            response.headers["Content-Security-Policy"] = (
                "default-src 'none'; frame-ancestors 'none'"
            )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if self.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
    )


def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
    """Handle category rate limit errors (error envelope plus Retry-After)."""
    response = api_error_handler(request, exc)
    response.headers["Retry-After"] = str(retry_after_seconds(exc, time.time()))
    return response


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Converts FastAPI's validation errors to our standard format.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces. The
    exception is logged for debugging.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred",
            )
        ).model_dump(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Close the shared email HTTP client on shutdown."""
    yield
    await app.state.email_transport.aclose()


def create_app(
    app_settings: Settings | None = None,
    *,
    email_transport: EmailTransport | None = None,
    session_factory: Callable[[], AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Every process-wide collaborator is built here and stored on app.state;
    nothing is created at import time.

    Args:
        app_settings: Settings to use; defaults to the environment settings.
        email_transport: Email transport; defaults to the Resend transport.
        session_factory: Database session factory for the request gate;
            defaults to the application engine.

    Returns:
        Configured FastAPI application instance.
    """
    app_settings = app_settings or settings
    setup_logging(app_settings.log_level)

    session_factory = session_factory or async_session_factory

    app = FastAPI(
        title="Placement Portal API",
        version="1.0.0",
        description="Authentication and session core of the placement portal",
        lifespan=lifespan,
    )

    # Composition root: one instance of each shared collaborator
    transport = email_transport or EmailTransport(app_settings)
    codec = SessionCodec.from_settings(app_settings)
    config_cache = ConfigCache()

    app.state.settings = app_settings
    app.state.session_codec = codec
    app.state.rate_limiters = RateLimiters.from_settings(app_settings)
    app.state.email_transport = transport
    app.state.email_service = EmailService(transport, app_settings.app_url)
    app.state.config_cache = config_cache

    async def is_configured() -> bool:
        return await check_configured(session_factory, config_cache)

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(
        RequestGateMiddleware,
        settings=app_settings,
        codec=codec,
        is_configured=is_configured,
    )
    app.add_middleware(
        SecurityHeadersMiddleware, environment=app_settings.environment
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Request-ID"],
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(RateLimitedError, rate_limited_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Per-IP limiter for token-guessing endpoints
    app.state.limiter = limiter

    # Include v1 router at /api/v1
    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn portal.main:app
app = create_app()
