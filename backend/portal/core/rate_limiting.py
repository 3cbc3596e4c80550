"""Route-level rate limiting using slowapi.

Security: Throttles token-guessing endpoints (verify-email, reset-password)
per client IP. The per-category limits on signup, login, password reset
requests and verification resends live in
portal.services.rate_limit_service and are enforced inside AuthService.

Usage in routers:
    from portal.core.rate_limiting import limiter

    @router.post("/verify-email")
    @limiter.limit(lambda: settings.rate_limit_token_endpoints)
    async def verify_email(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse

from portal.core.client_ip import request_client_ip
from portal.core.config import settings
from portal.core.errors import RateLimitedError


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request (originating client IP).

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    return f"ip:{request_client_ip(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle slowapi rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "20 per 1 hour")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )


def retry_after_seconds(exc: RateLimitedError, now_timestamp: float) -> int:
    """Seconds until a category limiter window resets (at least 1).

    Args:
        exc: The RateLimitedError raised by a service.
        now_timestamp: Current POSIX timestamp.

    Returns:
        Whole seconds for the Retry-After header.
    """
    return max(1, int(exc.reset_at.timestamp() - now_timestamp + 0.999))
