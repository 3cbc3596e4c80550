"""API error classes.

Every expected failure of the auth core is one of these. Services raise them
before (or instead of) mutating state; the exception handlers in main.py map
them to the error envelope and HTTP status.
"""

from datetime import datetime


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, weak passwords, bad roles, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session is present.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class InvalidCredentialsError(APIError):
    """Email or password did not match (401).

    Security: the same message for an unknown email, a user without a
    password and a wrong password. Never reveal which part was wrong.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message="Invalid email or password",
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when the session is valid but the user lacks permission.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class AccountSuspendedError(ForbiddenError):
    """Credentials were correct but the account is suspended (403)."""

    def __init__(self) -> None:
        APIError.__init__(
            self,
            code="ACCOUNT_SUSPENDED",
            message="This account has been suspended",
            status_code=403,
        )


class PolicyError(APIError):
    """Registration policy rejected the request (403).

    Raised before any account is created, e.g. an email outside the
    configured student or staff domain.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code=code, message=message, status_code=403)


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InvalidStateError(APIError):
    """Business rule violation (422).

    Use when the request is valid but the current state forbids it,
    e.g. resending verification for an already verified account.
    """

    def __init__(self, message: str, code: str = "INVALID_STATE") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=422,
        )


class TokenError(APIError):
    """Emailed token is unknown or expired (400).

    The two reasons get distinct codes so the client can offer
    "request a new link" versus "check your link".

    Args:
        reason: ``"invalid"`` or ``"expired"``.
    """

    def __init__(self, reason: str) -> None:
        if reason == "expired":
            code = "TOKEN_EXPIRED"
            message = "This link has expired. Please request a new one."
        else:
            code = "INVALID_TOKEN"
            message = "This link is invalid. Please check the link and try again."
        self.reason = reason
        super().__init__(code=code, message=message, status_code=400)


class RateLimitedError(APIError):
    """Too many attempts for this action (429).

    Args:
        reset_at: When the current window ends.
    """

    def __init__(self, reset_at: datetime) -> None:
        self.reset_at = reset_at
        super().__init__(
            code="RATE_LIMITED",
            message="Too many attempts. Please try again later.",
            status_code=429,
            details=[{"reset_at": reset_at.isoformat()}],
        )


class EmailDeliveryError(APIError):
    """The email transport failed to deliver a required message (502)."""

    def __init__(
        self, message: str = "We could not send the email. Please try again."
    ) -> None:
        super().__init__(
            code="EMAIL_DELIVERY_FAILED",
            message=message,
            status_code=502,
        )


class PlatformNotConfiguredError(APIError):
    """No platform configuration record exists yet (503)."""

    def __init__(self) -> None:
        super().__init__(
            code="PLATFORM_NOT_CONFIGURED",
            message="The platform has not been set up yet",
            status_code=503,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
