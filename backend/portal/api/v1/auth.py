"""Authentication endpoints.

Signup, signin, signout, session inspection and refresh, password reset
and email verification. Business rules live in AuthService; endpoints
translate HTTP to service calls and write session cookie changes onto
the response.

Security considerations:
- signup/signin/forgot-password/resend: per-category rate limits enforced
  by AuthService before any other work
- verify-email/reset-password: additional per-IP slowapi limit against
  token guessing
- forgot-password/resend-verification: identical response whether or not
  the account exists
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Query, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from portal.api.deps import AuthServiceDep, CurrentUser, Session
from portal.core.client_ip import request_client_ip
from portal.core.config import settings
from portal.core.errors import UnauthorizedError
from portal.core.rate_limiting import limiter
from portal.core.responses import DataResponse
from portal.core.session import SessionStore
from portal.schemas.auth import (
    SessionResponse,
    SignUpResponse,
    TokenStatusResponse,
    UserResponse,
)

router = APIRouter()

_RESET_REQUESTED_MSG = (
    "If an account exists for this email, a password reset link has been sent."
)
_RESEND_REQUESTED_MSG = (
    "If this email belongs to an unverified account, a new verification "
    "link has been sent."
)


# ===================================================================
# Request models
# ===================================================================
# Email fields are plain strings: AuthService validates them after the
# rate limit check.


class SignUpRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)
    role: str = Field(max_length=32)


class SignInRequest(BaseModel):
    """Request body for POST /auth/signin."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class EmailRequest(BaseModel):
    """Request body carrying only an email address."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=255)


class TokenRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=128)


def _session_response(session: SessionStore) -> SessionResponse:
    data = session.peek()
    if data is None or data.user is None or session.is_expired():
        return SessionResponse(user=None)
    expires_at = (
        datetime.fromtimestamp(data.expires_at / 1000, UTC)
        if data.expires_at is not None
        else None
    )
    return SessionResponse(
        user=UserResponse.from_user(data.user), expires_at=expires_at
    )


# ===================================================================
# Signup / signin / signout
# ===================================================================


@router.post("/signup", status_code=201)
async def signup(
    request: Request,
    body: SignUpRequest,
    response: Response,
    auth: AuthServiceDep,
    session: Session,
) -> DataResponse[SignUpResponse]:
    """Register an account and start a session for it.

    The session starts unverified; the request gate keeps the user on
    /verify-email-pending until the emailed link is used.
    """
    result = await auth.sign_up(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        client_ip=request_client_ip(request),
    )
    session.create(result.user)
    session.apply(response)

    return DataResponse(
        data=SignUpResponse(
            user=UserResponse.from_user(result.user),
            needs_verification=result.needs_verification,
        )
    )


@router.post("/signin")
async def signin(
    request: Request,
    body: SignInRequest,
    response: Response,
    auth: AuthServiceDep,
    session: Session,
) -> DataResponse[UserResponse]:
    """Check credentials and set the session cookie."""
    user = await auth.sign_in(
        email=body.email,
        password=body.password,
        client_ip=request_client_ip(request),
        session=session,
    )
    session.apply(response)
    return DataResponse(data=UserResponse.from_user(user))


@router.post("/signout")
async def signout(
    response: Response,
    auth: AuthServiceDep,
    session: Session,
) -> DataResponse[dict]:
    """Clear the session cookie. Succeeds without a session too."""
    await auth.sign_out(session)
    session.apply(response)
    return DataResponse(data={"message": "Signed out"})


# ===================================================================
# Session
# ===================================================================


@router.get("/me")
async def me(
    response: Response,
    auth: AuthServiceDep,
    session: Session,
    fresh: bool = Query(False, description="Re-read the account from the database"),
) -> DataResponse[SessionResponse]:
    """Current session user, or ``null`` without a live session.

    With ``fresh=true`` the account is re-read; a deleted or suspended
    account ends the session.
    """
    user = await auth.get_current_user(session, fresh=fresh)
    session.apply(response)
    if user is None:
        return DataResponse(data=SessionResponse(user=None))

    current = _session_response(session)
    return DataResponse(
        data=SessionResponse(
            user=UserResponse.from_user(user), expires_at=current.expires_at
        )
    )


@router.post("/refresh")
async def refresh(
    response: Response,
    session: Session,
) -> DataResponse[SessionResponse]:
    """Extend a live session by the full session lifetime."""
    if not session.refresh():
        raise UnauthorizedError()
    session.apply(response)
    return DataResponse(data=_session_response(session))


# ===================================================================
# Password reset
# ===================================================================


@router.post("/forgot-password")
async def forgot_password(
    request: Request,
    body: EmailRequest,
    auth: AuthServiceDep,
) -> DataResponse[dict]:
    """Email a reset link. Same response whether or not the account exists."""
    await auth.request_password_reset(
        email=body.email, client_ip=request_client_ip(request)
    )
    return DataResponse(data={"message": _RESET_REQUESTED_MSG})


@router.get("/reset-password/validate")
@limiter.limit(settings.rate_limit_token_endpoints)
async def validate_reset_token(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    auth: AuthServiceDep,
    token: str = Query(min_length=1, max_length=255),
) -> DataResponse[TokenStatusResponse]:
    """Check a reset link before showing the new-password form."""
    result = await auth.validate_reset_token(token)
    return DataResponse(
        data=TokenStatusResponse(valid=result.valid, error=result.error)
    )


@router.post("/reset-password")
@limiter.limit(settings.rate_limit_token_endpoints)
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    auth: AuthServiceDep,
) -> DataResponse[dict]:
    """Set a new password with a reset token."""
    await auth.reset_password(token=body.token, new_password=body.password)
    return DataResponse(data={"message": "Password updated. You can now sign in."})


# ===================================================================
# Email verification
# ===================================================================


@router.post("/verify-email")
@limiter.limit(settings.rate_limit_token_endpoints)
async def verify_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: TokenRequest,
    response: Response,
    auth: AuthServiceDep,
    session: Session,
) -> DataResponse[UserResponse]:
    """Confirm an email address.

    If the caller's session belongs to the verified account, the session
    snapshot is rewritten so the request gate sees the new state.
    """
    user = await auth.verify_email(body.token)

    current = session.get_current_user()
    if current is not None and current.id == user.id:
        session.create(user)
    session.apply(response)

    return DataResponse(data=UserResponse.from_user(user))


@router.post("/resend-verification")
async def resend_verification(
    body: EmailRequest,
    auth: AuthServiceDep,
) -> DataResponse[dict]:
    """Send a new verification link. Same response for unknown emails."""
    await auth.resend_verification_email(body.email)
    return DataResponse(data={"message": _RESEND_REQUESTED_MSG})


@router.post("/resend-verification/me")
async def resend_verification_for_current_user(
    user: CurrentUser,
    auth: AuthServiceDep,
) -> DataResponse[dict]:
    """Send a new verification link to the signed-in user."""
    await auth.resend_verification_email_for_user(user.id)
    return DataResponse(data={"message": "A new verification link has been sent."})
