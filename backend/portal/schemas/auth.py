"""Auth API response schemas.

Never expose hashed_password: responses are built from the session
snapshot or explicitly from the allowed User columns.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from portal.core.session import SessionUser


class UserResponse(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None
    role: str
    email_verified: datetime | None
    is_suspended: bool

    @classmethod
    def from_user(cls, user: object) -> "UserResponse":
        """Build from a User row or a SessionUser snapshot."""
        snapshot = SessionUser.model_validate(user)
        return cls(
            id=str(snapshot.id),
            email=snapshot.email,
            name=snapshot.name,
            role=snapshot.role.value,
            email_verified=snapshot.email_verified,
            is_suspended=snapshot.is_suspended,
        )


class SignUpResponse(BaseModel):
    """Result of POST /auth/signup."""

    user: UserResponse
    needs_verification: bool


class SessionResponse(BaseModel):
    """Session state for GET /auth/me and POST /auth/refresh."""

    user: UserResponse | None
    expires_at: datetime | None = None


class TokenStatusResponse(BaseModel):
    """Result of GET /auth/reset-password/validate."""

    valid: bool
    error: str | None = None
