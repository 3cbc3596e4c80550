"""Single-use emailed tokens for email verification and password reset.

Lifecycle:
- issue(): deletes every token of the same purpose for the user, then
  stores a fresh random one, so at most one live token exists per user
  and purpose
- verify(): read-only lookup; an expired token is deleted on sight
- delete(): explicit consumption after the dependent action succeeded

Tokens are 32 random bytes, URL-safe base64 encoded (43 characters).
"""

import enum
import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.token import PasswordResetToken, VerificationToken
from portal.repositories.token_repository import (
    EmailToken,
    EmailTokenModel,
    TokenRepository,
)

logger = logging.getLogger(__name__)

# Random bytes per token (before base64 encoding)
TOKEN_BYTES = 32


class TokenPurpose(enum.Enum):
    """What an emailed token authorizes."""

    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"

    @property
    def ttl(self) -> timedelta:
        """Lifetime of a freshly issued token."""
        return _TTLS[self]

    @property
    def model(self) -> EmailTokenModel:
        """Table the tokens of this purpose live in."""
        return _MODELS[self]


_TTLS: dict[TokenPurpose, timedelta] = {
    TokenPurpose.VERIFICATION: timedelta(hours=24),
    TokenPurpose.PASSWORD_RESET: timedelta(hours=1),
}

_MODELS: dict[TokenPurpose, EmailTokenModel] = {
    TokenPurpose.VERIFICATION: VerificationToken,
    TokenPurpose.PASSWORD_RESET: PasswordResetToken,
}


@dataclass(frozen=True)
class TokenVerification:
    """Outcome of a token lookup.

    Attributes:
        valid: True if the token exists and has not expired.
        user_id: Owner of the token (only when valid).
        error: ``"invalid"`` or ``"expired"`` when not valid.
    """

    valid: bool
    user_id: uuid.UUID | None = None
    error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenService:
    """Issues, checks and consumes emailed tokens.

    Args:
        db: Async database session.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._clock = clock

    async def issue(self, user_id: uuid.UUID, purpose: TokenPurpose) -> EmailToken:
        """Replace any existing token of ``purpose`` for the user with a new one.

        Args:
            user_id: Owner of the token.
            purpose: Verification or password reset.

        Returns:
            The stored token row (``.token`` holds the string to email).
        """
        await TokenRepository.delete_for_user(
            self._db, purpose.model, user_id=user_id
        )
        row = await TokenRepository.create(
            self._db,
            purpose.model,
            user_id=user_id,
            token=secrets.token_urlsafe(TOKEN_BYTES),
            expires_at=self._clock() + purpose.ttl,
        )
        logger.info("Issued %s token for user %s", purpose.value, user_id)
        return row

    async def verify(self, token: str, purpose: TokenPurpose) -> TokenVerification:
        """Check a token without consuming it.

        An expired token is deleted, so a second verify reports ``invalid``.

        Args:
            token: Token string from the emailed link.
            purpose: Table to look the token up in.

        Returns:
            TokenVerification describing the outcome.
        """
        row = await TokenRepository.get_by_token(self._db, purpose.model, token)
        if row is None:
            return TokenVerification(valid=False, error="invalid")

        if row.expires_at < self._clock():
            await TokenRepository.delete(self._db, purpose.model, row.id)
            logger.info("Deleted expired %s token for user %s", purpose.value, row.user_id)
            return TokenVerification(valid=False, error="expired")

        return TokenVerification(valid=True, user_id=row.user_id)

    async def delete(self, token: str, purpose: TokenPurpose) -> None:
        """Consume a token. Does nothing if it no longer exists.

        Args:
            token: Token string to delete.
            purpose: Table the token lives in.
        """
        row = await TokenRepository.get_by_token(self._db, purpose.model, token)
        if row is None:
            return
        await TokenRepository.delete(self._db, purpose.model, row.id)
