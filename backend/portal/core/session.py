"""Encrypted, signed session cookie.

The session lives entirely in the client cookie; there is no server-side
session table. The cookie value is built in two layers:

1. The session claims are signed as a JWT (HS256) with SESSION_SECRET
2. The JWT is encrypted with Fernet (AES-128-CBC + HMAC-SHA256) under a
   key derived from the same secret, so the snapshot is not readable by
   the browser

Expiry is carried in the ``expires_at`` claim (epoch milliseconds) rather
than the JWT ``exp`` claim, so an expired session can still be peeked at
and is then destroyed explicitly by get_current_user().

SessionStore is request-scoped: reads come from the incoming cookie and
writes are collected and applied to the outgoing response in one
Set-Cookie header.
"""

import base64
import hashlib
import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Literal

import jwt
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import Response

from portal.core.config import Settings
from portal.models.user import UserRole

logger = logging.getLogger(__name__)

_JWT_ALGORITHM = "HS256"
_AUDIENCE = "placement-portal-session"
_KEY_DERIVATION_CONTEXT = b"session-encryption"


class SessionUser(BaseModel):
    """Identity snapshot stored in the session (never the password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None = None
    role: UserRole
    email_verified: datetime | None = None
    is_suspended: bool = False

    @property
    def is_verified(self) -> bool:
        """Whether the snapshot records a confirmed email address."""
        return self.email_verified is not None


class SessionData(BaseModel):
    """Decoded session contents.

    Attributes:
        user: Identity snapshot, None for an anonymous session.
        is_auth: True once a user has signed in.
        created_at: Creation time, epoch milliseconds.
        expires_at: Expiry time, epoch milliseconds.
    """

    user: SessionUser | None = None
    is_auth: bool = False
    created_at: int | None = None
    expires_at: int | None = None


def _derive_fernet_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode() + _KEY_DERIVATION_CONTEXT).digest()
    return base64.urlsafe_b64encode(digest)


class SessionCodec:
    """Turns SessionData into a cookie value and back.

    Args:
        secret: Session secret (signing key and encryption key source).
        issuer: JWT ``iss`` claim.
    """

    def __init__(self, secret: str, issuer: str) -> None:
        self._secret = secret
        self._issuer = issuer
        self._fernet = Fernet(_derive_fernet_key(secret))

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionCodec":
        """Build a codec from application settings."""
        return cls(settings.session_secret.get_secret_value(), settings.session_issuer)

    def encode(self, data: SessionData) -> str:
        """Sign and encrypt session data.

        Args:
            data: Session contents.

        Returns:
            Opaque cookie value.
        """
        payload = {
            "sess": data.model_dump(mode="json"),
            "aud": _AUDIENCE,
            "iss": self._issuer,
            "iat": datetime.now(UTC),
        }
        signed = jwt.encode(payload, self._secret, algorithm=_JWT_ALGORITHM)
        return self._fernet.encrypt(signed.encode()).decode()

    def decode(self, value: str) -> SessionData | None:
        """Decrypt and verify a cookie value.

        Args:
            value: Raw cookie value.

        Returns:
            SessionData, or None if the value is malformed, tampered with,
            or was produced under a different secret.
        """
        try:
            signed = self._fernet.decrypt(value.encode())
        except InvalidToken:
            logger.debug("Session cookie failed decryption")
            return None

        try:
            payload = jwt.decode(
                signed,
                self._secret,
                algorithms=[_JWT_ALGORITHM],
                audience=_AUDIENCE,
                issuer=self._issuer,
            )
            return SessionData.model_validate(payload["sess"])
        except (jwt.InvalidTokenError, KeyError, PydanticValidationError):
            logger.debug("Session cookie failed verification")
            return None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class SessionStore:
    """Request-scoped view of the session cookie.

    Args:
        codec: Cookie codec.
        raw_cookie: Incoming cookie value, if any.
        settings: Application settings (cookie attributes, TTL).
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        codec: SessionCodec,
        raw_cookie: str | None,
        *,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._codec = codec
        self._settings = settings
        self._clock = clock
        self._data = codec.decode(raw_cookie) if raw_cookie else None
        self._had_cookie = bool(raw_cookie)
        self._pending: Literal["set", "delete"] | None = None

    @classmethod
    def from_cookies(
        cls,
        cookies: Mapping[str, str],
        codec: SessionCodec,
        *,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> "SessionStore":
        """Build a store from a request's cookie mapping."""
        return cls(
            codec,
            cookies.get(settings.session_cookie_name),
            settings=settings,
            clock=clock,
        )

    @property
    def ttl_ms(self) -> int:
        return self._settings.session_ttl_seconds * 1000

    @property
    def modified(self) -> bool:
        """Whether a cookie write is waiting to be applied."""
        return self._pending is not None

    def peek(self) -> SessionData | None:
        """Decoded session without side effects. May be expired."""
        return self._data

    def create(self, user: object) -> SessionData:
        """Start an authenticated session for a user, replacing any prior one.

        Args:
            user: User row or SessionUser to snapshot.

        Returns:
            The new session data.
        """
        now_ms = _epoch_ms(self._clock())
        self._data = SessionData(
            user=SessionUser.model_validate(user),
            is_auth=True,
            created_at=now_ms,
            expires_at=now_ms + self.ttl_ms,
        )
        self._pending = "set"
        return self._data

    def is_expired(self) -> bool:
        """True unless the session is authenticated and within its lifetime.

        A missing, malformed or tampered cookie counts as expired.
        """
        data = self._data
        if data is None or not data.is_auth or data.expires_at is None:
            return True
        return _epoch_ms(self._clock()) > data.expires_at

    def destroy(self) -> None:
        """Clear the session. Calling it again is harmless."""
        self._data = None
        if self._had_cookie or self._pending == "set":
            self._pending = "delete"

    def get_current_user(self) -> SessionUser | None:
        """Return the session user, destroying the session if it has expired."""
        if self.is_expired():
            if self._data is not None or self._had_cookie:
                self.destroy()
            return None
        return self._data.user if self._data else None

    def refresh(self) -> bool:
        """Push expiry to now + TTL for a live authenticated session.

        Returns:
            True if the session was extended.
        """
        if self.is_expired() or self._data is None:
            return False
        self._data = self._data.model_copy(
            update={"expires_at": _epoch_ms(self._clock()) + self.ttl_ms}
        )
        self._pending = "set"
        return True

    def apply(self, response: Response) -> None:
        """Write the pending cookie change (if any) onto a response."""
        settings = self._settings
        if self._pending == "set" and self._data is not None:
            response.set_cookie(
                key=settings.session_cookie_name,
                value=self._codec.encode(self._data),
                max_age=settings.session_ttl_seconds,
                path="/",
                domain=settings.session_cookie_domain or None,
                secure=settings.session_cookie_secure,
                httponly=True,
                samesite=settings.session_cookie_samesite,
            )
        elif self._pending == "delete":
            response.delete_cookie(
                key=settings.session_cookie_name,
                path="/",
                domain=settings.session_cookie_domain or None,
                secure=settings.session_cookie_secure,
                httponly=True,
                samesite=settings.session_cookie_samesite,
            )
