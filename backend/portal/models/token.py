"""Emailed token models - email verification and password reset.

Single-use, time-limited tokens embedded in emailed links. Looked up by the
token string; at most one live row per user in each table.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from portal.models.base import Base

_DEFAULT_UUID = text("gen_random_uuid()")


class _EmailTokenColumns:
    """Columns shared by both token tables.

    Attributes:
        id: UUID primary key.
        token: URL-safe random string (the lookup key).
        user_id: Owner of the token.
        expires_at: Token expiry timestamp.
        created_at: When the token was issued.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    token: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class VerificationToken(_EmailTokenColumns, Base):
    """Email verification token (24 hour lifetime)."""

    __tablename__ = "verification_tokens"


class PasswordResetToken(_EmailTokenColumns, Base):
    """Password reset token (1 hour lifetime)."""

    __tablename__ = "password_reset_tokens"
