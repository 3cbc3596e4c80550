"""User model - authentication identity.

One row per account. The role is chosen at signup and never changed by the
auth core; the matching role profile row lives in profile.py.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from portal.models.profile import (
        Administrator,
        Coordinator,
        Organization,
        Student,
    )
    from portal.models.token import PasswordResetToken, VerificationToken

_DEFAULT_UUID = text("gen_random_uuid()")
_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


class UserRole(str, enum.Enum):
    """Platform roles. Exactly one per user."""

    STUDENT = "STUDENT"
    COORDINATOR = "COORDINATOR"
    ORGANIZATION = "ORGANIZATION"
    ADMINISTRATOR = "ADMINISTRATOR"


class User(Base, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lower-cased.
        name: Display name.
        hashed_password: bcrypt hash. NULL until a password is set.
        role: Platform role, immutable after creation.
        email_verified: Timestamp when email was verified. NULL = unverified.
        is_suspended: Suspended accounts cannot sign in.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    hashed_password: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    is_suspended: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )

    # Relationships (one profile per user, matching its role)
    student: Mapped["Student | None"] = relationship(
        "Student",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        uselist=False,
    )
    coordinator: Mapped["Coordinator | None"] = relationship(
        "Coordinator",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        uselist=False,
    )
    organization: Mapped["Organization | None"] = relationship(
        "Organization",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        uselist=False,
    )
    administrator: Mapped["Administrator | None"] = relationship(
        "Administrator",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        uselist=False,
    )
    verification_tokens: Mapped[list["VerificationToken"]] = relationship(
        "VerificationToken",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )
    password_reset_tokens: Mapped[list["PasswordResetToken"]] = relationship(
        "PasswordResetToken",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )

    @property
    def is_verified(self) -> bool:
        """Whether the email address has been confirmed."""
        return self.email_verified is not None
