"""Role profile models - Student, Coordinator, Organization, Administrator.

Each user owns exactly one profile row matching its role. Profiles are
created in the same transaction as the user and removed with it
(ON DELETE CASCADE).
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.models.base import Base

if TYPE_CHECKING:
    from portal.models.user import User

_DEFAULT_UUID = text("gen_random_uuid()")
_USER_FK = "users.id"


class Student(Base):
    """Student profile.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table (unique).
        study_program: Degree programme.
        year_of_study: Current year of study.
    """

    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(_USER_FK, ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    study_program: Mapped[str | None] = mapped_column(String(255), nullable=True)
    year_of_study: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="student")


class Coordinator(Base):
    """Coordinator (staff) profile.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table (unique).
        department: Academic department.
        title: Job title.
    """

    __tablename__ = "coordinators"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(_USER_FK, ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="coordinator")


class Organization(Base):
    """Organization profile.

    Organizations must be approved by an administrator before they can
    publish projects.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table (unique).
        contact_person: Main contact name.
        website_url: Public website.
        is_verified: Whether an administrator approved the organization.
        verified_at: When it was approved.
        rejection_reason: Reason given on the last rejection.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(_USER_FK, ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text(), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="organization")


class Administrator(Base):
    """Administrator profile (no extra fields)."""

    __tablename__ = "administrators"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(_USER_FK, ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="administrator")
