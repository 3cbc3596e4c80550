"""Create auth core schema: users, role profiles, emailed tokens, platform config.

Revision ID: 001_auth_core
Revises:
Create Date: 2026-10-19

- users: identity, role, verification and suspension flags
- students / coordinators / organizations / administrators: one profile
  row per user (ON DELETE CASCADE)
- verification_tokens / password_reset_tokens: single-use emailed tokens
- platform_config: single global row written by setup
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_auth_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_USER_ROLE = sa.Enum(
    "STUDENT",
    "COORDINATOR",
    "ORGANIZATION",
    "ADMINISTRATOR",
    name="user_role",
)
_PROFILE_TABLES = ("students", "coordinators", "organizations", "administrators")
_TOKEN_TABLES = ("verification_tokens", "password_reset_tokens")


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _user_fk(*, unique: bool) -> sa.Column:
    return sa.Column(
        "user_id",
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # pgcrypto provides gen_random_uuid() for UUID primary keys
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # =========================================================================
    # users
    # =========================================================================
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", _USER_ROLE, nullable=False),
        sa.Column("email_verified", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_suspended",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        *_timestamps(),
    )

    # =========================================================================
    # Role profiles
    # =========================================================================
    op.create_table(
        "students",
        _uuid_pk(),
        _user_fk(unique=True),
        sa.Column("study_program", sa.String(255), nullable=True),
        sa.Column("year_of_study", sa.Integer(), nullable=True),
    )
    op.create_table(
        "coordinators",
        _uuid_pk(),
        _user_fk(unique=True),
        sa.Column("department", sa.String(255), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
    )
    op.create_table(
        "organizations",
        _uuid_pk(),
        _user_fk(unique=True),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("website_url", sa.Text(), nullable=True),
        sa.Column(
            "is_verified",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
    )
    op.create_table(
        "administrators",
        _uuid_pk(),
        _user_fk(unique=True),
    )

    # =========================================================================
    # Emailed tokens
    # =========================================================================
    for table in _TOKEN_TABLES:
        op.create_table(
            table,
            _uuid_pk(),
            sa.Column("token", sa.String(255), nullable=False, unique=True),
            _user_fk(unique=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
                nullable=False,
            ),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    # =========================================================================
    # Platform configuration (single row)
    # =========================================================================
    op.create_table(
        "platform_config",
        sa.Column(
            "id",
            sa.String(50),
            server_default="global_config",
            primary_key=True,
        ),
        sa.Column(
            "name",
            sa.String(255),
            server_default="Example University",
            nullable=False,
        ),
        sa.Column(
            "allow_public_registration",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("student_email_domain", sa.String(255), nullable=True),
        sa.Column("staff_email_domain", sa.String(255), nullable=True),
        sa.Column("email_from", sa.String(255), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("platform_config")
    for table in reversed(_TOKEN_TABLES):
        op.drop_index(f"ix_{table}_user_id", table_name=table)
        op.drop_table(table)
    for table in reversed(_PROFILE_TABLES):
        op.drop_table(table)
    op.drop_table("users")
    _USER_ROLE.drop(op.get_bind(), checkfirst=True)
