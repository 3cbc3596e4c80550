"""Tests for UserRepository, TokenRepository and ConfigRepository.

Runs against PostgreSQL; skipped when the test database is unavailable.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.platform_config import GLOBAL_CONFIG_ID
from portal.models.profile import Administrator, Organization, Student
from portal.models.token import PasswordResetToken, VerificationToken
from portal.models.user import User, UserRole
from portal.repositories.config_repository import ConfigRepository
from portal.repositories.token_repository import TokenRepository
from portal.repositories.user_repository import UserRepository

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")
_EXPIRES = datetime(2030, 1, 1, tzinfo=UTC)


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await UserRepository.create_with_profile(
        db_session,
        email="ada@student.example.edu",
        role=UserRole.STUDENT,
        name="Ada Lovelace",
        hashed_password="$2b$04$placeholder",  # nosec B106
    )


class TestUserCreate:
    """Test UserRepository.create_with_profile()."""

    async def test_creates_user_and_profile(self, db_session: AsyncSession):
        user = await UserRepository.create_with_profile(
            db_session, email="  Root@Example.EDU ", role=UserRole.ADMINISTRATOR
        )

        assert user.id is not None
        assert user.email == "root@example.edu"
        assert user.is_suspended is False
        assert user.created_at is not None
        profile = await db_session.scalar(
            select(Administrator).where(Administrator.user_id == user.id)
        )
        assert profile is not None

    async def test_organization_starts_unverified(self, db_session: AsyncSession):
        user = await UserRepository.create_with_profile(
            db_session, email="hr@acme-corp.com", role=UserRole.ORGANIZATION
        )

        organization = await db_session.scalar(
            select(Organization).where(Organization.user_id == user.id)
        )
        assert organization.is_verified is False
        assert organization.verified_at is None

    async def test_duplicate_email_rejected(self, db_session: AsyncSession, test_user):
        """Case differences do not create a second account."""
        with pytest.raises(IntegrityError):
            await UserRepository.create_with_profile(
                db_session, email="ADA@student.example.edu", role=UserRole.STUDENT
            )

    async def test_failed_create_leaves_session_usable(
        self, db_session: AsyncSession, test_user
    ):
        with pytest.raises(IntegrityError):
            await UserRepository.create_with_profile(
                db_session, email=test_user.email, role=UserRole.STUDENT
            )

        found = await UserRepository.get_by_id(db_session, test_user.id)
        assert found is not None


class TestUserLookup:
    async def test_get_by_email_is_case_insensitive(
        self, db_session: AsyncSession, test_user
    ):
        found = await UserRepository.get_by_email(
            db_session, " ADA@Student.Example.edu"
        )

        assert found.id == test_user.id

    async def test_missing(self, db_session: AsyncSession):
        assert await UserRepository.get_by_id(db_session, _MISSING_UUID) is None
        assert await UserRepository.get_by_email(db_session, "no@x.org") is None
        assert (
            await UserRepository.get_organization(db_session, _MISSING_UUID) is None
        )


class TestUserUpdate:
    async def test_update_allowed_fields(self, db_session: AsyncSession, test_user):
        verified_at = datetime(2026, 3, 1, tzinfo=UTC)

        user = await UserRepository.update(
            db_session, test_user.id, name="Ada King", email_verified=verified_at
        )

        assert user.name == "Ada King"
        assert user.email_verified == verified_at

    @pytest.mark.parametrize("field", ["email", "role", "is_suspended", "id"])
    async def test_rejects_protected_fields(
        self, db_session: AsyncSession, test_user, field
    ):
        with pytest.raises(ValueError, match=field):
            await UserRepository.update(db_session, test_user.id, **{field: "x"})

    async def test_update_missing_user(self, db_session: AsyncSession):
        assert await UserRepository.update(db_session, _MISSING_UUID, name="x") is None

    async def test_set_suspended(self, db_session: AsyncSession, test_user):
        user = await UserRepository.set_suspended(
            db_session, test_user.id, is_suspended=True
        )

        assert user.is_suspended is True

    async def test_set_suspended_missing_user(self, db_session: AsyncSession):
        result = await UserRepository.set_suspended(
            db_session, _MISSING_UUID, is_suspended=True
        )

        assert result is None


class TestUserDelete:
    async def test_profile_and_tokens_cascade(
        self, db_session: AsyncSession, test_user
    ):
        user_id = test_user.id
        await TokenRepository.create(
            db_session,
            VerificationToken,
            user_id=user_id,
            token="cascade-me",
            expires_at=_EXPIRES,
        )
        db_session.expunge_all()

        await UserRepository.delete(db_session, user_id)

        assert await db_session.scalar(select(User).where(User.id == user_id)) is None
        assert (
            await db_session.scalar(select(Student).where(Student.user_id == user_id))
            is None
        )
        assert (
            await TokenRepository.get_by_token(
                db_session, VerificationToken, "cascade-me"
            )
            is None
        )


class TestTokenRepository:
    async def test_create_and_lookup(self, db_session: AsyncSession, test_user):
        row = await TokenRepository.create(
            db_session,
            PasswordResetToken,
            user_id=test_user.id,
            token="reset-abc",
            expires_at=_EXPIRES,
        )

        found = await TokenRepository.get_by_token(
            db_session, PasswordResetToken, "reset-abc"
        )
        assert found.id == row.id
        assert found.expires_at == _EXPIRES
        assert found.created_at is not None

    async def test_tables_are_separate(self, db_session: AsyncSession, test_user):
        await TokenRepository.create(
            db_session,
            VerificationToken,
            user_id=test_user.id,
            token="verify-abc",
            expires_at=_EXPIRES,
        )

        found = await TokenRepository.get_by_token(
            db_session, PasswordResetToken, "verify-abc"
        )
        assert found is None

    async def test_token_string_is_unique(self, db_session: AsyncSession, test_user):
        await TokenRepository.create(
            db_session,
            VerificationToken,
            user_id=test_user.id,
            token="same",
            expires_at=_EXPIRES,
        )

        with pytest.raises(IntegrityError):
            await TokenRepository.create(
                db_session,
                VerificationToken,
                user_id=test_user.id,
                token="same",
                expires_at=_EXPIRES + timedelta(hours=1),
            )

    async def test_delete_for_user(self, db_session: AsyncSession, test_user):
        for value in ("one", "two"):
            await TokenRepository.create(
                db_session,
                VerificationToken,
                user_id=test_user.id,
                token=value,
                expires_at=_EXPIRES,
            )

        await TokenRepository.delete_for_user(
            db_session, VerificationToken, user_id=test_user.id
        )

        rows = await db_session.scalars(
            select(VerificationToken).where(VerificationToken.user_id == test_user.id)
        )
        assert rows.all() == []

    async def test_delete_single(self, db_session: AsyncSession, test_user):
        row = await TokenRepository.create(
            db_session,
            VerificationToken,
            user_id=test_user.id,
            token="single",
            expires_at=_EXPIRES,
        )
        db_session.expunge(row)

        await TokenRepository.delete(db_session, VerificationToken, row.id)

        assert (
            await TokenRepository.get_by_token(db_session, VerificationToken, "single")
            is None
        )


class TestConfigRepository:
    async def test_absent_until_created(self, db_session: AsyncSession):
        assert await ConfigRepository.get(db_session) is None
        assert await ConfigRepository.exists(db_session) is False

    async def test_create_uses_global_id(self, db_session: AsyncSession):
        config = await ConfigRepository.create(
            db_session, name="Example University", student_email_domain="x.edu"
        )

        assert config.id == GLOBAL_CONFIG_ID
        assert config.allow_public_registration is False
        assert await ConfigRepository.exists(db_session) is True

    async def test_only_one_row(self, db_session: AsyncSession):
        await ConfigRepository.create(db_session, name="First")
        db_session.expunge_all()

        with pytest.raises(IntegrityError):
            await ConfigRepository.create(db_session, name="Second")

    async def test_update(self, db_session: AsyncSession):
        await ConfigRepository.create(db_session, name="Example University")

        config = await ConfigRepository.update(
            db_session, allow_public_registration=True, email_from="a@x.edu"
        )

        assert config.allow_public_registration is True
        assert config.email_from == "a@x.edu"
        assert config.name == "Example University"

    async def test_update_unconfigured(self, db_session: AsyncSession):
        assert await ConfigRepository.update(db_session, name="x") is None

    async def test_unknown_fields_rejected(self, db_session: AsyncSession):
        with pytest.raises(ValueError, match="Unknown fields"):
            await ConfigRepository.create(db_session, id="other")
