"""Repository for User CRUD operations.

Provides database access for the users table and the role profile rows
that are created together with a user.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.profile import Administrator, Coordinator, Organization, Student
from portal.models.user import User, UserRole

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'role', 'created_at', or 'updated_at'.
# - id: primary key, immutable
# - email: unique identity, requires dedicated flow with re-verification
# - role: fixed at creation
# - created_at/updated_at: server-managed timestamps
# Security: is_suspended is excluded to prevent mass-assignment; use
# set_suspended() from the administrator flow.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "email_verified",
        "hashed_password",
    }
)

_PROFILE_MODELS: dict[UserRole, type] = {
    UserRole.STUDENT: Student,
    UserRole.COORDINATOR: Coordinator,
    UserRole.ORGANIZATION: Organization,
    UserRole.ADMINISTRATOR: Administrator,
}


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_with_profile(
        db: AsyncSession,
        *,
        email: str,
        role: UserRole,
        name: str | None = None,
        hashed_password: str | None = None,
        email_verified: datetime | None = None,
    ) -> User:
        """Create a user and its role profile in one savepoint.

        Both rows are written or neither is. Email is normalized to
        lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            role: Platform role (selects the profile table).
            name: Display name.
            hashed_password: bcrypt hash.
            email_verified: Timestamp when email was verified.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        async with db.begin_nested():
            user = User(
                email=normalize_email(email),
                name=name,
                hashed_password=hashed_password,
                role=role,
                email_verified=email_verified,
            )
            db.add(user)
            await db.flush()
            profile_model = _PROFILE_MODELS[role]
            db.add(profile_model(user_id=user.id))
            await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def set_suspended(
        db: AsyncSession, user_id: uuid.UUID, *, is_suspended: bool
    ) -> User | None:
        """Set suspension status for a user.

        Separated from update() so only the administrator flow can
        suspend or reinstate accounts.

        Args:
            db: Async database session.
            user_id: UUID of the user.
            is_suspended: New suspension status.

        Returns:
            Updated User if found, None if user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.is_suspended = is_suspended
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete(db: AsyncSession, user_id: uuid.UUID) -> None:
        """Hard-delete a user. Profiles and tokens cascade.

        Args:
            db: Async database session.
            user_id: UUID of the user to delete.
        """
        await db.execute(delete(User).where(User.id == user_id))

    @staticmethod
    async def get_organization(
        db: AsyncSession, organization_id: uuid.UUID
    ) -> Organization | None:
        """Fetch an organization profile by its primary key.

        Args:
            db: Async database session.
            organization_id: UUID of the organization row.

        Returns:
            Organization if found, None otherwise.
        """
        return await db.get(Organization, organization_id)
