"""Repository for the global platform configuration row."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.platform_config import GLOBAL_CONFIG_ID, PlatformConfig

# Fields that may be set via create() / update().
_CONFIG_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "allow_public_registration",
        "student_email_domain",
        "staff_email_domain",
        "email_from",
    }
)


def _check_fields(values: dict) -> None:
    unknown = set(values) - _CONFIG_FIELDS
    if unknown:
        msg = f"Unknown fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)


class ConfigRepository:
    """Stateless repository for the platform_config table.

    All methods are static; no instance state.
    """

    @staticmethod
    async def get(db: AsyncSession) -> PlatformConfig | None:
        """Fetch the global configuration row.

        Args:
            db: Async database session.

        Returns:
            PlatformConfig if the platform is configured, None otherwise.
        """
        return await db.get(PlatformConfig, GLOBAL_CONFIG_ID)

    @staticmethod
    async def exists(db: AsyncSession) -> bool:
        """Check whether the global configuration row exists.

        Args:
            db: Async database session.

        Returns:
            True if configured.
        """
        stmt = (
            select(func.count())
            .select_from(PlatformConfig)
            .where(PlatformConfig.id == GLOBAL_CONFIG_ID)
        )
        result = await db.execute(stmt)
        return bool(result.scalar_one())

    @staticmethod
    async def create(db: AsyncSession, **values: str | bool | None) -> PlatformConfig:
        """Create the global configuration row.

        Args:
            db: Async database session.
            **values: Column values (see _CONFIG_FIELDS).

        Returns:
            Created PlatformConfig.

        Raises:
            ValueError: If an unknown field name is passed.
            sqlalchemy.exc.IntegrityError: If the row already exists.
        """
        _check_fields(values)
        config = PlatformConfig(id=GLOBAL_CONFIG_ID, **values)
        db.add(config)
        await db.flush()
        await db.refresh(config)
        return config

    @staticmethod
    async def update(
        db: AsyncSession, **values: str | bool | None
    ) -> PlatformConfig | None:
        """Update the global configuration row.

        Args:
            db: Async database session.
            **values: Column values to change (see _CONFIG_FIELDS).

        Returns:
            Updated PlatformConfig, or None if not configured yet.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        _check_fields(values)
        config = await db.get(PlatformConfig, GLOBAL_CONFIG_ID)
        if config is None:
            return None
        for field, value in values.items():
            setattr(config, field, value)
        await db.flush()
        await db.refresh(config)
        return config
