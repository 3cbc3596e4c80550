"""Platform configuration service.

Reads and writes the single global configuration row. The row's absence
means the platform has not been set up yet, which the request gate turns
into a redirect to /setup.

The snapshot is cached in a ConfigCache shared by the whole app. Every
write through this service clears it. Only a present row is cached, so an
unconfigured platform is re-read on each call.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.platform_config import PlatformConfig
from portal.repositories.config_repository import ConfigRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformSettings:
    """Detached snapshot of the platform configuration row."""

    name: str
    allow_public_registration: bool
    student_email_domain: str | None
    staff_email_domain: str | None
    email_from: str | None

    @classmethod
    def from_model(cls, config: PlatformConfig) -> "PlatformSettings":
        return cls(
            name=config.name,
            allow_public_registration=config.allow_public_registration,
            student_email_domain=config.student_email_domain,
            staff_email_domain=config.staff_email_domain,
            email_from=config.email_from,
        )


class ConfigCache:
    """Process-wide holder of the last loaded configuration snapshot.

    ``generation`` increases on every clear. A snapshot read under an
    older generation is not stored, so a read that overlapped a write
    cannot put the previous row back into the cache.
    """

    def __init__(self) -> None:
        self.value: PlatformSettings | None = None
        self.generation = 0

    def store(self, snapshot: PlatformSettings, generation: int) -> None:
        if generation == self.generation:
            self.value = snapshot

    def clear(self) -> None:
        self.value = None
        self.generation += 1


class ConfigService:
    """Reads and writes the platform configuration.

    Args:
        db: Async database session.
        cache: Shared configuration cache.
    """

    def __init__(self, db: AsyncSession, cache: ConfigCache) -> None:
        self._db = db
        self._cache = cache

    async def get_config(self) -> PlatformSettings | None:
        """Current configuration, or None if the platform is not set up."""
        if self._cache.value is not None:
            return self._cache.value

        generation = self._cache.generation
        config = await ConfigRepository.get(self._db)
        if config is None:
            return None

        snapshot = PlatformSettings.from_model(config)
        self._cache.store(snapshot, generation)
        return snapshot

    async def is_configured(self) -> bool:
        """Whether the global configuration row exists."""
        if self._cache.value is not None:
            return True
        return await ConfigRepository.exists(self._db)

    async def create_config(self, **values: str | bool | None) -> PlatformSettings:
        """Create the configuration row.

        Args:
            **values: Column values (name, allow_public_registration,
                student_email_domain, staff_email_domain, email_from).

        Returns:
            Snapshot of the created configuration.
        """
        config = await ConfigRepository.create(self._db, **values)
        self.clear_cache()
        logger.info("Platform configuration created")
        return PlatformSettings.from_model(config)

    async def update_config(
        self, **values: str | bool | None
    ) -> PlatformSettings | None:
        """Update the configuration row and commit.

        The cache is cleared only after the commit, so no other session
        can reload the previous row once it is gone.

        Returns:
            Snapshot of the updated configuration, or None if the platform
            is not configured yet.
        """
        config = await ConfigRepository.update(self._db, **values)
        if config is None:
            return None
        snapshot = PlatformSettings.from_model(config)
        await self._db.commit()
        self.clear_cache()
        logger.info("Platform configuration updated: %s", ", ".join(sorted(values)))
        return snapshot

    def clear_cache(self) -> None:
        """Drop the cached snapshot so the next read hits the database."""
        self._cache.clear()


async def check_configured(
    session_factory: Callable[[], AsyncSession],
    cache: ConfigCache,
) -> bool:
    """is_configured() outside a request-scoped session (middleware use).

    Opens a short-lived session only when the cache cannot answer.
    """
    if cache.value is not None:
        return True
    async with session_factory() as db:
        service = ConfigService(db, cache)
        # get_config() also fills the cache for the following requests
        return await service.get_config() is not None
