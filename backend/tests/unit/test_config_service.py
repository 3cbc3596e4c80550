"""Tests for the platform configuration service and its cache."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from portal.models.platform_config import GLOBAL_CONFIG_ID, PlatformConfig
from portal.services import config_service as config_service_module
from portal.services.config_service import (
    ConfigCache,
    ConfigService,
    PlatformSettings,
    check_configured,
)


class TestGetConfig:
    async def test_unconfigured(self, config_service, store):
        assert await config_service.get_config() is None
        assert await config_service.is_configured() is False

    async def test_returns_snapshot(self, config_service, configured_store):
        config = await config_service.get_config()

        assert config == PlatformSettings(
            name="Example University",
            allow_public_registration=False,
            student_email_domain="student.example.edu",
            staff_email_domain="@example.edu",
            email_from="placements@example.edu",
        )
        assert await config_service.is_configured() is True

    async def test_snapshot_is_cached(
        self, config_service, config_cache, configured_store
    ):
        first = await config_service.get_config()
        configured_store.config.name = "Changed behind the service"

        second = await config_service.get_config()

        assert second is first
        assert config_cache.value is first

    async def test_absent_row_is_not_cached(self, config_service, config_cache, store):
        await config_service.get_config()
        store.configure(name="Set up later")

        config = await config_service.get_config()

        assert config is not None
        assert config.name == "Set up later"


class TestWrites:
    async def test_create_config(self, config_service, store):
        created = await config_service.create_config(
            name="New Uni", allow_public_registration=True
        )

        assert created.name == "New Uni"
        assert created.allow_public_registration is True
        assert await config_service.is_configured() is True

    async def test_update_invalidates_cache(self, config_service, configured_store):
        await config_service.get_config()

        updated = await config_service.update_config(name="Renamed University")

        assert updated.name == "Renamed University"
        assert (await config_service.get_config()).name == "Renamed University"

    async def test_update_when_unconfigured(self, config_service, store):
        assert await config_service.update_config(name="x") is None

    async def test_cache_shared_between_services(
        self, db, config_cache, configured_store
    ):
        """A write through one request's service is visible to the next."""
        first = ConfigService(db, config_cache)
        second = ConfigService(db, config_cache)
        await second.get_config()

        await first.update_config(allow_public_registration=True)

        assert (await second.get_config()).allow_public_registration is True

    async def test_update_commits_before_clearing_cache(
        self, db, config_service, config_cache, configured_store
    ):
        await config_service.get_config()
        cached_at_commit = []

        async def commit():
            cached_at_commit.append(config_cache.value)

        db.commit.side_effect = commit

        await config_service.update_config(name="Renamed University")

        db.commit.assert_awaited_once()
        assert cached_at_commit[0] is not None
        assert config_cache.value is None

    async def test_read_overlapping_update_is_not_cached(
        self, db, config_cache, configured_store
    ):
        """A row read before a concurrent update finished stays out of the cache."""
        reader = ConfigService(db, config_cache)
        writer = ConfigService(db, config_cache)
        old_row = PlatformConfig(
            id=GLOBAL_CONFIG_ID,
            name=configured_store.config.name,
            allow_public_registration=False,
        )
        repository = config_service_module.ConfigRepository
        read_latest = repository.get

        async def read_then_update(session):
            repository.get = read_latest
            await writer.update_config(name="Renamed University")
            return old_row

        repository.get = read_then_update

        overlapping = await reader.get_config()

        assert overlapping.name == "Example University"
        assert config_cache.value is None
        assert (await reader.get_config()).name == "Renamed University"
        assert config_cache.value.name == "Renamed University"

    def test_clear_advances_generation(self, config_cache):
        snapshot = PlatformSettings(
            name="Uni",
            allow_public_registration=False,
            student_email_domain=None,
            staff_email_domain=None,
            email_from=None,
        )
        generation = config_cache.generation

        config_cache.clear()
        config_cache.store(snapshot, generation)

        assert config_cache.value is None
        config_cache.store(snapshot, config_cache.generation)
        assert config_cache.value is snapshot


class TestCheckConfigured:
    @pytest.fixture
    def factory(self):
        opened: list[AsyncMock] = []

        @asynccontextmanager
        async def session_factory():
            session = AsyncMock()
            opened.append(session)
            yield session

        session_factory.opened = opened
        return session_factory

    async def test_false_when_unconfigured(self, factory, store):
        assert await check_configured(factory, ConfigCache()) is False

    async def test_fills_cache(self, factory, configured_store):
        cache = ConfigCache()

        assert await check_configured(factory, cache) is True
        assert await check_configured(factory, cache) is True

        assert len(factory.opened) == 1
        assert cache.value is not None
