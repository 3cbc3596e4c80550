"""Tests for the request transaction helper."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.database import transaction
from portal.core.errors import ValidationError


@pytest.fixture
def session():
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def factory(session):
    @asynccontextmanager
    async def session_factory():
        yield session

    return session_factory


class TestTransaction:
    async def test_commits_on_success(self, factory, session):
        async with transaction(factory) as db:
            assert db is session

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    async def test_rolls_back_and_reraises(self, factory, session):
        with pytest.raises(ValidationError):
            async with transaction(factory):
                raise ValidationError("bad input")

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_failed_commit_rolls_back(self, factory, session):
        session.commit.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            async with transaction(factory):
                pass

        session.rollback.assert_awaited_once()
