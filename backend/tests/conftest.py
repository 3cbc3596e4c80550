import socket
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from portal.core import passwords
from portal.core.config import Settings, settings
from portal.core.rate_limiting import limiter
from portal.core.session import SessionCodec, SessionStore
from portal.models.base import Base
from portal.services.config_service import ConfigCache, ConfigService
from portal.services.email_service import EmailService
from portal.services.rate_limit_service import RateLimiters
from tests.fakes import (
    FakeConfigRepository,
    FakeStore,
    FakeTokenRepository,
    FakeUserRepository,
    FrozenClock,
    RecordingTransport,
)

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_SESSION_SECRET = "test-session-secret-that-is-at-least-32-characters"  # nosec B105  # gitleaks:allow

TEST_PASSWORD = "ValidPass1"  # nosec B105  # gitleaks:allow
TEST_APP_URL = "http://portal.test"

# Modules that import a repository by name; fakes are patched over each.
_USER_REPOSITORY_TARGETS = (
    "portal.services.auth_service.UserRepository",
    "portal.services.admin_service.UserRepository",
    "portal.services.setup_service.UserRepository",
)
_TOKEN_REPOSITORY_TARGETS = ("portal.services.token_service.TokenRepository",)
_CONFIG_REPOSITORY_TARGETS = ("portal.services.config_service.ConfigRepository",)


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


def make_settings(**overrides: object) -> Settings:
    """Settings for tests: fixed secret, no email API key, test app URL."""
    values: dict[str, object] = {
        "session_secret": SecretStr(TEST_SESSION_SECRET),
        "resend_api_key": SecretStr(""),
        "app_url": TEST_APP_URL,
        "environment": "test",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Low bcrypt cost factor so hashing in tests is fast."""
    monkeypatch.setattr(passwords, "BCRYPT_ROUNDS", 4)


# =============================================================================
# PostgreSQL fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# In-memory fixtures (service and API tests)
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@contextmanager
def patched_repositories(store: FakeStore) -> Iterator[FakeStore]:
    """Replace every service-level repository reference with a fake."""
    replacements = [
        (target, FakeUserRepository(store)) for target in _USER_REPOSITORY_TARGETS
    ]
    replacements += [
        (target, FakeTokenRepository(store)) for target in _TOKEN_REPOSITORY_TARGETS
    ]
    replacements += [
        (target, FakeConfigRepository(store)) for target in _CONFIG_REPOSITORY_TARGETS
    ]
    patchers = [patch(target, fake) for target, fake in replacements]
    for patcher in patchers:
        patcher.start()
    try:
        yield store
    finally:
        for patcher in reversed(patchers):
            patcher.stop()


@pytest.fixture
def store() -> Iterator[FakeStore]:
    """Fake persistence, patched into the service modules."""
    with patched_repositories(FakeStore()) as fake_store:
        yield fake_store


@pytest.fixture
def configured_store(store: FakeStore) -> FakeStore:
    """Fake persistence with a platform configuration row."""
    store.configure(
        name="Example University",
        student_email_domain="student.example.edu",
        staff_email_domain="@example.edu",
        email_from="placements@example.edu",
    )
    return store


@pytest.fixture
def db() -> AsyncMock:
    """Stand-in AsyncSession; repositories are faked so it only records calls."""
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def email_service(transport: RecordingTransport) -> EmailService:
    return EmailService(transport, TEST_APP_URL)


@pytest.fixture
def rate_limiters(test_settings: Settings, clock: FrozenClock) -> RateLimiters:
    return RateLimiters.from_settings(test_settings, clock=clock)


@pytest.fixture
def config_cache() -> ConfigCache:
    return ConfigCache()


@pytest.fixture
def config_service(db: AsyncMock, config_cache: ConfigCache) -> ConfigService:
    return ConfigService(db, config_cache)


@pytest.fixture
def codec() -> SessionCodec:
    return SessionCodec(TEST_SESSION_SECRET, "placement-portal")


@pytest.fixture
def session_factory(clock: FrozenClock, codec: SessionCodec, test_settings: Settings):
    """Build SessionStore objects the way a request would."""

    def build(raw_cookie: str | None = None) -> SessionStore:
        return SessionStore(codec, raw_cookie, settings=test_settings, clock=clock)

    return build


# =============================================================================
# API fixtures
# =============================================================================


@pytest_asyncio.fixture
async def api_client(
    store: FakeStore,
    transport: RecordingTransport,
    test_settings: Settings,
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client against an app wired to the in-memory fakes.

    The database dependency yields an AsyncMock session; the request
    gate's configuration check opens the same kind of session.
    """
    from portal.core.database import get_db
    from portal.main import create_app

    @asynccontextmanager
    async def fake_session() -> AsyncIterator[AsyncMock]:
        yield AsyncMock(spec=AsyncSession)

    app = create_app(
        test_settings,
        email_transport=transport,  # type: ignore[arg-type]
        session_factory=fake_session,
    )

    async def override_get_db() -> AsyncGenerator[AsyncMock, None]:
        yield AsyncMock(spec=AsyncSession)

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        client.app = app  # type: ignore[attr-defined]
        yield client

    app.dependency_overrides.clear()


def unique_email(prefix: str = "user", domain: str = "student.example.edu") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@{domain}"

