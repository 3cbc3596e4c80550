"""Fixed-window rate limiting for auth-sensitive actions.

Counts attempts per token (client IP or email) inside a fixed window.
Blocked attempts are not counted. Each action category owns its own
limiter with its own window and keyspace:

- login: 5 per 15 minutes per IP
- signup: 3 per hour per IP
- password reset request: 3 per hour per IP
- verification resend: 3 per hour per email

Counters live in process memory and are lost on restart. The store is
bounded by LRU eviction and the window TTL.

Note: safe for async/await usage (single-threaded event loop). Two
concurrent checks for the same token may both pass at the edge of the
limit (last write wins); this is abuse mitigation, not a hard quota.
"""

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from portal.core.config import Settings

logger = structlog.get_logger()

# Default capacity of each limiter's store (distinct tokens tracked)
DEFAULT_MAX_TOKENS = 500


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class RateLimitRecord:
    """Attempt counter for one token.

    Attributes:
        token: Rate-limited key (IP address, email, user id).
        count: Attempts admitted in the current window.
        limit: Limit in force when the record was created.
        reset_at: End of the current window.
    """

    token: str
    count: int
    limit: int
    reset_at: datetime


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        success: Whether the attempt is admitted.
        remaining: Attempts left in the current window.
        reset: When the current window ends.
    """

    success: bool
    remaining: int
    reset: datetime


class RateLimitRepository:
    """Bounded in-memory store of rate limit records.

    Records expire after the window (TTL) and the least recently used
    record is evicted once ``max_tokens`` distinct tokens are tracked.
    """

    def __init__(
        self,
        window: timedelta,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            window: Window length; also the TTL of each record.
            max_tokens: Maximum number of tokens tracked at once.
            clock: Source of the current time (injectable for tests).
        """
        self._records: OrderedDict[str, RateLimitRecord] = OrderedDict()
        self._window = window
        self._max_tokens = max_tokens
        self._clock = clock

    @property
    def window(self) -> timedelta:
        """Window length of this store."""
        return self._window

    def get(self, token: str) -> RateLimitRecord | None:
        """Get the record for a token, if present and within its TTL.

        Args:
            token: Rate-limited key.

        Returns:
            The record, or None if absent or past its TTL.
        """
        record = self._records.get(token)
        if record is None:
            return None
        if self._clock() > record.reset_at:
            # TTL elapsed: drop so capacity is freed
            del self._records[token]
            return None
        self._records.move_to_end(token)
        return record

    def create(self, token: str, limit: int) -> RateLimitRecord:
        """Create (or replace) a record with a zero count and a fresh window.

        Args:
            token: Rate-limited key.
            limit: Limit in force for this window.

        Returns:
            The new record.
        """
        record = RateLimitRecord(
            token=token,
            count=0,
            limit=limit,
            reset_at=self._clock() + self._window,
        )
        self.save(record)
        return record

    def save(self, record: RateLimitRecord) -> None:
        """Store a record, evicting the least recently used one if full.

        Args:
            record: Record to persist.
        """
        self._records[record.token] = record
        self._records.move_to_end(record.token)
        while len(self._records) > self._max_tokens:
            self._records.popitem(last=False)

    def __len__(self) -> int:
        return len(self._records)


class RateLimitService:
    """Fixed-window counter for one action category.

    Args:
        name: Category name used in log events.
        repository: Backing store for the counters.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        name: str,
        repository: RateLimitRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.name = name
        self._repository = repository
        self._clock = clock

    def check(self, limit: int, token: str) -> RateLimitResult:
        """Count an attempt for a token if it is within the limit.

        The attempt that reaches ``limit`` is admitted; every later
        attempt in the same window is rejected and not counted.

        Args:
            limit: Maximum attempts per window.
            token: Rate-limited key (IP address, email, user id).

        Returns:
            RateLimitResult with success flag, remaining quota and reset time.
        """
        record = self._repository.get(token)
        if record is None:
            record = self._repository.create(token, limit)

        if self._clock() > record.reset_at:
            record = self._repository.create(token, limit)

        if record.count >= limit:
            logger.warning(
                "Rate limit exceeded",
                limiter=self.name,
                token=token,
                limit=limit,
                reset_at=record.reset_at.isoformat(),
            )
            return RateLimitResult(success=False, remaining=0, reset=record.reset_at)

        record.count += 1
        self._repository.save(record)

        return RateLimitResult(
            success=True,
            remaining=limit - record.count,
            reset=record.reset_at,
        )


@dataclass(frozen=True)
class CategoryLimit:
    """A limiter together with the attempt limit applied to it."""

    service: RateLimitService
    limit: int

    def check(self, token: str) -> RateLimitResult:
        """Check a token against this category's limit."""
        return self.service.check(self.limit, token)


@dataclass(frozen=True)
class RateLimiters:
    """One independent limiter per auth-sensitive action.

    Built once at the composition root (create_app) and shared by every
    request of the process.
    """

    login: CategoryLimit
    signup: CategoryLimit
    password_reset: CategoryLimit
    email_resend: CategoryLimit
    enabled: bool = True

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> "RateLimiters":
        """Build the four category limiters from application settings.

        Args:
            settings: Application settings.
            clock: Source of the current time (injectable for tests).

        Returns:
            RateLimiters with independent stores.
        """

        def build(name: str, limit: int, window_seconds: int) -> CategoryLimit:
            repository = RateLimitRepository(
                timedelta(seconds=window_seconds),
                settings.rate_limit_max_tokens,
                clock=clock,
            )
            return CategoryLimit(
                service=RateLimitService(name, repository, clock=clock),
                limit=limit,
            )

        return cls(
            login=build(
                "login",
                settings.login_rate_limit,
                settings.login_rate_window_seconds,
            ),
            signup=build(
                "signup",
                settings.signup_rate_limit,
                settings.signup_rate_window_seconds,
            ),
            password_reset=build(
                "password_reset",
                settings.password_reset_rate_limit,
                settings.password_reset_rate_window_seconds,
            ),
            email_resend=build(
                "email_resend",
                settings.email_resend_rate_limit,
                settings.email_resend_rate_window_seconds,
            ),
            enabled=settings.rate_limit_enabled,
        )
