"""Application configuration loaded from environment variables.

Settings for database, API, session cookie, email delivery and rate limiting.
Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "portal_dev_password"  # nosec B105

# Development-only session secret. Rejected in production.
_INSECURE_DEFAULT_SESSION_SECRET = (  # nosec B105
    "portal-dev-session-secret-change-me-before-deploying"
)

# Minimum length for SESSION_SECRET in production (256 bits = 32 bytes)
_MIN_SESSION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "placement_portal"
    database_user: str = "portal_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS
    # Never set to ["*"]: the session cookie requires credentials.
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Reverse proxy addresses whose X-Forwarded-For / X-Real-IP headers are
    # believed. Empty: the socket peer is the client.
    trusted_proxies: list[str] = []

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Externally reachable base URL used to build emailed links
    app_url: str = "http://localhost:3000"

    # Locales recognised as a leading path segment (/en/dashboard)
    locales: list[str] = ["en"]
    default_locale: str = "en"

    # Session cookie
    session_secret: SecretStr = SecretStr(_INSECURE_DEFAULT_SESSION_SECRET)
    session_issuer: str = "placement-portal"
    session_cookie_name: str = "session"
    session_ttl_seconds: int = 60 * 60 * 24 * 7
    session_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    session_cookie_domain: str = ""

    # Email (Resend HTTP API)
    email_from: str = "noreply@placement-portal.local"
    resend_api_key: SecretStr = SecretStr("")
    email_timeout_seconds: float = 10.0

    # Rate limiting (per category: attempts per window)
    rate_limit_enabled: bool = True
    rate_limit_max_tokens: int = 500
    login_rate_limit: int = 5
    login_rate_window_seconds: int = 15 * 60
    signup_rate_limit: int = 3
    signup_rate_window_seconds: int = 60 * 60
    password_reset_rate_limit: int = 3
    password_reset_rate_window_seconds: int = 60 * 60
    email_resend_rate_limit: int = 3
    email_resend_rate_window_seconds: int = 60 * 60
    # Coarse per-IP limit for token-guessing endpoints (slowapi format)
    rate_limit_token_endpoints: str = "20/hour"

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def session_cookie_secure(self) -> bool:
        """Secure flag for the session cookie (production only)."""
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Checks:
        - Session TTL must be positive (all environments)
        - The default locale must be one of the supported locales
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - SESSION_SECRET must not be the default and must be >= 32 chars
          in production
        """
        if self.session_ttl_seconds <= 0:
            msg = (
                "SESSION_TTL_SECONDS must be positive. "
                f"Got: {self.session_ttl_seconds}"
            )
            raise ValueError(msg)

        if self.default_locale not in self.locales:
            msg = (
                f"DEFAULT_LOCALE '{self.default_locale}' must be one of "
                f"LOCALES {self.locales}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "The session cookie requires credentials, which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.session_secret.get_secret_value()
            if secret_value == _INSECURE_DEFAULT_SESSION_SECRET:
                msg = (
                    "SESSION_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_SESSION_SECRET_LENGTH:
                msg = (
                    f"SESSION_SECRET must be at least {_MIN_SESSION_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
