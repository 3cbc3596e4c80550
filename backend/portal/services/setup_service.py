"""One-time platform setup.

Creates the global configuration row and the first administrator in one
transaction. Allowed only while the platform is unconfigured; afterwards
configuration changes go through PATCH /admin/config.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ConflictError, ValidationError
from portal.core.passwords import hash_password, validate_password_strength
from portal.models.user import User, UserRole
from portal.repositories.user_repository import UserRepository, normalize_email
from portal.services.config_service import ConfigService

logger = structlog.get_logger()

_ALREADY_CONFIGURED_MESSAGE = "The platform has already been configured."


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SetupService:
    """Runs the first-time setup.

    Args:
        db: Async database session.
        config_service: Platform configuration service.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        db: AsyncSession,
        config_service: ConfigService,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._config = config_service
        self._clock = clock

    async def complete_setup(
        self,
        *,
        platform_name: str,
        admin_name: str,
        admin_email: str,
        admin_password: str,
        allow_public_registration: bool = False,
        student_email_domain: str | None = None,
        staff_email_domain: str | None = None,
        email_from: str | None = None,
    ) -> User:
        """Store the configuration and create the first administrator.

        The administrator's email counts as verified: setup is performed
        by whoever operates the deployment.

        Returns:
            The administrator account.

        Raises:
            ConflictError: ALREADY_CONFIGURED if setup already ran.
            ValidationError: Malformed administrator email or weak password.
        """
        if await self._config.is_configured():
            raise ConflictError(
                code="ALREADY_CONFIGURED", message=_ALREADY_CONFIGURED_MESSAGE
            )

        email = normalize_email(admin_email)
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationError(
                "Invalid email address",
                details=[{"field": "admin_email", "msg": "Invalid email address"}],
            ) from exc
        validate_password_strength(admin_password, field="admin_password")

        hashed = await hash_password(admin_password)
        try:
            await self._config.create_config(
                name=platform_name.strip(),
                allow_public_registration=allow_public_registration,
                student_email_domain=student_email_domain or None,
                staff_email_domain=staff_email_domain or None,
                email_from=email_from or None,
            )
            admin = await UserRepository.create_with_profile(
                self._db,
                email=email,
                role=UserRole.ADMINISTRATOR,
                name=admin_name.strip() or None,
                hashed_password=hashed,
                email_verified=self._clock(),
            )
        except IntegrityError as exc:
            await self._db.rollback()
            self._config.clear_cache()
            raise ConflictError(
                code="ALREADY_CONFIGURED", message=_ALREADY_CONFIGURED_MESSAGE
            ) from exc
        await self._db.commit()

        logger.info("Platform setup completed", admin_user_id=str(admin.id))
        return admin
