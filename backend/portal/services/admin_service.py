"""Administrator actions on accounts and organizations.

Suspension and organization approval change a flag, commit, and then
notify the affected user by email. Notifications are best effort: a
delivery failure is logged and the action still succeeds.
"""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ConflictError, EmailDeliveryError, NotFoundError
from portal.models.profile import Organization
from portal.models.user import User
from portal.repositories.user_repository import UserRepository
from portal.services.config_service import ConfigService
from portal.services.email_service import EmailService

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AdminService:
    """Account moderation for administrators.

    Args:
        db: Async database session.
        email_service: Transactional email sender.
        config_service: Platform configuration reader (sender address).
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        email_service: EmailService,
        config_service: ConfigService,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._email = email_service
        self._config = config_service
        self._clock = clock

    async def _sender(self) -> str | None:
        config = await self._config.get_config()
        return config.email_from if config else None

    async def suspend_user(
        self, *, admin_user_id: uuid.UUID, target_user_id: uuid.UUID
    ) -> User:
        """Suspend an account and notify its owner.

        Raises:
            ConflictError: CANNOT_SUSPEND_SELF if the admin targets themself.
            NotFoundError: If the target user does not exist.
        """
        if admin_user_id == target_user_id:
            raise ConflictError(
                code="CANNOT_SUSPEND_SELF",
                message="Cannot suspend your own account",
            )

        user = await UserRepository.set_suspended(
            self._db, target_user_id, is_suspended=True
        )
        if user is None:
            raise NotFoundError("User", str(target_user_id))
        await self._db.commit()

        logger.info(
            "User suspended",
            user_id=str(user.id),
            admin_user_id=str(admin_user_id),
        )
        try:
            await self._email.send_account_suspended(
                user.email, name=user.name, sender=await self._sender()
            )
        except EmailDeliveryError:
            logger.warning("Suspension email failed", user_id=str(user.id))
        return user

    async def unsuspend_user(self, *, target_user_id: uuid.UUID) -> User:
        """Lift a suspension.

        Raises:
            NotFoundError: If the target user does not exist.
        """
        user = await UserRepository.set_suspended(
            self._db, target_user_id, is_suspended=False
        )
        if user is None:
            raise NotFoundError("User", str(target_user_id))
        await self._db.commit()
        logger.info("User unsuspended", user_id=str(user.id))
        return user

    async def _load_organization(
        self, organization_id: uuid.UUID
    ) -> tuple[Organization, User]:
        organization = await UserRepository.get_organization(
            self._db, organization_id
        )
        if organization is None:
            raise NotFoundError("Organization", str(organization_id))
        owner = await UserRepository.get_by_id(self._db, organization.user_id)
        if owner is None:
            raise NotFoundError("User", str(organization.user_id))
        return organization, owner

    async def approve_organization(self, organization_id: uuid.UUID) -> Organization:
        """Mark an organization as verified and notify it.

        Raises:
            NotFoundError: If the organization does not exist.
        """
        organization, owner = await self._load_organization(organization_id)
        organization.is_verified = True
        organization.verified_at = self._clock()
        organization.rejection_reason = None
        await self._db.commit()

        logger.info("Organization approved", organization_id=str(organization.id))
        try:
            await self._email.send_organization_approved(
                owner.email, name=owner.name, sender=await self._sender()
            )
        except EmailDeliveryError:
            logger.warning(
                "Approval email failed", organization_id=str(organization.id)
            )
        return organization

    async def reject_organization(
        self, organization_id: uuid.UUID, *, reason: str | None = None
    ) -> Organization:
        """Record a rejection and notify the organization.

        Raises:
            NotFoundError: If the organization does not exist.
        """
        organization, owner = await self._load_organization(organization_id)
        organization.is_verified = False
        organization.verified_at = None
        organization.rejection_reason = reason
        await self._db.commit()

        logger.info("Organization rejected", organization_id=str(organization.id))
        try:
            await self._email.send_organization_rejected(
                owner.email, reason=reason, name=owner.name, sender=await self._sender()
            )
        except EmailDeliveryError:
            logger.warning(
                "Rejection email failed", organization_id=str(organization.id)
            )
        return organization
