"""Authentication orchestration.

Composes the rate limiters, token service, password hashing, session
store, platform configuration and email service into the user-facing
auth flows:

- sign_up: rate limit, validate, domain policy, create user + profile,
  issue verification token, send email (user deleted if sending fails)
- sign_in / sign_out: credential check and session lifecycle
- request_password_reset / validate_reset_token / reset_password
- verify_email / resend_verification_email(_for_user)
- get_current_user: session snapshot or fresh database read

Rate limit checks always run before any other work. Failures are raised
as typed APIError subclasses and mapped to the error envelope by the
exception handlers in main.py.

Security:
- Unknown email and wrong password raise the identical
  InvalidCredentialsError, and both paths run one bcrypt comparison
- Password reset and resend requests for unknown emails succeed silently
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import (
    AccountSuspendedError,
    ConflictError,
    EmailDeliveryError,
    InvalidCredentialsError,
    InvalidStateError,
    NotFoundError,
    PlatformNotConfiguredError,
    PolicyError,
    RateLimitedError,
    TokenError,
    ValidationError,
)
from portal.core.passwords import (
    hash_password,
    validate_password_strength,
    verify_password,
)
from portal.core.session import SessionStore, SessionUser
from portal.models.user import User, UserRole
from portal.repositories.user_repository import UserRepository, normalize_email
from portal.services.config_service import ConfigService, PlatformSettings
from portal.services.email_service import EmailService
from portal.services.rate_limit_service import CategoryLimit, RateLimiters
from portal.services.token_service import (
    TokenPurpose,
    TokenService,
    TokenVerification,
)

logger = structlog.get_logger()

# Roles a visitor may choose at signup. Administrators come from setup.
SELF_SERVICE_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.STUDENT, UserRole.COORDINATOR, UserRole.ORGANIZATION}
)

_MAX_NAME_LENGTH = 255


def _utcnow() -> datetime:
    return datetime.now(UTC)


def email_matches_domain(email: str, domain: str) -> bool:
    """Case-insensitive check of an email against a configured domain.

    The configured domain may be written with or without a leading ``@``.

    Args:
        email: Address to check.
        domain: Configured domain, e.g. ``uni.edu`` or ``@uni.edu``.

    Returns:
        True if the address belongs to the domain.
    """
    email_domain = email.rsplit("@", 1)[-1].lower()
    expected = domain.strip().lower()
    return email_domain == expected or f"@{email_domain}" == expected


@dataclass(frozen=True)
class SignUpResult:
    """Outcome of a successful signup.

    Attributes:
        user: The created account.
        needs_verification: Whether the email still has to be confirmed.
    """

    user: User
    needs_verification: bool = True


class AuthService:
    """Runs the auth flows for one request.

    Args:
        db: Async database session.
        rate_limiters: Process-wide category limiters.
        email_service: Transactional email sender.
        config_service: Platform configuration reader.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        rate_limiters: RateLimiters,
        email_service: EmailService,
        config_service: ConfigService,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._limits = rate_limiters
        self._email = email_service
        self._config = config_service
        self._clock = clock
        self._tokens = TokenService(db, clock=clock)

    # ---------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------

    def _enforce(self, category: CategoryLimit, token: str) -> None:
        if not self._limits.enabled:
            return
        result = category.check(token)
        if not result.success:
            raise RateLimitedError(result.reset)

    async def _sender(self) -> str | None:
        config = await self._config.get_config()
        return config.email_from if config else None

    @staticmethod
    def _validate_signup(
        name: str, email: str, password: str, role: UserRole | str
    ) -> tuple[str, str, UserRole]:
        errors: list[dict] = []

        clean_name = name.strip()
        if not clean_name:
            errors.append({"field": "name", "msg": "Name is required"})
        elif len(clean_name) > _MAX_NAME_LENGTH:
            errors.append(
                {
                    "field": "name",
                    "msg": f"Name must be at most {_MAX_NAME_LENGTH} characters",
                }
            )

        clean_email = normalize_email(email)
        try:
            validate_email(clean_email, check_deliverability=False)
        except EmailNotValidError:
            errors.append({"field": "email", "msg": "Invalid email address"})

        try:
            validate_password_strength(password)
        except ValidationError as exc:
            errors.extend(exc.details or [])

        parsed_role: UserRole | None = None
        try:
            parsed_role = UserRole(role)
        except ValueError:
            pass
        if parsed_role not in SELF_SERVICE_ROLES:
            errors.append({"field": "role", "msg": "Invalid role"})

        if errors:
            raise ValidationError("Invalid signup data", details=errors)

        return clean_name, clean_email, parsed_role  # type: ignore[return-value]

    @staticmethod
    def _check_domain_policy(
        config: PlatformSettings, email: str, role: UserRole
    ) -> None:
        if config.allow_public_registration:
            return

        if (
            role == UserRole.STUDENT
            and config.student_email_domain
            and not email_matches_domain(email, config.student_email_domain)
        ):
            raise PolicyError(
                "INVALID_STUDENT_DOMAIN",
                "Students must register with their institutional email address.",
            )

        if (
            role == UserRole.COORDINATOR
            and config.staff_email_domain
            and not email_matches_domain(email, config.staff_email_domain)
        ):
            raise PolicyError(
                "INVALID_STAFF_DOMAIN",
                "Coordinators must register with their staff email address.",
            )

    # ---------------------------------------------------------------
    # Signup / signin / signout
    # ---------------------------------------------------------------

    async def sign_up(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: UserRole | str,
        client_ip: str,
    ) -> SignUpResult:
        """Register a new account and send the verification email.

        The account is committed before the email is sent. If sending
        fails the account is hard-deleted again (its token cascades) and
        EmailDeliveryError is raised.

        Args:
            name: Display name.
            email: Email address (stored lower-cased).
            password: Plain-text password.
            role: STUDENT, COORDINATOR or ORGANIZATION.
            client_ip: Client IP for the signup rate limit.

        Returns:
            SignUpResult with the created user.

        Raises:
            RateLimitedError: Signup limit reached for this IP.
            ValidationError: Malformed name, email, password or role.
            PlatformNotConfiguredError: Setup has not been completed.
            PolicyError: Email domain not allowed for the role.
            ConflictError: Email already registered.
            EmailDeliveryError: Verification email could not be sent.
        """
        self._enforce(self._limits.signup, client_ip)

        clean_name, clean_email, parsed_role = self._validate_signup(
            name, email, password, role
        )

        config = await self._config.get_config()
        if config is None:
            raise PlatformNotConfiguredError()
        self._check_domain_policy(config, clean_email, parsed_role)

        if await UserRepository.get_by_email(self._db, clean_email) is not None:
            raise ConflictError(
                code="EMAIL_ALREADY_EXISTS",
                message="An account with this email already exists.",
            )

        hashed = await hash_password(password)
        try:
            user = await UserRepository.create_with_profile(
                self._db,
                email=clean_email,
                role=parsed_role,
                name=clean_name,
                hashed_password=hashed,
            )
        except IntegrityError as exc:
            # Concurrent signup with the same email won the race
            raise ConflictError(
                code="EMAIL_ALREADY_EXISTS",
                message="An account with this email already exists.",
            ) from exc
        await self._db.commit()

        token = await self._tokens.issue(user.id, TokenPurpose.VERIFICATION)
        await self._db.commit()

        try:
            await self._email.send_verification_email(
                user.email, token.token, name=user.name, sender=config.email_from
            )
        except EmailDeliveryError:
            await UserRepository.delete(self._db, user.id)
            await self._db.commit()
            logger.warning(
                "Signup rolled back: verification email failed",
                user_id=str(user.id),
            )
            raise

        logger.info("User signed up", user_id=str(user.id), role=parsed_role.value)
        return SignUpResult(user=user)

    async def sign_in(
        self,
        *,
        email: str,
        password: str,
        client_ip: str,
        session: SessionStore,
    ) -> User:
        """Check credentials and start a session.

        Args:
            email: Email address.
            password: Plain-text password.
            client_ip: Client IP for the login rate limit.
            session: Request session store to write the session into.

        Returns:
            The signed-in user.

        Raises:
            RateLimitedError: Login limit reached for this IP.
            InvalidCredentialsError: Unknown email or wrong password.
            AccountSuspendedError: Account suspended by an administrator.
        """
        self._enforce(self._limits.login, client_ip)

        user = await UserRepository.get_by_email(self._db, email)
        if user is None or not user.hashed_password:
            # Security: same bcrypt cost as a real comparison
            await verify_password(password, None)
            logger.info("Sign-in failed", reason="unknown_account")
            raise InvalidCredentialsError()

        if not await verify_password(password, user.hashed_password):
            logger.info("Sign-in failed", reason="bad_password", user_id=str(user.id))
            raise InvalidCredentialsError()

        if user.is_suspended:
            logger.info("Sign-in refused for suspended account", user_id=str(user.id))
            raise AccountSuspendedError()

        session.create(user)
        logger.info("User signed in", user_id=str(user.id))
        return user

    async def sign_out(self, session: SessionStore) -> None:
        """End the current session. Safe to call without a session."""
        data = session.peek()
        if data is not None and data.user is not None:
            logger.info("User signed out", user_id=str(data.user.id))
        session.destroy()

    # ---------------------------------------------------------------
    # Password reset
    # ---------------------------------------------------------------

    async def request_password_reset(self, *, email: str, client_ip: str) -> None:
        """Email a password reset link if the account exists.

        Unknown emails return silently so the response does not reveal
        whether an account exists.

        Raises:
            RateLimitedError: Reset request limit reached for this IP.
            EmailDeliveryError: Reset email could not be sent (token deleted).
        """
        self._enforce(self._limits.password_reset, client_ip)

        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token = await self._tokens.issue(user.id, TokenPurpose.PASSWORD_RESET)
        await self._db.commit()

        try:
            await self._email.send_password_reset_email(
                user.email, token.token, name=user.name, sender=await self._sender()
            )
        except EmailDeliveryError:
            await self._tokens.delete(token.token, TokenPurpose.PASSWORD_RESET)
            await self._db.commit()
            logger.warning("Password reset email failed", user_id=str(user.id))
            raise

        logger.info("Password reset requested", user_id=str(user.id))

    async def validate_reset_token(self, token: str) -> TokenVerification:
        """Check a reset token without consuming it.

        Used by the reset page before it shows the form.
        """
        result = await self._tokens.verify(token, TokenPurpose.PASSWORD_RESET)
        await self._db.commit()
        return result

    async def reset_password(self, *, token: str, new_password: str) -> None:
        """Set a new password using a reset token, then consume the token.

        Raises:
            ValidationError: New password too weak.
            TokenError: Token unknown or expired.
        """
        validate_password_strength(new_password)

        result = await self._tokens.verify(token, TokenPurpose.PASSWORD_RESET)
        if not result.valid or result.user_id is None:
            # Persist the lazy deletion of an expired token
            await self._db.commit()
            raise TokenError(result.error or "invalid")

        hashed = await hash_password(new_password)
        user = await UserRepository.update(
            self._db, result.user_id, hashed_password=hashed
        )
        if user is None:
            raise TokenError("invalid")

        await self._tokens.delete(token, TokenPurpose.PASSWORD_RESET)
        await self._db.commit()
        logger.info("Password reset completed", user_id=str(user.id))

    # ---------------------------------------------------------------
    # Email verification
    # ---------------------------------------------------------------

    async def verify_email(self, token: str) -> User:
        """Mark the token owner's email as verified and consume the token.

        The welcome email is best effort: a delivery failure is logged and
        does not undo the verification.

        Returns:
            The verified user.

        Raises:
            TokenError: Token unknown or expired.
        """
        result = await self._tokens.verify(token, TokenPurpose.VERIFICATION)
        if not result.valid or result.user_id is None:
            await self._db.commit()
            raise TokenError(result.error or "invalid")

        user = await UserRepository.update(
            self._db, result.user_id, email_verified=self._clock()
        )
        if user is None:
            raise TokenError("invalid")

        await self._tokens.delete(token, TokenPurpose.VERIFICATION)
        await self._db.commit()
        logger.info("Email verified", user_id=str(user.id))

        try:
            await self._email.send_welcome_email(
                user.email, name=user.name, sender=await self._sender()
            )
        except EmailDeliveryError:
            logger.warning("Welcome email failed", user_id=str(user.id))

        return user

    async def resend_verification_email(self, email: str) -> None:
        """Send a fresh verification link to an unverified account.

        Unknown and already verified addresses return silently.

        Raises:
            RateLimitedError: Resend limit reached for this email.
            EmailDeliveryError: Email could not be sent (no rollback).
        """
        self._enforce(self._limits.email_resend, normalize_email(email))

        user = await UserRepository.get_by_email(self._db, email)
        if user is None or user.is_verified:
            return

        await self._send_fresh_verification(user)

    async def resend_verification_email_for_user(self, user_id: uuid.UUID) -> None:
        """Send a fresh verification link to the signed-in user.

        Raises:
            RateLimitedError: Resend limit reached for this user.
            NotFoundError: The account no longer exists.
            InvalidStateError: The email is already verified.
            EmailDeliveryError: Email could not be sent (no rollback).
        """
        self._enforce(self._limits.email_resend, f"user:{user_id}")

        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        if user.is_verified:
            raise InvalidStateError(
                "Email is already verified", code="EMAIL_ALREADY_VERIFIED"
            )

        await self._send_fresh_verification(user)

    async def _send_fresh_verification(self, user: User) -> None:
        token = await self._tokens.issue(user.id, TokenPurpose.VERIFICATION)
        await self._db.commit()
        await self._email.send_verification_email(
            user.email, token.token, name=user.name, sender=await self._sender()
        )
        logger.info("Verification email resent", user_id=str(user.id))

    # ---------------------------------------------------------------
    # Current user
    # ---------------------------------------------------------------

    async def get_current_user(
        self, session: SessionStore, *, fresh: bool = False
    ) -> SessionUser | None:
        """Resolve the signed-in user.

        Args:
            session: Request session store.
            fresh: Re-read the account from the database instead of
                trusting the session snapshot.

        Returns:
            The user, or None when there is no live session. With
            ``fresh``, a deleted or suspended account also ends the
            session and returns None.
        """
        snapshot = session.get_current_user()
        if snapshot is None or not fresh:
            return snapshot

        user = await UserRepository.get_by_id(self._db, snapshot.id)
        if user is None or user.is_suspended:
            session.destroy()
            return None
        return SessionUser.model_validate(user)
