"""Shared dependencies for API endpoints.

Process-wide collaborators (session codec, rate limiters, email service,
config cache) are built once in create_app() and stored on app.state.
These dependencies wire them into request-scoped services.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.database import get_db
from portal.core.errors import ForbiddenError, UnauthorizedError
from portal.core.session import SessionStore, SessionUser
from portal.models.user import UserRole
from portal.services.admin_service import AdminService
from portal.services.auth_service import AuthService
from portal.services.config_service import ConfigService
from portal.services.email_service import EmailService
from portal.services.setup_service import SetupService

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_session_store(request: Request) -> SessionStore:
    """Request-scoped session store built from the session cookie.

    Endpoints that change the session must call ``session.apply(response)``.
    """
    state = request.app.state
    return SessionStore.from_cookies(
        request.cookies,
        state.session_codec,
        settings=state.settings,
    )


Session = Annotated[SessionStore, Depends(get_session_store)]


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


def get_config_service(request: Request, db: DbSession) -> ConfigService:
    return ConfigService(db, request.app.state.config_cache)


ConfigServiceDep = Annotated[ConfigService, Depends(get_config_service)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]


def get_auth_service(
    request: Request,
    db: DbSession,
    config_service: ConfigServiceDep,
    email_service: EmailServiceDep,
) -> AuthService:
    return AuthService(
        db,
        rate_limiters=request.app.state.rate_limiters,
        email_service=email_service,
        config_service=config_service,
    )


def get_admin_service(
    db: DbSession,
    config_service: ConfigServiceDep,
    email_service: EmailServiceDep,
) -> AdminService:
    return AdminService(
        db, email_service=email_service, config_service=config_service
    )


def get_setup_service(db: DbSession, config_service: ConfigServiceDep) -> SetupService:
    return SetupService(db, config_service)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
AdminServiceDep = Annotated[AdminService, Depends(get_admin_service)]
SetupServiceDep = Annotated[SetupService, Depends(get_setup_service)]


def get_current_user(session: Session) -> SessionUser:
    """Get the signed-in user from the session cookie.

    Validation: cookie decrypts, signature verifies, session is
    authenticated and not expired.

    Raises:
        UnauthorizedError: 401 for any session failure. The response never
            says why (missing, expired, tampered).
    """
    user = session.get_current_user()
    if user is None:
        raise UnauthorizedError()
    return user


CurrentUser = Annotated[SessionUser, Depends(get_current_user)]


async def get_admin_user(session: Session, auth: AuthServiceDep) -> SessionUser:
    """Require a live ADMINISTRATOR account.

    The account is re-read from the database rather than trusted from the
    cookie snapshot, so a suspended or deleted administrator loses access
    on the next request.

    Raises:
        UnauthorizedError: 401 without a live session, or when the account
            is suspended or gone.
        ForbiddenError: 403 for any other role.
    """
    user = await auth.get_current_user(session, fresh=True)
    if user is None:
        raise UnauthorizedError()
    if user.role != UserRole.ADMINISTRATOR:
        raise ForbiddenError("Administrator access required")
    return user


AdminUser = Annotated[SessionUser, Depends(get_admin_user)]
