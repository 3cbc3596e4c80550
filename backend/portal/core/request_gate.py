"""Request gate: setup, authentication and role checks for page routes.

decide() is a pure function over (path, configured flag, session user).
RequestGateMiddleware evaluates it for every HTTP request and answers
with a 307 redirect or passes the request through.

Evaluation order:
1. Asset bypass (static files, API, docs, paths with a file extension)
2. Setup gate (unconfigured platform: only /setup; configured: no /setup)
3. Locale prefix stripped for the checks below, re-applied to redirects
4. Protected paths need a session
5. Admin paths need the ADMINISTRATOR role
6. Email verification: unverified users go to /verify-email-pending,
   verified users are sent away from it
7. Guest-only pages send signed-in users to their landing page
8. Allow
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from starlette.requests import HTTPConnection
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from portal.core.config import Settings
from portal.core.session import SessionCodec, SessionStore, SessionUser
from portal.models.user import UserRole

logger = structlog.get_logger()

BYPASS_PREFIXES: tuple[str, ...] = (
    "/_next",
    "/static",
    "/images",
    "/favicon.ico",
    "/api",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)

SETUP_PATH = "/setup"
LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"
VERIFY_PENDING_PATH = "/verify-email-pending"
VERIFY_EMAIL_PATH = "/verify-email"
ACCESS_DENIED_PATH = "/access-denied"

PROTECTED_PREFIXES: tuple[str, ...] = ("/dashboard", "/admin", VERIFY_PENDING_PATH)
ADMIN_PREFIXES: tuple[str, ...] = (
    "/admin",
    "/dashboard/admin",
    "/dashboard/administrator",
)
GUEST_ONLY_PREFIXES: tuple[str, ...] = (
    "/login",
    "/register",
    "/forgot-password",
    "/reset-password",
)


@dataclass(frozen=True)
class GateDecision:
    """Outcome of the gate for one request.

    Attributes:
        allow: True to pass the request through.
        redirect_to: Target path (with query) when not allowed.
    """

    allow: bool
    redirect_to: str | None = None


ALLOW = GateDecision(allow=True)


def _under(path: str, prefix: str) -> bool:
    """Whether path is prefix itself or below it (segment-aware)."""
    return path == prefix or path.startswith(prefix + "/")


def _under_any(path: str, prefixes: Sequence[str]) -> bool:
    return any(_under(path, prefix) for prefix in prefixes)


def is_bypassed(pathname: str) -> bool:
    """Static assets, API and docs routes skip the gate entirely."""
    if _under_any(pathname, BYPASS_PREFIXES):
        return True
    last_segment = pathname.rstrip("/").rsplit("/", 1)[-1]
    return "." in last_segment


def split_locale(pathname: str, locales: Sequence[str]) -> tuple[str | None, str]:
    """Separate a leading locale segment from the path.

    Args:
        pathname: Request path, e.g. ``/en/dashboard``.
        locales: Supported locale codes.

    Returns:
        (locale or None, path without the locale), e.g. ``("en", "/dashboard")``.
    """
    segments = pathname.split("/")
    if len(segments) > 1 and segments[1] in locales:
        rest = "/" + "/".join(segments[2:])
        return segments[1], (rest if rest != "//" else "/")
    return None, pathname


def _redirect(target: str, locale: str | None) -> GateDecision:
    if locale:
        target = f"/{locale}{target}"
    return GateDecision(allow=False, redirect_to=target)


def decide(
    pathname: str,
    *,
    is_configured: bool,
    user: SessionUser | None,
    locales: Sequence[str] = (),
) -> GateDecision:
    """Decide whether a request may proceed or where to redirect it.

    Args:
        pathname: Request path.
        is_configured: Whether platform setup has been completed.
        user: Live session user, or None for anonymous requests.
        locales: Supported locale codes for prefix handling.

    Returns:
        GateDecision.
    """
    if is_bypassed(pathname):
        return ALLOW

    locale, path = split_locale(pathname, locales)
    is_setup_page = _under(path, SETUP_PATH)

    if not is_configured:
        return ALLOW if is_setup_page else _redirect(SETUP_PATH, locale)
    if is_setup_page:
        return _redirect(LOGIN_PATH, locale)

    if _under_any(path, PROTECTED_PREFIXES):
        if user is None:
            return _redirect(LOGIN_PATH, locale)

        if _under_any(path, ADMIN_PREFIXES) and user.role != UserRole.ADMINISTRATOR:
            return _redirect(
                f"{ACCESS_DENIED_PATH}?required={UserRole.ADMINISTRATOR.value}",
                locale,
            )

        on_pending_page = _under(path, VERIFY_PENDING_PATH)
        if not user.is_verified:
            if not on_pending_page and not _under(path, VERIFY_EMAIL_PATH):
                return _redirect(VERIFY_PENDING_PATH, locale)
        elif on_pending_page:
            return _redirect(DASHBOARD_PATH, locale)

    if user is not None and _under_any(path, GUEST_ONLY_PREFIXES):
        landing = DASHBOARD_PATH if user.is_verified else VERIFY_PENDING_PATH
        return _redirect(landing, locale)

    return ALLOW


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RequestGateMiddleware:
    """Pure ASGI middleware applying decide() to every HTTP request.

    An expired or tampered session cookie is cleared on the outgoing
    response (redirect or pass-through) unless the application itself
    sets a new session cookie.

    Args:
        app: Next ASGI application.
        settings: Application settings (cookie name, locales).
        codec: Session cookie codec.
        is_configured: Async callable reporting whether setup is done.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        codec: SessionCodec,
        is_configured: Callable[[], Awaitable[bool]],
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.app = app
        self.settings = settings
        self.codec = codec
        self.is_configured = is_configured
        self.clock = clock

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or is_bypassed(scope["path"]):
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        session = SessionStore.from_cookies(
            connection.cookies,
            self.codec,
            settings=self.settings,
            clock=self.clock,
        )
        user = session.get_current_user()

        decision = decide(
            scope["path"],
            is_configured=await self.is_configured(),
            user=user,
            locales=self.settings.locales,
        )

        if not decision.allow and decision.redirect_to is not None:
            logger.debug(
                "Request gate redirect",
                path=scope["path"],
                redirect_to=decision.redirect_to,
            )
            response = RedirectResponse(decision.redirect_to, status_code=307)
            session.apply(response)
            await response(scope, receive, send)
            return

        if not session.modified:
            await self.app(scope, receive, send)
            return

        clear_headers = self._cookie_headers(session)
        cookie_prefix = f"{self.settings.session_cookie_name}=".encode()

        async def send_with_cleared_cookie(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                sets_session = any(
                    name.lower() == b"set-cookie" and value.startswith(cookie_prefix)
                    for name, value in headers
                )
                if not sets_session:
                    headers.extend(clear_headers)
                    message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_with_cleared_cookie)

    @staticmethod
    def _cookie_headers(session: SessionStore) -> list[tuple[bytes, bytes]]:
        carrier = Response()
        session.apply(carrier)
        return [
            (name, value) for name, value in carrier.raw_headers if name == b"set-cookie"
        ]
