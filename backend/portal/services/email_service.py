"""Named transactional emails sent by the auth and admin flows.

Each method builds the link (from APP_URL) and a minimal HTML body, then
hands the message to EmailTransport. Delivery failures surface as
EmailDeliveryError; whether a failure is fatal is the caller's decision.
"""

from html import escape
from urllib.parse import urlencode

from portal.core.email import EmailTransport


class EmailService:
    """Builds and sends the platform's transactional emails.

    Args:
        transport: Email transport shared by the process.
        app_url: Externally reachable base URL for links.
        platform_name: Name shown in subjects and greetings.
    """

    def __init__(
        self,
        transport: EmailTransport,
        app_url: str,
        platform_name: str = "Placement Portal",
    ) -> None:
        self._transport = transport
        self._app_url = app_url.rstrip("/")
        self._platform_name = platform_name

    def link(self, path: str, **params: str) -> str:
        """Absolute URL for a frontend path, with optional query parameters."""
        url = f"{self._app_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    @staticmethod
    def _greeting(name: str | None) -> str:
        return f"<p>Hello {escape(name)},</p>" if name else "<p>Hello,</p>"

    async def send_verification_email(
        self,
        to: str,
        token: str,
        *,
        name: str | None = None,
        sender: str | None = None,
    ) -> None:
        """Email the address confirmation link (valid 24 hours)."""
        url = self.link("/verify-email", token=token)
        html = (
            f"{self._greeting(name)}"
            f"<p>Confirm your email address to activate your "
            f"{escape(self._platform_name)} account:</p>"
            f'<p><a href="{escape(url)}">Verify email</a></p>'
            "<p>This link expires in 24 hours.</p>"
        )
        await self._transport.send(
            to, f"Verify your email for {self._platform_name}", html, sender=sender
        )

    async def send_password_reset_email(
        self,
        to: str,
        token: str,
        *,
        name: str | None = None,
        sender: str | None = None,
    ) -> None:
        """Email the password reset link (valid 1 hour)."""
        url = self.link("/reset-password", token=token)
        html = (
            f"{self._greeting(name)}"
            "<p>Someone asked to reset the password for this account.</p>"
            f'<p><a href="{escape(url)}">Choose a new password</a></p>'
            "<p>This link expires in 1 hour. If you didn't request this, "
            "you can safely ignore this email.</p>"
        )
        await self._transport.send(
            to, f"Reset your {self._platform_name} password", html, sender=sender
        )

    async def send_welcome_email(
        self,
        to: str,
        *,
        name: str | None = None,
        sender: str | None = None,
    ) -> None:
        """Welcome message sent once the email address is verified."""
        html = (
            f"{self._greeting(name)}"
            f"<p>Your email is verified. Welcome to "
            f"{escape(self._platform_name)}!</p>"
            f'<p><a href="{escape(self.link("/dashboard"))}">Go to your dashboard</a></p>'
        )
        await self._transport.send(
            to, f"Welcome to {self._platform_name}", html, sender=sender
        )

    async def send_account_suspended(
        self,
        to: str,
        *,
        name: str | None = None,
        sender: str | None = None,
    ) -> None:
        """Notify a user that an administrator suspended their account."""
        html = (
            f"{self._greeting(name)}"
            f"<p>Your {escape(self._platform_name)} account has been suspended. "
            "Contact the platform administrator if you think this is a mistake.</p>"
        )
        await self._transport.send(
            to, "Your account has been suspended", html, sender=sender
        )

    async def send_organization_approved(
        self,
        to: str,
        *,
        name: str | None = None,
        sender: str | None = None,
    ) -> None:
        """Notify an organization that its registration was approved."""
        html = (
            f"{self._greeting(name)}"
            "<p>Your organization has been approved. You can now publish "
            "placement opportunities.</p>"
            f'<p><a href="{escape(self.link("/dashboard"))}">Go to your dashboard</a></p>'
        )
        await self._transport.send(
            to, "Your organization has been approved", html, sender=sender
        )

    async def send_organization_rejected(
        self,
        to: str,
        *,
        reason: str | None = None,
        name: str | None = None,
        sender: str | None = None,
    ) -> None:
        """Notify an organization that its registration was rejected."""
        reason_html = f"<p>Reason: {escape(reason)}</p>" if reason else ""
        html = (
            f"{self._greeting(name)}"
            "<p>Your organization registration was not approved.</p>"
            f"{reason_html}"
        )
        await self._transport.send(
            to, "Your organization registration was not approved", html, sender=sender
        )
