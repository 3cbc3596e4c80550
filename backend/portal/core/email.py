"""Email sending via Resend API.

One httpx.AsyncClient is created lazily and reused for every message;
the app lifespan closes it on shutdown. Every request is bounded by
EMAIL_TIMEOUT_SECONDS, and any transport or HTTP error is reported as
EmailDeliveryError so callers can run their compensating action.

Without RESEND_API_KEY (local development) messages are logged instead
of sent.
"""

import logging

import httpx

from portal.core.config import Settings
from portal.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"


class EmailTransport:
    """Sends HTML emails through the Resend HTTP API.

    Args:
        settings: Application settings (API key, sender, timeout).
        client: Optional pre-built HTTP client (tests).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.resend_api_key.get_secret_value()
        self._default_sender = settings.email_from
        self._timeout = settings.email_timeout_seconds
        self._client = client

    @property
    def enabled(self) -> bool:
        """Whether messages are actually delivered."""
        return bool(self._api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        *,
        sender: str | None = None,
    ) -> None:
        """Send one email.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body.
            sender: From address; defaults to EMAIL_FROM.

        Raises:
            EmailDeliveryError: If the API call fails or times out.
        """
        if not self.enabled:
            logger.info("Email delivery disabled; would send %r to %s", subject, to)
            return

        try:
            resp = await self._get_client().post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": sender or self._default_sender,
                    "to": to,
                    "subject": subject,
                    "html": html,
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to send email %r", subject, exc_info=True)
            raise EmailDeliveryError() from exc

    async def aclose(self) -> None:
        """Close the shared HTTP client, if one was created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
