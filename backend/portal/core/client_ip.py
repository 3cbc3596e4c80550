"""Client IP resolution for rate limiting.

The socket peer (slowapi's ``get_remote_address``) is the client unless
it is one of the configured trusted proxies. Only then are forwarding
headers read, and X-Forwarded-For is walked from the right so entries
a client prepends itself are never reached.
"""

from collections.abc import Collection

from fastapi import Request
from slowapi.util import get_remote_address


def get_client_ip(request: Request, trusted_proxies: Collection[str] = ()) -> str:
    """Resolve the originating client IP of a request.

    Args:
        request: The incoming request.
        trusted_proxies: Peer addresses allowed to set forwarding headers.

    Returns:
        IP address string.
    """
    peer = get_remote_address(request)
    if peer not in trusted_proxies:
        return peer

    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted_proxies:
            return hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    return peer


def request_client_ip(request: Request) -> str:
    """get_client_ip() with the application's trusted proxy list."""
    return get_client_ip(request, request.app.state.settings.trusted_proxies)
