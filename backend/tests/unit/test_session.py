"""Tests for the encrypted session cookie and the request session store.

Security: covers tampering, foreign secrets, expiry, idempotent destroy
and the cookie attributes written onto responses.
"""

import uuid
from datetime import UTC, datetime

import jwt
import pytest
from starlette.responses import Response

from portal.core.session import SessionCodec, SessionData, SessionStore, SessionUser
from portal.models.user import UserRole
from tests.conftest import TEST_SESSION_SECRET, make_settings

_USER = SessionUser(
    id=uuid.UUID("00000000-0000-0000-0000-000000000001"),
    email="student@student.example.edu",
    name="Test Student",
    role=UserRole.STUDENT,
    email_verified=datetime(2026, 2, 1, tzinfo=UTC),
    is_suspended=False,
)


def _set_cookie_headers(response: Response) -> list[str]:
    return [
        value.decode()
        for name, value in response.raw_headers
        if name == b"set-cookie"
    ]


class TestSessionCodec:
    """Cookie encoding and decoding."""

    def test_round_trip(self, codec):
        data = SessionData(user=_USER, is_auth=True, created_at=1, expires_at=2)

        decoded = codec.decode(codec.encode(data))

        assert decoded == data

    def test_cookie_is_not_readable_jwt(self, codec):
        """The signed token is encrypted, so the email is not visible."""
        value = codec.encode(SessionData(user=_USER, is_auth=True))

        assert _USER.email not in value
        with pytest.raises(jwt.DecodeError):
            jwt.decode(value, TEST_SESSION_SECRET, algorithms=["HS256"])

    def test_tampered_value_is_rejected(self, codec):
        value = codec.encode(SessionData(user=_USER, is_auth=True))
        tampered = value[:-4] + ("AAAA" if not value.endswith("AAAA") else "BBBB")

        assert codec.decode(tampered) is None

    def test_garbage_is_rejected(self, codec):
        assert codec.decode("not-a-session") is None

    def test_other_secret_is_rejected(self, codec):
        other = SessionCodec(
            "another-secret-that-is-also-32-characters!", "placement-portal"
        )
        value = other.encode(SessionData(user=_USER, is_auth=True))

        assert codec.decode(value) is None

    def test_other_issuer_is_rejected(self):
        issuer_a = SessionCodec(TEST_SESSION_SECRET, "portal-a")
        issuer_b = SessionCodec(TEST_SESSION_SECRET, "portal-b")

        value = issuer_a.encode(SessionData(user=_USER, is_auth=True))

        assert issuer_b.decode(value) is None

    def test_from_settings(self, test_settings):
        codec = SessionCodec.from_settings(test_settings)
        value = codec.encode(SessionData(is_auth=False))

        assert codec.decode(value) == SessionData(is_auth=False)


class TestSessionStore:
    """Request-scoped session lifecycle."""

    def test_no_cookie_is_expired(self, session_factory):
        session = session_factory(None)

        assert session.is_expired() is True
        assert session.get_current_user() is None
        assert session.modified is False

    def test_create_then_read(self, session_factory, clock):
        session = session_factory(None)

        data = session.create(_USER)

        assert data.is_auth is True
        assert data.created_at == int(clock.now.timestamp() * 1000)
        assert data.expires_at == data.created_at + 7 * 24 * 3600 * 1000
        assert session.get_current_user() == _USER
        assert session.modified is True

    def test_snapshot_excludes_password_hash(self, session_factory, store):
        user = store.add_user(email="a@student.example.edu", hashed_password="$2b$hash")
        session = session_factory(None)

        data = session.create(user)

        assert "hashed_password" not in data.model_dump()["user"]

    def test_cookie_survives_next_request(self, session_factory):
        first = session_factory(None)
        first.create(_USER)
        response = Response()
        first.apply(response)
        cookie = (
            response.headers["set-cookie"].split(";")[0].split("=", 1)[1].strip('"')
        )

        second = session_factory(cookie)

        assert second.get_current_user() == _USER

    def test_expired_session_is_destroyed_on_read(self, session_factory, codec, clock):
        session = session_factory(None)
        session.create(_USER)
        cookie = codec.encode(session.peek())
        clock.advance(days=7, seconds=1)

        later = session_factory(cookie)

        assert later.is_expired() is True
        assert later.get_current_user() is None
        assert later.peek() is None
        response = Response()
        later.apply(response)
        assert 'session=""' in _set_cookie_headers(response)[0]

    def test_session_valid_at_exact_expiry(self, session_factory, clock):
        session = session_factory(None)
        session.create(_USER)
        clock.advance(days=7)

        assert session.is_expired() is False

    def test_tampered_cookie_counts_as_expired(self, session_factory):
        session = session_factory("tampered-value")

        assert session.is_expired() is True
        assert session.get_current_user() is None
        assert session.modified is True

    def test_anonymous_session_is_expired(self, session_factory, codec):
        cookie = codec.encode(SessionData(is_auth=False))

        assert session_factory(cookie).is_expired() is True

    def test_destroy_is_idempotent(self, session_factory):
        session = session_factory(None)
        session.create(_USER)

        session.destroy()
        session.destroy()

        assert session.peek() is None
        assert session.is_expired() is True

    def test_destroy_without_cookie_writes_nothing(self, session_factory):
        session = session_factory(None)

        session.destroy()
        response = Response()
        session.apply(response)

        assert _set_cookie_headers(response) == []

    def test_refresh_extends_expiry(self, session_factory, clock):
        session = session_factory(None)
        session.create(_USER)
        clock.advance(days=6)

        assert session.refresh() is True
        expected = int(clock.now.timestamp() * 1000) + 7 * 24 * 3600 * 1000
        assert session.peek().expires_at == expected

    def test_refresh_without_session_fails(self, session_factory):
        session = session_factory(None)

        assert session.refresh() is False
        assert session.modified is False

    def test_refresh_of_expired_session_fails(self, session_factory, clock):
        session = session_factory(None)
        session.create(_USER)
        clock.advance(days=8)

        assert session.refresh() is False

    def test_from_cookies_reads_configured_name(self, codec, clock, test_settings):
        cookie = codec.encode(
            SessionData(
                user=_USER,
                is_auth=True,
                created_at=0,
                expires_at=int(clock.now.timestamp() * 1000) + 1000,
            )
        )

        session = SessionStore.from_cookies(
            {"session": cookie}, codec, settings=test_settings, clock=clock
        )

        assert session.get_current_user() == _USER


class TestApply:
    """Cookie attributes on the outgoing response."""

    def test_set_cookie_attributes(self, session_factory):
        session = session_factory(None)
        session.create(_USER)
        response = Response()

        session.apply(response)

        header = _set_cookie_headers(response)[0]
        assert header.startswith("session=")
        assert "HttpOnly" in header
        assert "Max-Age=604800" in header
        assert "Path=/" in header
        assert "SameSite=lax" in header
        assert "Secure" not in header

    def test_secure_and_domain_in_production(self, codec, clock):
        prod = make_settings(
            environment="production",
            database_password="a-secure-production-password",
            session_cookie_domain="portal.example.edu",
        )
        session = SessionStore(codec, None, settings=prod, clock=clock)
        session.create(_USER)
        response = Response()

        session.apply(response)

        header = _set_cookie_headers(response)[0]
        assert "Secure" in header
        assert "Domain=portal.example.edu" in header

    def test_delete_cookie_after_destroy(self, session_factory):
        session = session_factory("some-old-cookie")
        session.destroy()
        response = Response()

        session.apply(response)

        header = _set_cookie_headers(response)[0]
        assert header.startswith('session="";')
        assert "Max-Age=0" in header

    def test_no_pending_change_writes_nothing(self, session_factory, codec, clock):
        cookie = codec.encode(
            SessionData(
                user=_USER,
                is_auth=True,
                created_at=0,
                expires_at=int(clock.now.timestamp() * 1000) + 1000,
            )
        )
        session = session_factory(cookie)
        session.get_current_user()
        response = Response()

        session.apply(response)

        assert _set_cookie_headers(response) == []
