"""Password hashing and validation helpers.

Pipeline:
- validate_password_strength: Format rules (sync, no I/O)
- hash_password / verify_password: bcrypt, run in a worker thread so the
  event loop is not blocked by the key derivation
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import asyncio
import re

import bcrypt

from portal.core.errors import ValidationError

# bcrypt cost factor for password hashing
BCRYPT_ROUNDS = 12

_MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes; 128 chars keeps requests bounded
_MAX_PASSWORD_LENGTH = 128

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def validate_password_strength(password: str, *, field: str = "password") -> None:
    """Validate password meets strength requirements.

    8-128 chars, at least one uppercase letter and one number.

    Args:
        password: Plain-text password to validate.
        field: Request field name reported in the error details.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    problem: str | None = None
    if len(password) < _MIN_PASSWORD_LENGTH:
        problem = f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
    elif len(password) > _MAX_PASSWORD_LENGTH:
        problem = f"Password must be at most {_MAX_PASSWORD_LENGTH} characters"
    elif not re.search(r"[A-Z]", password):
        problem = "Password must contain at least one uppercase letter"
    elif not re.search(r"\d", password):
        problem = "Password must contain at least one number"

    if problem is not None:
        raise ValidationError(problem, details=[{"field": field, "msg": problem}])


def _hash(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _check(password: str, hashed: bytes) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed)
    except ValueError:
        # Malformed stored hash: treat as a mismatch
        return False


async def hash_password(password: str, *, rounds: int | None = None) -> str:
    """Hash a plain-text password with bcrypt.

    Args:
        password: Plain-text password.
        rounds: bcrypt cost factor. Defaults to BCRYPT_ROUNDS.

    Returns:
        The bcrypt hash as a string.
    """
    return await asyncio.to_thread(_hash, password, rounds or BCRYPT_ROUNDS)


async def verify_password(password: str, hashed_password: str | None) -> bool:
    """Check a password against a stored bcrypt hash.

    When no hash is stored, DUMMY_HASH is checked instead so the call
    takes the same time, and False is returned.

    Args:
        password: Candidate plain-text password.
        hashed_password: Stored bcrypt hash, or None.

    Returns:
        True only if a hash is stored and the password matches it.
    """
    if not hashed_password:
        await asyncio.to_thread(_check, password, DUMMY_HASH)
        return False
    return await asyncio.to_thread(_check, password, hashed_password.encode())
