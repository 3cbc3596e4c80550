"""SQLAlchemy ORM models for the placement portal.

All models are exported from this module for convenient imports:
    from portal.models import User, VerificationToken, ...

Models are organized by domain:
- user.py: User, UserRole
- profile.py: Student, Coordinator, Organization, Administrator
- token.py: VerificationToken, PasswordResetToken
- platform_config.py: PlatformConfig
"""

from portal.models.base import Base, TimestampMixin
from portal.models.platform_config import GLOBAL_CONFIG_ID, PlatformConfig
from portal.models.profile import Administrator, Coordinator, Organization, Student
from portal.models.token import PasswordResetToken, VerificationToken
from portal.models.user import User, UserRole

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Identity
    "User",
    "UserRole",
    # Profiles
    "Administrator",
    "Coordinator",
    "Organization",
    "Student",
    # Tokens
    "PasswordResetToken",
    "VerificationToken",
    # Configuration
    "GLOBAL_CONFIG_ID",
    "PlatformConfig",
]
