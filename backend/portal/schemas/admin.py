"""Setup and administrator API request/response schemas.

All request schemas use ConfigDict(extra="forbid") to reject unexpected
fields.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from portal.services.config_service import PlatformSettings

_MAX_DOMAIN_LENGTH = 255


def _clean_domain(value: str | None) -> str | None:
    """Lower-case a configured email domain; blank means unrestricted."""
    if value is None:
        return None
    value = value.strip().lower()
    if not value:
        return None
    if " " in value or "." not in value:
        msg = "must be a domain such as example.edu or @example.edu"
        raise ValueError(msg)
    return value


class PlatformConfigResponse(BaseModel):
    """Platform configuration as exposed to administrators."""

    name: str
    allow_public_registration: bool
    student_email_domain: str | None
    staff_email_domain: str | None
    email_from: str | None

    @classmethod
    def from_settings(cls, config: PlatformSettings) -> "PlatformConfigResponse":
        return cls(
            name=config.name,
            allow_public_registration=config.allow_public_registration,
            student_email_domain=config.student_email_domain,
            staff_email_domain=config.staff_email_domain,
            email_from=config.email_from,
        )


class SetupStatusResponse(BaseModel):
    """Result of GET /setup/status."""

    configured: bool


class SetupRequest(BaseModel):
    """Request body for POST /setup."""

    model_config = ConfigDict(extra="forbid")

    platform_name: str = Field(min_length=1, max_length=255)
    admin_name: str = Field(min_length=1, max_length=255)
    admin_email: EmailStr
    admin_password: str = Field(min_length=1, max_length=128)
    allow_public_registration: bool = False
    student_email_domain: str | None = Field(None, max_length=_MAX_DOMAIN_LENGTH)
    staff_email_domain: str | None = Field(None, max_length=_MAX_DOMAIN_LENGTH)
    email_from: EmailStr | None = None

    @field_validator("student_email_domain", "staff_email_domain")
    @classmethod
    def check_domain(cls, value: str | None) -> str | None:
        return _clean_domain(value)


class PlatformConfigUpdate(BaseModel):
    """Request body for PATCH /admin/config. Omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1, max_length=255)
    allow_public_registration: bool | None = None
    student_email_domain: str | None = Field(None, max_length=_MAX_DOMAIN_LENGTH)
    staff_email_domain: str | None = Field(None, max_length=_MAX_DOMAIN_LENGTH)
    email_from: EmailStr | None = None

    @field_validator("student_email_domain", "staff_email_domain")
    @classmethod
    def check_domain(cls, value: str | None) -> str | None:
        return _clean_domain(value)


class RejectOrganizationRequest(BaseModel):
    """Request body for POST /admin/organizations/{id}/reject."""

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(None, max_length=2000)


class OrganizationResponse(BaseModel):
    """Organization approval state."""

    id: str
    user_id: str
    is_verified: bool
    verified_at: datetime | None
    rejection_reason: str | None
