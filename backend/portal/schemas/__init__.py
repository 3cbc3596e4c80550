"""Pydantic request/response schemas for API endpoints."""

from portal.schemas.admin import (
    OrganizationResponse,
    PlatformConfigResponse,
    PlatformConfigUpdate,
    RejectOrganizationRequest,
    SetupRequest,
    SetupStatusResponse,
)
from portal.schemas.auth import (
    SessionResponse,
    SignUpResponse,
    TokenStatusResponse,
    UserResponse,
)

__all__ = [
    "OrganizationResponse",
    "PlatformConfigResponse",
    "PlatformConfigUpdate",
    "RejectOrganizationRequest",
    "SessionResponse",
    "SetupRequest",
    "SetupStatusResponse",
    "SignUpResponse",
    "TokenStatusResponse",
    "UserResponse",
]
