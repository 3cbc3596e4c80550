"""Administrator API router.

Platform configuration changes, account suspension and organization
approval. All endpoints require the AdminUser dependency.
"""

import uuid

from fastapi import APIRouter, Body

from portal.api.deps import AdminServiceDep, AdminUser, ConfigServiceDep
from portal.core.errors import PlatformNotConfiguredError, ValidationError
from portal.core.responses import DataResponse
from portal.models.profile import Organization
from portal.schemas.admin import (
    OrganizationResponse,
    PlatformConfigResponse,
    PlatformConfigUpdate,
    RejectOrganizationRequest,
)
from portal.schemas.auth import UserResponse

router = APIRouter()


def _organization_response(row: Organization) -> OrganizationResponse:
    """Build OrganizationResponse from ORM row."""
    return OrganizationResponse(
        id=str(row.id),
        user_id=str(row.user_id),
        is_verified=row.is_verified,
        verified_at=row.verified_at,
        rejection_reason=row.rejection_reason,
    )


# =============================================================================
# Platform configuration
# =============================================================================


@router.get("/config")
async def get_config(
    _admin: AdminUser,
    config: ConfigServiceDep,
) -> DataResponse[PlatformConfigResponse]:
    """Current platform configuration."""
    current = await config.get_config()
    if current is None:
        raise PlatformNotConfiguredError()
    return DataResponse(data=PlatformConfigResponse.from_settings(current))


@router.patch("/config")
async def update_config(
    _admin: AdminUser,
    body: PlatformConfigUpdate,
    config: ConfigServiceDep,
) -> DataResponse[PlatformConfigResponse]:
    """Change platform configuration. Omitted fields keep their value."""
    values = body.model_dump(exclude_unset=True)
    if not values:
        raise ValidationError("No fields to update")
    if "email_from" in values and values["email_from"] is not None:
        values["email_from"] = str(values["email_from"])

    updated = await config.update_config(**values)
    if updated is None:
        raise PlatformNotConfiguredError()
    return DataResponse(data=PlatformConfigResponse.from_settings(updated))


# =============================================================================
# Users
# =============================================================================


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: uuid.UUID,
    admin: AdminUser,
    service: AdminServiceDep,
) -> DataResponse[UserResponse]:
    """Suspend an account. The owner is notified by email (best effort)."""
    user = await service.suspend_user(admin_user_id=admin.id, target_user_id=user_id)
    return DataResponse(data=UserResponse.from_user(user))


@router.post("/users/{user_id}/unsuspend")
async def unsuspend_user(
    user_id: uuid.UUID,
    _admin: AdminUser,
    service: AdminServiceDep,
) -> DataResponse[UserResponse]:
    """Lift a suspension."""
    user = await service.unsuspend_user(target_user_id=user_id)
    return DataResponse(data=UserResponse.from_user(user))


# =============================================================================
# Organizations
# =============================================================================


@router.post("/organizations/{organization_id}/approve")
async def approve_organization(
    organization_id: uuid.UUID,
    _admin: AdminUser,
    service: AdminServiceDep,
) -> DataResponse[OrganizationResponse]:
    """Approve an organization registration."""
    organization = await service.approve_organization(organization_id)
    return DataResponse(data=_organization_response(organization))


@router.post("/organizations/{organization_id}/reject")
async def reject_organization(
    organization_id: uuid.UUID,
    _admin: AdminUser,
    service: AdminServiceDep,
    body: RejectOrganizationRequest = Body(default_factory=RejectOrganizationRequest),
) -> DataResponse[OrganizationResponse]:
    """Reject an organization registration with an optional reason."""
    organization = await service.reject_organization(
        organization_id, reason=body.reason
    )
    return DataResponse(data=_organization_response(organization))
