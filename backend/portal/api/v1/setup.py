"""First-time platform setup endpoints.

GET /setup/status is public so the frontend can decide whether to show
the setup wizard. POST /setup works only while the platform is
unconfigured and signs the new administrator in.
"""

from fastapi import APIRouter, Response

from portal.api.deps import ConfigServiceDep, Session, SetupServiceDep
from portal.core.responses import DataResponse
from portal.schemas.admin import SetupRequest, SetupStatusResponse
from portal.schemas.auth import UserResponse

router = APIRouter()


@router.get("/status")
async def setup_status(config: ConfigServiceDep) -> DataResponse[SetupStatusResponse]:
    """Whether the platform has been configured."""
    return DataResponse(
        data=SetupStatusResponse(configured=await config.is_configured())
    )


@router.post("", status_code=201)
async def complete_setup(
    body: SetupRequest,
    response: Response,
    setup: SetupServiceDep,
    session: Session,
) -> DataResponse[UserResponse]:
    """Store the platform configuration and create the first administrator."""
    admin = await setup.complete_setup(
        platform_name=body.platform_name,
        admin_name=body.admin_name,
        admin_email=str(body.admin_email),
        admin_password=body.admin_password,
        allow_public_registration=body.allow_public_registration,
        student_email_domain=body.student_email_domain,
        staff_email_domain=body.staff_email_domain,
        email_from=str(body.email_from) if body.email_from else None,
    )
    session.create(admin)
    session.apply(response)
    return DataResponse(data=UserResponse.from_user(admin))
