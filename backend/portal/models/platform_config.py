"""Platform configuration model - single global row.

Created once by the setup flow. Its absence means the platform is not
configured yet, which the request gate uses to force the setup page.
"""

from sqlalchemy import Boolean, String, text
from sqlalchemy.orm import Mapped, mapped_column

from portal.models.base import Base, TimestampMixin

GLOBAL_CONFIG_ID = "global_config"


class PlatformConfig(Base, TimestampMixin):
    """Global platform settings managed by administrators.

    Attributes:
        id: Always ``"global_config"``.
        name: Institution name shown in emails and pages.
        allow_public_registration: When true, email domain checks are skipped.
        student_email_domain: Required email domain for STUDENT signups.
        staff_email_domain: Required email domain for COORDINATOR signups.
        email_from: Sender address for outgoing mail.
    """

    __tablename__ = "platform_config"

    id: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
        default=GLOBAL_CONFIG_ID,
        server_default=GLOBAL_CONFIG_ID,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        server_default="Example University",
    )
    allow_public_registration: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    student_email_domain: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    staff_email_domain: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email_from: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
