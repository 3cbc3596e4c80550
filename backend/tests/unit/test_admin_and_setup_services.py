"""Tests for administrator moderation and first-time setup."""

import uuid

import pytest

from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.core.passwords import verify_password
from portal.models.user import UserRole
from portal.services.admin_service import AdminService
from portal.services.setup_service import SetupService
from tests.conftest import TEST_PASSWORD


@pytest.fixture
def admin_service(db, configured_store, email_service, config_service, clock):
    return AdminService(
        db, email_service=email_service, config_service=config_service, clock=clock
    )


@pytest.fixture
def setup_service(db, store, config_service, clock):
    return SetupService(db, config_service, clock=clock)


class TestSuspension:
    async def test_suspend_notifies_user(
        self, admin_service, configured_store, transport
    ):
        admin = configured_store.add_user(
            email="root@example.edu", role=UserRole.ADMINISTRATOR
        )
        target = configured_store.add_user(email="ada@student.example.edu")

        user = await admin_service.suspend_user(
            admin_user_id=admin.id, target_user_id=target.id
        )

        assert user.is_suspended is True
        [sent] = transport.sent
        assert sent.to == "ada@student.example.edu"
        assert sent.subject == "Your account has been suspended"
        assert sent.sender == "placements@example.edu"

    async def test_suspension_committed_before_email(
        self, admin_service, configured_store, transport, db
    ):
        target = configured_store.add_user(email="ada@student.example.edu")
        sent_at_commit = []

        async def commit():
            sent_at_commit.append(len(transport.sent))

        db.commit.side_effect = commit

        await admin_service.suspend_user(
            admin_user_id=uuid.uuid4(), target_user_id=target.id
        )

        assert sent_at_commit == [0]
        assert len(transport.sent) == 1

    async def test_failed_commit_sends_no_email(
        self, admin_service, configured_store, transport, db
    ):
        target = configured_store.add_user(email="ada@student.example.edu")
        db.commit.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            await admin_service.suspend_user(
                admin_user_id=uuid.uuid4(), target_user_id=target.id
            )

        assert transport.sent == []

    async def test_cannot_suspend_self(self, admin_service, configured_store):
        admin = configured_store.add_user(
            email="root@example.edu", role=UserRole.ADMINISTRATOR
        )

        with pytest.raises(ConflictError) as exc_info:
            await admin_service.suspend_user(
                admin_user_id=admin.id, target_user_id=admin.id
            )

        assert exc_info.value.code == "CANNOT_SUSPEND_SELF"
        assert admin.is_suspended is False

    async def test_suspend_missing_user(self, admin_service):
        with pytest.raises(NotFoundError):
            await admin_service.suspend_user(
                admin_user_id=uuid.uuid4(), target_user_id=uuid.uuid4()
            )

    async def test_email_failure_does_not_block_suspension(
        self, admin_service, configured_store, transport
    ):
        target = configured_store.add_user(email="ada@student.example.edu")
        transport.fail = True

        user = await admin_service.suspend_user(
            admin_user_id=uuid.uuid4(), target_user_id=target.id
        )

        assert user.is_suspended is True

    async def test_unsuspend(self, admin_service, configured_store, transport):
        target = configured_store.add_user(
            email="ada@student.example.edu", is_suspended=True
        )

        user = await admin_service.unsuspend_user(target_user_id=target.id)

        assert user.is_suspended is False
        assert transport.sent == []

    async def test_unsuspend_missing_user(self, admin_service):
        with pytest.raises(NotFoundError):
            await admin_service.unsuspend_user(target_user_id=uuid.uuid4())


class TestOrganizationApproval:
    @pytest.fixture
    def organization(self, configured_store):
        configured_store.add_user(
            email="hr@acme-corp.com", role=UserRole.ORGANIZATION, name="Acme HR"
        )
        return next(iter(configured_store.organizations.values()))

    async def test_approve(self, admin_service, organization, transport, clock, db):
        organization.rejection_reason = "Earlier rejection"

        approved = await admin_service.approve_organization(organization.id)

        assert approved.is_verified is True
        assert approved.verified_at == clock.now
        assert approved.rejection_reason is None
        assert transport.sent[0].to == "hr@acme-corp.com"
        assert "approved" in transport.sent[0].subject
        db.commit.assert_awaited()

    async def test_approval_committed_before_email(
        self, admin_service, organization, transport, db
    ):
        sent_at_commit = []

        async def commit():
            sent_at_commit.append(len(transport.sent))

        db.commit.side_effect = commit

        await admin_service.approve_organization(organization.id)

        assert sent_at_commit == [0]
        assert len(transport.sent) == 1

    async def test_reject_with_reason(self, admin_service, organization, transport):
        rejected = await admin_service.reject_organization(
            organization.id, reason="Incomplete registration"
        )

        assert rejected.is_verified is False
        assert rejected.verified_at is None
        assert rejected.rejection_reason == "Incomplete registration"
        assert "Incomplete registration" in transport.sent[0].html

    async def test_email_failure_does_not_block_approval(
        self, admin_service, organization, transport
    ):
        transport.fail = True

        approved = await admin_service.approve_organization(organization.id)

        assert approved.is_verified is True

    async def test_missing_organization(self, admin_service):
        with pytest.raises(NotFoundError):
            await admin_service.approve_organization(uuid.uuid4())


class TestSetup:
    async def test_complete_setup(self, setup_service, store, config_service, clock):
        admin = await setup_service.complete_setup(
            platform_name=" Example University ",
            admin_name="Root Admin",
            admin_email="Root@Example.edu",
            admin_password=TEST_PASSWORD,
            student_email_domain="student.example.edu",
            staff_email_domain="",
        )

        assert admin.role == UserRole.ADMINISTRATOR
        assert admin.email == "root@example.edu"
        assert admin.email_verified == clock.now
        assert await verify_password(TEST_PASSWORD, admin.hashed_password)
        assert store.profiles[admin.id] == UserRole.ADMINISTRATOR

        config = await config_service.get_config()
        assert config.name == "Example University"
        assert config.student_email_domain == "student.example.edu"
        assert config.staff_email_domain is None

    async def test_setup_only_once(self, setup_service):
        await setup_service.complete_setup(
            platform_name="Uni",
            admin_name="Root",
            admin_email="root@example.edu",
            admin_password=TEST_PASSWORD,
        )

        with pytest.raises(ConflictError) as exc_info:
            await setup_service.complete_setup(
                platform_name="Other",
                admin_name="Intruder",
                admin_email="intruder@example.edu",
                admin_password=TEST_PASSWORD,
            )

        assert exc_info.value.code == "ALREADY_CONFIGURED"

    async def test_weak_admin_password(self, setup_service, store):
        with pytest.raises(ValidationError) as exc_info:
            await setup_service.complete_setup(
                platform_name="Uni",
                admin_name="Root",
                admin_email="root@example.edu",
                admin_password="weak",
            )

        assert exc_info.value.details[0]["field"] == "admin_password"
        assert store.config is None
        assert store.users == {}

    async def test_invalid_admin_email(self, setup_service, store):
        with pytest.raises(ValidationError) as exc_info:
            await setup_service.complete_setup(
                platform_name="Uni",
                admin_name="Root",
                admin_email="not-an-email",
                admin_password=TEST_PASSWORD,
            )

        assert exc_info.value.details[0]["field"] == "admin_email"

    async def test_concurrent_setup_maps_to_conflict(
        self, setup_service, store, config_cache, db
    ):
        """A row created between the check and the insert is a conflict."""
        store.add_user(email="root@example.edu", role=UserRole.ADMINISTRATOR)

        with pytest.raises(ConflictError) as exc_info:
            await setup_service.complete_setup(
                platform_name="Uni",
                admin_name="Root",
                admin_email="root@example.edu",
                admin_password=TEST_PASSWORD,
            )

        assert exc_info.value.code == "ALREADY_CONFIGURED"
        db.rollback.assert_awaited_once()
        assert config_cache.value is None
