"""
Tests for the audit log DAO.

WHY: The audit trail is append-only. These tests verify rows can be written
and queried by actor, action, organization and resource, and that update
and delete are refused.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.core.exceptions import AuditLogImmutableError
from hostelcore.dao.audit_log import AuditLogDAO
from hostelcore.models.audit_log import AuditAction, AuditLog

from tests.factories import OrganizationFactory, UserFactory


class TestAuditLogModel:
    """Test AuditLog model definition."""

    def test_audit_action_enum_has_required_values(self):
        required = {
            "ACCESS_DENIED",
            "CROSS_ORG_ACCESS_DENIED",
            "MEMBERSHIP_GRANTED",
            "MEMBERSHIP_STATUS_CHANGED",
            "ROLE_CHANGE",
            "PARENT_LINKED",
            "PARENT_UNLINKED",
            "ADMIN_OVERRIDE",
        }

        assert required <= {action.value for action in AuditAction}

    def test_audit_log_model_has_required_fields(self):
        columns = set(AuditLog.__table__.columns.keys())

        assert {
            "actor_user_id",
            "action",
            "resource_type",
            "resource_id",
            "organization_id",
            "changes",
            "extra_data",
            "ip_address",
            "user_agent",
            "created_at",
        } <= columns


class TestAuditLogDAO:
    """Test AuditLogDAO operations."""

    @pytest.fixture
    async def actor(self, db_session: AsyncSession):
        return await UserFactory.create(db_session, email="actor@example.com")

    @pytest.fixture
    async def org(self, db_session: AsyncSession):
        return await OrganizationFactory.create(db_session, slug="audited")

    @pytest.mark.asyncio
    async def test_create_audit_log(self, db_session: AsyncSession, actor, org):
        dao = AuditLogDAO(db_session)

        log = await dao.create(
            action=AuditAction.ROLE_CHANGE,
            resource_type="hostel_membership",
            actor_user_id=actor.id,
            resource_id=5,
            organization_id=org.id,
            changes={"role": {"before": "student", "after": "staff"}},
            ip_address="10.0.0.1",
        )

        assert log.id is not None
        assert log.action == AuditAction.ROLE_CHANGE
        assert log.changes["role"]["after"] == "staff"
        assert log.created_at is not None

    @pytest.mark.asyncio
    async def test_queries(self, db_session: AsyncSession, actor, org):
        dao = AuditLogDAO(db_session)
        await dao.create(
            action=AuditAction.MEMBERSHIP_GRANTED,
            resource_type="hostel_membership",
            actor_user_id=actor.id,
            resource_id=1,
            organization_id=org.id,
        )
        await dao.create(
            action=AuditAction.PARENT_LINKED,
            resource_type="parent_student_link",
            actor_user_id=actor.id,
            resource_id=2,
        )

        assert len(await dao.get_by_user(actor.id)) == 2
        assert len(await dao.get_by_action(AuditAction.PARENT_LINKED)) == 1
        # Parent links are global; they carry no organization
        org_logs = await dao.get_by_org(org.id)
        assert all(log.organization_id == org.id for log in org_logs)
        assert [log.resource_id for log in await dao.get_by_resource("hostel_membership", 1)] == [1]

    @pytest.mark.asyncio
    async def test_count_denials_since(self, db_session: AsyncSession, actor, org):
        dao = AuditLogDAO(db_session)
        for action in (AuditAction.ACCESS_DENIED, AuditAction.CROSS_ORG_ACCESS_DENIED):
            await dao.create(
                action=action,
                resource_type="leave",
                actor_user_id=actor.id,
                organization_id=org.id,
            )
        await dao.create(action=AuditAction.UPDATE, resource_type="leave", actor_user_id=actor.id)

        since = datetime.utcnow() - timedelta(minutes=5)
        assert await dao.count_denials_since(actor.id, since) == 2
        assert await dao.count_denials_since(actor.id, datetime.utcnow() + timedelta(minutes=5)) == 0

    @pytest.mark.asyncio
    async def test_audit_log_immutability(self, db_session: AsyncSession, actor):
        dao = AuditLogDAO(db_session)
        log = await dao.create(action=AuditAction.UPDATE, resource_type="leave", actor_user_id=actor.id)

        with pytest.raises(AuditLogImmutableError):
            await dao.update(log.id, resource_type="complaint")
        with pytest.raises(AuditLogImmutableError):
            await dao.delete(log.id)
