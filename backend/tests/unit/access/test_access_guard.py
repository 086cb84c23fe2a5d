"""
Tests for the access guard.

WHY: authorize() is the single decision point for every domain record and
scope_filter() is its SQL mirror. These tests pin the rule order (the
organization check can never be overridden), each typed deny reason, and
that list queries return exactly what authorize() would allow.
"""

import logging

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import (
    ANNOUNCEMENT,
    LEAVE,
    MESS_PHOTO,
    AccessGuard,
    DenyReason,
    authorize,
    require_admin,
    scope_filter,
)
from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.exceptions import Unauthorized
from hostelcore.dao.audit_log import AuditLogDAO
from hostelcore.dao.leave import LeaveDAO
from hostelcore.dao.membership import HostelMembershipDAO
from hostelcore.models.announcement import Announcement
from hostelcore.models.audit_log import AuditAction
from hostelcore.models.leave import Leave
from hostelcore.models.mess_photo import MessPhoto

from tests.factories import LeaveFactory, scope_for


def _leave(hostel, student) -> Leave:
    return Leave(
        organization_id=hostel.organization_id,
        hostel_id=hostel.id,
        student_id=student.id,
    )


class TestAuthorize:
    """Rule-by-rule checks of the pure decision function."""

    @pytest.mark.asyncio
    async def test_cross_organization_is_denied_first(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.outsider)

        decision = authorize(scope, LEAVE, Operation.READ, _leave(campus.h1, campus.s1))

        assert not decision.allowed
        assert decision.reason == DenyReason.CROSS_ORGANIZATION

    @pytest.mark.asyncio
    async def test_cross_organization_beats_matching_hostel_id(self, db_session: AsyncSession, campus):
        """A forged record with an in-scope hostel but foreign org is still denied."""
        scope = await scope_for(db_session, campus.warden)
        forged = Leave(organization_id=campus.org_b.id, hostel_id=campus.h1.id, student_id=campus.s1.id)

        assert authorize(scope, LEAVE, Operation.READ, forged).reason == DenyReason.CROSS_ORGANIZATION

    @pytest.mark.asyncio
    async def test_org_admin_allowed_everywhere_in_org(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.owner, Operation.WRITE)

        decision = authorize(scope, LEAVE, Operation.WRITE, _leave(campus.h2, campus.s2))

        assert decision.allowed
        assert decision.role == "org_admin"

    @pytest.mark.asyncio
    async def test_staff_limited_to_their_hostel(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.warden)

        own = authorize(scope, LEAVE, Operation.READ, _leave(campus.h1, campus.s1))
        other = authorize(scope, LEAVE, Operation.READ, _leave(campus.h2, campus.s2))

        assert own.allowed and own.role == "staff"
        assert other.reason == DenyReason.HOSTEL_OUT_OF_SCOPE

    @pytest.mark.asyncio
    async def test_student_only_own_records(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1)

        own = authorize(scope, LEAVE, Operation.READ, _leave(campus.h1, campus.s1))
        neighbour = authorize(scope, LEAVE, Operation.READ, _leave(campus.h1, campus.warden))

        assert own.allowed and own.role == "student"
        assert neighbour.reason == DenyReason.NOT_SUBJECT

    @pytest.mark.asyncio
    async def test_parent_only_linked_students(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.parent)

        linked = authorize(scope, LEAVE, Operation.READ, _leave(campus.h2, campus.s2))
        unlinked = authorize(scope, LEAVE, Operation.READ, _leave(campus.h1, campus.warden))

        assert linked.allowed and linked.role == "parent"
        assert unlinked.reason == DenyReason.NOT_LINKED_STUDENT

    @pytest.mark.asyncio
    async def test_hostel_records_readable_by_members_writable_by_staff(
        self, db_session: AsyncSession, campus
    ):
        student = await scope_for(db_session, campus.s1)
        warden = await scope_for(db_session, campus.warden)
        photo = MessPhoto(organization_id=campus.org_a.id, hostel_id=campus.h1.id)

        assert authorize(student, MESS_PHOTO, Operation.READ, photo).allowed
        assert authorize(student, MESS_PHOTO, Operation.WRITE, photo).reason == DenyReason.STAFF_ONLY
        assert authorize(warden, MESS_PHOTO, Operation.WRITE, photo).allowed

    @pytest.mark.asyncio
    async def test_organization_wide_announcement(self, db_session: AsyncSession, campus):
        org_wide = Announcement(organization_id=campus.org_a.id, hostel_id=None)
        student = await scope_for(db_session, campus.s2)
        warden = await scope_for(db_session, campus.warden)
        owner = await scope_for(db_session, campus.owner)
        outsider = await scope_for(db_session, campus.outsider)

        assert authorize(student, ANNOUNCEMENT, Operation.READ, org_wide).allowed
        assert (
            authorize(warden, ANNOUNCEMENT, Operation.WRITE, org_wide).reason
            == DenyReason.ORG_ADMIN_ONLY
        )
        assert authorize(owner, ANNOUNCEMENT, Operation.WRITE, org_wide).allowed
        assert (
            authorize(outsider, ANNOUNCEMENT, Operation.READ, org_wide).reason
            == DenyReason.CROSS_ORGANIZATION
        )

    def test_hostel_scoped_record_without_hostel(self):
        scope = AccessScope(principal_id=1, organization_ids=frozenset({1}))
        record = Leave(organization_id=1, hostel_id=None, student_id=1)

        assert authorize(scope, LEAVE, Operation.READ, record).reason == DenyReason.HOSTEL_OUT_OF_SCOPE

    def test_hostel_without_role(self):
        scope = AccessScope(
            principal_id=1,
            organization_ids=frozenset({1}),
            hostel_ids=frozenset({10}),
            hostel_organizations={10: 1},
        )
        record = Leave(organization_id=1, hostel_id=10, student_id=2)

        assert authorize(scope, LEAVE, Operation.READ, record).reason == DenyReason.NO_ROLE

    def test_empty_scope_denies(self):
        scope = AccessScope.empty(principal_id=1)

        decision = authorize(scope, LEAVE, Operation.READ, Leave(organization_id=1, hostel_id=1, student_id=1))

        assert decision.reason == DenyReason.CROSS_ORGANIZATION


class TestScopeFilter:
    """List queries return exactly the rows authorize() allows."""

    @pytest.fixture
    async def leaves(self, db_session: AsyncSession, campus):
        s3_membership = await HostelMembershipDAO(db_session).get_for_hostel_user(
            campus.h3.id, campus.s3.id
        )
        return {
            "s1": await LeaveFactory.create(db_session, campus.s1_membership),
            "s2": await LeaveFactory.create(db_session, campus.s2_membership),
            "s3": await LeaveFactory.create(db_session, s3_membership),
        }

    async def _visible(self, db_session, user):
        scope = await scope_for(db_session, user)
        rows = await LeaveDAO(db_session).list_filtered(scope_filter(LEAVE, scope))
        return scope, {leave.student_id for leave in rows}

    @pytest.mark.asyncio
    async def test_visibility_per_role(self, db_session: AsyncSession, campus, leaves):
        expected = {
            "owner": {campus.s1.id, campus.s2.id},
            "warden": {campus.s1.id},
            "hostel_admin": {campus.s2.id},
            "s1": {campus.s1.id},
            "parent": {campus.s1.id, campus.s2.id},
            "outsider": {campus.s3.id},
        }
        for name, students in expected.items():
            _, visible = await self._visible(db_session, getattr(campus, name))
            assert visible == students, name

    @pytest.mark.asyncio
    async def test_filter_agrees_with_authorize(self, db_session: AsyncSession, campus, leaves):
        for user in (campus.owner, campus.warden, campus.s1, campus.s2, campus.parent, campus.outsider):
            scope, visible = await self._visible(db_session, user)
            allowed = {
                leave.student_id
                for leave in leaves.values()
                if authorize(scope, LEAVE, Operation.READ, leave).allowed
            }
            assert visible == allowed

    @pytest.mark.asyncio
    async def test_empty_scope_matches_nothing(self, db_session: AsyncSession, campus, leaves):
        rows = await LeaveDAO(db_session).list_filtered(
            scope_filter(LEAVE, AccessScope.empty(principal_id=campus.s1.id))
        )

        assert rows == []


class TestEnforce:
    """AccessGuard.enforce raises and audits."""

    @pytest.mark.asyncio
    async def test_cross_org_denial_is_audited(
        self, db_session: AsyncSession, audit_sink, campus, caplog
    ):
        leave = await LeaveFactory.create(db_session, campus.s1_membership)
        scope = await scope_for(db_session, campus.outsider)

        with caplog.at_level(logging.WARNING, logger="hostelcore.access.guard"):
            with pytest.raises(Unauthorized) as exc_info:
                await AccessGuard(db_session).enforce(scope, LEAVE, Operation.READ, leave)

        assert exc_info.value.reason == DenyReason.CROSS_ORGANIZATION
        assert "Cross-organization access denied" in caplog.text

        async with audit_sink() as audit_session:
            logs = await AuditLogDAO(audit_session).get_by_action(AuditAction.CROSS_ORG_ACCESS_DENIED)
        assert len(logs) == 1
        assert logs[0].actor_user_id == campus.outsider.id
        assert logs[0].organization_id == campus.org_a.id
        assert logs[0].resource_id == leave.id
        assert logs[0].extra_data["reason"] == "cross_organization"

    @pytest.mark.asyncio
    async def test_cross_org_audit_survives_request_rollback(
        self, db_session: AsyncSession, audit_sink, campus
    ):
        leave = await LeaveFactory.create(db_session, campus.s1_membership)
        scope = await scope_for(db_session, campus.outsider)

        leave_id = leave.id

        with pytest.raises(Unauthorized):
            await AccessGuard(db_session).enforce(scope, LEAVE, Operation.READ, leave)
        # What get_db does when the handler raises
        await db_session.rollback()

        async with audit_sink() as audit_session:
            logs = await AuditLogDAO(audit_session).get_by_action(AuditAction.CROSS_ORG_ACCESS_DENIED)
        assert [log.resource_id for log in logs] == [leave_id]
        assert await AuditLogDAO(db_session).get_by_action(AuditAction.CROSS_ORG_ACCESS_DENIED) == []

    @pytest.mark.asyncio
    async def test_in_org_denial_raises_without_security_event(
        self, db_session: AsyncSession, audit_sink, campus
    ):
        leave = await LeaveFactory.create(db_session, campus.s2_membership)
        scope = await scope_for(db_session, campus.warden)

        with pytest.raises(Unauthorized) as exc_info:
            await AccessGuard(db_session).enforce(scope, LEAVE, Operation.READ, leave)

        assert exc_info.value.reason == DenyReason.HOSTEL_OUT_OF_SCOPE
        async with audit_sink() as audit_session:
            assert await AuditLogDAO(audit_session).count() == 0

    @pytest.mark.asyncio
    async def test_allowed_returns_decision(self, db_session: AsyncSession, campus):
        leave = await LeaveFactory.create(db_session, campus.s1_membership)
        scope = await scope_for(db_session, campus.s1)

        decision = await AccessGuard(db_session).enforce(scope, LEAVE, Operation.READ, leave)

        assert decision.allowed


class TestRequireAdmin:
    """Membership-management gate."""

    @pytest.mark.asyncio
    async def test_require_admin(self, db_session: AsyncSession, campus):
        owner = await scope_for(db_session, campus.owner)
        hostel_admin = await scope_for(db_session, campus.hostel_admin)
        warden = await scope_for(db_session, campus.warden)
        outsider = await scope_for(db_session, campus.outsider)

        require_admin(owner, campus.org_a.id)
        require_admin(hostel_admin, campus.org_a.id, campus.h2.id)

        with pytest.raises(Unauthorized) as org_level:
            require_admin(hostel_admin, campus.org_a.id)
        with pytest.raises(Unauthorized) as staff:
            require_admin(warden, campus.org_a.id, campus.h1.id)
        with pytest.raises(Unauthorized) as foreign:
            require_admin(outsider, campus.org_a.id)

        assert org_level.value.reason == DenyReason.ORG_ADMIN_ONLY
        assert staff.value.reason == DenyReason.ORG_ADMIN_ONLY
        assert foreign.value.reason == DenyReason.CROSS_ORGANIZATION
