"""
Tests for AttendanceService.

WHY: Attendance is written once per student per day and only corrected
through an audited administrative override.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import DenyReason
from hostelcore.access.scope import Operation
from hostelcore.core.exceptions import (
    AttendanceNotFoundError,
    ConstraintViolation,
    DuplicateCheckIn,
    Unauthorized,
    ValidationError,
)
from hostelcore.dao.attendance import AttendanceLogDAO
from hostelcore.dao.audit_log import AuditLogDAO
from hostelcore.models.attendance import AttendanceStatus
from hostelcore.models.audit_log import AuditAction
from hostelcore.services.attendance_service import AttendanceService

from tests.factories import scope_for


class TestCheckIn:
    """Daily check-in."""

    @pytest.mark.asyncio
    async def test_student_checks_in(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        log = await AttendanceService(db_session).check_in(scope, campus.s1.id)

        assert log.status == AttendanceStatus.PRESENT
        assert log.attendance_date == date.today()
        assert log.hostel_id == campus.h1.id
        assert log.organization_id == campus.org_a.id
        assert log.recorded_by == campus.s1.id

    @pytest.mark.asyncio
    async def test_second_check_in_same_day_rejected(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        service = AttendanceService(db_session)
        first = await service.check_in(scope, campus.s1.id)

        with pytest.raises(DuplicateCheckIn):
            await service.check_in(scope, campus.s1.id)

        await db_session.refresh(first)
        assert first.status == AttendanceStatus.PRESENT

    @pytest.mark.asyncio
    async def test_racing_check_in_rejected_as_duplicate(
        self, db_session: AsyncSession, campus, monkeypatch
    ):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        service = AttendanceService(db_session)
        await service.check_in(scope, campus.s1.id)

        real_get_for_day = AttendanceLogDAO.get_for_day
        calls = []

        async def missed_first_look(self, *args):
            calls.append(args)
            if len(calls) == 1:
                return None
            return await real_get_for_day(self, *args)

        monkeypatch.setattr(AttendanceLogDAO, "get_for_day", missed_first_look)

        with pytest.raises(DuplicateCheckIn):
            await service.check_in(scope, campus.s1.id)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_constraint_failure_is_not_a_duplicate(
        self, db_session: AsyncSession, campus, monkeypatch
    ):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        async def broken_create(self, **fields):
            raise ConstraintViolation(
                message="Operation violates a data constraint",
                constraint="FOREIGN KEY constraint failed",
            )

        monkeypatch.setattr(AttendanceLogDAO, "create", broken_create)

        with pytest.raises(ConstraintViolation) as exc_info:
            await AttendanceService(db_session).check_in(scope, campus.s1.id)

        assert not isinstance(exc_info.value, DuplicateCheckIn)
        assert exc_info.value.context["constraint"] == "FOREIGN KEY constraint failed"

    @pytest.mark.asyncio
    async def test_next_day_is_a_new_entry(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        service = AttendanceService(db_session)
        await service.check_in(scope, campus.s1.id)

        tomorrow = await service.check_in(
            scope, campus.s1.id, attendance_date=date.today() + timedelta(days=1)
        )

        assert tomorrow.id is not None

    @pytest.mark.asyncio
    async def test_student_can_only_mark_present(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await AttendanceService(db_session).check_in(
                scope, campus.s1.id, status=AttendanceStatus.ON_LEAVE
            )

        assert exc_info.value.reason == DenyReason.STAFF_ONLY

    @pytest.mark.asyncio
    async def test_staff_records_any_status(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.warden, Operation.WRITE)

        log = await AttendanceService(db_session).check_in(
            scope, campus.s1.id, status=AttendanceStatus.ABSENT
        )

        assert log.status == AttendanceStatus.ABSENT
        assert log.recorded_by == campus.warden.id

    @pytest.mark.asyncio
    async def test_parent_cannot_check_in(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.parent, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await AttendanceService(db_session).check_in(scope, campus.s1.id)

        assert exc_info.value.reason == DenyReason.STAFF_ONLY

    @pytest.mark.asyncio
    async def test_other_student_cannot_check_in_for_classmate(
        self, db_session: AsyncSession, campus
    ):
        scope = await scope_for(db_session, campus.s2, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await AttendanceService(db_session).check_in(scope, campus.s1.id)

        assert exc_info.value.reason == DenyReason.HOSTEL_OUT_OF_SCOPE


class TestOverride:
    """Administrative corrections."""

    @pytest.fixture
    async def log(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        return await AttendanceService(db_session).check_in(scope, campus.s1.id)

    @pytest.mark.asyncio
    async def test_org_admin_overrides(self, db_session: AsyncSession, campus, log):
        scope = await scope_for(db_session, campus.owner, Operation.WRITE)

        updated = await AttendanceService(db_session).override(
            scope, log.id, AttendanceStatus.ON_LEAVE, "  Approved leave  "
        )

        assert updated.status == AttendanceStatus.ON_LEAVE
        assert updated.override_reason == "Approved leave"
        assert updated.overridden_by == campus.owner.id
        assert updated.overridden_at is not None

        audit = await AuditLogDAO(db_session).get_by_action(AuditAction.ADMIN_OVERRIDE)
        assert len(audit) == 1
        assert audit[0].changes == {"status": {"before": "present", "after": "on_leave"}}
        assert audit[0].extra_data == {"reason": "Approved leave"}

    @pytest.mark.asyncio
    async def test_warden_cannot_override(self, db_session: AsyncSession, campus, log):
        scope = await scope_for(db_session, campus.warden, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await AttendanceService(db_session).override(
                scope, log.id, AttendanceStatus.ABSENT, "Was not there"
            )

        assert exc_info.value.reason == DenyReason.ORG_ADMIN_ONLY

    @pytest.mark.asyncio
    async def test_reason_required(self, db_session: AsyncSession, campus, log):
        scope = await scope_for(db_session, campus.owner, Operation.WRITE)

        with pytest.raises(ValidationError):
            await AttendanceService(db_session).override(scope, log.id, AttendanceStatus.ABSENT, " ")

    @pytest.mark.asyncio
    async def test_hostel_admin_overrides_in_own_hostel_only(
        self, db_session: AsyncSession, campus, log
    ):
        service = AttendanceService(db_session)
        s2_scope = await scope_for(db_session, campus.s2, Operation.WRITE)
        s2_log = await service.check_in(s2_scope, campus.s2.id)
        admin = await scope_for(db_session, campus.hostel_admin, Operation.WRITE)

        updated = await service.override(admin, s2_log.id, AttendanceStatus.ABSENT, "Roll call")
        assert updated.status == AttendanceStatus.ABSENT

        with pytest.raises(Unauthorized):
            await service.override(admin, log.id, AttendanceStatus.ABSENT, "Roll call")

    @pytest.mark.asyncio
    async def test_missing_log(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.owner, Operation.WRITE)

        with pytest.raises(AttendanceNotFoundError):
            await AttendanceService(db_session).override(scope, 424242, AttendanceStatus.ABSENT, "x")


class TestListAttendance:
    """Scoped listing."""

    @pytest.mark.asyncio
    async def test_listing_respects_scope_and_filters(self, db_session: AsyncSession, campus):
        service = AttendanceService(db_session)
        warden = await scope_for(db_session, campus.warden, Operation.WRITE)
        admin = await scope_for(db_session, campus.hostel_admin, Operation.WRITE)
        yesterday = date.today() - timedelta(days=1)
        await service.check_in(warden, campus.s1.id, attendance_date=yesterday)
        await service.check_in(warden, campus.s1.id)
        await service.check_in(admin, campus.s2.id)

        warden_read = await scope_for(db_session, campus.warden)
        parent_read = await scope_for(db_session, campus.parent)
        s2_read = await scope_for(db_session, campus.s2)

        assert len(await service.list_attendance(warden_read)) == 2
        assert len(await service.list_attendance(warden_read, from_date=date.today())) == 1
        assert len(await service.list_attendance(parent_read)) == 3
        assert {log.student_id for log in await service.list_attendance(s2_read)} == {campus.s2.id}
        assert await service.list_attendance(warden_read, hostel_id=campus.h2.id) == []
