"""
Attendance service.

WHAT: Daily check-in, administrative override and scoped listing of
attendance logs.

WHY: One log per (student, hostel, date). A second check-in is rejected
with DuplicateCheckIn instead of overwriting the first; the unique
constraint backs this up when two check-ins race. Corrections are only
possible through override(), which records who changed what and why.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import ATTENDANCE, AccessGuard, DenyReason, scope_filter
from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.exceptions import (
    AttendanceNotFoundError,
    ConstraintViolation,
    DuplicateCheckIn,
    Unauthorized,
    ValidationError,
)
from hostelcore.dao.attendance import AttendanceLogDAO
from hostelcore.db.store import Store
from hostelcore.models.attendance import AttendanceLog, AttendanceStatus
from hostelcore.services.audit import AuditService
from hostelcore.services.membership_graph import MembershipGraph

logger = logging.getLogger(__name__)


class AttendanceService:
    """
    Service for attendance logs.

    Example:
        service = AttendanceService(db)
        await service.check_in(student_scope, student_id)
        await service.override(admin_scope, log.id, AttendanceStatus.ON_LEAVE, "Approved leave")
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = Store(session)
        self.attendance_dao = AttendanceLogDAO(session)
        self.graph = MembershipGraph(session)
        self.guard = AccessGuard(session)
        self.audit = AuditService(session)

    async def check_in(
        self,
        scope: AccessScope,
        student_id: int,
        status: AttendanceStatus = AttendanceStatus.PRESENT,
        attendance_date: Optional[date] = None,
        hostel_id: Optional[int] = None,
    ) -> AttendanceLog:
        """
        Record attendance for a student on a day (today by default).

        Students may only mark themselves present. Staff record any status.
        Parents cannot record attendance.

        Raises:
            Unauthorized: Caller may not record this entry
            DuplicateCheckIn: The day is already recorded
        """
        attendance_date = attendance_date or date.today()
        membership = await self.graph.student_tenancy(student_id, hostel_id)
        fields = dict(
            organization_id=membership.organization_id,
            hostel_id=membership.hostel_id,
            student_id=student_id,
            attendance_date=attendance_date,
            status=status,
            recorded_by=scope.principal_id,
            check_in_at=datetime.utcnow(),
        )
        await self.guard.enforce(scope, ATTENDANCE, Operation.WRITE, AttendanceLog(**fields))

        if not scope.is_staff_in(membership.hostel_id):
            if student_id != scope.principal_id:
                raise Unauthorized(
                    message="Only the student or hostel staff may record attendance",
                    reason=DenyReason.STAFF_ONLY,
                )
            if status != AttendanceStatus.PRESENT:
                raise Unauthorized(
                    message="Students can only mark themselves present",
                    reason=DenyReason.STAFF_ONLY,
                )

        if await self.attendance_dao.get_for_day(student_id, membership.hostel_id, attendance_date):
            raise DuplicateCheckIn(student_id=student_id, attendance_date=str(attendance_date))

        try:
            async with self.store.transaction():
                log = await self.attendance_dao.create(**fields)
        except ConstraintViolation as e:
            # A racing check-in for the same day is the only duplicate; other
            # violations (a vanished student or hostel) propagate as they are
            if await self.attendance_dao.get_for_day(
                student_id, membership.hostel_id, attendance_date
            ):
                raise DuplicateCheckIn(
                    student_id=student_id, attendance_date=str(attendance_date)
                ) from e
            raise

        logger.info(
            "Attendance recorded: student=%s hostel=%s date=%s status=%s",
            student_id,
            membership.hostel_id,
            attendance_date,
            status.value,
        )
        return log

    async def override(
        self,
        scope: AccessScope,
        log_id: int,
        new_status: AttendanceStatus,
        reason: str,
    ) -> AttendanceLog:
        """
        Correct a recorded attendance entry.

        Raises:
            Unauthorized: Caller is not an administrator of the hostel
            ValidationError: Missing reason
        """
        log = await self._get(log_id)
        await self.guard.enforce(scope, ATTENDANCE, Operation.WRITE, log)
        if not scope.can_administer(log.organization_id, log.hostel_id):
            raise Unauthorized(
                message="Only administrators may override attendance",
                reason=DenyReason.ORG_ADMIN_ONLY,
            )
        if not reason or not reason.strip():
            raise ValidationError(message="Override reason is required", field="reason")

        old_status = log.status
        async with self.store.transaction():
            log = await self.attendance_dao.update(
                log_id,
                status=new_status,
                override_reason=reason.strip(),
                overridden_by=scope.principal_id,
                overridden_at=datetime.utcnow(),
            )

        logger.warning(
            "Attendance %s overridden by %s: %s -> %s",
            log_id,
            scope.principal_id,
            old_status.value,
            new_status.value,
        )
        await self.audit.log_admin_override(
            actor_user_id=scope.principal_id,
            resource_type="attendance",
            resource_id=log_id,
            organization_id=log.organization_id,
            changes={"status": {"before": old_status.value, "after": new_status.value}},
            reason=reason.strip(),
        )
        return log

    async def list_attendance(
        self,
        scope: AccessScope,
        hostel_id: Optional[int] = None,
        student_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AttendanceLog]:
        return await self.attendance_dao.list_filtered(
            scope_filter(ATTENDANCE, scope),
            hostel_id=hostel_id,
            student_id=student_id,
            from_date=from_date,
            to_date=to_date,
            skip=skip,
            limit=limit,
        )

    async def _get(self, log_id: int) -> AttendanceLog:
        log = await self.attendance_dao.get_by_id(log_id)
        if log is None:
            raise AttendanceNotFoundError(attendance_id=log_id)
        return log
