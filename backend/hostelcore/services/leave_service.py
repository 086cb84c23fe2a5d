"""
Leave request service.

WHAT: Creation, two-track review, cancellation and scoped listing of leave
requests.

WHY: A leave is reviewed independently by a parent and by hostel staff.
Each track is decided exactly once; the aggregate status is always derived
from the tracks the leave's approval flow requires, never set directly:
- any required track rejected -> rejected
- every required track approved -> approved
- otherwise -> pending

HOW: Tenancy keys come from the student's hostel membership. Every
operation passes the Access Guard first, then checks the track-specific
role (a parent can only review the parent track of a linked student; only
staff review the staff track).
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import LEAVE, AccessGuard, DenyReason, scope_filter
from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.config import settings
from hostelcore.core.exceptions import (
    ConstraintViolation,
    InvalidStateTransition,
    LeaveNotFoundError,
    Unauthorized,
    ValidationError,
)
from hostelcore.dao.leave import LeaveDAO
from hostelcore.db.store import Store
from hostelcore.models.leave import ApprovalFlow, Leave, LeaveStatus, ReviewStatus
from hostelcore.models.membership import HostelRole
from hostelcore.services.membership_graph import MembershipGraph

logger = logging.getLogger(__name__)

# Each track is decided once, so one lost race per track is the most a
# review can meet
REVIEW_ATTEMPTS = 3


def compute_leave_status(
    flow: ApprovalFlow,
    parent_status: ReviewStatus,
    staff_status: ReviewStatus,
) -> LeaveStatus:
    """
    Derive the aggregate leave status from its review tracks.

    Example:
        >>> compute_leave_status(
        ...     ApprovalFlow.PARENT_THEN_STAFF, ReviewStatus.APPROVED, ReviewStatus.PENDING
        ... )
        <LeaveStatus.PENDING: 'pending'>
    """
    if flow == ApprovalFlow.STAFF_ONLY:
        required = [staff_status]
    else:
        required = [parent_status, staff_status]

    if any(status == ReviewStatus.REJECTED for status in required):
        return LeaveStatus.REJECTED
    if all(status == ReviewStatus.APPROVED for status in required):
        return LeaveStatus.APPROVED
    return LeaveStatus.PENDING


class LeaveService:
    """
    Service for leave requests.

    Example:
        service = LeaveService(db)
        leave = await service.create_leave(scope, student_id, date(2025, 1, 10),
                                           date(2025, 1, 12), "Family function")
        await service.review_as_parent(parent_scope, leave.id, approve=True)
    """

    def __init__(self, session: AsyncSession, approval_flow: Optional[ApprovalFlow] = None):
        self.session = session
        self.store = Store(session)
        self.leave_dao = LeaveDAO(session)
        self.graph = MembershipGraph(session)
        self.guard = AccessGuard(session)
        self.approval_flow = approval_flow or ApprovalFlow(settings.LEAVE_APPROVAL_FLOW)

    async def create_leave(
        self,
        scope: AccessScope,
        student_id: int,
        from_date: date,
        to_date: date,
        reason: str,
        hostel_id: Optional[int] = None,
    ) -> Leave:
        """
        Request leave for a student.

        Allowed for the student themself and for staff/admins of the
        student's hostel.

        Raises:
            ValidationError: Bad dates, empty reason, or ambiguous hostel
            Unauthorized: Caller may not file for this student
            ConstraintViolation: Overlaps a pending or approved leave
        """
        if from_date > to_date:
            raise ValidationError(message="Leave cannot end before it starts", field="to_date")
        if not reason or not reason.strip():
            raise ValidationError(message="Reason is required", field="reason")

        membership = await self.graph.student_tenancy(student_id, hostel_id)
        fields = dict(
            organization_id=membership.organization_id,
            hostel_id=membership.hostel_id,
            student_id=student_id,
            created_by=scope.principal_id,
            from_date=from_date,
            to_date=to_date,
            reason=reason.strip(),
            approval_flow=self.approval_flow,
            status=LeaveStatus.PENDING,
            parent_status=(
                ReviewStatus.NOT_REQUIRED
                if self.approval_flow == ApprovalFlow.STAFF_ONLY
                else ReviewStatus.PENDING
            ),
            staff_status=ReviewStatus.PENDING,
        )

        await self.guard.enforce(scope, LEAVE, Operation.WRITE, Leave(**fields))
        if student_id != scope.principal_id and not scope.is_staff_in(membership.hostel_id):
            raise Unauthorized(
                message="Only the student or hostel staff may request leave",
                reason=DenyReason.STAFF_ONLY,
            )

        async with self.store.transaction():
            if await self.leave_dao.list_overlapping(student_id, from_date, to_date):
                raise ConstraintViolation(
                    message="Leave overlaps an existing request",
                    student_id=student_id,
                )
            leave = await self.leave_dao.create(**fields)

        logger.info("Leave %s requested for student %s", leave.id, student_id)
        return leave

    async def get_leave(self, scope: AccessScope, leave_id: int) -> Leave:
        leave = await self._get(leave_id)
        await self.guard.enforce(scope, LEAVE, Operation.READ, leave)
        return leave

    async def list_leaves(
        self,
        scope: AccessScope,
        status: Optional[LeaveStatus] = None,
        student_id: Optional[int] = None,
        hostel_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Leave]:
        """List the leaves visible to the scope, newest first."""
        return await self.leave_dao.list_filtered(
            scope_filter(LEAVE, scope),
            status=status,
            student_id=student_id,
            hostel_id=hostel_id,
            skip=skip,
            limit=limit,
        )

    async def review_as_parent(
        self,
        scope: AccessScope,
        leave_id: int,
        approve: bool,
        remarks: Optional[str] = None,
    ) -> Leave:
        """
        Decide the parent track.

        Raises:
            Unauthorized: Caller is not a parent linked to the student
            InvalidStateTransition: Track not required, already decided,
                or leave no longer pending
        """
        leave = await self._get(leave_id)
        await self.guard.enforce(scope, LEAVE, Operation.WRITE, leave)
        if not (
            scope.has_role(leave.hostel_id, HostelRole.PARENT)
            and leave.student_id in scope.linked_student_ids
        ):
            raise Unauthorized(
                message="Only a linked parent may review the parent track",
                reason=DenyReason.NOT_LINKED_STUDENT,
            )
        return await self._review(leave, "parent", approve, remarks, scope.principal_id)

    async def review_as_staff(
        self,
        scope: AccessScope,
        leave_id: int,
        approve: bool,
        remarks: Optional[str] = None,
    ) -> Leave:
        """
        Decide the staff track.

        Raises:
            Unauthorized: Caller is not staff of the leave's hostel
            InvalidStateTransition: Track already decided or leave not pending
        """
        leave = await self._get(leave_id)
        await self.guard.enforce(scope, LEAVE, Operation.WRITE, leave)
        if not scope.is_staff_in(leave.hostel_id):
            raise Unauthorized(
                message="Only hostel staff may review the staff track",
                reason=DenyReason.STAFF_ONLY,
            )
        return await self._review(leave, "staff", approve, remarks, scope.principal_id)

    async def cancel_leave(self, scope: AccessScope, leave_id: int) -> Leave:
        """
        Withdraw a pending leave. Only the student may cancel.

        Raises:
            Unauthorized: Caller is not the student
            InvalidStateTransition: Leave is no longer pending
        """
        leave = await self._get(leave_id)
        await self.guard.enforce(scope, LEAVE, Operation.WRITE, leave)
        if leave.student_id != scope.principal_id:
            raise Unauthorized(
                message="Only the student may cancel their leave",
                reason=DenyReason.NOT_SUBJECT,
            )
        if leave.status != LeaveStatus.PENDING:
            raise InvalidStateTransition(
                message=f"Cannot cancel a leave that is {leave.status.value}",
                leave_id=leave_id,
            )

        async with self.store.transaction():
            leave = await self.leave_dao.update(leave_id, status=LeaveStatus.CANCELLED)
        return leave

    async def _review(
        self,
        leave: Leave,
        track: str,
        approve: bool,
        remarks: Optional[str],
        reviewer_id: int,
    ) -> Leave:
        decision = ReviewStatus.APPROVED if approve else ReviewStatus.REJECTED
        other_track = "staff" if track == "parent" else "parent"

        for attempt in range(REVIEW_ATTEMPTS):
            self._check_reviewable(leave, track)
            other_status = getattr(leave, f"{other_track}_status")
            parent_status = decision if track == "parent" else other_status
            staff_status = decision if track == "staff" else other_status
            aggregate = compute_leave_status(leave.approval_flow, parent_status, staff_status)

            async with self.store.transaction():
                updated = await self.leave_dao.record_review(
                    leave.id,
                    track,
                    other_status,
                    **{
                        f"{track}_status": decision,
                        f"{track}_remarks": remarks,
                        f"{track}_reviewer_id": reviewer_id,
                        f"{track}_reviewed_at": datetime.utcnow(),
                        "status": aggregate,
                    },
                )
            if updated is not None:
                logger.info(
                    "Leave %s %s review: %s (status %s)",
                    leave.id,
                    track,
                    decision.value,
                    aggregate.value,
                )
                return updated

            logger.info(
                "Leave %s changed during %s review (attempt %s), re-reading",
                leave.id,
                track,
                attempt + 1,
            )
            leave = await self._reload(leave.id)

        raise InvalidStateTransition(
            message=f"The {track} review could not be recorded; the leave kept changing",
            leave_id=leave.id,
        )

    @staticmethod
    def _check_reviewable(leave: Leave, track: str) -> None:
        if leave.status != LeaveStatus.PENDING:
            raise InvalidStateTransition(
                message=f"Leave is already {leave.status.value}",
                leave_id=leave.id,
            )
        current = getattr(leave, f"{track}_status")
        if current == ReviewStatus.NOT_REQUIRED:
            raise InvalidStateTransition(
                message=f"The {track} review is not required for this leave",
                leave_id=leave.id,
            )
        if current != ReviewStatus.PENDING:
            raise InvalidStateTransition(
                message=f"The {track} review has already been recorded",
                leave_id=leave.id,
            )

    async def _reload(self, leave_id: int) -> Leave:
        leave = await self._get(leave_id)
        await self.session.refresh(leave)
        return leave

    async def _get(self, leave_id: int) -> Leave:
        leave = await self.leave_dao.get_by_id(leave_id)
        if leave is None:
            raise LeaveNotFoundError(leave_id=leave_id)
        return leave
