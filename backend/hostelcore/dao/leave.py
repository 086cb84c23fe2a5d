"""
Leave Data Access Object.

WHY: List queries take an already-built scope predicate from the access
layer, so the DAO never decides visibility on its own.
"""

from datetime import date
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.leave import Leave, LeaveStatus, ReviewStatus

REVIEW_TRACKS = ("parent", "staff")


class LeaveDAO(BaseDAO[Leave]):
    """Data Access Object for Leave model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Leave, session)

    async def list_filtered(
        self,
        predicate: Any,
        status: Optional[LeaveStatus] = None,
        student_id: Optional[int] = None,
        hostel_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Leave]:
        """
        List leaves matching a scope predicate plus optional filters.

        Args:
            predicate: SQL expression restricting rows to the caller's scope
            status: Optional aggregate status filter
            student_id: Optional subject filter
            hostel_id: Optional hostel filter
        """
        query = select(Leave).where(predicate)
        if status is not None:
            query = query.where(Leave.status == status)
        if student_id is not None:
            query = query.where(Leave.student_id == student_id)
        if hostel_id is not None:
            query = query.where(Leave.hostel_id == hostel_id)
        result = await self.session.execute(
            query.order_by(Leave.from_date.desc(), Leave.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def list_overlapping(self, student_id: int, from_date: date, to_date: date) -> List[Leave]:
        """Pending or approved leaves of a student that overlap a date range."""
        result = await self.session.execute(
            select(Leave).where(
                Leave.student_id == student_id,
                Leave.status.in_([LeaveStatus.PENDING, LeaveStatus.APPROVED]),
                Leave.from_date <= to_date,
                Leave.to_date >= from_date,
            )
        )
        return list(result.scalars().all())

    async def record_review(
        self,
        leave_id: int,
        track: str,
        other_track_status: ReviewStatus,
        **values: Any,
    ) -> Optional[Leave]:
        """
        Write one review track if the leave still looks the way the caller saw it.

        WHY: The aggregate status in values was computed from the other
        track's status as read by the caller. The UPDATE only matches while
        this track is pending and the other track is unchanged, so neither
        a second reviewer on the same track nor a concurrent review of the
        other track can leave a stale aggregate behind. A lost race matches
        zero rows and returns None; the caller re-reads and decides again.

        Args:
            leave_id: Leave to update
            track: "parent" or "staff"
            other_track_status: Status of the other track the aggregate was
                computed from
            **values: Columns to set (track columns and the aggregate status)
        """
        if track not in REVIEW_TRACKS:
            raise ValueError(f"Unknown review track: {track}")
        other_track = "staff" if track == "parent" else "parent"
        result = await self.session.execute(
            update(Leave)
            .where(
                Leave.id == leave_id,
                Leave.status == LeaveStatus.PENDING,
                getattr(Leave, f"{track}_status") == ReviewStatus.PENDING,
                getattr(Leave, f"{other_track}_status") == other_track_status,
            )
            .values(**values)
            .returning(Leave)
        )
        leave = result.scalar_one_or_none()
        if leave:
            await self.session.refresh(leave)
        return leave
