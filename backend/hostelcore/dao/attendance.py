"""
Attendance Log Data Access Object.

WHY: Check-in uniqueness is ultimately enforced by the
(student_id, hostel_id, attendance_date) unique constraint; the lookup here
only lets the service fail fast with a clear error in the common case.
"""

from datetime import date
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.attendance import AttendanceLog


class AttendanceLogDAO(BaseDAO[AttendanceLog]):
    """Data Access Object for AttendanceLog model."""

    def __init__(self, session: AsyncSession):
        super().__init__(AttendanceLog, session)

    async def get_for_day(
        self, student_id: int, hostel_id: int, attendance_date: date
    ) -> Optional[AttendanceLog]:
        result = await self.session.execute(
            select(AttendanceLog).where(
                AttendanceLog.student_id == student_id,
                AttendanceLog.hostel_id == hostel_id,
                AttendanceLog.attendance_date == attendance_date,
            )
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        predicate: Any,
        hostel_id: Optional[int] = None,
        student_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AttendanceLog]:
        query = select(AttendanceLog).where(predicate)
        if hostel_id is not None:
            query = query.where(AttendanceLog.hostel_id == hostel_id)
        if student_id is not None:
            query = query.where(AttendanceLog.student_id == student_id)
        if from_date is not None:
            query = query.where(AttendanceLog.attendance_date >= from_date)
        if to_date is not None:
            query = query.where(AttendanceLog.attendance_date <= to_date)
        result = await self.session.execute(
            query.order_by(AttendanceLog.attendance_date.desc(), AttendanceLog.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
