"""
Attendance log model.

WHAT: One row per (student, hostel, date) recording presence at roll call.

WHY: Attendance is immutable once written. A second check-in for the same
day is rejected rather than overwriting the first; corrections go through an
administrative override that records who changed it and why.
"""

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hostelcore.models.base import Base, TimestampMixin, enum_type


class AttendanceStatus(str, enum.Enum):
    """Roll-call outcome."""

    PRESENT = "present"
    ABSENT = "absent"
    ON_LEAVE = "on_leave"


class AttendanceLog(Base, TimestampMixin):
    """Daily attendance entry for a student in a hostel."""

    __tablename__ = "attendance_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    hostel_id: Mapped[int] = mapped_column(Integer, ForeignKey("hostels.id"), nullable=False)
    student_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(
        enum_type(AttendanceStatus, "attendancestatus"),
        nullable=False,
        default=AttendanceStatus.PRESENT,
    )
    recorded_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    check_in_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    # Administrative override
    override_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    overridden_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    overridden_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "student_id", "hostel_id", "attendance_date", name="uq_attendance_student_hostel_date"
        ),
        Index("ix_attendance_logs_org_hostel", "organization_id", "hostel_id"),
    )

    @property
    def subject_student_id(self) -> int:
        return self.student_id

    def __repr__(self) -> str:
        return (
            f"<AttendanceLog(student={self.student_id}, hostel={self.hostel_id}, "
            f"date={self.attendance_date}, status={self.status})>"
        )
