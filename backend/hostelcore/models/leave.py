"""
Leave request model.

WHAT: A student's request to be away from the hostel for a date range.

WHY: A leave is reviewed on two independent tracks (parent and staff), each
with its own status, remarks, reviewer and timestamp. The aggregate status is
derived from the tracks required by the leave's approval flow.

HOW: organization_id and hostel_id are copied from the student's hostel
membership when the leave is created, never from request input.
"""

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from hostelcore.models.base import Base, TimestampMixin, enum_type


class LeaveStatus(str, enum.Enum):
    """Aggregate status of a leave request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ReviewStatus(str, enum.Enum):
    """Status of a single review track."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NOT_REQUIRED = "not_required"


class ApprovalFlow(str, enum.Enum):
    """
    Which review tracks a leave needs.

    - PARENT_THEN_STAFF: both the parent and staff tracks must approve
    - STAFF_ONLY: only the staff track is consulted
    """

    PARENT_THEN_STAFF = "parent_then_staff"
    STAFF_ONLY = "staff_only"


class Leave(Base, TimestampMixin):
    """Leave request with parent and staff review tracks."""

    __tablename__ = "leaves"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    hostel_id: Mapped[int] = mapped_column(Integer, ForeignKey("hostels.id"), nullable=False)
    student_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    approval_flow: Mapped[ApprovalFlow] = mapped_column(
        enum_type(ApprovalFlow, "approvalflow"), nullable=False
    )
    status: Mapped[LeaveStatus] = mapped_column(
        enum_type(LeaveStatus, "leavestatus"), nullable=False, default=LeaveStatus.PENDING
    )

    # Parent review track
    parent_status: Mapped[ReviewStatus] = mapped_column(
        enum_type(ReviewStatus, "parent_reviewstatus"), nullable=False, default=ReviewStatus.PENDING
    )
    parent_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_reviewer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    parent_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Staff review track
    staff_status: Mapped[ReviewStatus] = mapped_column(
        enum_type(ReviewStatus, "staff_reviewstatus"), nullable=False, default=ReviewStatus.PENDING
    )
    staff_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    staff_reviewer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    staff_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_leaves_org_hostel", "organization_id", "hostel_id"),
        Index("ix_leaves_student_id", "student_id"),
        CheckConstraint("from_date <= to_date", name="ck_leaves_date_range"),
    )

    @property
    def subject_student_id(self) -> int:
        return self.student_id

    def __repr__(self) -> str:
        return f"<Leave(id={self.id}, student={self.student_id}, status={self.status})>"
