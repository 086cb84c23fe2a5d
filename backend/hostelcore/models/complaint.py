"""
Complaint model.

WHAT: A maintenance or conduct complaint raised by (or for) a student.

WHY: Complaints are subject-scoped records: a parent sees their child's
complaints, a student sees their own, staff see every complaint in the hostel.
"""

import enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hostelcore.models.base import Base, TimestampMixin, enum_type


class ComplaintStatus(str, enum.Enum):
    """Complaint lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ComplaintCategory(str, enum.Enum):
    """Broad complaint categories used for routing."""

    MAINTENANCE = "maintenance"
    MESS = "mess"
    CLEANLINESS = "cleanliness"
    CONDUCT = "conduct"
    OTHER = "other"


# Valid status transitions
VALID_COMPLAINT_TRANSITIONS = {
    ComplaintStatus.OPEN: [ComplaintStatus.IN_PROGRESS, ComplaintStatus.CLOSED],
    ComplaintStatus.IN_PROGRESS: [ComplaintStatus.RESOLVED, ComplaintStatus.OPEN],
    ComplaintStatus.RESOLVED: [ComplaintStatus.CLOSED, ComplaintStatus.IN_PROGRESS],
    ComplaintStatus.CLOSED: [ComplaintStatus.OPEN],  # Reopen
}


class Complaint(Base, TimestampMixin):
    """Complaint raised about a student's stay."""

    __tablename__ = "complaints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    hostel_id: Mapped[int] = mapped_column(Integer, ForeignKey("hostels.id"), nullable=False)
    student_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[ComplaintCategory] = mapped_column(
        enum_type(ComplaintCategory, "complaintcategory"),
        nullable=False,
        default=ComplaintCategory.OTHER,
    )
    # WHY: opaque URL returned by the blob store, never interpreted here
    attachment_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    status: Mapped[ComplaintStatus] = mapped_column(
        enum_type(ComplaintStatus, "complaintstatus"),
        nullable=False,
        default=ComplaintStatus.OPEN,
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    handled_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        Index("ix_complaints_org_hostel", "organization_id", "hostel_id"),
        Index("ix_complaints_student_id", "student_id"),
    )

    @property
    def subject_student_id(self) -> int:
        return self.student_id

    def __repr__(self) -> str:
        return f"<Complaint(id={self.id}, title='{self.title}', status={self.status})>"
