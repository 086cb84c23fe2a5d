"""
Announcement model.

WHAT: A notice posted to a hostel, or to a whole organization.

WHY: hostel_id is nullable on purpose: NULL means the announcement is
visible to every member of the organization. Hostel announcements are
visible to anyone holding a role in that hostel.
"""

from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hostelcore.models.base import Base, TimestampMixin


class Announcement(Base, TimestampMixin):
    """Notice board entry."""

    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    hostel_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("hostels.id"), nullable=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        Index("ix_announcements_org_hostel", "organization_id", "hostel_id"),
    )

    @property
    def subject_student_id(self) -> Optional[int]:
        return None

    @property
    def is_organization_wide(self) -> bool:
        return self.hostel_id is None

    def __repr__(self) -> str:
        return f"<Announcement(id={self.id}, title='{self.title}', hostel={self.hostel_id})>"
