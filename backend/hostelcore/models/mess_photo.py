"""
Mess photo model.

WHAT: A photo of a served meal, uploaded by hostel staff.

WHY: Parents and students use these to check food quality. The image bytes
live in the blob store; only the opaque URL is persisted here.
"""

import enum
from datetime import date

from sqlalchemy import Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hostelcore.models.base import Base, TimestampMixin, enum_type


class Meal(str, enum.Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    SNACKS = "snacks"
    DINNER = "dinner"


class MessPhoto(Base, TimestampMixin):
    """Uploaded mess photo metadata."""

    __tablename__ = "mess_photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False
    )
    hostel_id: Mapped[int] = mapped_column(Integer, ForeignKey("hostels.id"), nullable=False)
    meal: Mapped[Meal] = mapped_column(enum_type(Meal, "meal"), nullable=False)
    photo_date: Mapped[date] = mapped_column(Date, nullable=False)
    image_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    uploaded_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        Index("ix_mess_photos_org_hostel", "organization_id", "hostel_id"),
        Index("ix_mess_photos_photo_date", "photo_date"),
    )

    @property
    def subject_student_id(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"<MessPhoto(id={self.id}, hostel={self.hostel_id}, meal={self.meal})>"
