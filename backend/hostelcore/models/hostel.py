"""
Hostel and Room models.

WHY: A hostel is owned exclusively by one organization; rooms belong to one
hostel. Room occupancy is a counter that must never exceed capacity, enforced
both by a CHECK constraint and by the conditional UPDATE used to assign beds.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from hostelcore.models.base import Base, TimestampMixin, PrimaryKeyMixin


class Hostel(Base, PrimaryKeyMixin, TimestampMixin):
    """
    A hostel building operated by an organization.

    WHY: code is unique within the organization (two operators may both have
    a "BH-1"), so uniqueness is on (organization_id, code).
    """

    __tablename__ = "hostels"

    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False)

    # WHY: is_active allows soft-deactivation; memberships keep referencing it
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_hostels_org_code"),
    )

    def __repr__(self) -> str:
        return f"<Hostel(id={self.id}, org={self.organization_id}, code={self.code})>"


class Room(Base, PrimaryKeyMixin, TimestampMixin):
    """
    A room inside a hostel.

    current_occupancy equals the number of non-suspended student memberships
    referencing the room. It is only ever changed through
    RoomDAO.try_increment_occupancy / decrement_occupancy.
    """

    __tablename__ = "rooms"

    hostel_id = Column(
        Integer,
        ForeignKey("hostels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    room_number = Column(String(20), nullable=False)
    capacity = Column(Integer, nullable=False)
    current_occupancy = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("hostel_id", "room_number", name="uq_rooms_hostel_number"),
        CheckConstraint("capacity > 0", name="ck_rooms_capacity_positive"),
        CheckConstraint(
            "current_occupancy >= 0 AND current_occupancy <= capacity",
            name="ck_rooms_occupancy_within_capacity",
        ),
    )

    @property
    def is_full(self) -> bool:
        return self.current_occupancy >= self.capacity

    def __repr__(self) -> str:
        return (
            f"<Room(id={self.id}, hostel={self.hostel_id}, number={self.room_number}, "
            f"{self.current_occupancy}/{self.capacity})>"
        )
