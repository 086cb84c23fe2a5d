"""
Room Data Access Object.

WHAT: Room lookups and the occupancy counter.

WHY: Occupancy must never exceed capacity, even when two assignments race
for the last bed. The counter is therefore only moved by conditional UPDATE
statements evaluated inside the database: the increment matches zero rows
when the room is already full, and the CHECK constraint on the table is the
last line of defense.
"""

from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.hostel import Room
from hostelcore.models.membership import HostelMembership, HostelRole, MembershipStatus


class RoomDAO(BaseDAO[Room]):
    """Data Access Object for Room model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Room, session)

    async def get_by_number(self, hostel_id: int, room_number: str) -> Optional[Room]:
        result = await self.session.execute(
            select(Room).where(Room.hostel_id == hostel_id, Room.room_number == room_number)
        )
        return result.scalar_one_or_none()

    async def list_by_hostel(self, hostel_id: int) -> List[Room]:
        result = await self.session.execute(
            select(Room).where(Room.hostel_id == hostel_id).order_by(Room.room_number)
        )
        return list(result.scalars().all())

    async def try_increment_occupancy(self, room_id: int) -> bool:
        """
        Take one bed in a room if one is free.

        Returns:
            True if a bed was taken, False if the room was full (or missing)
        """
        result = await self.session.execute(
            update(Room)
            .where(Room.id == room_id, Room.current_occupancy < Room.capacity)
            .values(current_occupancy=Room.current_occupancy + 1)
            .returning(Room.id)
        )
        return result.scalar_one_or_none() is not None

    async def decrement_occupancy(self, room_id: int) -> bool:
        """Release one bed. Never drops below zero."""
        result = await self.session.execute(
            update(Room)
            .where(Room.id == room_id, Room.current_occupancy > 0)
            .values(current_occupancy=Room.current_occupancy - 1)
            .returning(Room.id)
        )
        return result.scalar_one_or_none() is not None

    async def count_bed_holders(self, room_id: int) -> int:
        """
        Count memberships that occupy a bed in this room.

        A bed is held by every student membership referencing the room that
        is not suspended (invited students have a reserved bed).
        """
        result = await self.session.execute(
            select(func.count())
            .select_from(HostelMembership)
            .where(
                HostelMembership.room_id == room_id,
                HostelMembership.role == HostelRole.STUDENT,
                HostelMembership.status != MembershipStatus.SUSPENDED,
            )
        )
        return int(result.scalar_one())

    async def set_occupancy(self, room_id: int, occupancy: int) -> None:
        await self.session.execute(
            update(Room)
            .where(Room.id == room_id)
            .values(current_occupancy=occupancy)
        )
