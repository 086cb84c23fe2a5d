"""
Announcement Data Access Object (DAO).

WHAT: Database operations for announcements.

WHY: Announcements are the one record kind whose hostel_id may be NULL
(organization-wide), so list queries are always driven by a scope predicate
that understands that case.
"""

from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.announcement import Announcement


class AnnouncementDAO(BaseDAO[Announcement]):
    """Data Access Object for Announcement model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Announcement, session)

    async def list_filtered(
        self,
        predicate: Any,
        hostel_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Announcement]:
        """
        List announcements visible under a scope predicate.

        Args:
            predicate: SQL expression restricting rows to the caller's scope
            hostel_id: If given, only that hostel's announcements plus the
                organization-wide ones the predicate lets through
        """
        query = select(Announcement).where(predicate)
        if hostel_id is not None:
            query = query.where(
                (Announcement.hostel_id == hostel_id) | Announcement.hostel_id.is_(None)
            )
        result = await self.session.execute(
            query.order_by(Announcement.created_at.desc(), Announcement.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
