"""
Complaint Data Access Object.
"""

from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.complaint import Complaint, ComplaintCategory, ComplaintStatus


class ComplaintDAO(BaseDAO[Complaint]):
    """Data Access Object for Complaint model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Complaint, session)

    async def list_filtered(
        self,
        predicate: Any,
        status: Optional[ComplaintStatus] = None,
        category: Optional[ComplaintCategory] = None,
        hostel_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Complaint]:
        query = select(Complaint).where(predicate)
        if status is not None:
            query = query.where(Complaint.status == status)
        if category is not None:
            query = query.where(Complaint.category == category)
        if hostel_id is not None:
            query = query.where(Complaint.hostel_id == hostel_id)
        result = await self.session.execute(
            query.order_by(Complaint.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())
