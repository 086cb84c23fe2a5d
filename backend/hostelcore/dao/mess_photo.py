"""
Mess Photo Data Access Object.
"""

from datetime import date
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.mess_photo import Meal, MessPhoto


class MessPhotoDAO(BaseDAO[MessPhoto]):
    """Data Access Object for MessPhoto model."""

    def __init__(self, session: AsyncSession):
        super().__init__(MessPhoto, session)

    async def list_filtered(
        self,
        predicate: Any,
        hostel_id: Optional[int] = None,
        photo_date: Optional[date] = None,
        meal: Optional[Meal] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[MessPhoto]:
        query = select(MessPhoto).where(predicate)
        if hostel_id is not None:
            query = query.where(MessPhoto.hostel_id == hostel_id)
        if photo_date is not None:
            query = query.where(MessPhoto.photo_date == photo_date)
        if meal is not None:
            query = query.where(MessPhoto.meal == meal)
        result = await self.session.execute(
            query.order_by(MessPhoto.photo_date.desc(), MessPhoto.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())
