"""
Organization and Hostel Data Access Objects.

WHY: Organizations and hostels are the tenancy keys every other table
carries. Hostel listing by organization is on the hot path of scope
resolution (org admins see every hostel of their organization).
"""

from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.hostel import Hostel
from hostelcore.models.organization import Organization


class OrganizationDAO(BaseDAO[Organization]):
    """Data Access Object for Organization model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Organization, session)

    async def get_by_slug(self, slug: str) -> Optional[Organization]:
        """Retrieve an organization by its (case-insensitive) slug."""
        result = await self.session.execute(
            select(Organization).where(func.lower(Organization.slug) == slug.lower())
        )
        return result.scalar_one_or_none()

    async def slug_exists(self, slug: str) -> bool:
        return await self.get_by_slug(slug) is not None

    async def get_many(self, ids: Sequence[int]) -> List[Organization]:
        """Fetch several organizations in one query."""
        if not ids:
            return []
        result = await self.session.execute(
            select(Organization).where(Organization.id.in_(list(ids)))
        )
        return list(result.scalars().all())


class HostelDAO(BaseDAO[Hostel]):
    """Data Access Object for Hostel model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Hostel, session)

    async def get_by_code(self, organization_id: int, code: str) -> Optional[Hostel]:
        """Retrieve a hostel by its code within an organization."""
        result = await self.session.execute(
            select(Hostel).where(
                Hostel.organization_id == organization_id,
                func.lower(Hostel.code) == code.lower(),
            )
        )
        return result.scalar_one_or_none()

    async def list_by_organizations(
        self,
        organization_ids: Sequence[int],
        active_only: bool = False,
    ) -> List[Hostel]:
        """
        List every hostel owned by the given organizations.

        WHY: Always read live, never cached, so a hostel created after an org
        admin's membership shows up in that admin's very next scope.
        """
        if not organization_ids:
            return []
        query = select(Hostel).where(Hostel.organization_id.in_(list(organization_ids)))
        if active_only:
            query = query.where(Hostel.is_active.is_(True))
        result = await self.session.execute(query.order_by(Hostel.id))
        return list(result.scalars().all())

    async def get_many(self, ids: Sequence[int]) -> List[Hostel]:
        """Fetch several hostels in one query."""
        if not ids:
            return []
        result = await self.session.execute(select(Hostel).where(Hostel.id.in_(list(ids))))
        return list(result.scalars().all())
