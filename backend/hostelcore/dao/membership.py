"""
Membership graph Data Access Objects.

WHAT: Queries over organization memberships, hostel memberships and
parent-student links.

WHY: The scope resolver runs these on every request. They only ever return
ACTIVE grants unless a method says otherwise; invited and suspended rows are
kept for history but never confer access.

HOW: Plain select() statements; the students-for-parent query joins the link
table to active student memberships so a link to a student who has left every
hostel grants nothing.
"""

from typing import List, Optional, Sequence, Set

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.membership import (
    HostelMembership,
    HostelRole,
    MembershipStatus,
    OrganizationMembership,
    ParentStudentLink,
)


class OrganizationMembershipDAO(BaseDAO[OrganizationMembership]):
    """Data Access Object for OrganizationMembership model."""

    def __init__(self, session: AsyncSession):
        super().__init__(OrganizationMembership, session)

    async def get_for_org_user(
        self, organization_id: int, user_id: int
    ) -> Optional[OrganizationMembership]:
        result = await self.session.execute(
            select(OrganizationMembership).where(
                OrganizationMembership.organization_id == organization_id,
                OrganizationMembership.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_active_for_user(self, user_id: int) -> List[OrganizationMembership]:
        result = await self.session.execute(
            select(OrganizationMembership)
            .where(
                OrganizationMembership.user_id == user_id,
                OrganizationMembership.status == MembershipStatus.ACTIVE,
            )
            .order_by(OrganizationMembership.id)
        )
        return list(result.scalars().all())


class HostelMembershipDAO(BaseDAO[HostelMembership]):
    """Data Access Object for HostelMembership model."""

    def __init__(self, session: AsyncSession):
        super().__init__(HostelMembership, session)

    async def get_for_hostel_user(self, hostel_id: int, user_id: int) -> Optional[HostelMembership]:
        """Return the (unique) membership of a user in a hostel, any status."""
        result = await self.session.execute(
            select(HostelMembership).where(
                HostelMembership.hostel_id == hostel_id,
                HostelMembership.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_active_for_user(self, user_id: int) -> List[HostelMembership]:
        result = await self.session.execute(
            select(HostelMembership)
            .where(
                HostelMembership.user_id == user_id,
                HostelMembership.status == MembershipStatus.ACTIVE,
            )
            .order_by(HostelMembership.id)
        )
        return list(result.scalars().all())

    async def list_active_student_memberships(self, student_user_id: int) -> List[HostelMembership]:
        """
        Every active student membership of a user.

        Normally one; more during a transfer overlap.
        """
        result = await self.session.execute(
            select(HostelMembership)
            .where(
                HostelMembership.user_id == student_user_id,
                HostelMembership.role == HostelRole.STUDENT,
                HostelMembership.status == MembershipStatus.ACTIVE,
            )
            .order_by(HostelMembership.id)
        )
        return list(result.scalars().all())

    async def latest_student_membership(self, student_user_id: int) -> Optional[HostelMembership]:
        """
        The most recently created student membership of a user, any status.

        WHY: Invited students and students who have left still belong to a
        hostel for administrative purposes such as managing parent links.
        """
        result = await self.session.execute(
            select(HostelMembership)
            .where(
                HostelMembership.user_id == student_user_id,
                HostelMembership.role == HostelRole.STUDENT,
            )
            .order_by(HostelMembership.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_active_students_among(self, user_ids: Sequence[int]) -> List[HostelMembership]:
        """Active student memberships of several users in one query."""
        if not user_ids:
            return []
        result = await self.session.execute(
            select(HostelMembership)
            .where(
                HostelMembership.user_id.in_(list(user_ids)),
                HostelMembership.role == HostelRole.STUDENT,
                HostelMembership.status == MembershipStatus.ACTIVE,
            )
            .order_by(HostelMembership.id)
        )
        return list(result.scalars().all())

    async def list_by_hostel(
        self,
        hostel_id: int,
        role: Optional[HostelRole] = None,
        status: Optional[MembershipStatus] = None,
    ) -> List[HostelMembership]:
        query = select(HostelMembership).where(HostelMembership.hostel_id == hostel_id)
        if role is not None:
            query = query.where(HostelMembership.role == role)
        if status is not None:
            query = query.where(HostelMembership.status == status)
        result = await self.session.execute(query.order_by(HostelMembership.id))
        return list(result.scalars().all())


class ParentStudentLinkDAO(BaseDAO[ParentStudentLink]):
    """Data Access Object for ParentStudentLink model."""

    def __init__(self, session: AsyncSession):
        super().__init__(ParentStudentLink, session)

    async def get_pair(self, parent_user_id: int, student_user_id: int) -> Optional[ParentStudentLink]:
        result = await self.session.execute(
            select(ParentStudentLink).where(
                ParentStudentLink.parent_user_id == parent_user_id,
                ParentStudentLink.student_user_id == student_user_id,
            )
        )
        return result.scalar_one_or_none()

    async def enrolled_students_for_parent(self, parent_user_id: int) -> Set[int]:
        """
        Linked students who currently hold an active student membership.

        WHY: A link alone grants nothing; the student must be enrolled
        somewhere for the parent to gain any scope.
        """
        result = await self.session.execute(
            select(ParentStudentLink.student_user_id)
            .join(
                HostelMembership,
                HostelMembership.user_id == ParentStudentLink.student_user_id,
            )
            .where(
                ParentStudentLink.parent_user_id == parent_user_id,
                HostelMembership.role == HostelRole.STUDENT,
                HostelMembership.status == MembershipStatus.ACTIVE,
            )
            .distinct()
        )
        return set(result.scalars().all())

    async def delete_pair(self, parent_user_id: int, student_user_id: int) -> bool:
        result = await self.session.execute(
            delete(ParentStudentLink).where(
                ParentStudentLink.parent_user_id == parent_user_id,
                ParentStudentLink.student_user_id == student_user_id,
            )
            .returning(ParentStudentLink.id)
        )
        return result.scalar_one_or_none() is not None
