"""
Announcement Service.

WHAT: Publishing and scoped reading of announcements.

WHY: An announcement targets one hostel, or the whole organization when no
hostel is given. Hostel staff publish to their hostel; only organization
admins publish organization-wide. Every member reads what targets them.

HOW: The organization is always derived from the hostel when one is given,
so a caller can never attach a hostel to a foreign organization.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import ANNOUNCEMENT, AccessGuard, scope_filter
from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.exceptions import (
    AnnouncementNotFoundError,
    HostelNotFoundError,
    ValidationError,
)
from hostelcore.dao.announcement import AnnouncementDAO
from hostelcore.dao.organization import HostelDAO
from hostelcore.db.store import Store
from hostelcore.models.announcement import Announcement

logger = logging.getLogger(__name__)


class AnnouncementService:
    """
    Service for announcement operations.

    Example:
        service = AnnouncementService(db)
        await service.publish(scope, "Water outage", "No water 2-4pm", hostel_id=3)
        await service.publish(scope, "Fee deadline", "Pay by Friday", organization_id=1)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = Store(session)
        self.announcement_dao = AnnouncementDAO(session)
        self.hostel_dao = HostelDAO(session)
        self.guard = AccessGuard(session)

    async def publish(
        self,
        scope: AccessScope,
        title: str,
        content: str,
        hostel_id: Optional[int] = None,
        organization_id: Optional[int] = None,
    ) -> Announcement:
        """
        Publish an announcement.

        Args:
            hostel_id: Target hostel; None publishes organization-wide
            organization_id: Required for organization-wide announcements,
                optional (but must match) otherwise

        Raises:
            ValidationError: Missing fields or hostel/organization mismatch
            HostelNotFoundError
            Unauthorized: Caller may not publish at that level
        """
        if not title or not title.strip():
            raise ValidationError(message="Title is required", field="title")
        if not content or not content.strip():
            raise ValidationError(message="Content is required", field="content")

        if hostel_id is not None:
            hostel = await self.hostel_dao.get_by_id(hostel_id)
            if hostel is None:
                raise HostelNotFoundError(hostel_id=hostel_id)
            if organization_id is not None and organization_id != hostel.organization_id:
                raise ValidationError(
                    message="Hostel does not belong to the given organization",
                    field="organization_id",
                )
            organization_id = hostel.organization_id
        elif organization_id is None:
            raise ValidationError(
                message="Organization is required for organization-wide announcements",
                field="organization_id",
            )

        fields = dict(
            organization_id=organization_id,
            hostel_id=hostel_id,
            title=title.strip(),
            content=content.strip(),
            created_by=scope.principal_id,
        )
        await self.guard.enforce(scope, ANNOUNCEMENT, Operation.WRITE, Announcement(**fields))

        async with self.store.transaction():
            announcement = await self.announcement_dao.create(**fields)

        logger.info(
            "Announcement %s published (organization=%s hostel=%s)",
            announcement.id,
            organization_id,
            hostel_id,
        )
        return announcement

    async def get_announcement(self, scope: AccessScope, announcement_id: int) -> Announcement:
        announcement = await self.announcement_dao.get_by_id(announcement_id)
        if announcement is None:
            raise AnnouncementNotFoundError(announcement_id=announcement_id)
        await self.guard.enforce(scope, ANNOUNCEMENT, Operation.READ, announcement)
        return announcement

    async def list_visible(
        self,
        scope: AccessScope,
        hostel_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Announcement]:
        """Announcements readable under the scope, newest first."""
        return await self.announcement_dao.list_filtered(
            scope_filter(ANNOUNCEMENT, scope),
            hostel_id=hostel_id,
            skip=skip,
            limit=limit,
        )
