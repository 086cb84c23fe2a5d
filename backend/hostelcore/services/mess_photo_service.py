"""
Mess photo service.

WHAT: Upload and listing of meal photos.

WHY: Staff upload; every member of the hostel (students, parents of its
students) can browse. The bytes go to the blob store between the read
transaction (hostel lookup, guard check) and the insert, with no
transaction open.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import MESS_PHOTO, AccessGuard, scope_filter
from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.exceptions import HostelNotFoundError
from hostelcore.dao.mess_photo import MessPhotoDAO
from hostelcore.dao.organization import HostelDAO
from hostelcore.db.store import Store
from hostelcore.models.mess_photo import Meal, MessPhoto
from hostelcore.services.blob_store import BlobStore, S3BlobStore, validate_upload

logger = logging.getLogger(__name__)


class MessPhotoService:
    """
    Service for mess photos.

    Example:
        service = MessPhotoService(db)
        photo = await service.upload_photo(scope, hostel_id, Meal.LUNCH, data, "image/jpeg")
    """

    def __init__(self, session: AsyncSession, blob_store: Optional[BlobStore] = None):
        self.session = session
        self.store = Store(session)
        self.photo_dao = MessPhotoDAO(session)
        self.hostel_dao = HostelDAO(session)
        self.guard = AccessGuard(session)
        self._blob_store = blob_store

    @property
    def blob_store(self) -> BlobStore:
        if self._blob_store is None:
            self._blob_store = S3BlobStore()
        return self._blob_store

    async def upload_photo(
        self,
        scope: AccessScope,
        hostel_id: int,
        meal: Meal,
        data: bytes,
        content_type: str,
        photo_date: Optional[date] = None,
    ) -> MessPhoto:
        """
        Store a meal photo for a hostel.

        Raises:
            HostelNotFoundError
            Unauthorized: Caller is not staff of the hostel
            ValidationError: Empty, oversized or non-image upload
            BlobStorageError: Storage rejected the upload
        """
        hostel = await self.hostel_dao.get_by_id(hostel_id)
        if hostel is None:
            raise HostelNotFoundError(hostel_id=hostel_id)

        fields = dict(
            organization_id=hostel.organization_id,
            hostel_id=hostel_id,
            meal=meal,
            photo_date=photo_date or date.today(),
            content_type=content_type,
            uploaded_by=scope.principal_id,
        )
        await self.guard.enforce(scope, MESS_PHOTO, Operation.WRITE, MessPhoto(**fields))

        validate_upload(data, content_type)
        await self.store.release()
        fields["image_url"] = await self.blob_store.put(
            data,
            content_type,
            key_prefix=f"orgs/{hostel.organization_id}/hostels/{hostel_id}/mess",
        )

        async with self.store.transaction():
            photo = await self.photo_dao.create(**fields)

        logger.info("Mess photo %s uploaded for hostel %s (%s)", photo.id, hostel_id, meal.value)
        return photo

    async def list_photos(
        self,
        scope: AccessScope,
        hostel_id: Optional[int] = None,
        photo_date: Optional[date] = None,
        meal: Optional[Meal] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[MessPhoto]:
        return await self.photo_dao.list_filtered(
            scope_filter(MESS_PHOTO, scope),
            hostel_id=hostel_id,
            photo_date=photo_date,
            meal=meal,
            skip=skip,
            limit=limit,
        )
