"""
Complaint service.

WHAT: Filing, status handling and scoped listing of complaints.

WHY: Complaints are about one student. The student, their linked parents
and hostel staff may file one; only staff move it through its lifecycle.
An optional attachment (photo or PDF) is uploaded after the read
transaction has been released and before the insert opens a new one; only
its URL is stored.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import COMPLAINT, AccessGuard, DenyReason, scope_filter
from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.exceptions import (
    ComplaintNotFoundError,
    InvalidStateTransition,
    Unauthorized,
    ValidationError,
)
from hostelcore.dao.complaint import ComplaintDAO
from hostelcore.db.store import Store
from hostelcore.models.audit_log import AuditAction
from hostelcore.models.complaint import (
    VALID_COMPLAINT_TRANSITIONS,
    Complaint,
    ComplaintCategory,
    ComplaintStatus,
)
from hostelcore.services.audit import AuditService
from hostelcore.services.blob_store import (
    IMAGE_CONTENT_TYPES,
    BlobStore,
    S3BlobStore,
    validate_upload,
)
from hostelcore.services.membership_graph import MembershipGraph

logger = logging.getLogger(__name__)

ATTACHMENT_CONTENT_TYPES = IMAGE_CONTENT_TYPES | {"application/pdf"}


class ComplaintService:
    """
    Service for complaints.

    Example:
        service = ComplaintService(db)
        complaint = await service.file_complaint(
            scope, student_id, "Broken fan", "Ceiling fan in room 12 stopped"
        )
    """

    def __init__(self, session: AsyncSession, blob_store: Optional[BlobStore] = None):
        self.session = session
        self.store = Store(session)
        self.complaint_dao = ComplaintDAO(session)
        self.graph = MembershipGraph(session)
        self.guard = AccessGuard(session)
        self.audit = AuditService(session)
        self._blob_store = blob_store

    @property
    def blob_store(self) -> BlobStore:
        if self._blob_store is None:
            self._blob_store = S3BlobStore()
        return self._blob_store

    async def file_complaint(
        self,
        scope: AccessScope,
        student_id: int,
        title: str,
        description: str,
        category: ComplaintCategory = ComplaintCategory.OTHER,
        hostel_id: Optional[int] = None,
        attachment: Optional[bytes] = None,
        attachment_content_type: Optional[str] = None,
    ) -> Complaint:
        """
        File a complaint about a student's stay.

        Raises:
            ValidationError: Empty title/description or a bad attachment
            Unauthorized: Caller may not file for this student
        """
        if not title or not title.strip():
            raise ValidationError(message="Title is required", field="title")
        if not description or not description.strip():
            raise ValidationError(message="Description is required", field="description")

        membership = await self.graph.student_tenancy(student_id, hostel_id)
        fields = dict(
            organization_id=membership.organization_id,
            hostel_id=membership.hostel_id,
            student_id=student_id,
            created_by=scope.principal_id,
            title=title.strip(),
            description=description.strip(),
            category=category,
            status=ComplaintStatus.OPEN,
        )
        await self.guard.enforce(scope, COMPLAINT, Operation.WRITE, Complaint(**fields))

        if attachment is not None:
            validate_upload(
                attachment,
                attachment_content_type or "",
                allowed_types=ATTACHMENT_CONTENT_TYPES,
            )
            await self.store.release()
            fields["attachment_url"] = await self.blob_store.put(
                attachment,
                attachment_content_type,
                key_prefix=(
                    f"orgs/{membership.organization_id}/hostels/{membership.hostel_id}/complaints"
                ),
            )

        async with self.store.transaction():
            complaint = await self.complaint_dao.create(**fields)

        logger.info("Complaint %s filed for student %s", complaint.id, student_id)
        return complaint

    async def update_status(
        self,
        scope: AccessScope,
        complaint_id: int,
        new_status: ComplaintStatus,
        resolution_notes: Optional[str] = None,
    ) -> Complaint:
        """
        Move a complaint through its lifecycle. Staff only.

        Raises:
            Unauthorized: Caller is not staff of the complaint's hostel
            InvalidStateTransition: Transition not allowed from current status
        """
        complaint = await self._get(complaint_id)
        await self.guard.enforce(scope, COMPLAINT, Operation.WRITE, complaint)
        if not scope.is_staff_in(complaint.hostel_id):
            raise Unauthorized(
                message="Only hostel staff may change complaint status",
                reason=DenyReason.STAFF_ONLY,
            )

        old_status = complaint.status
        if new_status not in VALID_COMPLAINT_TRANSITIONS.get(old_status, []):
            raise InvalidStateTransition(
                message=f"Cannot move complaint from {old_status.value} to {new_status.value}",
                complaint_id=complaint_id,
            )

        values = {"status": new_status, "handled_by": scope.principal_id}
        if resolution_notes is not None:
            values["resolution_notes"] = resolution_notes

        async with self.store.transaction():
            complaint = await self.complaint_dao.update(complaint_id, **values)

        await self.audit.log_event(
            action=AuditAction.UPDATE,
            resource_type="complaint",
            actor_user_id=scope.principal_id,
            resource_id=complaint_id,
            organization_id=complaint.organization_id,
            changes={"status": {"before": old_status.value, "after": new_status.value}},
        )
        return complaint

    async def get_complaint(self, scope: AccessScope, complaint_id: int) -> Complaint:
        complaint = await self._get(complaint_id)
        await self.guard.enforce(scope, COMPLAINT, Operation.READ, complaint)
        return complaint

    async def list_complaints(
        self,
        scope: AccessScope,
        status: Optional[ComplaintStatus] = None,
        category: Optional[ComplaintCategory] = None,
        hostel_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Complaint]:
        return await self.complaint_dao.list_filtered(
            scope_filter(COMPLAINT, scope),
            status=status,
            category=category,
            hostel_id=hostel_id,
            skip=skip,
            limit=limit,
        )

    async def _get(self, complaint_id: int) -> Complaint:
        complaint = await self.complaint_dao.get_by_id(complaint_id)
        if complaint is None:
            raise ComplaintNotFoundError(complaint_id=complaint_id)
        return complaint
