"""
Tests for ComplaintService.

WHY: Complaints may be filed by the student, a linked parent or staff, but
only staff move them through their lifecycle. Attachments are checked and
uploaded only after the caller is known to be allowed.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import DenyReason
from hostelcore.access.scope import Operation
from hostelcore.core.exceptions import (
    BlobStorageError,
    ComplaintNotFoundError,
    InvalidStateTransition,
    Unauthorized,
    ValidationError,
)
from hostelcore.dao.audit_log import AuditLogDAO
from hostelcore.dao.complaint import ComplaintDAO
from hostelcore.models.audit_log import AuditAction
from hostelcore.models.complaint import ComplaintCategory, ComplaintStatus
from hostelcore.services.complaint_service import ComplaintService

from tests.factories import FakeBlobStore, scope_for

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def service(db_session: AsyncSession, blobs) -> ComplaintService:
    return ComplaintService(db_session, blob_store=blobs)


class TestFileComplaint:
    """Filing complaints."""

    @pytest.mark.asyncio
    async def test_student_files_complaint(self, db_session: AsyncSession, campus, service):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        complaint = await service.file_complaint(
            scope,
            campus.s1.id,
            " Broken fan ",
            "Ceiling fan stopped working",
            category=ComplaintCategory.MAINTENANCE,
        )

        assert complaint.title == "Broken fan"
        assert complaint.status == ComplaintStatus.OPEN
        assert complaint.organization_id == campus.org_a.id
        assert complaint.hostel_id == campus.h1.id
        assert complaint.attachment_url is None

    @pytest.mark.asyncio
    async def test_linked_parent_files_for_child(self, db_session: AsyncSession, campus, service):
        scope = await scope_for(db_session, campus.parent, Operation.WRITE)

        complaint = await service.file_complaint(scope, campus.s2.id, "Food", "Food was cold")

        assert complaint.hostel_id == campus.h2.id
        assert complaint.created_by == campus.parent.id

    @pytest.mark.asyncio
    async def test_attachment_uploaded_under_hostel_prefix(
        self, db_session: AsyncSession, campus, service, blobs
    ):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        complaint = await service.file_complaint(
            scope,
            campus.s1.id,
            "Leak",
            "Water leaking from ceiling",
            attachment=PNG_BYTES,
            attachment_content_type="image/png",
        )

        (key,) = blobs.objects
        assert key.startswith(f"orgs/{campus.org_a.id}/hostels/{campus.h1.id}/complaints")
        assert complaint.attachment_url == f"https://blobs.test/{key}"

    @pytest.mark.asyncio
    async def test_upload_runs_with_no_transaction_open(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        blobs = FakeBlobStore(session=db_session)
        service = ComplaintService(db_session, blob_store=blobs)

        complaint = await service.file_complaint(
            scope,
            campus.s1.id,
            "Leak",
            "Water leaking from ceiling",
            attachment=PNG_BYTES,
            attachment_content_type="image/png",
        )

        assert blobs.transaction_open == [False]
        assert await ComplaintDAO(db_session).get_by_id(complaint.id) is not None

    @pytest.mark.asyncio
    async def test_pdf_attachment_allowed(self, db_session: AsyncSession, campus, service):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        complaint = await service.file_complaint(
            scope,
            campus.s1.id,
            "Receipt",
            "Overcharged at mess",
            attachment=b"%PDF-1.4 fake",
            attachment_content_type="application/pdf",
        )

        assert complaint.attachment_url is not None

    @pytest.mark.asyncio
    async def test_bad_attachment_rejected_before_upload(
        self, db_session: AsyncSession, campus, service, blobs
    ):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        with pytest.raises(ValidationError):
            await service.file_complaint(
                scope,
                campus.s1.id,
                "Leak",
                "Water",
                attachment=b"MZ...",
                attachment_content_type="application/x-msdownload",
            )

        assert blobs.objects == {}

    @pytest.mark.asyncio
    async def test_unauthorized_caller_never_uploads(
        self, db_session: AsyncSession, campus, service, blobs
    ):
        scope = await scope_for(db_session, campus.outsider, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await service.file_complaint(
                scope,
                campus.s1.id,
                "Leak",
                "Water",
                attachment=PNG_BYTES,
                attachment_content_type="image/png",
            )

        assert exc_info.value.reason == DenyReason.CROSS_ORGANIZATION
        assert blobs.objects == {}

    @pytest.mark.asyncio
    async def test_upload_failure_creates_no_record(self, db_session: AsyncSession, campus):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        service = ComplaintService(db_session, blob_store=FakeBlobStore(fail=True))

        with pytest.raises(BlobStorageError):
            await service.file_complaint(
                scope,
                campus.s1.id,
                "Leak",
                "Water",
                attachment=PNG_BYTES,
                attachment_content_type="image/png",
            )

        assert await ComplaintDAO(db_session).count() == 0

    @pytest.mark.asyncio
    async def test_student_cannot_file_for_other_hostel(self, db_session: AsyncSession, campus, service):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await service.file_complaint(scope, campus.s2.id, "Noise", "Loud music")

        assert exc_info.value.reason == DenyReason.HOSTEL_OUT_OF_SCOPE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title,description", [("", "Desc"), ("Title", "   ")])
    async def test_required_fields(self, db_session: AsyncSession, campus, service, title, description):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)

        with pytest.raises(ValidationError):
            await service.file_complaint(scope, campus.s1.id, title, description)


class TestComplaintLifecycle:
    """Status changes by staff."""

    @pytest.fixture
    async def complaint(self, db_session: AsyncSession, campus, service):
        scope = await scope_for(db_session, campus.s1, Operation.WRITE)
        return await service.file_complaint(scope, campus.s1.id, "Broken fan", "Stopped working")

    @pytest.mark.asyncio
    async def test_staff_moves_through_lifecycle(self, db_session: AsyncSession, campus, service, complaint):
        warden = await scope_for(db_session, campus.warden, Operation.WRITE)

        in_progress = await service.update_status(warden, complaint.id, ComplaintStatus.IN_PROGRESS)
        resolved = await service.update_status(
            warden, complaint.id, ComplaintStatus.RESOLVED, resolution_notes="Replaced capacitor"
        )

        assert in_progress.handled_by == campus.warden.id
        assert resolved.status == ComplaintStatus.RESOLVED
        assert resolved.resolution_notes == "Replaced capacitor"

        audit = await AuditLogDAO(db_session).get_by_resource("complaint", complaint.id)
        assert [entry.action for entry in audit] == [AuditAction.UPDATE, AuditAction.UPDATE]

    @pytest.mark.asyncio
    async def test_invalid_transition(self, db_session: AsyncSession, campus, service, complaint):
        warden = await scope_for(db_session, campus.warden, Operation.WRITE)

        with pytest.raises(InvalidStateTransition):
            await service.update_status(warden, complaint.id, ComplaintStatus.RESOLVED)

    @pytest.mark.asyncio
    async def test_student_cannot_change_status(self, db_session: AsyncSession, campus, service, complaint):
        student = await scope_for(db_session, campus.s1, Operation.WRITE)

        with pytest.raises(Unauthorized) as exc_info:
            await service.update_status(student, complaint.id, ComplaintStatus.CLOSED)

        assert exc_info.value.reason == DenyReason.STAFF_ONLY

    @pytest.mark.asyncio
    async def test_missing_complaint(self, db_session: AsyncSession, campus, service):
        warden = await scope_for(db_session, campus.warden, Operation.WRITE)

        with pytest.raises(ComplaintNotFoundError):
            await service.update_status(warden, 31337, ComplaintStatus.CLOSED)


class TestComplaintReads:
    """Single-record reads and scoped listing."""

    @pytest.mark.asyncio
    async def test_reads_and_listing(self, db_session: AsyncSession, campus, service):
        s1 = await scope_for(db_session, campus.s1, Operation.WRITE)
        s2 = await scope_for(db_session, campus.s2, Operation.WRITE)
        mine = await service.file_complaint(
            s1, campus.s1.id, "Fan", "Broken", category=ComplaintCategory.MAINTENANCE
        )
        theirs = await service.file_complaint(s2, campus.s2.id, "Food", "Cold", category=ComplaintCategory.MESS)

        parent = await scope_for(db_session, campus.parent)
        warden = await scope_for(db_session, campus.warden)
        s1_read = await scope_for(db_session, campus.s1)

        assert (await service.get_complaint(parent, theirs.id)).id == theirs.id
        with pytest.raises(Unauthorized):
            await service.get_complaint(s1_read, theirs.id)

        assert {c.id for c in await service.list_complaints(parent)} == {mine.id, theirs.id}
        assert [c.id for c in await service.list_complaints(warden)] == [mine.id]
        assert [
            c.id for c in await service.list_complaints(parent, category=ComplaintCategory.MESS)
        ] == [theirs.id]
        assert await service.list_complaints(parent, status=ComplaintStatus.CLOSED) == []
