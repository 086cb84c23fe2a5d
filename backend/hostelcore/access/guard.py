"""
Access guard.

WHAT: Decides whether a principal's AccessScope permits an operation on a
domain record, and mirrors the same boundary into SQL for list queries.

WHY: Every read and write of a leave, complaint, announcement, attendance
log or mess photo passes through authorize(). The organization check comes
first and no later rule can override it, so a principal can never touch
another tenant's data even if a hostel or student id happens to match.

HOW:
- authorize() is pure: scope + record kind + operation + record in, decision
  out. Rules are evaluated in order and the first match wins.
- AccessGuard.enforce() wraps it, logs denials, audits cross-organization
  attempts as security events and raises Unauthorized.
- scope_filter() builds the WHERE clause that selects exactly the rows
  authorize() would allow to be read.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Type

from sqlalchemy import and_, false, or_
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.scope import AccessScope, Operation
from hostelcore.core.exceptions import Unauthorized
from hostelcore.models.announcement import Announcement
from hostelcore.models.attendance import AttendanceLog
from hostelcore.models.complaint import Complaint
from hostelcore.models.leave import Leave
from hostelcore.models.membership import STAFF_ROLES, HostelRole
from hostelcore.models.mess_photo import MessPhoto
from hostelcore.services.audit import AuditService

logger = logging.getLogger(__name__)

ORG_ADMIN_ROLE = "org_admin"


class DenyReason(str, enum.Enum):
    """Why the guard refused an operation."""

    CROSS_ORGANIZATION = "cross_organization"
    HOSTEL_OUT_OF_SCOPE = "hostel_out_of_scope"
    NOT_SUBJECT = "not_subject"
    NOT_LINKED_STUDENT = "not_linked_student"
    STAFF_ONLY = "staff_only"
    ORG_ADMIN_ONLY = "org_admin_only"
    NO_ROLE = "no_role"


@dataclass(frozen=True)
class RecordKind:
    """
    Describes how a domain record kind is scoped.

    - hostel_scoped: the record belongs to one hostel
    - subject_scoped: the record is about one student (student_id column)
    - organization_wide: hostel_id may be NULL, meaning the whole organization
    """

    name: str
    model: Type[Any]
    hostel_scoped: bool = True
    subject_scoped: bool = False
    organization_wide: bool = False


LEAVE = RecordKind("leave", Leave, subject_scoped=True)
COMPLAINT = RecordKind("complaint", Complaint, subject_scoped=True)
ATTENDANCE = RecordKind("attendance", AttendanceLog, subject_scoped=True)
ANNOUNCEMENT = RecordKind("announcement", Announcement, organization_wide=True)
MESS_PHOTO = RecordKind("mess_photo", MessPhoto)


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of authorize(); role is the role that granted access."""

    allowed: bool
    reason: Optional[DenyReason] = None
    role: Optional[str] = None

    @classmethod
    def allow(cls, role: Optional[str]) -> "AccessDecision":
        return cls(allowed=True, role=role)

    @classmethod
    def deny(cls, reason: DenyReason) -> "AccessDecision":
        return cls(allowed=False, reason=reason)


def _most_permissive(roles) -> Optional[str]:
    for role in HostelRole:
        if role in roles:
            return role.value
    return None


def authorize(scope: AccessScope, kind: RecordKind, action: Operation, record: Any) -> AccessDecision:
    """
    Decide whether scope permits action on record.

    Rules, first match wins:
    1. Record organization outside the scope: CROSS_ORGANIZATION.
    2. Principal administers the record's organization: allow.
    3. Hostel outside the scope: HOSTEL_OUT_OF_SCOPE. Organization-wide
       records (hostel_id NULL) skip this; any organization member may read
       them and only organization admins may write them.
    4. Staff or hostel admin in the hostel: allow.
    5. Records without a subject student: readable by any role in the
       hostel, writable only by staff.
    6. Student: allowed iff the record is about the principal.
    7. Parent: allowed iff the record is about a student in scope.
    8. Otherwise deny.

    Args:
        scope: Resolved scope of the acting principal
        kind: Record kind descriptor
        action: READ or WRITE
        record: Any object with organization_id, hostel_id and
            subject_student_id (persisted or not yet inserted)
    """
    organization_id = record.organization_id
    if organization_id not in scope.organization_ids:
        return AccessDecision.deny(DenyReason.CROSS_ORGANIZATION)

    if organization_id in scope.is_org_admin_for:
        return AccessDecision.allow(ORG_ADMIN_ROLE)

    hostel_id = record.hostel_id if kind.hostel_scoped else None
    if hostel_id is None:
        if kind.organization_wide:
            if action == Operation.READ:
                return AccessDecision.allow(None)
            return AccessDecision.deny(DenyReason.ORG_ADMIN_ONLY)
        return AccessDecision.deny(DenyReason.HOSTEL_OUT_OF_SCOPE)

    if hostel_id not in scope.hostel_ids:
        return AccessDecision.deny(DenyReason.HOSTEL_OUT_OF_SCOPE)

    roles = scope.roles_in(hostel_id)
    if not roles:
        return AccessDecision.deny(DenyReason.NO_ROLE)

    staff_roles = roles & STAFF_ROLES
    if staff_roles:
        return AccessDecision.allow(_most_permissive(staff_roles))

    if not kind.subject_scoped:
        if action == Operation.READ:
            return AccessDecision.allow(_most_permissive(roles))
        return AccessDecision.deny(DenyReason.STAFF_ONLY)

    subject = record.subject_student_id
    if HostelRole.STUDENT in roles and subject == scope.principal_id:
        return AccessDecision.allow(HostelRole.STUDENT.value)
    if HostelRole.PARENT in roles and subject in scope.student_ids:
        return AccessDecision.allow(HostelRole.PARENT.value)

    if HostelRole.PARENT in roles:
        return AccessDecision.deny(DenyReason.NOT_LINKED_STUDENT)
    if HostelRole.STUDENT in roles:
        return AccessDecision.deny(DenyReason.NOT_SUBJECT)
    return AccessDecision.deny(DenyReason.NO_ROLE)


def scope_filter(kind: RecordKind, scope: AccessScope) -> Any:
    """
    Build a SQL predicate selecting the rows of kind readable under scope.

    WHY: List endpoints must never fetch rows and filter them in Python;
    the database returns only what authorize() would allow for READ.

    Returns:
        A SQLAlchemy boolean clause (false() for an empty scope)
    """
    if scope.is_empty:
        return false()

    model = kind.model
    clauses = []

    if scope.is_org_admin_for:
        clauses.append(model.organization_id.in_(sorted(scope.is_org_admin_for)))

    if kind.organization_wide:
        clauses.append(
            and_(
                model.hostel_id.is_(None),
                model.organization_id.in_(sorted(scope.organization_ids)),
            )
        )

    staff_hostels = sorted(h for h in scope.hostel_ids if scope.roles_in(h) & STAFF_ROLES)
    member_hostels = sorted(h for h in scope.hostel_ids if scope.roles_in(h))
    student_hostels = sorted(h for h in scope.hostel_ids if HostelRole.STUDENT in scope.roles_in(h))
    parent_hostels = sorted(h for h in scope.hostel_ids if HostelRole.PARENT in scope.roles_in(h))

    if staff_hostels:
        clauses.append(model.hostel_id.in_(staff_hostels))

    if not kind.subject_scoped:
        if member_hostels:
            clauses.append(model.hostel_id.in_(member_hostels))
    else:
        if student_hostels:
            clauses.append(
                and_(model.hostel_id.in_(student_hostels), model.student_id == scope.principal_id)
            )
        if parent_hostels and scope.student_ids:
            clauses.append(
                and_(
                    model.hostel_id.in_(parent_hostels),
                    model.student_id.in_(sorted(scope.student_ids)),
                )
            )

    if not clauses:
        return false()
    return and_(model.organization_id.in_(sorted(scope.organization_ids)), or_(*clauses))


def require_admin(scope: AccessScope, organization_id: int, hostel_id: Optional[int] = None) -> None:
    """
    Require membership-management rights at organization or hostel level.

    Raises:
        Unauthorized: CROSS_ORGANIZATION outside the scope, otherwise
            ORG_ADMIN_ONLY
    """
    if organization_id not in scope.organization_ids:
        raise Unauthorized(reason=DenyReason.CROSS_ORGANIZATION, organization_id=organization_id)
    if not scope.can_administer(organization_id, hostel_id):
        raise Unauthorized(
            reason=DenyReason.ORG_ADMIN_ONLY,
            organization_id=organization_id,
            hostel_id=hostel_id,
        )


class AccessGuard:
    """
    Enforcing wrapper around authorize().

    Example:
        guard = AccessGuard(db)
        await guard.enforce(scope, LEAVE, Operation.READ, leave)
    """

    def __init__(self, session: AsyncSession):
        self.audit = AuditService(session)

    async def enforce(
        self,
        scope: AccessScope,
        kind: RecordKind,
        action: Operation,
        record: Any,
    ) -> AccessDecision:
        """
        Allow the operation or raise.

        Returns:
            The allowing AccessDecision

        Raises:
            Unauthorized: With the typed deny reason
        """
        decision = authorize(scope, kind, action, record)
        if decision.allowed:
            return decision

        resource_id = getattr(record, "id", None)
        if decision.reason == DenyReason.CROSS_ORGANIZATION:
            logger.warning(
                "Cross-organization access denied: principal=%s %s=%s organization=%s action=%s",
                scope.principal_id,
                kind.name,
                resource_id,
                record.organization_id,
                action.value,
                extra={"security_event": "cross_org_access_denied"},
            )
            await self.audit.log_access_denied(
                actor_user_id=scope.principal_id,
                resource_type=kind.name,
                resource_id=resource_id,
                organization_id=record.organization_id,
                reason=decision.reason.value,
                cross_organization=True,
            )
        else:
            logger.info(
                "Access denied: principal=%s %s=%s action=%s reason=%s",
                scope.principal_id,
                kind.name,
                resource_id,
                action.value,
                decision.reason.value,
            )

        raise Unauthorized(
            reason=decision.reason,
            resource_type=kind.name,
            resource_id=resource_id,
        )
