"""
Scope resolver.

WHAT: Computes a principal's AccessScope from the membership graph.

WHY: What a user may see is never stored on the user row. It is rebuilt on
every request from active organization memberships, active hostel
memberships and parent-student links, so revocations and new hostels are
reflected immediately.

HOW:
1. Organization owners/admins get their organizations plus every hostel the
   organization owns, loaded live.
2. Hostel admins and staff get their hostel and its organization.
3. Students get their hostel and themselves as a student.
4. Parents get, for each linked student currently enrolled somewhere, that
   student's hostels (with the parent role) and the student id. The parent
   membership's own hostel is also kept with the parent role.
Roles union. A write scope drops suspended organizations and inactive
hostels. An optional ScopeTarget narrows the result.
"""

import logging
from typing import Dict, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.scope import AccessScope, Operation, ScopeTarget
from hostelcore.dao.organization import HostelDAO, OrganizationDAO
from hostelcore.models.membership import HostelRole
from hostelcore.services.membership_graph import MembershipGraph

logger = logging.getLogger(__name__)


class _ScopeBuilder:
    """Mutable accumulator turned into an immutable AccessScope at the end."""

    def __init__(self, principal_id: int):
        self.principal_id = principal_id
        self.organization_ids: Set[int] = set()
        self.admin_organization_ids: Set[int] = set()
        self.hostel_organizations: Dict[int, int] = {}
        self.hostel_roles: Dict[int, Set[HostelRole]] = {}
        self.student_hostels: Dict[int, Set[int]] = {}
        self.linked_student_ids: Set[int] = set()

    def add_admin_organization(self, organization_id: int) -> None:
        self.organization_ids.add(organization_id)
        self.admin_organization_ids.add(organization_id)

    def add_hostel(self, hostel_id: int, organization_id: int) -> None:
        self.organization_ids.add(organization_id)
        self.hostel_organizations[hostel_id] = organization_id

    def add_role(self, hostel_id: int, organization_id: int, role: HostelRole) -> None:
        self.add_hostel(hostel_id, organization_id)
        self.hostel_roles.setdefault(hostel_id, set()).add(role)

    def add_student(self, student_id: int, hostel_id: int) -> None:
        self.student_hostels.setdefault(student_id, set()).add(hostel_id)

    def drop(self, organization_ids: Set[int], hostel_ids: Set[int]) -> None:
        """Remove organizations (with all their hostels) and single hostels."""
        hostel_ids = set(hostel_ids) | {
            h for h, org in self.hostel_organizations.items() if org in organization_ids
        }
        self.organization_ids -= organization_ids
        self.admin_organization_ids -= organization_ids
        for hostel_id in hostel_ids:
            self.hostel_organizations.pop(hostel_id, None)
            self.hostel_roles.pop(hostel_id, None)

    def narrow(self, target: ScopeTarget) -> bool:
        """
        Restrict to the selected organization and/or hostel.

        Returns:
            False if the target lies outside the scope
        """
        if target.organization_id is not None:
            if target.organization_id not in self.organization_ids:
                return False
            keep = {target.organization_id}
            self.drop(self.organization_ids - keep, set())

        if target.hostel_id is not None:
            organization_id = self.hostel_organizations.get(target.hostel_id)
            if organization_id is None:
                return False
            # An org admin acting inside one hostel acts as that hostel's admin
            if organization_id in self.admin_organization_ids:
                self.hostel_roles.setdefault(target.hostel_id, set()).add(HostelRole.HOSTEL_ADMIN)
            self.admin_organization_ids = set()
            self.drop(
                self.organization_ids - {organization_id},
                set(self.hostel_organizations) - {target.hostel_id},
            )
        return True

    def build(self, operation: Operation) -> AccessScope:
        hostel_ids = frozenset(self.hostel_organizations)
        student_ids = frozenset(
            student_id
            for student_id, hostels in self.student_hostels.items()
            if hostels & hostel_ids
        )
        return AccessScope(
            principal_id=self.principal_id,
            operation=operation,
            organization_ids=frozenset(self.organization_ids),
            hostel_ids=hostel_ids,
            student_ids=student_ids,
            is_org_admin_for=frozenset(self.admin_organization_ids),
            hostel_roles={h: frozenset(r) for h, r in self.hostel_roles.items()},
            linked_student_ids=frozenset(self.linked_student_ids & student_ids),
            hostel_organizations=dict(self.hostel_organizations),
        )


class ScopeResolver:
    """
    Builds AccessScopes from live membership data.

    Example:
        scope = await ScopeResolver(db).resolve(principal_id, Operation.READ)
    """

    def __init__(self, session: AsyncSession):
        self.graph = MembershipGraph(session)
        self.org_dao = OrganizationDAO(session)
        self.hostel_dao = HostelDAO(session)

    async def resolve(
        self,
        principal_id: int,
        operation: Operation = Operation.READ,
        target: Optional[ScopeTarget] = None,
    ) -> AccessScope:
        """
        Resolve the scope of a principal for one operation.

        Args:
            principal_id: Authenticated user id
            operation: READ or WRITE
            target: Optional organization/hostel context selected by the client

        Returns:
            AccessScope (empty, never an error, when nothing is active)
        """
        org_memberships = await self.graph.organizations_for(principal_id)
        hostel_memberships = await self.graph.hostels_for(principal_id)
        if not org_memberships and not hostel_memberships:
            return AccessScope.empty(principal_id, operation)

        builder = _ScopeBuilder(principal_id)

        admin_org_ids = {m.organization_id for m in org_memberships}
        for organization_id in admin_org_ids:
            builder.add_admin_organization(organization_id)
        for hostel in await self.hostel_dao.list_by_organizations(sorted(admin_org_ids)):
            builder.add_hostel(hostel.id, hostel.organization_id)

        is_parent = False
        for membership in sorted(hostel_memberships, key=lambda m: m.id):
            builder.add_role(membership.hostel_id, membership.organization_id, membership.role)
            if membership.role == HostelRole.STUDENT:
                builder.add_student(principal_id, membership.hostel_id)
            elif membership.role == HostelRole.PARENT:
                is_parent = True

        if is_parent:
            linked = await self.graph.students_for(principal_id)
            for student_membership in await self.graph.student_memberships(linked):
                builder.add_role(
                    student_membership.hostel_id,
                    student_membership.organization_id,
                    HostelRole.PARENT,
                )
                builder.add_student(student_membership.user_id, student_membership.hostel_id)
                builder.linked_student_ids.add(student_membership.user_id)

        if operation == Operation.WRITE:
            await self._drop_inactive(builder)

        if target is not None and not target.is_empty:
            if not builder.narrow(target):
                logger.info(
                    "Principal %s selected organization=%s hostel=%s outside their scope",
                    principal_id,
                    target.organization_id,
                    target.hostel_id,
                )
                return AccessScope.empty(principal_id, operation)

        return builder.build(operation)

    async def _drop_inactive(self, builder: _ScopeBuilder) -> None:
        """Suspended organizations and inactive hostels accept no writes."""
        organizations = await self.org_dao.get_many(sorted(builder.organization_ids))
        suspended = {o.id for o in organizations if not o.is_active}
        hostels = await self.hostel_dao.get_many(sorted(builder.hostel_organizations))
        inactive = {h.id for h in hostels if not h.is_active}
        if suspended or inactive:
            builder.drop(suspended, inactive)
