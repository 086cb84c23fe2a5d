"""
Access scope types.

WHAT: The value produced by scope resolution and consumed by the guard.

WHY: An AccessScope is computed once per request from live membership data
and never cached, so a revoked membership or a newly created hostel takes
effect on the very next request. It is immutable; nothing downstream can
widen it.
"""

import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from hostelcore.models.membership import HostelRole


class Operation(str, enum.Enum):
    """Kind of access being requested."""

    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class ScopeTarget:
    """
    Organization/hostel context selected by the client.

    A target can only narrow a scope. Selecting something outside the
    principal's scope yields an empty scope, never an error.
    """

    organization_id: Optional[int] = None
    hostel_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.organization_id is None and self.hostel_id is None


@dataclass(frozen=True)
class AccessScope:
    """
    Everything a principal may act on for one operation.

    Fields:
    - organization_ids: organizations the principal has any standing in
    - hostel_ids: hostels reachable through any role
    - student_ids: the principal itself (if a student) plus linked students
    - is_org_admin_for: organizations where the principal is owner/admin
    - hostel_roles: hostel id -> roles held there (parent roles included for
      the hostels of linked students)
    - linked_student_ids: students reached through parent links
    - hostel_organizations: hostel id -> owning organization id
    """

    principal_id: int
    operation: Operation = Operation.READ
    organization_ids: FrozenSet[int] = frozenset()
    hostel_ids: FrozenSet[int] = frozenset()
    student_ids: FrozenSet[int] = frozenset()
    is_org_admin_for: FrozenSet[int] = frozenset()
    hostel_roles: Mapping[int, FrozenSet[HostelRole]] = field(default_factory=dict)
    linked_student_ids: FrozenSet[int] = frozenset()
    hostel_organizations: Mapping[int, int] = field(default_factory=dict)

    @classmethod
    def empty(cls, principal_id: int, operation: Operation = Operation.READ) -> "AccessScope":
        """Scope of a principal with no active memberships."""
        return cls(principal_id=principal_id, operation=operation)

    @property
    def is_empty(self) -> bool:
        return not self.organization_ids

    def roles_in(self, hostel_id: int) -> FrozenSet[HostelRole]:
        return self.hostel_roles.get(hostel_id, frozenset())

    def has_role(self, hostel_id: int, *roles: HostelRole) -> bool:
        return bool(self.roles_in(hostel_id) & set(roles))

    def is_staff_in(self, hostel_id: int) -> bool:
        """Staff or hostel admin in the hostel, or admin of its organization."""
        organization_id = self.hostel_organizations.get(hostel_id)
        if organization_id is not None and organization_id in self.is_org_admin_for:
            return True
        return self.has_role(hostel_id, HostelRole.HOSTEL_ADMIN, HostelRole.STAFF)

    def can_administer(self, organization_id: int, hostel_id: Optional[int] = None) -> bool:
        """
        True if the principal may manage memberships at this level.

        Organization admins administer every hostel of their organization;
        hostel admins administer only their hostel. Staff never do.
        """
        if organization_id in self.is_org_admin_for:
            return True
        if hostel_id is None:
            return False
        return (
            self.hostel_organizations.get(hostel_id) == organization_id
            and self.has_role(hostel_id, HostelRole.HOSTEL_ADMIN)
        )
