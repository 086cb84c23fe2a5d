"""
Membership graph models.

WHAT: Organization memberships, hostel memberships and parent-student links.

WHY: These three tables replace a single global role on the user record.
Access is resolved per request by joining over them, so revoking a role takes
effect on the very next request.

HOW:
- OrganizationMembership grants organization-wide scope (owner/admin).
- HostelMembership grants hostel-scoped capability (admin/staff/student/parent).
- ParentStudentLink is a global many-to-many between two users, independent
  of any hostel.
"""

import enum
from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    UniqueConstraint,
)

from hostelcore.models.base import Base, TimestampMixin, PrimaryKeyMixin, enum_type


class OrganizationRole(str, enum.Enum):
    """Roles that grant organization-wide scope."""

    ORG_OWNER = "org_owner"
    ORG_ADMIN = "org_admin"


class HostelRole(str, enum.Enum):
    """
    Roles that grant hostel-scoped capability.

    Ordered from most to least permissive; the access guard evaluates a
    principal's roles in a hostel in this order.
    """

    HOSTEL_ADMIN = "hostel_admin"
    STAFF = "staff"
    STUDENT = "student"
    PARENT = "parent"


STAFF_ROLES = frozenset({HostelRole.HOSTEL_ADMIN, HostelRole.STAFF})


class MembershipStatus(str, enum.Enum):
    """Membership lifecycle. Rows are never hard-deleted."""

    INVITED = "invited"
    ACTIVE = "active"
    SUSPENDED = "suspended"


# Valid status transitions
VALID_MEMBERSHIP_TRANSITIONS = {
    MembershipStatus.INVITED: [MembershipStatus.ACTIVE, MembershipStatus.SUSPENDED],
    MembershipStatus.ACTIVE: [MembershipStatus.SUSPENDED],
    MembershipStatus.SUSPENDED: [MembershipStatus.ACTIVE],  # Reinstate
}


class RelationshipType(str, enum.Enum):
    """How a parent-side user relates to the student."""

    FATHER = "father"
    MOTHER = "mother"
    GUARDIAN = "guardian"
    OTHER = "other"


class OrganizationMembership(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Organization-level role grant.

    One role per (organization, user); changing the role updates the row.
    """

    __tablename__ = "organization_memberships"

    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(enum_type(OrganizationRole, "organizationrole"), nullable=False)
    status = Column(
        enum_type(MembershipStatus, "org_membershipstatus"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_memberships_org_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrganizationMembership(org={self.organization_id}, user={self.user_id}, "
            f"role={self.role}, status={self.status})>"
        )


class HostelMembership(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Hostel-level role grant.

    WHY: organization_id is denormalized from the hostel so scope resolution
    and tenancy checks never need an extra join. room_id is required iff the
    role is student; a CHECK constraint mirrors the service-level rule.
    """

    __tablename__ = "hostel_memberships"

    hostel_id = Column(Integer, ForeignKey("hostels.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(enum_type(HostelRole, "hostelrole"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    status = Column(
        enum_type(MembershipStatus, "hostel_membershipstatus"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )

    __table_args__ = (
        UniqueConstraint("hostel_id", "user_id", name="uq_hostel_memberships_hostel_user"),
        CheckConstraint(
            "(role = 'student' AND room_id IS NOT NULL) OR (role <> 'student' AND room_id IS NULL)",
            name="ck_hostel_memberships_student_room",
        ),
    )

    @property
    def occupies_bed(self) -> bool:
        """True if this membership counts toward its room's occupancy."""
        return (
            self.role == HostelRole.STUDENT
            and self.room_id is not None
            and self.status != MembershipStatus.SUSPENDED
        )

    def __repr__(self) -> str:
        return (
            f"<HostelMembership(hostel={self.hostel_id}, user={self.user_id}, "
            f"role={self.role}, status={self.status})>"
        )


class ParentStudentLink(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Global parent-student relationship.

    WHY: A parent may have children in different hostels (even different
    organizations); the link carries no tenancy of its own. Scope is derived
    from the student's hostel memberships at resolution time.
    """

    __tablename__ = "parent_student_links"

    parent_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    student_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    relationship_type = Column(
        enum_type(RelationshipType, "relationshiptype"),
        nullable=False,
        default=RelationshipType.GUARDIAN,
    )

    __table_args__ = (
        UniqueConstraint("parent_user_id", "student_user_id", name="uq_parent_student_links_pair"),
        CheckConstraint("parent_user_id <> student_user_id", name="ck_parent_student_links_distinct"),
    )

    def __repr__(self) -> str:
        return f"<ParentStudentLink(parent={self.parent_user_id}, student={self.student_user_id})>"
