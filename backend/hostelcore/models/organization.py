"""
Organization model.

WHY: Organizations are the root of tenancy. Every hostel, membership and
domain record hangs off exactly one organization, and the organization_id
is the hard boundary the Access Guard never lets a principal cross.
"""

import enum
from sqlalchemy import Column, String

from hostelcore.models.base import Base, TimestampMixin, PrimaryKeyMixin, enum_type


class OrganizationStatus(str, enum.Enum):
    """Lifecycle of a tenant. Deactivation is soft."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class Organization(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Organization model representing a tenant (a hostel operator).

    Each organization has:
    - A display name and a globally unique slug
    - A status (suspended tenants keep read access to history)
    - Hostels and organization-level memberships
    """

    __tablename__ = "organizations"

    name = Column(String(255), nullable=False, index=True)

    # WHY: slug is the stable public handle chosen at signup
    slug = Column(String(100), nullable=False, unique=True, index=True)

    status = Column(
        enum_type(OrganizationStatus, "organizationstatus"),
        nullable=False,
        default=OrganizationStatus.ACTIVE,
    )

    @property
    def is_active(self) -> bool:
        return self.status == OrganizationStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug={self.slug})>"
