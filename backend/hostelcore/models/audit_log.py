"""
Audit Log Model.

WHAT: SQLAlchemy model for storing security and membership audit events.

WHY: Memberships are never hard-deleted and cross-organization access
attempts must be recorded as security events, so the audit table is the
history of who was granted what, and who tried to reach outside their tenant.

HOW: Append-only table. JSON columns hold before/after values and free-form
context (JSONB on PostgreSQL, JSON on SQLite).
"""

import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Text, JSON

from hostelcore.models.base import Base, TimestampMixin, PrimaryKeyMixin, enum_type


class AuditAction(str, enum.Enum):
    """
    Enumeration of auditable actions.

    Categories:
    - Access: guard denials
    - Membership: grants, status changes, role changes, parent links
    - Tenancy: organization/hostel lifecycle and signup
    - Records: attendance overrides and other administrative corrections
    """

    # Access events
    ACCESS_DENIED = "ACCESS_DENIED"
    CROSS_ORG_ACCESS_DENIED = "CROSS_ORG_ACCESS_DENIED"

    # Membership events
    MEMBERSHIP_GRANTED = "MEMBERSHIP_GRANTED"
    MEMBERSHIP_STATUS_CHANGED = "MEMBERSHIP_STATUS_CHANGED"
    ROLE_CHANGE = "ROLE_CHANGE"
    ROOM_REASSIGNED = "ROOM_REASSIGNED"
    PARENT_LINKED = "PARENT_LINKED"
    PARENT_UNLINKED = "PARENT_UNLINKED"

    # Tenancy events
    SIGNUP_BOOTSTRAP = "SIGNUP_BOOTSTRAP"
    ORG_CREATED = "ORG_CREATED"
    ORG_DEACTIVATED = "ORG_DEACTIVATED"
    HOSTEL_CREATED = "HOSTEL_CREATED"
    HOSTEL_DEACTIVATED = "HOSTEL_DEACTIVATED"

    # Record events
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"


class AuditLog(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Immutable audit log entry.

    Fields:
    - actor_user_id: Who performed the action
    - action: What happened (AuditAction)
    - resource_type / resource_id: What it happened to
    - organization_id: Tenant context (nullable for global events such as
      parent links)
    - changes: Before/after values
    - extra_data: Additional context (deny reason, requested ids)
    - ip_address / user_agent: Request context
    """

    __tablename__ = "audit_logs"

    actor_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    action = Column(enum_type(AuditAction, "auditaction"), nullable=False, index=True)

    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(Integer, nullable=True, index=True)

    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Example: {"role": {"before": "staff", "after": "hostel_admin"}}
    changes = Column(JSON, nullable=True)

    # NOTE: Named 'extra_data' because 'metadata' is reserved by SQLAlchemy
    extra_data = Column(JSON, nullable=True)

    ip_address = Column(String(45), nullable=True, index=True)  # IPv6 max length
    user_agent = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, action={self.action}, "
            f"actor_user_id={self.actor_user_id}, resource_type={self.resource_type})>"
        )
