"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from hostelcore.models.base import Base, TimestampMixin, PrimaryKeyMixin
from hostelcore.models.organization import Organization, OrganizationStatus
from hostelcore.models.hostel import Hostel, Room
from hostelcore.models.user import User
from hostelcore.models.membership import (
    OrganizationMembership,
    OrganizationRole,
    HostelMembership,
    HostelRole,
    MembershipStatus,
    ParentStudentLink,
    RelationshipType,
    STAFF_ROLES,
    VALID_MEMBERSHIP_TRANSITIONS,
)
from hostelcore.models.leave import Leave, LeaveStatus, ReviewStatus, ApprovalFlow
from hostelcore.models.complaint import (
    Complaint,
    ComplaintStatus,
    ComplaintCategory,
    VALID_COMPLAINT_TRANSITIONS,
)
from hostelcore.models.announcement import Announcement
from hostelcore.models.attendance import AttendanceLog, AttendanceStatus
from hostelcore.models.mess_photo import MessPhoto, Meal
from hostelcore.models.audit_log import AuditLog, AuditAction

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "Organization",
    "OrganizationStatus",
    "Hostel",
    "Room",
    "User",
    "OrganizationMembership",
    "OrganizationRole",
    "HostelMembership",
    "HostelRole",
    "MembershipStatus",
    "ParentStudentLink",
    "RelationshipType",
    "STAFF_ROLES",
    "VALID_MEMBERSHIP_TRANSITIONS",
    "Leave",
    "LeaveStatus",
    "ReviewStatus",
    "ApprovalFlow",
    "Complaint",
    "ComplaintStatus",
    "ComplaintCategory",
    "VALID_COMPLAINT_TRANSITIONS",
    "Announcement",
    "AttendanceLog",
    "AttendanceStatus",
    "MessPhoto",
    "Meal",
    "AuditLog",
    "AuditAction",
]
