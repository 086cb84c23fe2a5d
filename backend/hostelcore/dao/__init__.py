"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and the
access and business logic, making the codebase more testable and maintainable.
"""

from hostelcore.dao.base import BaseDAO
from hostelcore.dao.user import UserDAO
from hostelcore.dao.audit_log import AuditLogDAO
from hostelcore.dao.organization import OrganizationDAO, HostelDAO
from hostelcore.dao.room import RoomDAO
from hostelcore.dao.membership import (
    OrganizationMembershipDAO,
    HostelMembershipDAO,
    ParentStudentLinkDAO,
)
from hostelcore.dao.leave import LeaveDAO
from hostelcore.dao.complaint import ComplaintDAO
from hostelcore.dao.announcement import AnnouncementDAO
from hostelcore.dao.attendance import AttendanceLogDAO
from hostelcore.dao.mess_photo import MessPhotoDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "AuditLogDAO",
    "OrganizationDAO",
    "HostelDAO",
    "RoomDAO",
    "OrganizationMembershipDAO",
    "HostelMembershipDAO",
    "ParentStudentLinkDAO",
    "LeaveDAO",
    "ComplaintDAO",
    "AnnouncementDAO",
    "AttendanceLogDAO",
    "MessPhotoDAO",
]
