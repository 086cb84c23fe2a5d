"""
Audit logging service.

WHAT: Service layer for creating audit log entries with request context.

WHY: Membership grants, role changes, parent links, attendance overrides and
denied cross-organization access all need a durable trail. This service:
- Extracts IP/user agent from the request middleware automatically
- Offers typed methods for the events the access core produces
- Never breaks the business operation if writing the audit row fails

HOW: Each row is written inside its own SAVEPOINT, so a failed audit insert
rolls back only itself and leaves the caller's transaction usable. Access
denials are the exception: the request that triggered them usually fails and
is rolled back, so they are written through a separate session and committed
on their own.
"""

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.audit_log import AuditLogDAO
from hostelcore.db.session import AsyncSessionLocal
from hostelcore.middleware.request_context import get_request_context
from hostelcore.models.audit_log import AuditAction, AuditLog


# Logger for audit service errors (not audit events themselves)
logger = logging.getLogger(__name__)


class AuditService:
    """
    Service for creating audit log entries.

    Example:
        audit = AuditService(db)
        await audit.log_membership_granted(actor_id, membership)
    """

    def __init__(
        self,
        session: AsyncSession,
        security_session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        """
        Args:
            session: The caller's session; ordinary events join its transaction
            security_session_factory: Factory for the independent sessions
                security events are committed through. Defaults to the
                application session factory.
        """
        self.dao = AuditLogDAO(session)
        self._session = session
        self._security_session_factory = security_session_factory

    def _get_context(self) -> tuple[Optional[str], Optional[str]]:
        """Return (ip_address, user_agent) from the current request, if any."""
        ctx = get_request_context()
        if ctx:
            return ctx.ip_address, ctx.user_agent
        return None, None

    async def log_event(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        organization_id: Optional[int] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Log a generic audit event.

        Returns:
            Created AuditLog or None if logging failed

        Note:
            This method never raises. Errors are logged to the application
            logger instead.
        """
        ip_address, user_agent = self._get_context()
        try:
            async with self._session.begin_nested():
                return await self.dao.create(
                    action=action,
                    resource_type=resource_type,
                    actor_user_id=actor_user_id,
                    resource_id=resource_id,
                    organization_id=organization_id,
                    changes=changes,
                    extra_data=extra_data,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
        except Exception as e:
            # Audit logging must never break the operation being audited
            logger.error(f"Failed to create audit log: {e}", exc_info=True)
            return None

    async def log_security_event(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        organization_id: Optional[int] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Log an event that must outlive the caller's transaction.

        WHY: A denied request raises, and get_db rolls its session back. A
        row written in that session would vanish with it, so the event gets
        a session of its own and is committed immediately.

        Returns:
            Created AuditLog or None if logging failed

        Note:
            Like log_event, this never raises.
        """
        ip_address, user_agent = self._get_context()
        session_factory = self._security_session_factory or AsyncSessionLocal
        session = session_factory()
        try:
            log = await AuditLogDAO(session).create(
                action=action,
                resource_type=resource_type,
                actor_user_id=actor_user_id,
                resource_id=resource_id,
                organization_id=organization_id,
                extra_data=extra_data,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await session.commit()
            return log
        except Exception as e:
            await session.rollback()
            logger.error(f"Failed to create security audit log: {e}", exc_info=True)
            return None
        finally:
            await session.close()

    # =========================================================================
    # Access Events
    # =========================================================================

    async def log_access_denied(
        self,
        actor_user_id: int,
        resource_type: str,
        resource_id: Optional[int],
        organization_id: Optional[int],
        reason: str,
        cross_organization: bool = False,
    ) -> Optional[AuditLog]:
        """
        Log a guard denial.

        WHY: organization_id is the *record's* organization, so an org admin
        can see who from outside tried to reach their data.

        Written through log_security_event so it survives the rollback of
        the denied request.
        """
        return await self.log_security_event(
            action=(
                AuditAction.CROSS_ORG_ACCESS_DENIED
                if cross_organization
                else AuditAction.ACCESS_DENIED
            ),
            resource_type=resource_type,
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            organization_id=organization_id,
            extra_data={"reason": reason},
        )

    # =========================================================================
    # Membership Events
    # =========================================================================

    async def log_membership_granted(
        self,
        actor_user_id: Optional[int],
        resource_type: str,
        resource_id: int,
        organization_id: int,
        user_id: int,
        role: str,
        status: str,
    ) -> Optional[AuditLog]:
        return await self.log_event(
            action=AuditAction.MEMBERSHIP_GRANTED,
            resource_type=resource_type,
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            organization_id=organization_id,
            extra_data={"user_id": user_id, "role": role, "status": status},
        )

    async def log_status_change(
        self,
        actor_user_id: Optional[int],
        resource_id: int,
        organization_id: int,
        old_status: str,
        new_status: str,
    ) -> Optional[AuditLog]:
        return await self.log_event(
            action=AuditAction.MEMBERSHIP_STATUS_CHANGED,
            resource_type="hostel_membership",
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            organization_id=organization_id,
            changes={"status": {"before": old_status, "after": new_status}},
        )

    async def log_role_change(
        self,
        actor_user_id: Optional[int],
        resource_id: int,
        organization_id: int,
        old_role: str,
        new_role: str,
    ) -> Optional[AuditLog]:
        """
        Log a role change.

        WHY: Role changes alter what a user can see across a whole hostel;
        they are the first thing checked when investigating a data exposure.
        """
        return await self.log_event(
            action=AuditAction.ROLE_CHANGE,
            resource_type="hostel_membership",
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            organization_id=organization_id,
            changes={"role": {"before": old_role, "after": new_role}},
        )

    async def log_room_reassigned(
        self,
        actor_user_id: Optional[int],
        resource_id: int,
        organization_id: int,
        old_room_id: Optional[int],
        new_room_id: Optional[int],
    ) -> Optional[AuditLog]:
        return await self.log_event(
            action=AuditAction.ROOM_REASSIGNED,
            resource_type="hostel_membership",
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            organization_id=organization_id,
            changes={"room_id": {"before": old_room_id, "after": new_room_id}},
        )

    async def log_parent_link(
        self,
        actor_user_id: Optional[int],
        parent_user_id: int,
        student_user_id: int,
        linked: bool,
        link_id: Optional[int] = None,
    ) -> Optional[AuditLog]:
        return await self.log_event(
            action=AuditAction.PARENT_LINKED if linked else AuditAction.PARENT_UNLINKED,
            resource_type="parent_student_link",
            actor_user_id=actor_user_id,
            resource_id=link_id,
            extra_data={"parent_user_id": parent_user_id, "student_user_id": student_user_id},
        )

    # =========================================================================
    # Record Events
    # =========================================================================

    async def log_admin_override(
        self,
        actor_user_id: int,
        resource_type: str,
        resource_id: int,
        organization_id: int,
        changes: Dict[str, Any],
        reason: str,
    ) -> Optional[AuditLog]:
        """Log an administrative correction of an otherwise immutable record."""
        return await self.log_event(
            action=AuditAction.ADMIN_OVERRIDE,
            resource_type=resource_type,
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            organization_id=organization_id,
            changes=changes,
            extra_data={"reason": reason},
        )
