"""
Audit Log Data Access Object (DAO).

WHAT: Data access layer for audit log operations.

WHY: Membership changes and denied access attempts must leave a trail that
cannot be edited afterwards. This DAO provides:
- Append-only writes (update/delete are blocked)
- Convenience methods for security and membership events
- Query methods for investigations

HOW: Does not extend BaseDAO so that no generic update path exists.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.core.exceptions import AuditLogImmutableError
from hostelcore.models.audit_log import AuditAction, AuditLog


class AuditLogDAO:
    """
    Data Access Object for audit log operations.

    WHAT: Provides methods for creating and querying audit logs.

    HOW: Uses SQLAlchemy async session for all operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        action: AuditAction,
        resource_type: str,
        actor_user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        organization_id: Optional[int] = None,
        changes: Optional[Dict[str, Any]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Create a new audit log entry.

        Args:
            action: Type of event (from AuditAction enum)
            resource_type: Category of affected resource
            actor_user_id: Principal who performed the action
            resource_id: Specific resource ID (nullable)
            organization_id: Tenant context (nullable for global events)
            changes: Before/after values for mutations
            extra_data: Additional context (deny reason, requested ids)
            ip_address: Client IP address
            user_agent: Client browser/application info

        Returns:
            The created AuditLog entry
        """
        log = AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            organization_id=organization_id,
            changes=changes,
            extra_data=extra_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(log)
        await self.session.flush()
        await self.session.refresh(log)
        return log

    async def get_by_id(self, log_id: int) -> Optional[AuditLog]:
        result = await self.session.execute(select(AuditLog).where(AuditLog.id == log_id))
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: int, skip: int = 0, limit: int = 100) -> List[AuditLog]:
        """Retrieve audit logs where the user was the actor."""
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.actor_user_id == user_id)
            .order_by(AuditLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_action(self, action: AuditAction, skip: int = 0, limit: int = 100) -> List[AuditLog]:
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.action == action)
            .order_by(AuditLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_org(self, organization_id: int, skip: int = 0, limit: int = 100) -> List[AuditLog]:
        """
        Retrieve audit logs for a specific organization.

        WHY: Org admins review their own tenant's trail only.
        """
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.organization_id == organization_id)
            .order_by(AuditLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_resource(self, resource_type: str, resource_id: int) -> List[AuditLog]:
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.id)
        )
        return list(result.scalars().all())

    async def count_denials_since(self, actor_user_id: int, since: datetime) -> int:
        """
        Count denied access attempts by a principal since a point in time.

        WHY: Repeated cross-organization probing by one account is the
        signal worth alerting on.
        """
        result = await self.session.execute(
            select(func.count(AuditLog.id)).where(
                AuditLog.actor_user_id == actor_user_id,
                AuditLog.action.in_(
                    [AuditAction.ACCESS_DENIED, AuditAction.CROSS_ORG_ACCESS_DENIED]
                ),
                AuditLog.created_at >= since,
            )
        )
        return result.scalar() or 0

    async def update(self, log_id: int, **kwargs: Any) -> None:
        """
        Attempt to update an audit log (BLOCKED).

        Raises:
            AuditLogImmutableError: Always raised
        """
        raise AuditLogImmutableError("Audit logs are immutable and cannot be updated")

    async def delete(self, log_id: int) -> None:
        """
        Attempt to delete an audit log (BLOCKED).

        Raises:
            AuditLogImmutableError: Always raised
        """
        raise AuditLogImmutableError("Audit logs cannot be deleted")
