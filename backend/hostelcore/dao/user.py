"""
User Data Access Object.

WHY: Users are global identities. Nothing here is tenant-scoped; which
users a principal may see is decided by the membership graph, not by a
column on the user row.
"""

from typing import List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.dao.base import BaseDAO
from hostelcore.models.user import User
from hostelcore.core.exceptions import ConstraintViolation


class UserDAO(BaseDAO[User]):
    """Data Access Object for User model."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address.

        WHY: Case-insensitive comparison prevents duplicate accounts with
        different casing (warden@example.com vs WARDEN@EXAMPLE.COM).

        Example:
            >>> user = await user_dao.get_by_email("warden@example.com")
            >>> user.email
            'warden@example.com'
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        result = await self.session.execute(
            select(User.id).where(func.lower(User.email) == email.lower()).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_user(
        self,
        email: str,
        name: str,
        hashed_password: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        """
        Create a new user.

        Args:
            email: User's email address (globally unique)
            name: Display name
            hashed_password: Already hashed password, None for invited users
            phone: Optional phone number

        Returns:
            Created User instance

        Raises:
            ConstraintViolation: If the email is already registered
        """
        if await self.email_exists(email):
            raise ConstraintViolation(
                message="User with this email already exists",
                resource_type="User",
                email=email,
            )

        return await self.create(
            email=email.lower(),
            name=name,
            hashed_password=hashed_password,
            phone=phone,
            is_active=True,
        )

    async def get_many(self, ids: Sequence[int]) -> List[User]:
        if not ids:
            return []
        result = await self.session.execute(select(User).where(User.id.in_(list(ids))))
        return list(result.scalars().all())

    async def deactivate_user(self, user_id: int) -> Optional[User]:
        """Disable a login without touching memberships."""
        return await self.update(user_id, is_active=False)
