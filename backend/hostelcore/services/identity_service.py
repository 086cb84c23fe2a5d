"""
Identity service.

WHAT: Creation and soft-deactivation of organizations, hostels, users and
rooms, plus the signup bootstrap.

WHY: Organizations and hostels are the tenancy keys every other row carries.
Signup must create the user, the organization, its first hostel and the
owner membership together: a half-finished signup would leave an
organization nobody administers, or a user who owns nothing.

HOW: Each operation runs in Store.transaction(). bootstrap_signup nests all
four steps inside one outer transaction; a failure in any step rolls back
every row (audit rows included).
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import require_admin
from hostelcore.access.scope import AccessScope
from hostelcore.core.auth import create_access_token, hash_password
from hostelcore.core.exceptions import (
    ConstraintViolation,
    HostelNotFoundError,
    OrganizationNotFoundError,
    ValidationError,
)
from hostelcore.dao.organization import HostelDAO, OrganizationDAO
from hostelcore.dao.room import RoomDAO
from hostelcore.dao.user import UserDAO
from hostelcore.db.store import Store
from hostelcore.models.audit_log import AuditAction
from hostelcore.models.hostel import Hostel, Room
from hostelcore.models.membership import MembershipStatus, OrganizationMembership, OrganizationRole
from hostelcore.models.organization import Organization, OrganizationStatus
from hostelcore.models.user import User
from hostelcore.services.audit import AuditService
from hostelcore.services.membership_graph import MembershipGraph

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MIN_PASSWORD_LENGTH = 8


@dataclass
class SignupResult:
    """Everything created by a successful signup."""

    user: User
    organization: Organization
    hostel: Hostel
    membership: OrganizationMembership
    access_token: str


class IdentityService:
    """
    Service for tenancy roots and global identities.

    Example:
        service = IdentityService(db)
        result = await service.bootstrap_signup(
            email="owner@example.com",
            password="s3cure-pass",
            name="Asha Rao",
            organization_name="Green Valley Hostels",
            slug="green-valley",
            hostel_name="Boys Hostel 1",
            hostel_code="BH1",
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = Store(session)
        self.org_dao = OrganizationDAO(session)
        self.hostel_dao = HostelDAO(session)
        self.room_dao = RoomDAO(session)
        self.user_dao = UserDAO(session)
        self.graph = MembershipGraph(session)
        self.audit = AuditService(session)

    # =========================================================================
    # Organizations
    # =========================================================================

    async def create_organization(
        self,
        name: str,
        slug: str,
        actor_user_id: Optional[int] = None,
    ) -> Organization:
        """
        Create an organization.

        Raises:
            ValidationError: If the slug is malformed
            ConstraintViolation: If the slug is taken
        """
        slug = slug.strip().lower()
        if not SLUG_PATTERN.match(slug):
            raise ValidationError(
                message="Slug may contain lowercase letters, digits and single hyphens",
                field="slug",
            )

        async with self.store.transaction():
            if await self.org_dao.slug_exists(slug):
                raise ConstraintViolation(message="Organization slug already taken", slug=slug)
            organization = await self.org_dao.create(
                name=name.strip(),
                slug=slug,
                status=OrganizationStatus.ACTIVE,
            )

        await self.audit.log_event(
            action=AuditAction.ORG_CREATED,
            resource_type="organization",
            actor_user_id=actor_user_id,
            resource_id=organization.id,
            organization_id=organization.id,
        )
        return organization

    async def deactivate_organization(
        self,
        organization_id: int,
        scope: Optional[AccessScope] = None,
    ) -> Organization:
        """
        Suspend an organization.

        WHY: Soft only. Members keep read access to history; the resolver
        removes the organization from every write scope.
        """
        organization = await self.org_dao.get_by_id(organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id=organization_id)
        if scope is not None:
            require_admin(scope, organization_id)
        if not organization.is_active:
            return organization

        async with self.store.transaction():
            organization = await self.org_dao.update(
                organization_id, status=OrganizationStatus.SUSPENDED
            )

        logger.warning("Organization %s deactivated", organization_id)
        await self.audit.log_event(
            action=AuditAction.ORG_DEACTIVATED,
            resource_type="organization",
            actor_user_id=scope.principal_id if scope else None,
            resource_id=organization_id,
            organization_id=organization_id,
        )
        return organization

    # =========================================================================
    # Hostels and rooms
    # =========================================================================

    async def create_hostel(
        self,
        organization_id: int,
        name: str,
        code: str,
        scope: Optional[AccessScope] = None,
    ) -> Hostel:
        """
        Create a hostel inside an organization.

        WHY: Org admins see the new hostel on their next request without any
        membership change, because their scope lists hostels live.

        Raises:
            OrganizationNotFoundError
            ConstraintViolation: If the code is taken within the organization
        """
        if await self.org_dao.get_by_id(organization_id) is None:
            raise OrganizationNotFoundError(organization_id=organization_id)
        if scope is not None:
            require_admin(scope, organization_id)
        code = code.strip().upper()
        if not code:
            raise ValidationError(message="Hostel code is required", field="code")

        async with self.store.transaction():
            if await self.hostel_dao.get_by_code(organization_id, code):
                raise ConstraintViolation(
                    message="Hostel code already used in this organization",
                    organization_id=organization_id,
                    code=code,
                )
            hostel = await self.hostel_dao.create(
                organization_id=organization_id,
                name=name.strip(),
                code=code,
                is_active=True,
            )

        await self.audit.log_event(
            action=AuditAction.HOSTEL_CREATED,
            resource_type="hostel",
            actor_user_id=scope.principal_id if scope else None,
            resource_id=hostel.id,
            organization_id=organization_id,
        )
        return hostel

    async def deactivate_hostel(self, hostel_id: int, scope: Optional[AccessScope] = None) -> Hostel:
        """Soft-deactivate a hostel; memberships keep referencing it."""
        hostel = await self.hostel_dao.get_by_id(hostel_id)
        if hostel is None:
            raise HostelNotFoundError(hostel_id=hostel_id)
        if scope is not None:
            require_admin(scope, hostel.organization_id)
        if not hostel.is_active:
            return hostel

        async with self.store.transaction():
            hostel = await self.hostel_dao.update(hostel_id, is_active=False)

        await self.audit.log_event(
            action=AuditAction.HOSTEL_DEACTIVATED,
            resource_type="hostel",
            actor_user_id=scope.principal_id if scope else None,
            resource_id=hostel_id,
            organization_id=hostel.organization_id,
        )
        return hostel

    async def create_room(
        self,
        hostel_id: int,
        room_number: str,
        capacity: int,
        scope: Optional[AccessScope] = None,
    ) -> Room:
        """
        Add a room to a hostel.

        Raises:
            HostelNotFoundError
            ValidationError: If capacity is not positive
            ConstraintViolation: If the room number exists in the hostel
        """
        if capacity <= 0:
            raise ValidationError(message="Room capacity must be positive", field="capacity")
        hostel = await self.hostel_dao.get_by_id(hostel_id)
        if hostel is None:
            raise HostelNotFoundError(hostel_id=hostel_id)
        if scope is not None:
            require_admin(scope, hostel.organization_id, hostel.id)

        room_number = room_number.strip()
        async with self.store.transaction():
            if await self.room_dao.get_by_number(hostel_id, room_number):
                raise ConstraintViolation(
                    message="Room number already exists in this hostel",
                    hostel_id=hostel_id,
                    room_number=room_number,
                )
            room = await self.room_dao.create(
                hostel_id=hostel_id,
                room_number=room_number,
                capacity=capacity,
                current_occupancy=0,
            )
        return room

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user(
        self,
        email: str,
        name: str,
        password: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        """
        Create a global user.

        A user created without a password (invited parent, student) cannot
        log in until one is set.

        Raises:
            ValidationError: Malformed email or short password
            ConstraintViolation: If the email is registered
        """
        email = email.strip()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError(message="Invalid email address", field="email")
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                field="password",
            )

        hashed = hash_password(password) if password is not None else None
        async with self.store.transaction():
            user = await self.user_dao.create_user(
                email=email,
                name=name.strip(),
                hashed_password=hashed,
                phone=phone,
            )
        logger.info("Created user %s", user.id)
        return user

    # =========================================================================
    # Signup
    # =========================================================================

    async def bootstrap_signup(
        self,
        email: str,
        password: str,
        name: str,
        organization_name: str,
        slug: str,
        hostel_name: str,
        hostel_code: str,
    ) -> SignupResult:
        """
        Create user, organization, first hostel and owner membership at once.

        Raises:
            ValidationError / ConstraintViolation: From any step; nothing
                is left behind in that case
        """
        if password is None:
            raise ValidationError(message="Password is required", field="password")

        async with self.store.transaction():
            user = await self.create_user(email=email, name=name, password=password)
            organization = await self.create_organization(
                name=organization_name, slug=slug, actor_user_id=user.id
            )
            hostel = await self.create_hostel(
                organization_id=organization.id, name=hostel_name, code=hostel_code
            )
            membership = await self.graph.create_organization_membership(
                organization_id=organization.id,
                user_id=user.id,
                role=OrganizationRole.ORG_OWNER,
                status=MembershipStatus.ACTIVE,
                actor_user_id=user.id,
            )
            await self.audit.log_event(
                action=AuditAction.SIGNUP_BOOTSTRAP,
                resource_type="organization",
                actor_user_id=user.id,
                resource_id=organization.id,
                organization_id=organization.id,
                extra_data={"hostel_id": hostel.id},
            )

        logger.info("Signup bootstrap: user=%s organization=%s", user.id, organization.id)
        return SignupResult(
            user=user,
            organization=organization,
            hostel=hostel,
            membership=membership,
            access_token=create_access_token({"sub": str(user.id)}),
        )
