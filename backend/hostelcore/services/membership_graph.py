"""
Membership graph service.

WHAT: Reads and mutations over organization memberships, hostel memberships
and parent-student links.

WHY: The graph is the substrate every authorization decision is computed
from, so its invariants are enforced here, transactionally:
- one membership per (hostel, user); role changes replace, never duplicate
- a student membership always has a room, and no other role has one
- room occupancy equals the number of non-suspended student memberships in
  the room and never exceeds capacity
- a user is never linked as their own parent

HOW: Every mutation runs inside Store.transaction() (a SAVEPOINT), so a
failure leaves nothing behind. Occupancy is moved only with conditional
UPDATE statements. Mutations take an optional AccessScope; when given, the
caller must administer the organization or hostel involved. Calls without a
scope are trusted internal calls (signup bootstrap, tests).
"""

import logging
from typing import List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.guard import DenyReason, require_admin
from hostelcore.access.scope import AccessScope
from hostelcore.core.config import settings
from hostelcore.core.exceptions import (
    ConstraintViolation,
    HostelNotFoundError,
    InvalidStateTransition,
    MembershipNotFoundError,
    OrganizationNotFoundError,
    RoomFull,
    RoomNotFoundError,
    Unauthorized,
    UserNotFoundError,
    ValidationError,
)
from hostelcore.dao.membership import (
    HostelMembershipDAO,
    OrganizationMembershipDAO,
    ParentStudentLinkDAO,
)
from hostelcore.dao.organization import HostelDAO, OrganizationDAO
from hostelcore.dao.room import RoomDAO
from hostelcore.dao.user import UserDAO
from hostelcore.db.store import Store
from hostelcore.models.hostel import Room
from hostelcore.models.membership import (
    VALID_MEMBERSHIP_TRANSITIONS,
    HostelMembership,
    HostelRole,
    MembershipStatus,
    OrganizationMembership,
    OrganizationRole,
    ParentStudentLink,
    RelationshipType,
)
from hostelcore.services.audit import AuditService

logger = logging.getLogger(__name__)


class MembershipGraph:
    """
    Query surface and mutation API for the membership graph.

    Example:
        graph = MembershipGraph(db)
        membership = await graph.create_membership(
            hostel_id, student_id, HostelRole.STUDENT, room_id=room.id
        )
    """

    def __init__(self, session: AsyncSession, room_assignment_retries: Optional[int] = None):
        self.session = session
        self.store = Store(session)
        self.org_dao = OrganizationDAO(session)
        self.hostel_dao = HostelDAO(session)
        self.room_dao = RoomDAO(session)
        self.user_dao = UserDAO(session)
        self.org_membership_dao = OrganizationMembershipDAO(session)
        self.hostel_membership_dao = HostelMembershipDAO(session)
        self.link_dao = ParentStudentLinkDAO(session)
        self.audit = AuditService(session)
        if room_assignment_retries is None:
            room_assignment_retries = settings.ROOM_ASSIGNMENT_RETRIES
        self.room_assignment_retries = max(0, room_assignment_retries)

    # =========================================================================
    # Reads
    # =========================================================================

    async def organizations_for(self, user_id: int) -> Set[OrganizationMembership]:
        """All active organization roles of a user."""
        return set(await self.org_membership_dao.list_active_for_user(user_id))

    async def hostels_for(self, user_id: int) -> Set[HostelMembership]:
        """All active hostel roles of a user."""
        return set(await self.hostel_membership_dao.list_active_for_user(user_id))

    async def students_for(self, parent_user_id: int) -> Set[int]:
        """
        Students linked to a parent who are currently enrolled somewhere.

        A link to a student with no active student membership yields nothing.
        """
        return await self.link_dao.enrolled_students_for_parent(parent_user_id)

    async def hostel_of(self, student_user_id: int) -> Set[int]:
        """
        Every hostel where the user holds an active student membership.

        Usually a single hostel, but a transfer can overlap two; callers must
        not assume a singleton.
        """
        memberships = await self.hostel_membership_dao.list_active_student_memberships(
            student_user_id
        )
        return {m.hostel_id for m in memberships}

    async def student_memberships(self, student_user_ids: Set[int]) -> List[HostelMembership]:
        """Active student memberships of several students."""
        return await self.hostel_membership_dao.list_active_students_among(sorted(student_user_ids))

    async def student_tenancy(
        self, student_user_id: int, hostel_id: Optional[int] = None
    ) -> HostelMembership:
        """
        The student membership a new record about this student belongs to.

        WHY: Tenancy keys of domain records are always copied from here,
        never taken from request input. A student enrolled in several hostels
        must name one of them explicitly.

        Raises:
            ValidationError: Not enrolled, ambiguous, or hostel_id is not one
                of the student's hostels
        """
        memberships = await self.hostel_membership_dao.list_active_student_memberships(
            student_user_id
        )
        if not memberships:
            raise ValidationError(
                message="Student is not enrolled in any hostel",
                student_id=student_user_id,
            )
        if hostel_id is not None:
            for membership in memberships:
                if membership.hostel_id == hostel_id:
                    return membership
            raise ValidationError(
                message="Student is not enrolled in the selected hostel",
                student_id=student_user_id,
                hostel_id=hostel_id,
            )
        if len(memberships) > 1:
            raise ValidationError(
                message="Student is enrolled in several hostels; select one",
                student_id=student_user_id,
                hostel_ids=[m.hostel_id for m in memberships],
            )
        return memberships[0]

    # =========================================================================
    # Organization memberships
    # =========================================================================

    async def create_organization_membership(
        self,
        organization_id: int,
        user_id: int,
        role: OrganizationRole,
        status: MembershipStatus = MembershipStatus.ACTIVE,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> OrganizationMembership:
        """
        Grant an organization-level role.

        Raises:
            OrganizationNotFoundError / UserNotFoundError
            Unauthorized: If scope is given and does not administer the org
            ConstraintViolation: If the user already has a role there
        """
        if await self.org_dao.get_by_id(organization_id) is None:
            raise OrganizationNotFoundError(organization_id=organization_id)
        await self._require_user(user_id)
        if scope is not None:
            require_admin(scope, organization_id)
        if status == MembershipStatus.SUSPENDED:
            raise ValidationError("A membership cannot be created suspended")

        async with self.store.transaction():
            if await self.org_membership_dao.get_for_org_user(organization_id, user_id):
                raise ConstraintViolation(
                    message="User already has a role in this organization",
                    organization_id=organization_id,
                    user_id=user_id,
                )
            membership = await self.org_membership_dao.create(
                organization_id=organization_id,
                user_id=user_id,
                role=role,
                status=status,
            )

        logger.info(
            "Granted %s in organization %s to user %s", role.value, organization_id, user_id
        )
        await self.audit.log_membership_granted(
            actor_user_id=actor_user_id,
            resource_type="organization_membership",
            resource_id=membership.id,
            organization_id=organization_id,
            user_id=user_id,
            role=role.value,
            status=status.value,
        )
        return membership

    # =========================================================================
    # Hostel memberships
    # =========================================================================

    async def create_membership(
        self,
        hostel_id: int,
        user_id: int,
        role: HostelRole,
        room_id: Optional[int] = None,
        status: MembershipStatus = MembershipStatus.ACTIVE,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> HostelMembership:
        """
        Grant a hostel-level role.

        WHAT: Creates the membership and, for students, takes a bed in the
        room in the same transaction.

        Args:
            hostel_id: Hostel to join
            user_id: User being granted the role
            role: Hostel role
            room_id: Required iff role is STUDENT
            status: INVITED or ACTIVE (invited students already hold a bed)

        Raises:
            HostelNotFoundError / UserNotFoundError / RoomNotFoundError
            ConstraintViolation: Duplicate membership, missing/extra room,
                room of another hostel
            RoomFull: No free bed after the configured retries
        """
        hostel = await self.hostel_dao.get_by_id(hostel_id)
        if hostel is None:
            raise HostelNotFoundError(hostel_id=hostel_id)
        await self._require_user(user_id)
        if scope is not None:
            require_admin(scope, hostel.organization_id, hostel.id)
        if status == MembershipStatus.SUSPENDED:
            raise ValidationError("A membership cannot be created suspended")
        await self._check_room_for_role(hostel_id, role, room_id)

        async with self.store.transaction():
            if await self.hostel_membership_dao.get_for_hostel_user(hostel_id, user_id):
                raise ConstraintViolation(
                    message="User already has a membership in this hostel",
                    hostel_id=hostel_id,
                    user_id=user_id,
                )
            if role == HostelRole.STUDENT:
                await self._take_bed(room_id)
            membership = await self.hostel_membership_dao.create(
                hostel_id=hostel_id,
                organization_id=hostel.organization_id,
                user_id=user_id,
                role=role,
                room_id=room_id,
                status=status,
            )

        logger.info("Granted %s in hostel %s to user %s", role.value, hostel_id, user_id)
        await self.audit.log_membership_granted(
            actor_user_id=actor_user_id,
            resource_type="hostel_membership",
            resource_id=membership.id,
            organization_id=hostel.organization_id,
            user_id=user_id,
            role=role.value,
            status=status.value,
        )
        return membership

    async def change_membership_status(
        self,
        membership_id: int,
        status: MembershipStatus,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> HostelMembership:
        """
        Move a hostel membership along its lifecycle.

        WHY: A suspended student frees their bed; reinstating takes it back
        (and can fail with RoomFull if the room filled up meanwhile).

        Raises:
            MembershipNotFoundError
            InvalidStateTransition: If the transition is not allowed
            RoomFull: On reinstatement into a full room
        """
        membership = await self._get_membership(membership_id)
        if scope is not None:
            require_admin(scope, membership.organization_id, membership.hostel_id)

        old_status = membership.status
        if status not in VALID_MEMBERSHIP_TRANSITIONS.get(old_status, []):
            raise InvalidStateTransition(
                message=f"Cannot change membership from {old_status.value} to {status.value}",
                membership_id=membership_id,
            )

        async with self.store.transaction():
            if membership.role == HostelRole.STUDENT:
                held = old_status != MembershipStatus.SUSPENDED
                holds = status != MembershipStatus.SUSPENDED
                if holds and not held:
                    await self._take_bed(membership.room_id)
                elif held and not holds:
                    await self.room_dao.decrement_occupancy(membership.room_id)
            membership = await self.hostel_membership_dao.update(membership_id, status=status)

        await self.audit.log_status_change(
            actor_user_id=actor_user_id,
            resource_id=membership_id,
            organization_id=membership.organization_id,
            old_status=old_status.value,
            new_status=status.value,
        )
        return membership

    async def revoke_membership(
        self,
        membership_id: int,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> HostelMembership:
        """Suspend a membership. Rows are never deleted."""
        return await self.change_membership_status(
            membership_id, MembershipStatus.SUSPENDED, scope=scope, actor_user_id=actor_user_id
        )

    async def change_role(
        self,
        membership_id: int,
        role: HostelRole,
        room_id: Optional[int] = None,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> HostelMembership:
        """
        Replace the role on an existing membership.

        WHY: (hostel, user) is unique, so a warden promoting a student to
        staff updates the row instead of adding a second one. Beds are taken
        or released to match the new role.

        Raises:
            MembershipNotFoundError
            ConstraintViolation: Missing room for a student, room for a
                non-student, or room of another hostel
            RoomFull: If the new student room is full
        """
        membership = await self._get_membership(membership_id)
        if scope is not None:
            require_admin(scope, membership.organization_id, membership.hostel_id)
        if role == membership.role:
            return membership
        await self._check_room_for_role(membership.hostel_id, role, room_id)

        old_role = membership.role
        old_room_id = membership.room_id
        held_bed = membership.occupies_bed
        holds_bed = role == HostelRole.STUDENT and membership.status != MembershipStatus.SUSPENDED

        async with self.store.transaction():
            if holds_bed:
                await self._take_bed(room_id)
            if held_bed:
                await self.room_dao.decrement_occupancy(old_room_id)
            membership = await self.hostel_membership_dao.update(
                membership_id, role=role, room_id=room_id
            )

        await self.audit.log_role_change(
            actor_user_id=actor_user_id,
            resource_id=membership_id,
            organization_id=membership.organization_id,
            old_role=old_role.value,
            new_role=role.value,
        )
        return membership

    async def reassign_room(
        self,
        membership_id: int,
        room_id: int,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> HostelMembership:
        """
        Move a student to another room of the same hostel atomically.

        Raises:
            ConstraintViolation: If the membership is not a student one or
                the room belongs to another hostel
            RoomFull: If the target room is full (the old bed is kept)
        """
        membership = await self._get_membership(membership_id)
        if scope is not None:
            require_admin(scope, membership.organization_id, membership.hostel_id)
        if membership.role != HostelRole.STUDENT:
            raise ConstraintViolation(
                message="Only student memberships hold a room",
                membership_id=membership_id,
            )
        if membership.room_id == room_id:
            return membership
        await self._get_room_in_hostel(membership.hostel_id, room_id)

        old_room_id = membership.room_id
        async with self.store.transaction():
            if membership.status != MembershipStatus.SUSPENDED:
                await self._take_bed(room_id)
                await self.room_dao.decrement_occupancy(old_room_id)
            membership = await self.hostel_membership_dao.update(membership_id, room_id=room_id)

        await self.audit.log_room_reassigned(
            actor_user_id=actor_user_id,
            resource_id=membership_id,
            organization_id=membership.organization_id,
            old_room_id=old_room_id,
            new_room_id=room_id,
        )
        return membership

    # =========================================================================
    # Parent-student links
    # =========================================================================

    async def link_parent_student(
        self,
        parent_user_id: int,
        student_user_id: int,
        relationship_type: RelationshipType = RelationshipType.GUARDIAN,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> ParentStudentLink:
        """
        Link a parent-side user to a student.

        Raises:
            ConstraintViolation: Self link or duplicate pair
            Unauthorized: If scope is given and administers none of the
                student's hostels
            MembershipNotFoundError: If scope is given and the student has never
                held a student membership
        """
        if parent_user_id == student_user_id:
            raise ConstraintViolation(
                message="A user cannot be linked as their own parent",
                user_id=parent_user_id,
            )
        await self._require_user(parent_user_id)
        await self._require_user(student_user_id)
        if scope is not None:
            await self._require_admin_of_student(scope, student_user_id)

        async with self.store.transaction():
            if await self.link_dao.get_pair(parent_user_id, student_user_id):
                raise ConstraintViolation(
                    message="Parent is already linked to this student",
                    parent_user_id=parent_user_id,
                    student_user_id=student_user_id,
                )
            link = await self.link_dao.create(
                parent_user_id=parent_user_id,
                student_user_id=student_user_id,
                relationship_type=relationship_type,
            )

        await self.audit.log_parent_link(
            actor_user_id=actor_user_id,
            parent_user_id=parent_user_id,
            student_user_id=student_user_id,
            linked=True,
            link_id=link.id,
        )
        return link

    async def unlink_parent_student(
        self,
        parent_user_id: int,
        student_user_id: int,
        scope: Optional[AccessScope] = None,
        actor_user_id: Optional[int] = None,
    ) -> None:
        """
        Remove a parent-student link.

        Raises:
            MembershipNotFoundError: If the pair is not linked
        """
        link = await self.link_dao.get_pair(parent_user_id, student_user_id)
        if link is None:
            raise MembershipNotFoundError(
                message="Parent is not linked to this student",
                parent_user_id=parent_user_id,
                student_user_id=student_user_id,
            )
        if scope is not None:
            await self._require_admin_of_student(scope, student_user_id)

        link_id = link.id
        async with self.store.transaction():
            await self.link_dao.delete_pair(parent_user_id, student_user_id)

        await self.audit.log_parent_link(
            actor_user_id=actor_user_id,
            parent_user_id=parent_user_id,
            student_user_id=student_user_id,
            linked=False,
            link_id=link_id,
        )

    # =========================================================================
    # Rooms
    # =========================================================================

    async def reconcile_room_occupancy(self, room_id: int) -> int:
        """
        Recount the beds held in a room and repair the counter.

        Returns:
            The actual number of bed holders

        Raises:
            RoomNotFoundError
            ConstraintViolation: If more students reference the room than it
                has beds (the counter cannot represent that state)
        """
        room = await self.room_dao.get_by_id(room_id)
        if room is None:
            raise RoomNotFoundError(room_id=room_id)

        async with self.store.transaction():
            await self.session.refresh(room)
            actual = await self.room_dao.count_bed_holders(room_id)
            if actual != room.current_occupancy:
                logger.warning(
                    "Room %s occupancy drift: stored=%s actual=%s",
                    room_id,
                    room.current_occupancy,
                    actual,
                )
                await self.room_dao.set_occupancy(room_id, actual)
        return actual

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _take_bed(self, room_id: int) -> None:
        """
        Take one bed or raise RoomFull.

        The conditional increment is retried room_assignment_retries times
        to ride out a lost race on the row before giving up.
        """
        for attempt in range(self.room_assignment_retries + 1):
            if await self.room_dao.try_increment_occupancy(room_id):
                return
            logger.debug("Room %s had no free bed (attempt %s)", room_id, attempt + 1)
        raise RoomFull(room_id=room_id)

    async def _check_room_for_role(
        self, hostel_id: int, role: HostelRole, room_id: Optional[int]
    ) -> Optional[Room]:
        if role == HostelRole.STUDENT:
            if room_id is None:
                raise ConstraintViolation(
                    message="A student membership requires a room",
                    hostel_id=hostel_id,
                )
            return await self._get_room_in_hostel(hostel_id, room_id)
        if room_id is not None:
            raise ConstraintViolation(
                message="Only student memberships may reference a room",
                hostel_id=hostel_id,
                role=role.value,
            )
        return None

    async def _get_room_in_hostel(self, hostel_id: int, room_id: int) -> Room:
        room = await self.room_dao.get_by_id(room_id)
        if room is None:
            raise RoomNotFoundError(room_id=room_id)
        if room.hostel_id != hostel_id:
            raise ConstraintViolation(
                message="Room belongs to another hostel",
                room_id=room_id,
                hostel_id=hostel_id,
            )
        return room

    async def _get_membership(self, membership_id: int) -> HostelMembership:
        membership = await self.hostel_membership_dao.get_by_id(membership_id)
        if membership is None:
            raise MembershipNotFoundError(membership_id=membership_id)
        return membership

    async def _require_user(self, user_id: int) -> None:
        if await self.user_dao.get_by_id(user_id) is None:
            raise UserNotFoundError(user_id=user_id)

    async def _require_admin_of_student(self, scope: AccessScope, student_user_id: int) -> None:
        """
        Links are managed by an admin of any hostel the student is enrolled in.

        A student with no active enrollment (invited, suspended or left) is
        judged by their most recent student membership instead.

        Raises:
            MembershipNotFoundError: If the user was never a student anywhere
            Unauthorized: CROSS_ORGANIZATION when the student's hostels lie
                outside every organization in scope, ORG_ADMIN_ONLY otherwise
        """
        memberships = await self.hostel_membership_dao.list_active_student_memberships(
            student_user_id
        )
        if not memberships:
            latest = await self.hostel_membership_dao.latest_student_membership(student_user_id)
            if latest is None:
                raise MembershipNotFoundError(
                    message="Student has no hostel membership",
                    student_user_id=student_user_id,
                )
            memberships = [latest]

        if any(scope.can_administer(m.organization_id, m.hostel_id) for m in memberships):
            return
        if not any(m.organization_id in scope.organization_ids for m in memberships):
            raise Unauthorized(
                reason=DenyReason.CROSS_ORGANIZATION, student_user_id=student_user_id
            )
        raise Unauthorized(reason=DenyReason.ORG_ADMIN_ONLY, student_user_id=student_user_id)
