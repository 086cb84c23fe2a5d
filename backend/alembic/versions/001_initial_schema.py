"""Initial schema

Revision ID: 001
Revises:
Create Date: 2025-06-02

WHAT: Creates the tenancy roots (organizations, hostels, rooms, users), the
membership graph, the hostel-scoped domain record tables and audit_logs.

WHY: organization_id and hostel_id are NOT NULL on every hostel-scoped
record table (announcements excepted: a NULL hostel_id means the whole
organization). Room occupancy is bounded by a CHECK constraint so the
conditional UPDATE used for bed assignment can never overshoot capacity.

HOW: Enums are stored as VARCHAR + CHECK (non-native) so the same revision
runs on PostgreSQL and SQLite.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=32)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


MEMBERSHIP_STATUSES = ('invited', 'active', 'suspended')
REVIEW_STATUSES = ('pending', 'approved', 'rejected', 'not_required')


def upgrade() -> None:
    # Tenancy roots
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('status', _enum('organizationstatus', 'active', 'suspended'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_name', 'organizations', ['name'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'hostels',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'organization_id',
            sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'code', name='uq_hostels_org_code'),
    )
    op.create_index('ix_hostels_id', 'hostels', ['id'])
    op.create_index('ix_hostels_organization_id', 'hostels', ['organization_id'])

    op.create_table(
        'rooms',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'hostel_id',
            sa.Integer(),
            sa.ForeignKey('hostels.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('room_number', sa.String(20), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('current_occupancy', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('hostel_id', 'room_number', name='uq_rooms_hostel_number'),
        sa.CheckConstraint('capacity > 0', name='ck_rooms_capacity_positive'),
        sa.CheckConstraint(
            'current_occupancy >= 0 AND current_occupancy <= capacity',
            name='ck_rooms_occupancy_within_capacity',
        ),
    )
    op.create_index('ix_rooms_id', 'rooms', ['id'])
    op.create_index('ix_rooms_hostel_id', 'rooms', ['hostel_id'])

    # Membership graph
    op.create_table(
        'organization_memberships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'organization_id',
            sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('role', _enum('organizationrole', 'org_owner', 'org_admin'), nullable=False),
        sa.Column('status', _enum('org_membershipstatus', *MEMBERSHIP_STATUSES), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_org_memberships_org_user'),
    )
    op.create_index('ix_organization_memberships_id', 'organization_memberships', ['id'])
    op.create_index(
        'ix_organization_memberships_organization_id',
        'organization_memberships',
        ['organization_id'],
    )
    op.create_index('ix_organization_memberships_user_id', 'organization_memberships', ['user_id'])

    op.create_table(
        'hostel_memberships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'hostel_id', sa.Integer(), sa.ForeignKey('hostels.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column(
            'organization_id',
            sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column(
            'role',
            _enum('hostelrole', 'hostel_admin', 'staff', 'student', 'parent'),
            nullable=False,
        ),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id'), nullable=True),
        sa.Column('status', _enum('hostel_membershipstatus', *MEMBERSHIP_STATUSES), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('hostel_id', 'user_id', name='uq_hostel_memberships_hostel_user'),
        sa.CheckConstraint(
            "(role = 'student' AND room_id IS NOT NULL) OR (role <> 'student' AND room_id IS NULL)",
            name='ck_hostel_memberships_student_room',
        ),
    )
    op.create_index('ix_hostel_memberships_id', 'hostel_memberships', ['id'])
    op.create_index('ix_hostel_memberships_hostel_id', 'hostel_memberships', ['hostel_id'])
    op.create_index(
        'ix_hostel_memberships_organization_id', 'hostel_memberships', ['organization_id']
    )
    op.create_index('ix_hostel_memberships_user_id', 'hostel_memberships', ['user_id'])
    op.create_index('ix_hostel_memberships_room_id', 'hostel_memberships', ['room_id'])

    op.create_table(
        'parent_student_links',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'parent_user_id',
            sa.Integer(),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'student_user_id',
            sa.Integer(),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'relationship_type',
            _enum('relationshiptype', 'father', 'mother', 'guardian', 'other'),
            nullable=False,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            'parent_user_id', 'student_user_id', name='uq_parent_student_links_pair'
        ),
        sa.CheckConstraint(
            'parent_user_id <> student_user_id', name='ck_parent_student_links_distinct'
        ),
    )
    op.create_index('ix_parent_student_links_id', 'parent_student_links', ['id'])
    op.create_index(
        'ix_parent_student_links_parent_user_id', 'parent_student_links', ['parent_user_id']
    )
    op.create_index(
        'ix_parent_student_links_student_user_id', 'parent_student_links', ['student_user_id']
    )

    # Domain records
    op.create_table(
        'leaves',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('hostel_id', sa.Integer(), sa.ForeignKey('hostels.id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('from_date', sa.Date(), nullable=False),
        sa.Column('to_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column(
            'approval_flow',
            _enum('approvalflow', 'parent_then_staff', 'staff_only'),
            nullable=False,
        ),
        sa.Column(
            'status',
            _enum('leavestatus', 'pending', 'approved', 'rejected', 'cancelled'),
            nullable=False,
        ),
        sa.Column('parent_status', _enum('parent_reviewstatus', *REVIEW_STATUSES), nullable=False),
        sa.Column('parent_remarks', sa.Text(), nullable=True),
        sa.Column('parent_reviewer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('parent_reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('staff_status', _enum('staff_reviewstatus', *REVIEW_STATUSES), nullable=False),
        sa.Column('staff_remarks', sa.Text(), nullable=True),
        sa.Column('staff_reviewer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('staff_reviewed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('from_date <= to_date', name='ck_leaves_date_range'),
    )
    op.create_index('ix_leaves_org_hostel', 'leaves', ['organization_id', 'hostel_id'])
    op.create_index('ix_leaves_student_id', 'leaves', ['student_id'])

    op.create_table(
        'complaints',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('hostel_id', sa.Integer(), sa.ForeignKey('hostels.id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column(
            'category',
            _enum('complaintcategory', 'maintenance', 'mess', 'cleanliness', 'conduct', 'other'),
            nullable=False,
        ),
        sa.Column('attachment_url', sa.String(1000), nullable=True),
        sa.Column(
            'status',
            _enum('complaintstatus', 'open', 'in_progress', 'resolved', 'closed'),
            nullable=False,
        ),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('handled_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_complaints_org_hostel', 'complaints', ['organization_id', 'hostel_id'])
    op.create_index('ix_complaints_student_id', 'complaints', ['student_id'])

    op.create_table(
        'announcements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        # NULL hostel_id: organization-wide announcement
        sa.Column('hostel_id', sa.Integer(), sa.ForeignKey('hostels.id'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        'ix_announcements_org_hostel', 'announcements', ['organization_id', 'hostel_id']
    )

    op.create_table(
        'attendance_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('hostel_id', sa.Integer(), sa.ForeignKey('hostels.id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('attendance_date', sa.Date(), nullable=False),
        sa.Column(
            'status',
            _enum('attendancestatus', 'present', 'absent', 'on_leave'),
            nullable=False,
        ),
        sa.Column('recorded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('check_in_at', sa.DateTime(), nullable=False),
        sa.Column('override_reason', sa.Text(), nullable=True),
        sa.Column('overridden_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('overridden_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            'student_id', 'hostel_id', 'attendance_date', name='uq_attendance_student_hostel_date'
        ),
    )
    op.create_index(
        'ix_attendance_logs_org_hostel', 'attendance_logs', ['organization_id', 'hostel_id']
    )

    op.create_table(
        'mess_photos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('hostel_id', sa.Integer(), sa.ForeignKey('hostels.id'), nullable=False),
        sa.Column(
            'meal', _enum('meal', 'breakfast', 'lunch', 'snacks', 'dinner'), nullable=False
        ),
        sa.Column('photo_date', sa.Date(), nullable=False),
        sa.Column('image_url', sa.String(1000), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=False),
        sa.Column('uploaded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_mess_photos_org_hostel', 'mess_photos', ['organization_id', 'hostel_id'])
    op.create_index('ix_mess_photos_photo_date', 'mess_photos', ['photo_date'])

    # Audit trail (append-only)
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'actor_user_id',
            sa.Integer(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column(
            'action',
            _enum(
                'auditaction',
                'ACCESS_DENIED',
                'CROSS_ORG_ACCESS_DENIED',
                'MEMBERSHIP_GRANTED',
                'MEMBERSHIP_STATUS_CHANGED',
                'ROLE_CHANGE',
                'ROOM_REASSIGNED',
                'PARENT_LINKED',
                'PARENT_UNLINKED',
                'SIGNUP_BOOTSTRAP',
                'ORG_CREATED',
                'ORG_DEACTIVATED',
                'HOSTEL_CREATED',
                'HOSTEL_DEACTIVATED',
                'CREATE',
                'UPDATE',
                'ADMIN_OVERRIDE',
            ),
            nullable=False,
        ),
        sa.Column('resource_type', sa.String(100), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column(
            'organization_id',
            sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_resource_type', 'audit_logs', ['resource_type'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])
    op.create_index('ix_audit_logs_organization_id', 'audit_logs', ['organization_id'])
    op.create_index('ix_audit_logs_ip_address', 'audit_logs', ['ip_address'])


def downgrade() -> None:
    for table in (
        'audit_logs',
        'mess_photos',
        'attendance_logs',
        'announcements',
        'complaints',
        'leaves',
        'parent_student_links',
        'hostel_memberships',
        'organization_memberships',
        'rooms',
        'hostels',
        'users',
        'organizations',
    ):
        op.drop_table(table)
