"""
User model.

WHY: A user is a global identity, independent of tenancy. What a user may do
is never stored on the user row; it is derived per request from the
membership graph (organization memberships, hostel memberships, parent links).
"""

from sqlalchemy import Column, String, Boolean

from hostelcore.models.base import Base, TimestampMixin, PrimaryKeyMixin


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model representing any person: owner, warden, student or parent.

    WHY: One user may hold memberships in many organizations and hostels at
    once (e.g. a warden in one hostel who is also a parent in another).
    """

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(30), nullable=True)

    # WHY: nullable for invited users who have not set a password yet
    hashed_password = Column(String(255), nullable=True)

    # WHY: is_active allows disabling a login without touching memberships
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
