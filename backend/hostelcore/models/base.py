"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, ID, enum storage)
in one module keeps every table consistent.
"""

import enum
from datetime import datetime
from typing import Type

from sqlalchemy import Column, Integer, DateTime, Enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for every table in the hostel core."""

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    WHY: Memberships and domain records are never hard-deleted, so the
    timestamps double as the audit trail of when a row was granted or changed.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PrimaryKeyMixin:
    """Mixin to add an auto-incrementing integer primary key."""

    id = Column(Integer, primary_key=True, index=True)


def enum_type(enum_cls: Type[enum.Enum], name: str) -> Enum:
    """
    Build a portable column type for a str-valued enum.

    WHY: Stored as VARCHAR + CHECK (native_enum=False) so the same schema
    works on PostgreSQL and the SQLite test database, and the enum *values*
    (not member names) land in the column.
    """
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )
