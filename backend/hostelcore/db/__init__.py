"""Database package"""

from hostelcore.db.session import AsyncSessionLocal, engine, get_db
from hostelcore.db.store import Store
from hostelcore.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db", "Store"]
