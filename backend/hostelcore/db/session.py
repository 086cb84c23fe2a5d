"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Using a context manager ensures proper connection cleanup and transaction management.
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from hostelcore.core.config import settings


def _engine_options() -> Dict[str, Any]:
    """
    Build engine keyword arguments for the configured backend.

    WHY: SQLite (used for local runs and tests) manages its own pool and
    rejects pool sizing arguments that PostgreSQL needs.
    """
    options: Dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not settings.is_sqlite:
        options.update(pool_size=10, max_overflow=20)
    return options


# Create async engine
# WHY: pool_pre_ping ensures stale connections are recycled, preventing
# "server has gone away" errors in long-running applications.
engine = create_async_engine(settings.async_database_url, **_engine_options())

# Create session factory
# WHY: expire_on_commit=False prevents lazy-loading issues after commit.
# autoflush=False gives explicit control over when rows hit the database.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    WHY: Each request gets its own database session, committed when the
    handler succeeds and rolled back otherwise.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
