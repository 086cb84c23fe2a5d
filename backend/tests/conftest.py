"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import os

# Settings are read at import time; give them test values first
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from dataclasses import dataclass
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hostelcore.db.session import get_db
from hostelcore.main import create_app
from hostelcore.models import Base, Hostel, HostelMembership, HostelRole, Organization, Room, User

from tests.factories import (
    HostelFactory,
    MembershipFactory,
    OrganizationFactory,
    RoomFactory,
    UserFactory,
)


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_sqlite_savepoints(engine) -> None:
    """
    Let pysqlite hand transaction control to SQLAlchemy.

    WHY: Store.transaction() relies on SAVEPOINTs. The sqlite3 driver's own
    implicit BEGIN handling breaks them, so BEGIN is emitted explicitly.
    Foreign keys are off by default in SQLite.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    _enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def audit_sink(monkeypatch) -> AsyncGenerator[async_sessionmaker, None]:
    """
    Separate database for security audit events.

    WHY: Access denials are committed through their own session, outside the
    request session. The shared in-memory test connection cannot host a second
    independent transaction, so those sessions are pointed at a database of
    their own. Tests read denial rows from here.

    Yields:
        async_sessionmaker: Factory bound to the sink database
    """
    engine = create_async_engine(TEST_ASYNC_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sink = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    monkeypatch.setattr("hostelcore.services.audit.AsyncSessionLocal", sink)

    yield sink

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine, audit_sink) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    WHY: Each test gets its own session that is rolled back after the test.
    Mirrors the application session (no autoflush, no expire on commit).

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client bound to the test session.

    Yields:
        AsyncClient: HTTP client for making test requests
    """
    app = create_app()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@dataclass
class Campus:
    """
    Two tenants with enough structure to exercise every access rule.

    Organization A ("green-valley") owns hostels H1 and H2; organization B
    ("blue-ridge") owns H3.
    - owner: org_owner of A
    - warden: staff in H1
    - hostel_admin: hostel_admin in H2
    - s1: student in H1 (room r1), s2: student in H2 (room r2)
    - parent: parent membership in H1, linked to s1 and s2
    - outsider: staff in H3 (organization B)
    - s3: student in H3
    """

    org_a: Organization
    org_b: Organization
    h1: Hostel
    h2: Hostel
    h3: Hostel
    r1: Room
    r2: Room
    r3: Room
    owner: User
    warden: User
    hostel_admin: User
    s1: User
    s2: User
    s3: User
    parent: User
    outsider: User
    s1_membership: HostelMembership
    s2_membership: HostelMembership


@pytest_asyncio.fixture
async def campus(db_session: AsyncSession) -> Campus:
    """Build the two-tenant fixture graph through the real services."""
    org_a = await OrganizationFactory.create(db_session, name="Green Valley", slug="green-valley")
    org_b = await OrganizationFactory.create(db_session, name="Blue Ridge", slug="blue-ridge")
    h1 = await HostelFactory.create(db_session, org_a, name="Boys Hostel 1", code="BH1")
    h2 = await HostelFactory.create(db_session, org_a, name="Girls Hostel 1", code="GH1")
    h3 = await HostelFactory.create(db_session, org_b, name="Ridge House", code="RH")
    r1 = await RoomFactory.create(db_session, h1, room_number="101", capacity=2)
    r2 = await RoomFactory.create(db_session, h2, room_number="201", capacity=2)
    r3 = await RoomFactory.create(db_session, h3, room_number="301", capacity=2)

    owner = await UserFactory.create(db_session, email="owner@greenvalley.test", name="Owner")
    warden = await UserFactory.create(db_session, email="warden@greenvalley.test", name="Warden")
    hostel_admin = await UserFactory.create(
        db_session, email="admin.gh1@greenvalley.test", name="GH1 Admin"
    )
    s1 = await UserFactory.create(db_session, email="s1@greenvalley.test", name="Student One")
    s2 = await UserFactory.create(db_session, email="s2@greenvalley.test", name="Student Two")
    s3 = await UserFactory.create(db_session, email="s3@blueridge.test", name="Student Three")
    parent = await UserFactory.create(db_session, email="parent@family.test", name="Parent")
    outsider = await UserFactory.create(db_session, email="staff@blueridge.test", name="Outsider")

    await MembershipFactory.org_owner(db_session, org_a, owner)
    await MembershipFactory.hostel(db_session, h1, warden, HostelRole.STAFF)
    await MembershipFactory.hostel(db_session, h2, hostel_admin, HostelRole.HOSTEL_ADMIN)
    s1_membership = await MembershipFactory.hostel(db_session, h1, s1, HostelRole.STUDENT, room=r1)
    s2_membership = await MembershipFactory.hostel(db_session, h2, s2, HostelRole.STUDENT, room=r2)
    await MembershipFactory.hostel(db_session, h3, s3, HostelRole.STUDENT, room=r3)
    await MembershipFactory.hostel(db_session, h1, parent, HostelRole.PARENT)
    await MembershipFactory.hostel(db_session, h3, outsider, HostelRole.STAFF)
    await MembershipFactory.link(db_session, parent, s1)
    await MembershipFactory.link(db_session, parent, s2)

    return Campus(
        org_a=org_a,
        org_b=org_b,
        h1=h1,
        h2=h2,
        h3=h3,
        r1=r1,
        r2=r2,
        r3=r3,
        owner=owner,
        warden=warden,
        hostel_admin=hostel_admin,
        s1=s1,
        s2=s2,
        s3=s3,
        parent=parent,
        outsider=outsider,
        s1_membership=s1_membership,
        s2_membership=s2_membership,
    )


@pytest.fixture
def sample_signup_data() -> dict:
    """
    Sample signup payload.

    WHY: Centralizing test data ensures consistency across tests.
    """
    return {
        "email": "founder@example.com",
        "password": "SecurePassword123!",
        "name": "Asha Rao",
        "organization_name": "Green Valley Hostels",
        "slug": "green-valley-hostels",
        "hostel_name": "Boys Hostel 1",
        "hostel_code": "bh1",
    }
