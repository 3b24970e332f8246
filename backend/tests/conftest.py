# tests/conftest.py - Shared test fixtures
import os
import uuid

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, Organization, Department, Board, UserRole, organization_members
from auth import AuthService
from database import get_db_session
from main import app

TEST_PASSWORD = "secret123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_user(db_session, org_id, role=UserRole.MEMBER.value, name="Member User", email=None,
                    username=None) -> User:
    """Insert a user and record it as an organization member"""
    handle = username or f"user-{uuid.uuid4().hex[:8]}"
    user = User(
        id=str(uuid.uuid4()),
        name=name,
        username=handle,
        email=email or f"{handle}@taskboard.dev",
        password_hash=AuthService.hash_password(TEST_PASSWORD),
        role=role,
        org_id=org_id,
    )
    db_session.add(user)
    await db_session.flush()
    if org_id:
        await db_session.execute(
            organization_members.insert().values(organization_id=org_id, user_id=user.id)
        )
    await db_session.commit()
    return user


async def make_org(db_session, name="Test Organization", role_names=None):
    """Insert an organization together with its admin creator"""
    org_id = str(uuid.uuid4())
    creator_id = str(uuid.uuid4())
    org = Organization(id=org_id, name=name, created_by=creator_id, role_names=role_names or [])
    db_session.add(org)
    await db_session.flush()

    creator = User(
        id=creator_id,
        name=f"{name} Admin",
        username=f"admin-{creator_id[:8]}",
        email=f"admin-{creator_id[:8]}@taskboard.dev",
        password_hash=AuthService.hash_password(TEST_PASSWORD),
        role=UserRole.ADMIN.value,
        org_id=org_id,
    )
    db_session.add(creator)
    await db_session.flush()
    await db_session.execute(
        organization_members.insert().values(organization_id=org_id, user_id=creator_id)
    )
    await db_session.commit()
    return org, creator


@pytest_asyncio.fixture
async def org_with_admin(db_session):
    return await make_org(db_session, role_names=["Driver"])


@pytest_asyncio.fixture
async def test_org(org_with_admin):
    """Create a test organization"""
    return org_with_admin[0]


@pytest_asyncio.fixture
async def admin_user(org_with_admin):
    """Admin and creator of the test organization"""
    return org_with_admin[1]


@pytest_asyncio.fixture
async def test_user(db_session, test_org):
    """Plain member of the test organization"""
    return await make_user(db_session, test_org.id, name="Test User", username="testuser",
                           email="testuser@taskboard.dev")


@pytest_asyncio.fixture
async def outsider(db_session):
    """Admin of an unrelated organization"""
    _, user = await make_org(db_session, name="Other Organization")
    return user


@pytest_asyncio.fixture
async def test_department(db_session, test_org, admin_user):
    department = Department(organization_id=test_org.id, name="Engineering", created_by=admin_user.id)
    db_session.add(department)
    await db_session.commit()
    return department


@pytest_asyncio.fixture
async def test_board(db_session, test_org, admin_user, test_department):
    board = Board(name="Sprint 1", created_by=admin_user.id, org_id=test_org.id,
                  department_id=test_department.id)
    db_session.add(board)
    await db_session.commit()
    return board


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}
