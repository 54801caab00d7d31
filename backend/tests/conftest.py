import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SEED_PLAN_QUOTAS", "false")
os.environ.setdefault("BILLING_WEBHOOK_TOKEN", "test-billing-token")

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from seoquota.database import Base, get_db
from seoquota.main import app
from seoquota.models.role import RoleAssignment, ROLE_ADMIN
from seoquota.models.user import User
from seoquota.services.auth import create_access_token
from seoquota.services.quota import seed_plan_limits


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        await seed_plan_limits(session)
        yield session


@pytest.fixture
async def client(db, session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def grant_role(db):
    async def _grant(user_id, role):
        db.add(RoleAssignment(user_id=user_id, role=role, is_active=True))
        await db.commit()
    return _grant


@pytest.fixture
async def admin_user(db, grant_role):
    user = User(email="admin@example.com")
    db.add(user)
    await db.commit()
    await grant_role(user.id, ROLE_ADMIN)
    return user


@pytest.fixture
def admin_headers(admin_user):
    token = create_access_token(admin_user.id)
    return {"Authorization": f"Bearer {token}"}
