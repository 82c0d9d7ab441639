"""
Shared fixtures.

Each test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection via StaticPool). Route tests talk to the app through httpx with
get_db pointed at that database.
"""
import itertools
import os
from datetime import datetime, timezone

# Set test environment before anything imports bookstore.core.config
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-signing-key-for-unit-tests-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SUBSCRIPTION_SWEEP_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import bookstore.models  # noqa: F401
from bookstore.core.database import Base, get_db
from bookstore.core.permissions import default_permissions_for_role
from bookstore.core.security import create_access_token, get_password_hash
from bookstore.models.user import User

TEST_PASSWORD = "password123"
# bcrypt is slow; hash once for every factory-made user
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

T0 = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock for SubscriptionService; move it with advance()."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def make_user(db):
    """Factory for committed users: await make_user(role="staff", ...)"""
    counter = itertools.count(1)

    async def _make_user(role="user", permissions=None, is_active=True, email=None, name=None):
        n = next(counter)
        user = User(
            email=email or f"{role}{n}@example.com",
            name=name or f"{role.title()} {n}",
            hashed_password=TEST_PASSWORD_HASH,
            role=role,
            permissions=(
                permissions if permissions is not None else default_permissions_for_role(role)
            ),
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


def _bearer(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def auth_headers():
    """auth_headers(user) -> Authorization header dict"""
    return _bearer


@pytest_asyncio.fixture
async def client(session_factory):
    from bookstore.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
