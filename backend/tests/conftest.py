"""
Centralized Test Configuration.
"""

import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool
from redis.exceptions import LockError, LockNotOwnedError

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.events import event_bus
from backend.app.core.jwt import create_access_token
from backend.app.core.redis_client import get_redis
from backend.app.models.user import User
from backend.app.services.activity_log import register_activity_logging

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


class MockLock:
    """Token-checked lock with the redis-py ``Lock`` interface used by ``run_lock``."""

    def __init__(self, redis, name, timeout=None):
        self.redis = redis
        self.name = name
        self.timeout = timeout
        self.token = None

    async def acquire(self):
        token = uuid.uuid4().hex
        if await self.redis.set(self.name, token, nx=True, ex=self.timeout):
            self.token = token
            return True
        return False

    async def owned(self):
        return self.token is not None and self.redis.store.get(self.name) == self.token

    async def reacquire(self):
        if not await self.owned():
            raise LockNotOwnedError("Cannot reacquire a lock that's no longer owned")
        return True

    async def release(self):
        if self.token is None:
            raise LockError("Cannot release an unlocked lock")
        token, self.token = self.token, None
        if self.redis.store.get(self.name) != token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.redis.store[self.name]


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    def lock(self, name, timeout=None, blocking=True):
        return MockLock(self, name, timeout)

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def mock_redis():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(mock_redis):
    """Apply overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database(mock_redis):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()

    yield

    # Pending activity writes must land before the tables go away
    await event_bus.drain()
    event_bus.clear()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, for background workers."""
    return TestingSessionLocal


@pytest.fixture
def activity_logging():
    """
    Subscribe the activity logger, as the app lifespan does.

    ASGITransport does not run the lifespan, so tests that assert on
    Activity rows opt in here and drain the bus before checking.
    """
    return register_activity_logging(event_bus, TestingSessionLocal)


async def _create_user(db_session, name, email, is_active=True):
    user = User(name=name, email=email, is_active=is_active)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def ada(db_session):
    return await _create_user(db_session, "Ada Lovelace", "ada@lab.test")


@pytest.fixture
async def bob(db_session):
    return await _create_user(db_session, "Bob Hooke", "bob@lab.test")


@pytest.fixture
async def carol(db_session):
    return await _create_user(db_session, "Carol Greider", "carol@lab.test")


@pytest.fixture
def auth_headers():
    """Build a Bearer header for a user, as issued by the identity provider."""
    def _headers(user):
        token = create_access_token(data={"sub": user.name, "user_id": user.id})
        return {"Authorization": f"Bearer {token}"}
    return _headers
