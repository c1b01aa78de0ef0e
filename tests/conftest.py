"""
Test infrastructure for the Conduit API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after, giving
  each test a clean isolated state without needing transactions or truncation.
- The Redis cache is disabled by setting cache._redis = None; the CacheManager
  already handles a None _redis gracefully (no-op reads and writes).
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.database import Base, commit_session, get_db, rollback_session
from app.main import app
from app.cache import cache
from app.middleware import install_query_counter
from app.models import User
from app.security import hash_password

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)

DEFAULT_PASSWORD = "password123"


# ---------------------------------------------------------------------------
# Dependency override — replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await commit_session(session)
        except Exception:
            await rollback_session(session)
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call service functions
    directly or assert on table contents.
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport,
    with Redis disabled so every read goes to the database.
    """
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def register(async_client: AsyncClient):
    """
    Return an async ``register(username)`` helper that signs a user up
    through the API and returns the ``user`` payload (including token).
    """
    async def _register(username: str, email: str | None = None, password: str = DEFAULT_PASSWORD) -> dict:
        resp = await async_client.post("/api/users", json={"user": {
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
        }})
        assert resp.status_code == 201, resp.text
        return resp.json()["user"]

    return _register


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    """Return an async helper that inserts a User row directly via the session."""
    async def _make_user(username: str) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=hash_password(DEFAULT_PASSWORD),
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user