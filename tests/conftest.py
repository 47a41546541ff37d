"""
Test infrastructure for the Blog Content API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
- The Redis cache is disabled by setting cache._redis = None; the CacheManager
  treats that as a no-op cache, so tests exercise the real database path.
  Tests that request ``live_cache`` get a fakeredis client instead.
- Identity arrives in X-User-Id / X-User-Role headers; ``actor_headers``
  builds them.
"""
import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.cache import cache
from app.middleware import install_query_counter
from app.models import User
from app.schemas import Actor

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Register the per-request SQL query counter on the test engine.
install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


def actor_headers(user_id: str, role: str = "author") -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Role": role}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call the service layer
    directly.
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def live_cache():
    """
    Back the cache with an in-process Redis for tests that exercise
    cache-aside reads and invalidation.
    """
    cache._redis = FakeAsyncRedis(decode_responses=True)
    yield cache
    await cache._redis.aclose()
    cache._redis = None


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def admin(async_client: AsyncClient) -> dict[str, str]:
    """Register an admin and return its request headers."""
    resp = await async_client.post("/api/v1/users", json={
        "name": "Admin", "email": "admin@example.com", "role": "admin",
    })
    assert resp.status_code == 201
    return actor_headers(resp.json()["data"]["id"], "admin")


@pytest_asyncio.fixture
async def author(async_client: AsyncClient) -> dict[str, str]:
    resp = await async_client.post("/api/v1/users", json={
        "name": "Alice", "email": "alice@example.com", "avatar": "alice.png",
    })
    assert resp.status_code == 201
    return actor_headers(resp.json()["data"]["id"])


@pytest_asyncio.fixture
async def other_author(async_client: AsyncClient) -> dict[str, str]:
    resp = await async_client.post("/api/v1/users", json={
        "name": "Bob", "email": "bob@example.com",
    })
    assert resp.status_code == 201
    return actor_headers(resp.json()["data"]["id"])


@pytest.fixture
def make_actor(db_session: AsyncSession):
    """Return a coroutine that inserts a principal and returns it as an Actor."""

    async def _make(name: str, role: str = "author") -> Actor:
        user = User(name=name, email=f"{name.lower()}@example.com", role=role)
        db_session.add(user)
        await db_session.flush()
        return Actor(id=user.id, role=role)

    return _make
