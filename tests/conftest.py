"""
Test infrastructure for the Blog CMS API.

Strategy
--------
- Settings are read at import time, so the environment (database URL,
  signing secret) is pinned before anything from ``blogcms`` is imported.
- SQLite in-memory via aiosqlite with StaticPool: every async task shares
  the one connection, which is what keeps the in-memory database alive.
  Foreign keys are switched on per connection so the ON DELETE CASCADE
  rules behave as they do on Postgres.
- The app's get_db dependency is overridden to use the test session factory.
- Tables are created (and the standard roles seeded) before each test and
  dropped after.
- The Redis cache is disabled by setting cache._redis = None; every
  CacheManager call degrades to a no-op.  Tests that exercise caching use
  the cached_client fixture, which plugs in an in-process fakeredis server.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-the-blog-test-suite-0123456789"
os.environ["DEBUG"] = "false"
os.environ["SEED_DEMO_DATA"] = "false"

import fakeredis  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from blogcms.cache import cache  # noqa: E402
from blogcms.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from blogcms.main import app  # noqa: E402
from blogcms.schemas import UserCreate  # noqa: E402
from blogcms.security import issue_token  # noqa: E402
from blogcms.services import role_service, user_service  # noqa: E402

# ---------------------------------------------------------------------------
# Test database engine - SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Fresh schema with the standard roles for every test."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_test() as session:
        await role_service.ensure_standard_roles(session)
        await session.commit()
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def fake_redis():
    server = fakeredis.FakeAsyncRedis(decode_responses=True)
    await server.flushall()
    cache._redis = server
    yield server
    cache._redis = None
    await server.flushall()
    await server.aclose()


@pytest_asyncio.fixture
async def cached_client(fake_redis) -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def create_account(username: str, *roles: str, password: str = "secret1") -> dict:
    """
    Create a user holding the default "User" role plus *roles* and return
    ``{"id", "username", "token", "headers"}`` for use in requests.
    """
    async with async_session_test() as session:
        user = await user_service.create_user(
            session,
            UserCreate(
                username=username,
                email=f"{username}@mail.com",
                password=password,
                full_name=username.title(),
            ),
        )
        for name in roles:
            role = await role_service.get_role_by_name(session, name)
            await user_service.assign_role(session, user["id"], role.id)
        role_names = await user_service.get_user_roles(session, user["id"])
        await session.commit()

    issued = issue_token(user["id"], user["username"], user["email"], user["full_name"], role_names)
    return {
        "id": user["id"],
        "username": user["username"],
        "token": issued.token,
        "headers": {"Authorization": f"Bearer {issued.token}"},
    }


@pytest_asyncio.fixture
async def author() -> dict:
    return await create_account("author")


@pytest_asyncio.fixture
async def other_user() -> dict:
    return await create_account("reader")


@pytest_asyncio.fixture
async def moderator() -> dict:
    return await create_account("moder", "Moderator")


@pytest_asyncio.fixture
async def admin() -> dict:
    return await create_account("boss", "Admin")
