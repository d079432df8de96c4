"""
Test infrastructure for the Blog API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- Foreign keys are switched on for every connection so ON DELETE CASCADE
  and FK violations behave as they do on PostgreSQL.
- Each test gets its own container built from in-memory backends: a
  ``MemoryCacheBackend``, an ``InMemoryJobQueue``, a mail provider that
  records what it sends, and local storage under ``tmp_path``.  No Redis,
  no vendor accounts.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.cache import MemoryCacheBackend
from app.config import Settings
from app.container import build_container
from app.database import Base, get_db, transaction
from app.main import create_app
from app.middleware import install_query_counter
from app.models import Role, User
from app.notifications.providers import MailDeliveryError, SendResult
from app.notifications.queue import InMemoryJobQueue

DEFAULT_PASSWORD = "Password1"

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine_test.sync_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Register the per-request SQL query counter on the test engine.
install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with transaction(async_session_test) as session:
        yield session


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class RecordingMailProvider:
    """Mail provider that keeps sent messages in memory.

    Set ``fail_next`` to make that many upcoming sends raise
    ``MailDeliveryError``.
    """

    name = "recording"

    def __init__(self) -> None:
        self.sent = []
        self.fail_next = 0

    async def send(self, message):
        if self.fail_next > 0:
            self.fail_next -= 1
            raise MailDeliveryError("recording: provider unavailable")
        self.sent.append(message)
        return SendResult(provider=self.name, message_id=f"msg-{len(self.sent)}")


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


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        APP_URL="http://test",
        CACHE_BACKEND="memory",
        JOB_QUEUE_BACKEND="memory",
        STORAGE_PROVIDER="local",
        LOCAL_UPLOAD_DIR=str(tmp_path / "uploads"),
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        MAIL_ENABLED=True,
        MAX_AVATAR_BYTES=1024,
    )


@pytest.fixture
def cache_backend() -> MemoryCacheBackend:
    return MemoryCacheBackend()


@pytest.fixture
def job_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def mail_provider() -> RecordingMailProvider:
    return RecordingMailProvider()


@pytest.fixture
def container(test_settings, cache_backend, job_queue, mail_provider):
    return build_container(
        test_settings,
        cache_backend=cache_backend,
        job_queue=job_queue,
        mail_provider=mail_provider,
    )


@pytest.fixture
def app(container):
    application = create_app(container=container)
    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that need to interact with the
    database directly (e.g. seeding data, asserting ORM state).
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client(app) -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def register_user(async_client):
    """
    Return a coroutine that registers a user through the API and returns the
    response ``data`` (``user``, ``token``, ``refresh_token``).
    """

    async def _register(username: str, email: str | None = None, password: str = DEFAULT_PASSWORD):
        resp = await async_client.post("/api/v1/auth/register", json={
            "email": email or f"{username}@example.com",
            "username": username,
            "password": password,
            "confirm_password": password,
        })
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _register


@pytest.fixture
def make_admin(async_client, db_session):
    """Return a coroutine that promotes a user to ADMIN and returns a fresh access token."""

    async def _promote(user_id: int, email: str, password: str = DEFAULT_PASSWORD) -> str:
        await db_session.execute(update(User).where(User.id == user_id).values(role=Role.ADMIN))
        await db_session.commit()
        resp = await async_client.post(
            "/api/v1/auth/login", json={"email": email, "password": password}
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]["token"]

    return _promote
