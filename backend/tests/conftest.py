import fnmatch
import os
import sys
import tempfile
from pathlib import Path

import pytest

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

# test environment, applied before the app modules are imported
_scratch = Path(tempfile.mkdtemp(prefix="blogapi-tests-"))
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("CORS_ORIGINS", "*")
os.environ.setdefault("UPLOAD_DIR", str(_scratch / "uploads"))
os.environ.setdefault("EXPORT_DIR", str(_scratch / "exports"))
os.environ.setdefault("EVENT_LOG_DIR", str(_scratch / "logs"))
os.environ.setdefault("EXPORT_CLEANUP_DELAY_SECONDS", "0")

# make the blogapi package importable from backend/
backend_path = Path(__file__).resolve().parents[1]
if str(backend_path) not in sys.path:
    sys.path.insert(0, str(backend_path))

from blogapi.main import app
from blogapi.database import Base
from blogapi.database import get_db as real_get_db
from blogapi.cache import PostCache
from blogapi.events import EventBus
from blogapi.notifications.audit import PostAuditLog
from blogapi.notifications.listener import register_post_listeners
from blogapi.notifications.mailer import Mailer
from blogapi.users.models import UserRole
from blogapi.users.schema import UserCreate
from blogapi.users.service import create_user


class InMemoryRedis:
    """The slice of redis.asyncio.Redis the post cache uses, kept in a dict."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match=None):
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        pass


class RecordingMailer(Mailer):
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.verified = True

    async def deliver(self, to, subject, html):
        if to in self.fail_for:
            raise RuntimeError(f"mailbox unavailable: {to}")
        self.sent.append((to, subject, html))
        return f"<{len(self.sent)}@test>"

    async def verify(self):
        return self.verified


@pytest.fixture()
async def test_engine():
    # in-memory SQLite; every session shares one connection
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(test_engine):
    return sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def override_db(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session
    app.dependency_overrides[real_get_db] = _get_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def redis_double():
    return InMemoryRedis()


@pytest.fixture()
def cache(redis_double):
    return PostCache(redis_double, list_ttl=300, detail_ttl=600)


@pytest.fixture()
def audit_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture()
async def events(audit_dir):
    bus = EventBus()
    register_post_listeners(bus, audit_log=PostAuditLog(str(audit_dir)))
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
async def client(cache, events, mailer):
    # ASGITransport does not run the lifespan, so the shared handles are set here
    app.state.cache = cache
    app.state.events = events
    app.state.mailer = mailer
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _login(client, username, password):
    resp = await client.post("/api/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    return data["user"], {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture()
def signup(client):
    """Registers a user through the API and returns (user, auth headers)."""
    async def _signup(username, password="secret1", **extra):
        resp = await client.post("/api/register", json={"username": username, "password": password, **extra})
        assert resp.status_code == 201, resp.text
        return await _login(client, username, password)
    return _signup


@pytest.fixture()
async def admin(client, db):
    await create_user(
        UserCreate(username="admin", password="admin123", email="admin@example.com", full_name="System Administrator"),
        db,
        role=UserRole.ADMIN,
    )
    return await _login(client, "admin", "admin123")


@pytest.fixture()
def create_post(client):
    async def _create(headers, title="Hello", content="Body text", category="tech", files=None):
        resp = await client.post(
            "/api/posts",
            data={"title": title, "content": content, "category": category},
            files=files,
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]
    return _create
