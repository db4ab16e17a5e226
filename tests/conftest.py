"""Shared test fixtures and configuration."""
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ballot.database import create_engine, get_session  # noqa: E402
from ballot.main import app  # noqa: E402
from ballot.models import Base  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
CLIENT_IP = "1.2.3.4"


class InMemoryRedis:
    """The subset of redis.asyncio.Redis the app uses, with decoded responses."""

    def __init__(self):
        self.values = {}
        self.hashes = {}
        self.ttls = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def incr(self, key):
        self.values[key] = str(int(self.values.get(key, 0)) + 1)
        return int(self.values[key])

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.values or key in self.hashes)

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def hset(self, key, mapping=None):
        self.hashes.setdefault(key, {}).update(
            {str(k): str(v) for k, v in (mapping or {}).items()}
        )
        return len(mapping or {})

    async def hincrby(self, key, field, amount=1):
        bucket = self.hashes.setdefault(key, {})
        bucket[field] = str(int(bucket.get(field, 0)) + amount)
        return int(bucket[field])

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += (self.values.pop(key, None) is not None) + (
                self.hashes.pop(key, None) is not None
            )
            self.ttls.pop(key, None)
        return removed

    def pipeline(self, transaction=True):
        return InMemoryPipeline(self)

    async def aclose(self):
        pass


class InMemoryPipeline:
    """Queues commands and applies them in order on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._queued = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._queued.clear()

    def _queue(self, name, *args, **kwargs):
        self._queued.append((name, args, kwargs))
        return self

    def hincrby(self, key, field, amount=1):
        return self._queue("hincrby", key, field, amount)

    def incr(self, key):
        return self._queue("incr", key)

    def expire(self, key, seconds):
        return self._queue("expire", key, seconds)

    async def execute(self):
        queued, self._queued = self._queued, []
        return [
            await getattr(self._redis, name)(*args, **kwargs)
            for name, args, kwargs in queued
        ]


@pytest.fixture
async def db_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    return InMemoryRedis()


@pytest.fixture
async def client(session_factory, redis):
    """HTTP client bound to the app with the test database and cache."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.state.redis = redis
    transport = httpx.ASGITransport(app=app, client=(CLIENT_IP, 50000))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def create_poll(client):
    """Create a poll through the API and return its JSON body."""

    async def _create(title="Lunch", options=("A", "B"), expires_in=timedelta(hours=1)):
        response = await client.post(
            "/api/polls",
            json={
                "title": title,
                "options": list(options),
                "expiresAt": (datetime.now(timezone.utc) + expires_in).isoformat(),
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create
