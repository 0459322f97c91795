import fnmatch
import sys
from pathlib import Path

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Add the backend directory so `tattoo_directory` imports resolve during tests
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.append(str(BACKEND_DIR))

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from tattoo_directory.core.cache import CacheGateway  # noqa: E402
from tattoo_directory.core.config import Settings  # noqa: E402
from tattoo_directory.core.db import build_session_factory  # noqa: E402
from tattoo_directory.main import create_app  # noqa: E402
from tattoo_directory.models import Base  # noqa: E402


class Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    """In-memory stand-in for the subset of ``redis.asyncio.Redis`` the gateway uses."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or Clock()
        self.store: dict[str, tuple[str, float]] = {}
        self.closed = False

    def _live(self, key: str):
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.clock():
            del self.store[key]
            return None
        return value

    async def get(self, key):
        return self._live(key)

    async def setex(self, key, ttl, value):
        self.store[key] = (value, self.clock() + ttl)
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self.store[key]
                removed += 1
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if self._live(key) is None:
                continue
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class UnreachableRedis:
    """Every call fails the way a refused connection does."""

    def __init__(self):
        self.calls = 0

    async def _fail(self, *args, **kwargs):
        self.calls += 1
        raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    get = setex = delete = ping = _fail

    async def scan_iter(self, match=None, count=None):
        self.calls += 1
        raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
        yield  # pragma: no cover

    async def aclose(self):
        return None


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def cache(fake_redis):
    return CacheGateway(fake_redis, op_timeout=1.0, scan_batch=2)


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        CACHE_ENABLED=False,
        DB_RETRY_BASE_DELAY=0.0,
        DB_RETRY_JITTER=0.0,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(test_settings, engine, cache):
    return create_app(test_settings, engine=engine, cache=cache, rate_limit_enabled=False)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
