import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from tattoo_directory.core.config import settings
from tattoo_directory.core.db_retry import RetryPolicy, is_retriable, with_db_retry


class DummyOrig(Exception):
    def __init__(self, code: int, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.args = (code, message)


class DummySession:
    def __init__(self):
        self.rollback_calls = 0

    async def rollback(self):
        self.rollback_calls += 1


@pytest.fixture
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "DB_RETRY_ATTEMPTS", 3)
    monkeypatch.setattr(settings, "DB_RETRY_BASE_DELAY", 0.0)
    monkeypatch.setattr(settings, "DB_RETRY_JITTER", 0.0)


@pytest.mark.anyio
async def test_deadlock_is_retried_after_rollback(fast_retries):
    session = DummySession()
    calls = {"count": 0}

    async def flaky_operation():
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("stmt", {}, DummyOrig(1213, "Deadlock found"))
        return "ok"

    result = await with_db_retry(session, flaky_operation)

    assert result == "ok"
    assert calls["count"] == 2
    assert session.rollback_calls == 1


@pytest.mark.anyio
async def test_gives_up_after_configured_attempts(fast_retries):
    session = DummySession()
    calls = {"count": 0}

    async def always_locked():
        calls["count"] += 1
        raise OperationalError("stmt", {}, DummyOrig(1205, "Lock wait timeout exceeded"))

    with pytest.raises(OperationalError):
        await with_db_retry(session, always_locked)

    assert calls["count"] == 3
    assert session.rollback_calls == 2


@pytest.mark.anyio
async def test_non_transient_error_not_retried(fast_retries):
    session = DummySession()
    calls = {"count": 0}

    async def duplicate_operation():
        calls["count"] += 1
        raise IntegrityError("stmt", {}, DummyOrig(1062, "Duplicate entry 'x' for key 'slug'"))

    with pytest.raises(IntegrityError):
        await with_db_retry(session, duplicate_operation)

    assert calls["count"] == 1
    assert session.rollback_calls == 0


def test_postgres_serialization_failure_is_retriable():
    exc = OperationalError("stmt", {}, DummyOrig(0, "could not serialize access", sqlstate="40001"))
    assert is_retriable(exc)


def test_sqlite_busy_database_is_retriable():
    exc = OperationalError("stmt", {}, Exception("database is locked"))
    assert is_retriable(exc)


def test_policy_backoff_doubles_per_attempt():
    policy = RetryPolicy(attempts=4, base_delay=0.1, jitter=0.0)

    assert [policy.backoff(n) for n in (1, 2, 3)] == pytest.approx([0.1, 0.2, 0.4])


@pytest.mark.anyio
async def test_explicit_policy_overrides_settings(fast_retries):
    session = DummySession()
    calls = {"count": 0}

    async def always_deadlocked():
        calls["count"] += 1
        raise OperationalError("stmt", {}, DummyOrig(1213, "Deadlock found"))

    with pytest.raises(OperationalError):
        await with_db_retry(session, always_deadlocked, RetryPolicy(1, 0.0, 0.0))

    assert calls["count"] == 1
