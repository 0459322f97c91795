"""Async database engine construction and session helpers.

The engine and session factory are built by the hosting process at startup
(see ``tattoo_directory.main``) and stored on ``app.state``; nothing here is
created on import.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, AsyncIterator, Iterator, Optional

from anyio import fail_after
from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tattoo_directory.core.config import Settings
from tattoo_directory.core.errors import ExternalServiceError


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine with pool and connect timeouts from settings."""

    url = settings.database_url
    options: dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        return create_async_engine(url, **options)

    options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        isolation_level=settings.DB_ISOLATION_LEVEL,
    )
    if url.startswith("mysql"):
        options["connect_args"] = {"connect_timeout": settings.DB_CONNECT_TIMEOUT_SEC}
    elif url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"timeout": settings.DB_CONNECT_TIMEOUT_SEC}
    return create_async_engine(url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an async database session."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


@contextmanager
def datastore_deadline(seconds: Optional[float]) -> Iterator[None]:
    """Bound a block of datastore work by ``seconds`` (``None`` for no bound).

    A timeout is fatal to the block and surfaces as ``ExternalServiceError``,
    unlike cache timeouts which only turn into misses.
    """

    try:
        with fail_after(seconds):
            yield
    except TimeoutError as exc:
        raise ExternalServiceError(
            "Database operation timed out",
            details=f"exceeded {seconds}s",
        ) from exc
