"""Retry transient datastore conflicts: deadlocks, lock waits, serialization failures."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.config import Settings, settings

T = TypeVar("T")

# ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
MYSQL_RETRIABLE_ERROR_CODES = frozenset({1205, 1213})
# serialization_failure, deadlock_detected
RETRIABLE_SQLSTATES = frozenset({"40001", "40P01"})
RETRIABLE_MESSAGES = ("deadlock", "lock wait timeout", "database is locked")


def is_retriable(exc: DBAPIError) -> bool:
    """True for conflicts that a fresh transaction can be expected to clear."""

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False
    if (getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)) in RETRIABLE_SQLSTATES:
        return True
    code = orig.args[0] if orig.args else None
    if isinstance(code, int) and code in MYSQL_RETRIABLE_ERROR_CODES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in RETRIABLE_MESSAGES)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int
    base_delay: float
    jitter: float

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            attempts=max(1, config.DB_RETRY_ATTEMPTS),
            base_delay=config.DB_RETRY_BASE_DELAY,
            jitter=config.DB_RETRY_JITTER,
        )

    def backoff(self, attempt: int) -> float:
        return self.base_delay * (2 ** (attempt - 1)) + random.uniform(0, self.jitter)


async def with_db_retry(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
) -> T:
    """Run ``operation``, retrying it in a fresh transaction on transient conflicts.

    The session is rolled back before every retry, so ``operation`` must be
    safe to run again from the start. Non-transient errors and the last
    transient one propagate unchanged.
    """

    policy = policy or RetryPolicy.from_settings(settings)
    attempt = 1
    while True:
        try:
            return await operation()
        except DBAPIError as exc:
            if attempt >= policy.attempts or not is_retriable(exc):
                raise
            await session.rollback()
            delay = policy.backoff(attempt)
            logger.bind(
                attempt=attempt,
                max_attempts=policy.attempts,
                sleep=round(delay, 4),
                error=str(exc.orig),
            ).warning("db_retry_deadlock")
            await asyncio.sleep(delay)
            attempt += 1
