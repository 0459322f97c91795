"""Dialect-aware insert helpers shared by the repositories."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import insert
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.db import dialect_name
from tattoo_directory.core.db_errors import is_unique_violation


def _conflict_free_statement(
    dialect: str, model: type, values: dict[str, Any], index_elements: Sequence[str]
):
    if dialect == "postgresql":
        return pg_insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(index_elements)
        )
    if dialect == "sqlite":
        return sqlite_insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(index_elements)
        )
    if dialect in ("mysql", "mariadb"):
        # A duplicate leaves the existing row untouched and affects 0 rows.
        return mysql_insert(model).values(**values).prefix_with("IGNORE")
    return None


async def insert_ignoring_duplicates(
    session: AsyncSession,
    model: type,
    values: dict[str, Any],
    index_elements: Sequence[str],
) -> bool:
    """Atomically insert ``values`` unless a row with the same natural key exists.

    Returns True when this call created the row. Concurrent callers racing on
    the same key never raise; the loser simply observes ``False``.
    """

    stmt = _conflict_free_statement(dialect_name(session), model, values, index_elements)
    if stmt is not None:
        result = await session.execute(stmt)
        return result.rowcount == 1

    try:
        async with session.begin_nested():
            await session.execute(insert(model).values(**values))
        return True
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        return False
