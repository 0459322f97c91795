"""Shared helpers for database error handling."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tattoo_directory.core.errors import ExternalServiceError

MYSQL_DUPLICATE_ENTRY = 1062
UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the integrity error comes from a unique/primary key constraint."""

    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True
    if orig is not None and getattr(orig, "args", None):
        try:
            if int(orig.args[0]) == MYSQL_DUPLICATE_ENTRY:
                return True
        except (TypeError, ValueError):
            pass
    message = str(orig if orig is not None else exc).lower()
    return "unique constraint" in message or "duplicate" in message


def external_error(exc: SQLAlchemyError, action: str) -> ExternalServiceError:
    """Wrap a datastore failure so callers surface it as a 500."""

    return ExternalServiceError(
        f"Failed to {action}",
        details=str(getattr(exc, "orig", None) or exc),
    )
