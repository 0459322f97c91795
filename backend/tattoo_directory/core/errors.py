"""Domain exceptions and their translation into JSON error responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError


class DirectoryError(Exception):
    """Base class for errors raised by the directory services."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"

    def __init__(self, message: str | None = None, *, details: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_body(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DirectoryError):
    """Missing or malformed required input. Never retried."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid request"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_body(self) -> dict[str, str]:
        body = super().to_body()
        if self.field:
            body["field"] = self.field
        return body


class NotFoundError(DirectoryError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ResolutionConflict(DirectoryError):
    """A get-or-create step could not settle on a single row."""

    error = "Location resolution failed"


class ExternalServiceError(DirectoryError):
    """Datastore transport failure or timeout; fatal to the operation."""

    error = "Database operation failed"


def register_exception_handlers(app: FastAPI) -> None:
    """Attach handlers that render domain errors as ``{error, details}`` bodies."""

    async def directory_error_handler(request: Request, exc: DirectoryError):
        if exc.status_code >= 500:
            logger.bind(
                path=str(request.url.path),
                error_type=type(exc).__name__,
                details=exc.details,
            ).error(exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = first.get("loc", ())
        field = ".".join(str(part) for part in location if part not in ("body", "query", "path"))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": f"Invalid value for field: {field}" if field else "Invalid request",
                "details": first.get("msg", ""),
            },
        )

    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
        logger.bind(path=str(request.url.path), error=str(exc)).error("db_error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Database operation failed", "details": str(getattr(exc, "orig", exc))},
        )

    app.add_exception_handler(DirectoryError, directory_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
