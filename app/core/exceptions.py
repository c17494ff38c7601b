"""Error taxonomy shared by services and the HTTP layer."""

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error with a stable kind, an HTTP status and a readable message."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None) -> None:
        self.message = message
        self.fields = fields
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"error": self.kind, "detail": self.message}
        if self.fields:
            body["fields"] = self.fields
        return body


class ValidationError(AppError):
    """Malformed input: bad email, short password, disallowed or oversized file."""

    kind = "validation_error"
    status_code = 400


class UnauthorizedError(AppError):
    """Bad credentials or a missing, expired or invalid bearer token."""

    kind = "unauthorized"
    status_code = 401


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404


class ConflictError(AppError):
    kind = "conflict"
    status_code = 409


class DependencyError(AppError):
    """An external collaborator (object store or database) failed."""

    kind = "dependency_error"
    status_code = 500


class StorageError(DependencyError):
    pass


class DatabaseError(DependencyError):
    pass


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {}
    for err in exc.errors():
        # Drop the leading "body"/"query" segment from the location.
        loc = [str(part) for part in err.get("loc", ())[1:]] or ["request"]
        fields[".".join(loc)] = err.get("msg", "Invalid value")
    error = ValidationError("Request validation failed", fields=fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s hit a database error", request.method, request.url.path, exc_info=exc)
    error = DatabaseError("Database unavailable")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
