from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from boilerplate.core.config import settings

_LOG = logging.getLogger("boilerplate.errors")

# Postgres SQLSTATE -> (status, error, message)
_SQLSTATE_ERRORS = {
    "23505": (409, "ConflictError", "Resource already exists"),
    "23503": (400, "ReferenceError", "Referenced resource does not exist"),
    "22P02": (400, "ValidationError", "Invalid data format"),
}


class ListQueryError(ValueError):
    """Client fault in list query parameters: unknown field, bad operator or value."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


def error_body(status_code: int, message: Any, error: str, path: str, details: Any = None) -> dict:
    body = {
        "statusCode": status_code,
        "message": message,
        "error": error,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": path,
    }
    if details is not None:
        body["details"] = details
    return body


def _status_name(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.replace(" ", "").replace("-", "")
    except ValueError:
        return "HttpError"


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def describe_db_error(exc: SQLAlchemyError) -> tuple[int, str, str]:
    code = _sqlstate(exc)
    if code in _SQLSTATE_ERRORS:
        return _SQLSTATE_ERRORS[code]
    if isinstance(exc, IntegrityError):
        return _SQLSTATE_ERRORS["23505"]
    return 500, "QueryError", "Database query failed"


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ListQueryError)
    async def _list_query_error(request: Request, exc: ListQueryError):
        body = error_body(400, exc.message, "ValidationError", request.url.path, exc.details)
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        body = error_body(exc.status_code, exc.detail, _status_name(exc.status_code), request.url.path)
        return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        details = jsonable_encoder(exc.errors())
        body = error_body(422, "Request validation failed", "ValidationError", request.url.path, details)
        return JSONResponse(status_code=422, content=body)

    @app.exception_handler(SQLAlchemyError)
    async def _db_error(request: Request, exc: SQLAlchemyError):
        status_code, error, message = describe_db_error(exc)
        if status_code >= 500:
            _LOG.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        details = None
        if not settings.is_production:
            details = {"code": _sqlstate(exc), "type": type(exc).__name__}
        return JSONResponse(status_code=status_code, content=error_body(status_code, message, error, request.url.path, details))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        _LOG.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = "Internal server error" if settings.is_production else str(exc) or "Internal server error"
        return JSONResponse(status_code=500, content=error_body(500, message, "InternalServerError", request.url.path))
