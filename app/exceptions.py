"""
Application error taxonomy and the outermost exception handlers.

Every failure leaving the API is rendered as::

    {"success": false, "error": {"code": "...", "message": "..."}}

Business errors raised by services (``AppError`` subclasses) and database
errors translated by ``translate_db_error`` go through the same handler.
Database errors are classified by the driver's structured error code
(PostgreSQL SQLSTATE, SQLite extended error name), never by message text.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.logging_config import mask_path

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        self.message = message or self.message
        self.code = code or self.code
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You do not have permission to perform this action"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class InternalError(AppError):
    pass


# ---------------------------------------------------------------------------
# Database error translation
# ---------------------------------------------------------------------------

PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_NOT_NULL_VIOLATION = "23502"
PG_CHECK_VIOLATION = "23514"
PG_STRING_TOO_LONG = "22001"

_SQLITE_UNIQUE = frozenset({"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"})
_SQLITE_FOREIGN_KEY = "SQLITE_CONSTRAINT_FOREIGNKEY"
_SQLITE_NOT_NULL = "SQLITE_CONSTRAINT_NOTNULL"
_SQLITE_CHECK = "SQLITE_CONSTRAINT_CHECK"


def _driver_code(exc: BaseException) -> str | None:
    """
    Return the structured error code carried by the DBAPI exception wrapped
    in *exc*.  The SQLAlchemy asyncpg adapter exposes ``sqlstate``/``pgcode``;
    the sqlite3 module exposes ``sqlite_errorname``.
    """
    orig = getattr(exc, "orig", None)
    candidates = [orig, getattr(orig, "__cause__", None)] if orig is not None else []
    for candidate in candidates:
        if candidate is None:
            continue
        for attr in ("sqlstate", "pgcode", "sqlite_errorname"):
            value = getattr(candidate, attr, None)
            if value:
                return str(value)
    return None


def is_unique_violation(exc: BaseException) -> bool:
    code = _driver_code(exc)
    return code == PG_UNIQUE_VIOLATION or code in _SQLITE_UNIQUE


def translate_db_error(exc: Exception) -> AppError:
    """Map a SQLAlchemy exception to the application error taxonomy."""
    if isinstance(exc, NoResultFound):
        return NotFoundError()

    code = _driver_code(exc)
    if code == PG_UNIQUE_VIOLATION or code in _SQLITE_UNIQUE:
        return ConflictError("A record with these unique fields already exists")
    if code in (PG_FOREIGN_KEY_VIOLATION, _SQLITE_FOREIGN_KEY):
        return ValidationError("Referenced record does not exist", code="FOREIGN_KEY_VIOLATION")
    if code in (PG_NOT_NULL_VIOLATION, _SQLITE_NOT_NULL):
        return ValidationError("A required field is missing")
    if code in (PG_CHECK_VIOLATION, _SQLITE_CHECK):
        return ValidationError("A constraint on the submitted data was violated")
    if code == PG_STRING_TOO_LONG:
        return ValidationError("A value exceeds the maximum allowed length")
    return InternalError()


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


def _request_path(request: Request) -> str:
    return mask_path(request.url.path, request.scope.get("query_string", b""))


def _render(request: Request, error: AppError, exc: Exception | None = None) -> JSONResponse:
    path = _request_path(request)
    if error.status_code >= 500:
        logger.error(
            "%s %s -> %d %s",
            request.method, path, error.status_code, error.code,
            exc_info=exc,
        )
    else:
        logger.info(
            "%s %s -> %d %s: %s",
            request.method, path, error.status_code, error.code, error.message,
        )
    return JSONResponse(
        status_code=error.status_code,
        content=error_body(error.code, error.message),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _render(request, exc)


async def db_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    error = translate_db_error(exc)
    return _render(request, error, exc if error.status_code >= 500 else None)


async def no_result_handler(request: Request, exc: NoResultFound) -> JSONResponse:
    return _render(request, NotFoundError())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return _render(request, ValidationError("; ".join(details) or "Invalid request"))


_HTTP_STATUS_ERRORS: dict[int, type[AppError]] = {
    400: ValidationError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_cls = _HTTP_STATUS_ERRORS.get(exc.status_code)
    if error_cls is None:
        error = AppError(str(exc.detail), code="HTTP_ERROR")
        error.status_code = exc.status_code
    else:
        error = error_cls(str(exc.detail) if exc.detail else None)
    return _render(request, error)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return _render(request, InternalError(), exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(DBAPIError, db_error_handler)
    app.add_exception_handler(NoResultFound, no_result_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
