"""Error types and the handlers that turn them into the API error envelope.

    {"error": "Permission denied: update on Finance",
     "code": "PERMISSION_DENIED",
     "required": "update on Finance"}

`required` is only present on capability failures and `details` only on
request validation failures. Unexpected exceptions are logged with their
traceback and answered with a generic 500; nothing internal is echoed back.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class; carries the HTTP status and a stable error code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class AuthenticationError(AppError):
    """Missing, malformed, expired or badly signed credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class PermissionDeniedError(AppError):
    """Capability check failed or the ministry is not accessible."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Permission denied", required: str | None = None):
        super().__init__(message)
        self.required = required


class BadRequestError(AppError):
    """Missing ministry reference, invalid value, or a violated business rule."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"


class ResourceNotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, identifier: object | None = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{message}: {identifier}"
        super().__init__(message)


# ── Envelope ─────────────────────────────────────────────────

def error_response(
    status_code: int,
    message: str,
    code: str,
    *,
    required: str | None = None,
    details: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    content: dict = {"error": message, "code": code}
    if required:
        content["required"] = required
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _where(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


# ── Handlers ─────────────────────────────────────────────────

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(f"{exc.error_code}: {exc.message}", extra=_where(request))
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return error_response(
        exc.status_code,
        exc.message,
        exc.error_code,
        required=getattr(exc, "required", None),
        headers=headers,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and any HTTPException raised by FastAPI itself."""
    return error_response(
        exc.status_code,
        str(exc.detail),
        f"HTTP_{exc.status_code}",
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning(f"Rejected request body ({len(errors)} errors)", extra=_where(request))
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "Validation error",
        "VALIDATION_ERROR",
        details={"errors": errors},
    )


# Substring of the driver message → (client message, code)
_INTEGRITY_MESSAGES = (
    ("unique", "A record with this value already exists", "DUPLICATE_RECORD"),
    ("foreign key", "Referenced record does not exist", "FOREIGN_KEY_VIOLATION"),
    ("not null", "Required field is missing", "NULL_VALUE_NOT_ALLOWED"),
    ("check", "Value violates a data constraint", "CONSTRAINT_VIOLATION"),
)


def describe_integrity_error(exc: IntegrityError) -> tuple[str, str]:
    """(client message, code) for a constraint violation."""
    detail = str(exc.orig if exc.orig is not None else exc).lower()
    for needle, message, code in _INTEGRITY_MESSAGES:
        if needle in detail:
            return message, code
    return "Database constraint violation", "INTEGRITY_ERROR"


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error(f"Integrity error: {exc.orig}", extra=_where(request))
    message, code = describe_integrity_error(exc)
    return error_response(status.HTTP_400_BAD_REQUEST, message, code)


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Connection loss or statement timeout."""
    logger.error(f"Database unavailable: {exc}", extra=_where(request))
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable",
        "DATABASE_UNAVAILABLE",
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        extra=_where(request),
        exc_info=exc,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
