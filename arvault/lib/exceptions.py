"""Application errors and the Litestar handlers that render them.

Every error response shares one JSON shape::

    {"error": str, "code": str, "details": ..., "timestamp": str, "requestId": str}

``details`` is omitted when there is nothing to add. Front-ends branch on
``code``; ``error`` is human-readable prose and may change.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from litestar import Request, Response
from litestar.exceptions import HTTPException, ValidationException
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR
from sqlalchemy.exc import SQLAlchemyError

from arvault.lib import observability

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error with a stable machine-readable code."""

    code = "INTERNAL_ERROR"
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Validation failed"


class MissingFieldError(ValidationError):
    code = "MISSING_REQUIRED_FIELD"
    message = "Required field is missing"

    def __init__(self, *fields: str) -> None:
        super().__init__(
            f"Missing required fields: {', '.join(fields)}",
            details={"fields": list(fields)},
        )


class InvalidFormatError(ValidationError):
    code = "INVALID_FORMAT"
    message = "Invalid format"


class QuotaExceededError(AppError):
    """Raised when a user has reached their model upload ceiling."""

    code = "QUOTA_EXCEEDED"
    status_code = 400

    def __init__(self, current_count: int, max_models: int) -> None:
        super().__init__(
            f"Model upload limit reached ({current_count}/{max_models})",
            details={
                "current_count": current_count,
                "max_models": max_models,
                "note": "Delete a model or ask an administrator to raise your limit",
            },
        )


class FileTooLargeError(AppError):
    code = "FILE_TOO_LARGE"
    status_code = 413
    message = "File exceeds the size limit"


class AuthenticationError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    message = "Unauthorized"


class TokenInvalidError(AuthenticationError):
    code = "TOKEN_INVALID"
    message = "Invalid token"


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"
    message = "Token has expired"


class AccessDeniedError(AppError):
    code = "ACCESS_DENIED"
    status_code = 403
    message = "Access denied"


class AdminRequiredError(AccessDeniedError):
    code = "ADMIN_REQUIRED"
    message = "Administrator access required"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Resource not found"


class ShareExpiredError(AppError):
    code = "SHARE_EXPIRED"
    status_code = 410
    message = "Share has expired"


class RateLimitedError(AppError):
    code = "RATE_LIMITED"
    status_code = 429
    message = "Too many requests"


class ConsistencyError(AppError):
    """The object store and metadata store disagree after a failed write."""

    code = "CONSISTENCY_ERROR"
    message = "Upload could not be recorded"


class DatabaseError(AppError):
    """The metadata store failed or is unreachable."""

    code = "DATABASE_ERROR"
    message = "Database operation failed"


class StorageError(AppError):
    code = "STORAGE_ERROR"
    status_code = 502
    message = "Object store unavailable"


def _request_id(request: Request) -> str:
    return request.scope.get("state", {}).get("request_id", "")


def error_body(
    message: str,
    code: str,
    details: Any = None,
    request_id: str = "",
) -> dict[str, Any]:
    """Build the shared error payload."""
    body: dict[str, Any] = {"error": message, "code": code}
    if details is not None:
        body["details"] = details
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    body["requestId"] = request_id
    return body


def app_error_handler(request: Request, exc: AppError) -> Response:
    """Render an AppError with its own status and code."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message
        )
    return Response(
        content=error_body(exc.message, exc.code, exc.details, _request_id(request)),
        status_code=exc.status_code,
        media_type="application/json",
    )


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Render Litestar HTTP exceptions (routing, parsing, guards) in the shared shape."""
    status_code = exc.status_code
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if isinstance(exc, ValidationException):
        code = "VALIDATION_ERROR"
        details = exc.extra or None
    else:
        code = _CODES_BY_STATUS.get(status_code, "HTTP_ERROR")
        details = None

    return Response(
        content=error_body(detail, code, details, _request_id(request)),
        status_code=status_code,
        media_type="application/json",
    )


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Log unexpected exceptions and hide their details from the client."""
    method = request.method
    path = request.url.path
    if not observability.exception(
        "Unhandled exception on {method} {path}", method=method, path=path
    ):
        logger.exception("Unhandled exception on %s %s", method, path)

    return Response(
        content=error_body(
            "An unexpected error occurred", "INTERNAL_ERROR", None, _request_id(request)
        ),
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/json",
    )


def database_error_handler(request: Request, exc: SQLAlchemyError) -> Response:
    """Metadata store failures surface as DATABASE_ERROR without driver details."""
    logger.error(
        "Database error on %s %s", request.method, request.url.path, exc_info=exc
    )
    error = DatabaseError()
    return Response(
        content=error_body(error.message, error.code, None, _request_id(request)),
        status_code=error.status_code,
        media_type="application/json",
    )


_CODES_BY_STATUS = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "ACCESS_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "FILE_TOO_LARGE",
    429: "RATE_LIMITED",
}

EXCEPTION_HANDLERS = {
    AppError: app_error_handler,
    HTTPException: http_exception_handler,
    SQLAlchemyError: database_error_handler,
    Exception: internal_server_error_handler,
}
