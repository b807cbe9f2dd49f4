import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobcore.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class JobCoreException(Exception):
    """Base exception for the job core.

    ``retryable`` tells the retry scheduler whether another attempt can
    succeed; ``status_code`` is used when the error reaches an HTTP boundary.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(JobCoreException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class NotFoundError(JobCoreException):
    """Raised when a resource is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class AuthError(JobCoreException):
    """Raised when credentials are missing or rejected."""

    def __init__(
        self, message: str = "Unauthorized", details: dict[str, Any] | None = None
    ):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, details)


class SignatureError(AuthError):
    """Raised when a webhook signature or timestamp does not check out."""


class NetworkError(JobCoreException):
    """Connection-level failure talking to a remote service."""

    retryable = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)


class DeliveryTimeout(NetworkError):
    """A remote call exceeded its timeout."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.status_code = status.HTTP_504_GATEWAY_TIMEOUT


class RemoteServerError(JobCoreException):
    """The remote side answered with a 5xx status."""

    retryable = True

    def __init__(
        self,
        message: str,
        remote_status: int,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)
        self.remote_status = remote_status


class RemoteClientError(JobCoreException):
    """The remote side rejected the request with a 4xx status."""

    def __init__(
        self,
        message: str,
        remote_status: int,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)
        self.remote_status = remote_status


class PartialFailure(JobCoreException):
    """Some sub-targets of a job failed while others may have succeeded.

    Never fails a job by itself; its message becomes the job's
    ``error_message`` once the job is finalized.
    """

    def __init__(self, label: str, failures: dict[str, str]):
        described = "; ".join(f"{target}: {error}" for target, error in failures.items())
        super().__init__(
            f"{label}: {described}",
            status.HTTP_207_MULTI_STATUS,
            {"failures": failures},
        )
        self.failures = failures


def error_for_status(status_code: int, body: str, service: str) -> JobCoreException:
    """Map a non-2xx response from ``service`` to the matching exception."""
    snippet = body[:200]
    message = f"{service} returned HTTP {status_code}: {snippet}"
    if status_code in (401, 403):
        return AuthError(message, {"remote_status": status_code})
    if 400 <= status_code < 500:
        return RemoteClientError(message, status_code)
    return RemoteServerError(message, status_code)


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {
            "message": message,
            "code": status_code,
            "details": details or {},
        },
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def jobcore_exception_handler(
    request: Request, exc: JobCoreException
) -> JSONResponse:
    """Handle job core exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=str(exc.detail),
            request_id=request_id,
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        request_id=request_id,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
            request_id=request_id,
        ),
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to add request context and correlation IDs."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        add_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response
