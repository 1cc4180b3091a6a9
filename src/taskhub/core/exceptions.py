"""Domain exceptions and the handlers that turn them into HTTP responses.

Every error response carries the request_id so clients can quote it in bug
reports.
"""

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.taskhub.core.logging import get_logger

logger = get_logger(__name__)


class TaskhubError(Exception):
    """Base class for errors raised by the service layer."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskhubError):
    """Input failed validation (bad content, malformed timestamp, ...)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(TaskhubError):
    """A referenced user, project or message does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, field: str, value: object):
        super().__init__(f"{resource} not found with {field}: '{value}'")
        self.resource = resource
        self.field = field
        self.value = value


class AuthenticationError(TaskhubError):
    """No valid identity could be established for the caller."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(TaskhubError):
    """The caller is known but not allowed to perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class RateLimitedError(TaskhubError):
    """The caller exceeded a per-user rate limit."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS


def _error_response(
    status_code: int, detail: object, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "request_id": correlation_id.get(),
        },
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers that include request_id in responses."""

    @app.exception_handler(TaskhubError)
    async def taskhub_exception_handler(request: Request, exc: TaskhubError) -> JSONResponse:
        if isinstance(exc, AuthorizationError):
            logger.warning("Access denied", path=request.url.path, reason=exc.message)
        response = _error_response(exc.status_code, exc.message)
        if isinstance(exc, AuthenticationError):
            response.headers["WWW-Authenticate"] = "Bearer"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error_response(exc.status_code, exc.detail, getattr(exc, "headers", None))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _error_response(exc.status_code, exc.detail, getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = correlation_id.get()
        logger.exception(
            "Unhandled exception",
            exc_info=exc,
            request_id=request_id,
            path=request.url.path,
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
