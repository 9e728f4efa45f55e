"""Error taxonomy shared by services and the HTTP layer, plus Litestar handlers."""

import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from postboard.lib import observability

logger = logging.getLogger(__name__)


class PostboardError(Exception):
    """Base class for errors raised by postboard services."""

    status_code = HTTP_500_INTERNAL_SERVER_ERROR


class TargetNotFoundError(PostboardError):
    """The post or comment an operation refers to does not exist."""

    status_code = HTTP_404_NOT_FOUND

    def __init__(self, target: str, target_id: int | None) -> None:
        self.target = target
        self.target_id = target_id
        super().__init__(f"{target.capitalize()} not found")


class InvalidArgumentError(PostboardError):
    """A required identifier is missing or malformed."""

    status_code = HTTP_400_BAD_REQUEST


class StorageFailureError(PostboardError):
    """Unexpected persistence failure. Never retried by the services."""


def require_id(value, name: str) -> int:
    """Coerce an identifier to int, raising InvalidArgumentError when absent or malformed."""
    if value is None or value == "":
        raise InvalidArgumentError(f"Missing required field: {name}")
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid {name}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid {name}: {value!r}") from None


def _json_error(status_code: int, detail: str) -> Response:
    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )


def postboard_exception_handler(request: Request, exc: PostboardError) -> Response:
    """Translate service errors: 404 for missing targets, 400 for bad input, 500 otherwise."""
    if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        return internal_server_error_handler(request, exc)
    return _json_error(exc.status_code, str(exc))


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _json_error(exc.status_code, detail)


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Log the failure and hide its details from API clients."""
    if not observability.exception(
        "Unhandled exception on {method} {path}",
        method=request.method,
        path=request.url.path,
    ):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return _json_error(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


EXCEPTION_HANDLERS = {
    PostboardError: postboard_exception_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}
