"""
Error taxonomy and auth-failure classification.

Every failure coming back from a remote call is reduced to an ``ErrorShape``
before it is classified, so classification never has to poke around in the
internals of whatever library raised it.
"""

from dataclasses import dataclass
from typing import Any

AUTH_STATUS_CODES = frozenset({401, 403})
AUTH_ERROR_CODES = frozenset({"UNAUTHENTICATED", "PERMISSION_DENIED"})
AUTH_MESSAGE_MARKERS = (
    "invalid_grant",
    "invalid_credentials",
    "unauthorized",
    "authentication",
    "invalid token",
)


class GTasksError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(GTasksError):
    """OAuth client identity file is missing or malformed."""


class PersistenceError(GTasksError):
    """Credential file could not be read or written."""


class AuthorizationError(GTasksError):
    """Interactive authorization did not produce a credential."""


class ValidationError(GTasksError):
    """A tool invocation is missing a required parameter."""

    def __init__(self, message: str, *, tool: str | None = None, param: str | None = None):
        super().__init__(message)
        self.tool = tool
        self.param = param


class ToolNotFoundError(ValidationError):
    """A tool invocation names no known tool."""

    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}", tool=name)


class ToolExecutionError(GTasksError):
    """A tool ran and failed; carries the text reported back to the host."""


@dataclass(frozen=True)
class ErrorShape:
    """Normalized view of a remote-call failure."""

    http_status: int | None = None
    code: str | None = None
    message: str | None = None


class ApiError(GTasksError):
    """An error that already carries the normalized shape."""

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        code: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.code = code
        self.details = details

    @property
    def shape(self) -> ErrorShape:
        return ErrorShape(http_status=self.http_status, code=self.code, message=self.message)

    def __str__(self) -> str:
        if self.http_status is not None:
            return f"HTTP {self.http_status}: {self.message}"
        return self.message


class TasksApiError(ApiError):
    """Google Tasks API returned an error response."""


class RefreshError(ApiError):
    """Token endpoint rejected or failed a refresh request."""


class NotAuthenticatedError(ApiError):
    """No access token is available to authorize a request."""

    def __init__(self, message: str = "No access token available; authorization required"):
        super().__init__(message, http_status=401, code="UNAUTHENTICATED")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _nested_error_status(payload: Any) -> str | None:
    """Pull ``error.status`` out of a Google-style error payload."""
    if not isinstance(payload, dict):
        return None
    error = payload.get("error", payload)
    if isinstance(error, dict):
        status = error.get("status")
        if isinstance(status, str):
            return status
    return None


def normalize_error(error: BaseException) -> ErrorShape:
    """Map an arbitrary exception onto an ``ErrorShape``.

    ``ApiError`` instances already carry their shape. For anything else
    (httpx errors, third-party exceptions) the status is looked up on the
    error itself, its ``status`` field, or its ``response``; the structured
    code on the error or under its response payload.
    """
    if isinstance(error, ApiError):
        return error.shape

    response = getattr(error, "response", None)

    http_status = None
    for candidate in (
        getattr(error, "http_status", None),
        getattr(error, "status_code", None),
        getattr(error, "status", None),
        getattr(response, "status_code", None),
        getattr(response, "status", None),
        getattr(error, "code", None),
    ):
        http_status = _as_int(candidate)
        if http_status is not None:
            break

    code = None
    raw_code = getattr(error, "code", None)
    if isinstance(raw_code, str) and not raw_code.isdigit():
        code = raw_code
    if code is None and response is not None:
        code = _nested_error_status(getattr(response, "data", None))

    return ErrorShape(http_status=http_status, code=code, message=str(error) or None)


def is_auth_error(error: BaseException | ErrorShape) -> bool:
    """Return True when a failure was caused by missing or invalid credentials."""
    shape = error if isinstance(error, ErrorShape) else normalize_error(error)

    if shape.http_status in AUTH_STATUS_CODES:
        return True

    if shape.message:
        message = shape.message.lower()
        if any(marker in message for marker in AUTH_MESSAGE_MARKERS):
            return True

    return shape.code in AUTH_ERROR_CODES
