"""Exception hierarchy for the resilient API client.

Every call made through the client resolves either to a success payload or
to an ``ApiError``. The error carries a ``kind`` drawn from a closed
taxonomy so presentation code can branch deterministically, plus the HTTP
status and any structured payload the server sent back.

Exception Hierarchy:
    ApiError (base, carries ``kind``)
    ├── NetworkError - No response / connection failure
    ├── TimeoutError - Attempt exceeded its timeout (or HTTP 408)
    ├── UnauthorizedError - HTTP 401 or failed token refresh
    ├── ForbiddenError - HTTP 403
    ├── NotFoundError - HTTP 404
    ├── ServerError - HTTP 5xx and 429
    ├── ValidationError - HTTP 400 / 422, with field errors in ``data``
    ├── UnknownError - Anything unrecognized
    └── CancelledError - Caller aborted the call

Example:
    Branching on the kind::

        try:
            user = await client.get("/users/me")
        except ApiError as e:
            if e.kind is ErrorKind.UNAUTHORIZED:
                redirect_to_login()
            elif e.kind is ErrorKind.VALIDATION:
                show_field_errors(e.data)

    Catching a specific class::

        try:
            await client.delete("/items/42")
        except NotFoundError:
            pass
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed taxonomy of failure kinds."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    SERVER = "server"
    VALIDATION = "validation"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"


class ApiError(Exception):
    """Base exception for every failure surfaced by the client.

    Attributes are read-only once constructed; the same instance may be
    delivered to several concurrent callers sharing one in-flight request.

    Attributes:
        kind: The taxonomy kind of this failure.
        status: HTTP status code, if a response was received.
        data: Structured payload from the response body (if any).
        message: Human-readable error description.
    """

    default_kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        status: int | None = None,
        data: Any = None,
        kind: ErrorKind | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            status: HTTP status code, if a response was received.
            data: Structured payload from the response body.
            kind: Overrides the class-level kind (used by the base class only).
        """
        self._message = message
        self._status = status
        self._data = data
        if kind is not None:
            self._kind = ErrorKind(kind)
        else:
            self._kind = type(self).default_kind
        super().__init__(message)

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def status(self) -> int | None:
        return self._status

    @property
    def data(self) -> Any:
        return self._data

    @property
    def message(self) -> str:
        return self._message

    @property
    def retryable_kind(self) -> bool:
        """Whether the kind alone marks this as a transport-level transient failure."""
        return self._kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT)

    def to_dict(self) -> dict[str, Any]:
        """Return the boundary representation of this error."""
        return {
            "kind": self._kind.value,
            "status": self._status,
            "data": self._data,
            "message": self._message,
        }

    def __str__(self) -> str:
        """Return string representation including status code and kind."""
        if self._status is not None:
            return f"[HTTP {self._status}] [{self._kind.value}] {self._message}"
        return f"[{self._kind.value}] {self._message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self._kind.value!r}, "
            f"status={self._status!r}, message={self._message!r})"
        )


class NetworkError(ApiError):
    """No response was received from the server.

    Raised for refused connections, DNS failures, dropped sockets, and
    other transport-level failures. Retried automatically for GET requests.
    """

    default_kind = ErrorKind.NETWORK


class TimeoutError(ApiError):
    """A single attempt exceeded its timeout.

    Also used for HTTP 408 responses. Retried automatically for GET requests.

    Attributes:
        timeout: The timeout that applied to the attempt, in seconds.
    """

    default_kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        status: int | None = None,
        data: Any = None,
        timeout: float | None = None,
    ) -> None:
        self.timeout = timeout
        super().__init__(message, status=status, data=data)


class UnauthorizedError(ApiError):
    """Authentication failed (HTTP 401), or a token refresh failed."""

    default_kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(ApiError):
    """The caller is authenticated but not allowed (HTTP 403)."""

    default_kind = ErrorKind.FORBIDDEN


class NotFoundError(ApiError):
    """Resource not found (HTTP 404)."""

    default_kind = ErrorKind.NOT_FOUND


class ServerError(ApiError):
    """Server-side failure (HTTP 5xx) or rate limiting (HTTP 429)."""

    default_kind = ErrorKind.SERVER


class ValidationError(ApiError):
    """Request validation failed (HTTP 400 / 422).

    ``data`` carries the server's field-level error payload verbatim.

    Example:
        try:
            await client.post("/users", body={"email": ""})
        except ValidationError as e:
            for field, errors in (e.data or {}).items():
                print(f"  {field}: {errors}")
    """

    default_kind = ErrorKind.VALIDATION


class UnknownError(ApiError):
    """Unrecognized status code or unexpected response shape."""

    default_kind = ErrorKind.UNKNOWN


class CancelledError(ApiError):
    """The caller aborted the call before it settled."""

    default_kind = ErrorKind.CANCELLED


ERROR_CLASSES: dict[ErrorKind, type[ApiError]] = {
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.TIMEOUT: TimeoutError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.FORBIDDEN: ForbiddenError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.UNKNOWN: UnknownError,
    ErrorKind.CANCELLED: CancelledError,
}


def error_for_kind(
    kind: ErrorKind,
    message: str,
    status: int | None = None,
    data: Any = None,
) -> ApiError:
    """Build the ApiError subclass matching ``kind``.

    Args:
        kind: The taxonomy kind.
        message: Human-readable error description.
        status: HTTP status code, if any.
        data: Structured payload, if any.

    Returns:
        An instance of the subclass registered for ``kind``.
    """
    error_cls = ERROR_CLASSES[ErrorKind(kind)]
    return error_cls(message, status=status, data=data)
