"""Classification of raw transport outcomes into ApiErrors.

Every outcome of a transport attempt, a response or a raised exception,
is mapped onto exactly one ``ErrorKind``. The functions here are pure:
they read the outcome and build an error value, nothing else.

This is an internal module and should not be imported directly by users.
"""

import asyncio
import builtins
from typing import Any

import httpx

from apiclient.exceptions import (
    ApiError,
    ErrorKind,
    NetworkError,
    TimeoutError,
    UnknownError,
    error_for_kind,
)

# Status codes with a dedicated kind; anything else is UNKNOWN unless 5xx
STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    408: ErrorKind.TIMEOUT,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.SERVER,
    500: ErrorKind.SERVER,
    502: ErrorKind.SERVER,
    503: ErrorKind.SERVER,
    504: ErrorKind.SERVER,
}


def kind_for_status(status_code: int) -> ErrorKind | None:
    """Return the kind for an HTTP status, or None for a success status.

    Args:
        status_code: The HTTP status code.

    Returns:
        None for 2xx, otherwise the matching ErrorKind.
    """
    if 200 <= status_code < 300:
        return None
    if status_code in STATUS_KINDS:
        return STATUS_KINDS[status_code]
    if 500 <= status_code < 600:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN


def _response_body(response: httpx.Response) -> Any:
    """Return the decoded JSON body, the raw text, or None when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_field(loc: Any) -> str:
    """Return the field name from a validation error ``loc``."""
    if isinstance(loc, (list, tuple)) and loc:
        return str(loc[-1])
    if isinstance(loc, str) and loc:
        return loc
    return "unknown"


def _parse_error_response(response: httpx.Response) -> tuple[str, Any]:
    """Parse an error response to extract a message and structured payload.

    Recognizes the common shapes servers use for errors:
    ``{"detail": ...}``, ``{"message": ..., "errors": ...}``,
    ``{"error": ...}`` and the ``{"success": false, ...}`` envelope.
    Falls back to the raw response text if the body is not JSON.

    Args:
        response: The HTTP response to parse.

    Returns:
        A tuple of (message, payload). The payload is the field-error
        mapping/list when one is present, otherwise the whole body.
    """
    body = _response_body(response)
    fallback = f"HTTP {response.status_code} error"

    if body is None:
        return fallback, None
    if isinstance(body, str):
        text = body.strip()
        return (text or fallback), None
    if not isinstance(body, dict):
        return fallback, body

    detail = body.get("detail")
    if isinstance(detail, str):
        return detail, body.get("errors", body)
    if isinstance(detail, list):
        # FastAPI validation errors come as a list
        messages = [
            f"{_error_field(err.get('loc'))}: {err.get('msg', 'invalid')}"
            for err in detail
            if isinstance(err, dict)
        ]
        return ("; ".join(messages) or fallback), detail
    if isinstance(detail, dict):
        return str(detail.get("message", fallback)), detail

    for key in ("message", "error"):
        if isinstance(body.get(key), str):
            payload = body.get("errors")
            if payload is None:
                payload = body.get("data", body)
            return body[key], payload

    return fallback, body


def classify_response(response: httpx.Response) -> ApiError | None:
    """Classify an HTTP response.

    Args:
        response: The response returned by the transport.

    Returns:
        None if the status is a success, otherwise the matching ApiError.
        VALIDATION errors carry the server's field-error payload as ``data``.
    """
    kind = kind_for_status(response.status_code)
    if kind is None:
        return None
    message, payload = _parse_error_response(response)
    return error_for_kind(kind, message, status=response.status_code, data=payload)


def classify_exception(
    exc: BaseException,
    url: str | None = None,
    timeout: float | None = None,
) -> ApiError:
    """Classify an exception raised by the transport.

    Args:
        exc: The exception raised instead of a response.
        url: The URL that was being requested (for the message).
        timeout: The timeout that applied to the attempt.

    Returns:
        TIMEOUT for timeouts, NETWORK for connection-level failures,
        and UNKNOWN for anything else. An ApiError is returned unchanged.
    """
    if isinstance(exc, ApiError):
        return exc
    target = f" to {url}" if url else ""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, builtins.TimeoutError)):
        return TimeoutError(f"Request{target} timed out", timeout=timeout)
    if isinstance(exc, (httpx.TransportError, OSError)):
        return NetworkError(f"Request{target} failed: {str(exc) or type(exc).__name__}")
    return UnknownError(f"Request{target} failed unexpectedly: {exc!r}")


def classify(outcome: httpx.Response | BaseException) -> ApiError | None:
    """Classify any transport outcome.

    Args:
        outcome: Either the response or the exception raised by the transport.

    Returns:
        None for a successful response, otherwise the matching ApiError.
    """
    if isinstance(outcome, httpx.Response):
        return classify_response(outcome)
    if isinstance(outcome, BaseException):
        return classify_exception(outcome)
    return UnknownError(f"Unexpected transport outcome: {outcome!r}")
