"""Transport layer for the resilient API client.

The client never talks to the network itself. It hands each attempt to a
``Transport``: something that, given a method, URL, headers, body and
timeout, returns an ``httpx.Response`` or raises. ``HttpxTransport`` is the
default implementation, a thin wrapper over ``httpx.AsyncClient``.

This is an internal module and should not be imported directly by users.
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import httpx


@runtime_checkable
class Transport(Protocol):
    """Capability that performs a single network call."""

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any,
        timeout: float,
    ) -> httpx.Response:
        """Perform the call and return the raw response.

        Raises:
            httpx.TransportError: On connection-level failures.
            httpx.TimeoutException: When ``timeout`` elapses.
        """
        ...


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``.

    Bodies are sent as JSON; ``bytes`` and ``str`` bodies are sent raw.

    Attributes:
        owns_client: Whether ``aclose`` closes the wrapped client.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            client: An existing AsyncClient to send through (not closed by us).
            transport: Custom httpx transport (e.g., MockTransport or
                ASGITransport for testing) used when no client is given.
        """
        self.owns_client = client is None
        self._client = client or httpx.AsyncClient(transport=transport)

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any,
        timeout: float,
    ) -> httpx.Response:
        """Send one request through the wrapped AsyncClient."""
        kwargs: dict[str, Any] = {"headers": dict(headers), "timeout": timeout}
        if isinstance(body, (bytes, str)):
            kwargs["content"] = body
        elif body is not None:
            kwargs["json"] = body
        return await self._client.request(method, url, **kwargs)

    async def aclose(self) -> None:
        """Close the wrapped client if this transport created it."""
        if self.owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
