"""Authentication token providers.

The client asks its provider for the current token before every attempt
and asks it to refresh once when an attempt comes back UNAUTHORIZED.
Providers that refresh over the network call the Transport directly, never
the client, so a refresh is not cached, deduplicated or retried.

This is an internal module and should not be imported directly by users.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, runtime_checkable

from apiclient._classify import classify_exception, classify_response
from apiclient._transport import Transport
from apiclient.exceptions import UnauthorizedError
from apiclient.models import AuthToken

logger = logging.getLogger(__name__)


@runtime_checkable
class AuthTokenProvider(Protocol):
    """Capability supplying bearer tokens to the client."""

    def get_token(self) -> AuthToken | None:
        """Return the current token, or None if there is none."""
        ...

    async def refresh(self) -> AuthToken:
        """Obtain a fresh token.

        Raises:
            UnauthorizedError: If no token could be obtained. The stored
                token is cleared before raising.
        """
        ...


class StaticTokenProvider:
    """Provider holding a fixed token that cannot be refreshed.

    A refresh clears the token, so after the server rejects it the client
    stops presenting it.
    """

    def __init__(self, token: AuthToken | str | None = None) -> None:
        if isinstance(token, str):
            token = AuthToken(access_token=token)
        self._token = token

    def get_token(self) -> AuthToken | None:
        if self._token is not None and self._token.is_expired():
            return None
        return self._token

    def set_token(self, token: AuthToken | str | None) -> None:
        if isinstance(token, str):
            token = AuthToken(access_token=token)
        self._token = token

    async def refresh(self) -> AuthToken:
        self._token = None
        raise UnauthorizedError("Token cannot be refreshed")


def _token_payload(body: Any) -> dict[str, Any] | None:
    """Extract the token mapping from a bare or enveloped refresh response."""
    if not isinstance(body, dict):
        return None
    if "success" in body and isinstance(body.get("data"), dict):
        if not body["success"]:
            return None
        body = body["data"]
    if isinstance(body.get("access_token"), str) and body["access_token"]:
        return body
    return None


class RefreshingTokenProvider:
    """Provider that refreshes its token against a refresh endpoint.

    The refresh endpoint receives ``{"refresh_token": ...}`` as a JSON POST
    and answers with ``{"access_token", "expires_in"?, "refresh_token"?}``,
    optionally wrapped in the ``{"success", "data"}`` envelope.

    Concurrent refreshes are collapsed: callers that were waiting on the
    lock while another refresh succeeded get that token without a second
    network call.

    Attributes:
        refresh_url: Absolute URL of the refresh endpoint.
        timeout: Timeout of the refresh call, in seconds.
    """

    def __init__(
        self,
        transport: Transport,
        refresh_url: str,
        refresh_token: str | None,
        token: AuthToken | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the provider.

        Args:
            transport: Transport used for the refresh call.
            refresh_url: Absolute URL of the refresh endpoint.
            refresh_token: Long-lived refresh credential.
            token: Initial access token, if already known.
            timeout: Timeout of the refresh call, in seconds.
        """
        self._transport = transport
        self.refresh_url = refresh_url
        self._refresh_token = refresh_token
        self._token = token
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def get_token(self) -> AuthToken | None:
        if self._token is not None and self._token.is_expired():
            return None
        return self._token

    def clear(self) -> None:
        """Forget the stored access token."""
        self._token = None

    async def refresh(self) -> AuthToken:
        stale = self._token
        async with self._lock:
            if self._token is not None and self._token is not stale:
                return self._token
            try:
                token = await self._request_token()
            except UnauthorizedError:
                self._token = None
                logger.debug("Token refresh failed; cleared stored token")
                raise
            self._token = token
            return token

    async def _request_token(self) -> AuthToken:
        if not self._refresh_token:
            raise UnauthorizedError("No refresh token available")
        try:
            response = await self._transport.send(
                "POST",
                self.refresh_url,
                {"content-type": "application/json", "accept": "application/json"},
                {"refresh_token": self._refresh_token},
                self.timeout,
            )
        except Exception as e:
            error = classify_exception(e, url=self.refresh_url, timeout=self.timeout)
            raise UnauthorizedError(
                f"Token refresh failed: {error.message}", data=error.to_dict()
            ) from e

        error = classify_response(response)
        if error is not None:
            raise UnauthorizedError(
                f"Token refresh failed: {error.message}",
                status=error.status,
                data=error.data,
            )

        try:
            payload = _token_payload(response.json())
        except ValueError:
            payload = None
        if payload is None:
            raise UnauthorizedError(
                "Token refresh returned no access token", status=response.status_code
            )

        if isinstance(payload.get("refresh_token"), str):
            self._refresh_token = payload["refresh_token"]
        expires_at = None
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, (int, float)):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        return AuthToken(access_token=payload["access_token"], expires_at=expires_at)
