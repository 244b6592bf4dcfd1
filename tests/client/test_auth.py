"""Unit tests for auth token providers (apiclient/_auth.py).

RefreshingTokenProvider is exercised over HttpxTransport with httpx's
MockTransport, so no real network calls are made.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from apiclient._auth import AuthTokenProvider, RefreshingTokenProvider, StaticTokenProvider
from apiclient._transport import HttpxTransport
from apiclient.exceptions import UnauthorizedError
from apiclient.models import AuthToken

REFRESH_URL = "http://auth.test/token/refresh"


def make_provider(handler, **kwargs) -> RefreshingTokenProvider:
    transport = HttpxTransport(transport=httpx.MockTransport(handler))
    kwargs.setdefault("refresh_token", "refresh-1")
    return RefreshingTokenProvider(transport, REFRESH_URL, **kwargs)


# =============================================================================
# StaticTokenProvider
# =============================================================================

class TestStaticTokenProvider:
    """Tests for StaticTokenProvider."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(StaticTokenProvider(), AuthTokenProvider)

    def test_string_token(self) -> None:
        provider = StaticTokenProvider("secret")

        token = provider.get_token()

        assert token is not None
        assert token.access_token == "secret"

    def test_no_token(self) -> None:
        assert StaticTokenProvider().get_token() is None

    def test_expired_token_not_returned(self) -> None:
        expired = AuthToken(
            access_token="old",
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        )
        assert StaticTokenProvider(expired).get_token() is None

    def test_set_token(self) -> None:
        provider = StaticTokenProvider()
        provider.set_token("new")
        assert provider.get_token().access_token == "new"  # type: ignore[union-attr]

    async def test_refresh_fails_and_clears(self) -> None:
        provider = StaticTokenProvider("secret")

        with pytest.raises(UnauthorizedError):
            await provider.refresh()

        assert provider.get_token() is None


# =============================================================================
# RefreshingTokenProvider
# =============================================================================

class TestRefreshingTokenProviderSuccess:
    """Successful refreshes."""

    async def test_bare_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})

        provider = make_provider(handler)
        token = await provider.refresh()

        assert token.access_token == "fresh"
        assert token.expires_at is not None
        assert provider.get_token() == token
        assert seen[0].method == "POST"
        assert str(seen[0].url) == REFRESH_URL
        assert json.loads(seen[0].content) == {"refresh_token": "refresh-1"}

    async def test_envelope_payload(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"success": True, "data": {"access_token": "wrapped"}}
            )

        token = await make_provider(handler).refresh()

        assert token.access_token == "wrapped"
        assert token.expires_at is None

    async def test_refresh_token_rotation(self) -> None:
        sent: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            current = json.loads(request.content)["refresh_token"]
            sent.append(current)
            return httpx.Response(
                200,
                json={"access_token": f"access-{len(sent)}", "refresh_token": f"refresh-{len(sent) + 1}"},
            )

        provider = make_provider(handler)
        await provider.refresh()
        await provider.refresh()

        assert sent == ["refresh-1", "refresh-2"]
        assert provider.get_token().access_token == "access-2"  # type: ignore[union-attr]

    async def test_concurrent_refreshes_collapse(self) -> None:
        """Callers queued behind a refresh reuse its token."""
        calls = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"access_token": "shared"})

        provider = make_provider(handler)
        tokens = await asyncio.gather(*(provider.refresh() for _ in range(3)))

        assert calls == 1
        assert {t.access_token for t in tokens} == {"shared"}


class TestRefreshingTokenProviderFailure:
    """Failed refreshes surface UNAUTHORIZED and clear the token."""

    async def test_rejected_refresh(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"detail": "Refresh token revoked"})

        provider = make_provider(handler, token=AuthToken(access_token="stale"))

        with pytest.raises(UnauthorizedError) as exc_info:
            await provider.refresh()

        assert exc_info.value.status == 401
        assert "Refresh token revoked" in exc_info.value.message
        assert provider.get_token() is None

    async def test_server_error_is_unauthorized(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        provider = make_provider(handler, token=AuthToken(access_token="stale"))

        with pytest.raises(UnauthorizedError):
            await provider.refresh()
        assert provider.get_token() is None

    async def test_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        provider = make_provider(handler, token=AuthToken(access_token="stale"))

        with pytest.raises(UnauthorizedError) as exc_info:
            await provider.refresh()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert provider.get_token() is None

    async def test_missing_access_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "bearer"})

        with pytest.raises(UnauthorizedError):
            await make_provider(handler).refresh()

    async def test_non_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="ok")

        with pytest.raises(UnauthorizedError):
            await make_provider(handler).refresh()

    async def test_no_refresh_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("No call expected")

        provider = make_provider(handler, refresh_token=None)

        with pytest.raises(UnauthorizedError):
            await provider.refresh()

    async def test_clear(self) -> None:
        provider = make_provider(
            lambda request: httpx.Response(200), token=AuthToken(access_token="a")
        )
        provider.clear()
        assert provider.get_token() is None
