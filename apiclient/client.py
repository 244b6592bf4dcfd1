"""The resilient API client.

``ApiClient`` is the public entry point. It composes the request cache,
in-flight deduplication, the retry policy and the auth token provider
around a Transport:

- GET requests are answered from the cache while fresh, share one network
  call among concurrent callers, and are retried with exponential backoff
  on transient failures.
- POST/PUT/PATCH/DELETE go straight to the network and are never retried.
- Every attempt carries the current bearer token; an UNAUTHORIZED answer
  triggers one token refresh and one repeat of the attempt.

Example:
    Basic usage::

        from apiclient import ApiClient, ClientConfig

        config = ClientConfig(base_url="https://api.example.com", timeout=5.0)
        async with ApiClient(config) as client:
            users = await client.get("/users", params={"page": 1})
            created = await client.post("/users", body={"name": "Ada"})

    Cancelling a call::

        cancel = asyncio.Event()
        task = asyncio.create_task(client.get("/reports", cancel=cancel))
        cancel.set()  # task fails with CancelledError (kind CANCELLED)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx
import pydantic

from apiclient._auth import AuthTokenProvider
from apiclient._cache import RequestCache
from apiclient._classify import classify_exception, classify_response
from apiclient._dedup import RequestDeduplicator
from apiclient._logging import NullRequestLogger, RequestLogger, StdlibRequestLogger
from apiclient._retry import RetryPolicy, parse_retry_after
from apiclient._transport import HttpxTransport, Transport
from apiclient.exceptions import (
    ApiError,
    CancelledError,
    ErrorKind,
    UnauthorizedError,
    UnknownError,
)
from apiclient.models import (
    ApiResponse,
    ClientConfig,
    HttpMethod,
    RequestDescriptor,
    build_signature,
)

RequestTransform = Callable[[RequestDescriptor], RequestDescriptor]
ResponseTransform = Callable[[ApiResponse], ApiResponse]

# Responses whose Retry-After header is honored when retrying
RETRY_AFTER_STATUS_CODES = frozenset({429, 503})


class ApiClient:
    """Asynchronous API client with caching, deduplication, retry and auth.

    One instance is meant to be shared per base URL; the cache and the
    in-flight registry belong to that instance.

    Attributes:
        config: The validated client configuration.
        cache: Cache of successful GET responses.
        deduplicator: Registry of in-flight GET requests.
        retry_policy: Policy deciding retries and backoff delays.
        auth: Token provider, or None for anonymous calls.
        transport: Transport performing the network calls.
    """

    def __init__(
        self,
        config: ClientConfig | str,
        *,
        transport: Transport | httpx.AsyncBaseTransport | None = None,
        auth: AuthTokenProvider | None = None,
        cache: RequestCache | None = None,
        deduplicator: RequestDeduplicator | None = None,
        retry_policy: RetryPolicy | None = None,
        logger: RequestLogger | None = None,
        request_transforms: Sequence[RequestTransform] = (),
        response_transforms: Sequence[ResponseTransform] = (),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration, or a base URL to use with defaults.
            transport: Transport for network calls. An httpx transport (e.g.
                MockTransport or ASGITransport) is wrapped in an
                HttpxTransport. Defaults to a new HttpxTransport owned by
                this client.
            auth: Token provider consulted before each attempt.
            cache: Response cache; built from the config when omitted.
            deduplicator: In-flight registry; a fresh one when omitted.
            retry_policy: Retry policy; built from the config when omitted.
            logger: Receives request events when ``config.enable_logging``
                is set. Defaults to the standard library ``apiclient`` logger.
            request_transforms: Applied in order to the descriptor before
                every attempt.
            response_transforms: Applied in order to every successful
                response envelope.
            sleep: Coroutine function used for backoff waits.
        """
        if isinstance(config, str):
            config = ClientConfig(base_url=config)
        self.config = config

        self._owns_transport = False
        if transport is None:
            transport = HttpxTransport()
            self._owns_transport = True
        elif isinstance(transport, httpx.AsyncBaseTransport):
            transport = HttpxTransport(transport=transport)
            self._owns_transport = True
        self.transport: Transport = transport

        self.auth = auth
        # Both collaborators define __len__, so an empty one is falsy
        if cache is None:
            cache = RequestCache(ttl=config.cache_ttl, max_entries=config.max_cache_entries)
        self.cache = cache
        if deduplicator is None:
            deduplicator = RequestDeduplicator()
        self.deduplicator = deduplicator
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.retries,
            base_delay=config.retry_delay,
            max_delay=config.max_retry_delay,
        )
        if config.enable_logging:
            self._logger: RequestLogger = logger or StdlibRequestLogger()
        else:
            self._logger = NullRequestLogger()
        self._request_transforms = tuple(request_transforms)
        self._response_transforms = tuple(response_transforms)
        self._sleep = sleep

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport and isinstance(self.transport, HttpxTransport):
            await self.transport.aclose()

    async def __aenter__(self) -> "ApiClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context manager and close the client."""
        await self.aclose()

    # Cache management

    def signature_for(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        method: HttpMethod = "GET",
    ) -> str:
        """Return the signature a request would be cached under."""
        return build_signature(method, path, params)

    def clear_cache(self) -> None:
        """Drop every cached response."""
        self.cache.clear()

    def clear_cache_key(self, signature: str) -> bool:
        """Drop the cached response for ``signature``.

        Returns:
            True if an entry was removed.
        """
        return self.cache.invalidate(signature)

    # Verb wrappers

    async def get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        bypass_cache: bool = False,
        cancel: asyncio.Event | None = None,
        response_model: Any = None,
    ) -> Any:
        """Make a GET request.

        Args:
            path: The URL path.
            params: Query parameters.
            headers: Extra headers.
            timeout: Per-attempt timeout override, in seconds.
            bypass_cache: Skip the cache read and fetch fresh data.
            cancel: Event that aborts the call when set.
            response_model: Type to validate the response data against.

        Returns:
            The response data.
        """
        descriptor = RequestDescriptor(
            method="GET",
            path=path,
            params=params or {},
            headers=headers or {},
            timeout=timeout,
            bypass_cache=bypass_cache,
        )
        return await self.request(descriptor, cancel=cancel, response_model=response_model)

    async def post(
        self,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
        response_model: Any = None,
    ) -> Any:
        """Make a POST request.

        Args:
            path: The URL path.
            body: JSON body to send.
            params: Query parameters.
            headers: Extra headers.
            timeout: Per-attempt timeout override, in seconds.
            cancel: Event that aborts the call when set.
            response_model: Type to validate the response data against.

        Returns:
            The response data.
        """
        return await self._send_verb(
            "POST", path, body, params, headers, timeout, cancel, response_model
        )

    async def put(
        self,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
        response_model: Any = None,
    ) -> Any:
        """Make a PUT request. See ``post`` for the arguments."""
        return await self._send_verb(
            "PUT", path, body, params, headers, timeout, cancel, response_model
        )

    async def patch(
        self,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
        response_model: Any = None,
    ) -> Any:
        """Make a PATCH request. See ``post`` for the arguments."""
        return await self._send_verb(
            "PATCH", path, body, params, headers, timeout, cancel, response_model
        )

    async def delete(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
        response_model: Any = None,
    ) -> Any:
        """Make a DELETE request. See ``post`` for the arguments."""
        return await self._send_verb(
            "DELETE", path, None, params, headers, timeout, cancel, response_model
        )

    async def _send_verb(
        self,
        method: HttpMethod,
        path: str,
        body: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        timeout: float | None,
        cancel: asyncio.Event | None,
        response_model: Any,
    ) -> Any:
        descriptor = RequestDescriptor(
            method=method,
            path=path,
            params=params or {},
            body=body,
            headers=headers or {},
            timeout=timeout,
        )
        return await self.request(descriptor, cancel=cancel, response_model=response_model)

    # Core

    async def request(
        self,
        descriptor: RequestDescriptor,
        *,
        cancel: asyncio.Event | None = None,
        response_model: Any = None,
    ) -> Any:
        """Perform a request and return its data.

        Args:
            descriptor: The call to make.
            cancel: Event that aborts the call when set.
            response_model: Type to validate the response data against
                (any type pydantic's TypeAdapter accepts).

        Returns:
            The ``data`` of the success envelope, validated against
            ``response_model`` when one is given.

        Raises:
            ApiError: The classified failure of the call.
        """
        response = await self.send(descriptor, cancel=cancel)
        if response_model is None:
            return response.data
        try:
            return pydantic.TypeAdapter(response_model).validate_python(response.data)
        except pydantic.ValidationError as e:
            raise UnknownError(
                f"Unexpected response shape for {descriptor.method} {descriptor.path}",
                status=response.status,
                data=response.data,
            ) from e

    async def send(
        self,
        descriptor: RequestDescriptor,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ApiResponse:
        """Perform a request and return the full success envelope.

        Raises:
            ApiError: The classified failure of the call.
        """
        if descriptor.is_idempotent:
            return await self._send_shared(descriptor, cancel)
        return await self._execute(descriptor, cancel)

    async def _send_shared(
        self,
        descriptor: RequestDescriptor,
        cancel: asyncio.Event | None,
    ) -> ApiResponse:
        """Answer a GET from the cache, an in-flight twin, or the network."""
        signature = descriptor.signature

        if not descriptor.bypass_cache:
            cached = self.cache.get(signature)
            if cached is not None:
                self._log(logging.DEBUG, "Cache hit", signature=signature)
                return cached

        pending = self.deduplicator.get(signature)
        if pending is not None:
            self._log(
                logging.DEBUG,
                "Joined in-flight request",
                signature=signature,
                waiters=pending.waiters + 1,
            )
            return await self._cancellable(self.deduplicator.wait(pending), cancel)

        self.deduplicator.register(signature)
        try:
            response = await self._execute(descriptor, cancel)
        except asyncio.CancelledError:
            self.deduplicator.reject(signature, CancelledError("Request was cancelled"))
            raise
        except Exception as e:
            self.deduplicator.reject(signature, e)
            raise
        self.cache.set(signature, response)
        self.deduplicator.resolve(signature, response)
        return response

    async def _execute(
        self,
        descriptor: RequestDescriptor,
        cancel: asyncio.Event | None,
    ) -> ApiResponse:
        """Run the attempt loop: dispatch, classify, refresh or retry."""
        attempt = 0
        refreshed = False

        while True:
            prepared = self._prepare(descriptor)
            url = self._build_url(prepared)
            timeout = prepared.timeout or self.config.timeout
            headers = self._build_headers(prepared)

            self._log(
                logging.DEBUG,
                "Request dispatched",
                method=prepared.method,
                url=url,
                attempt=attempt + 1,
            )
            started = time.monotonic()
            response: httpx.Response | None = None
            cause: Exception | None = None
            try:
                response = await self._cancellable(
                    self.transport.send(prepared.method, url, headers, prepared.body, timeout),
                    cancel,
                )
            except CancelledError:
                self._log(logging.INFO, "Request cancelled", method=prepared.method, url=url)
                raise
            except Exception as e:
                cause = e
                error = classify_exception(e, url=url, timeout=timeout)
            else:
                self._log(
                    logging.DEBUG,
                    "Response received",
                    method=prepared.method,
                    url=url,
                    status=response.status_code,
                    elapsed_ms=round((time.monotonic() - started) * 1000, 1),
                )
                error = classify_response(response)
                if error is None:
                    return self._to_envelope(response)

            if error.kind is ErrorKind.UNAUTHORIZED and not refreshed and self.auth is not None:
                refreshed = True
                await self._refresh_token(self.auth, cancel)
                continue

            if not self.retry_policy.should_retry(prepared.method, error, attempt):
                self._log(
                    logging.WARNING,
                    "Request failed",
                    method=prepared.method,
                    url=url,
                    kind=error.kind.value,
                    status=error.status,
                    attempts=attempt + 1,
                )
                if cause is not None:
                    raise error from cause
                raise error

            attempt += 1
            retry_after = None
            if response is not None and response.status_code in RETRY_AFTER_STATUS_CODES:
                retry_after = parse_retry_after(response.headers)
            delay = self.retry_policy.compute_delay(attempt, retry_after)
            self._log(
                logging.INFO,
                "Retrying request",
                method=prepared.method,
                url=url,
                kind=error.kind.value,
                status=error.status,
                retry=attempt,
                delay=delay,
            )
            await self._cancellable(self._sleep(delay), cancel)

    async def _refresh_token(
        self, auth: AuthTokenProvider, cancel: asyncio.Event | None
    ) -> None:
        """Ask the provider for a new token once; surface UNAUTHORIZED on failure."""
        self._log(logging.INFO, "Refreshing auth token")
        try:
            await self._cancellable(auth.refresh(), cancel)
        except ApiError as e:
            if isinstance(e, (UnauthorizedError, CancelledError)):
                raise
            raise UnauthorizedError(f"Token refresh failed: {e.message}", data=e.data) from e
        except Exception as e:
            raise UnauthorizedError(f"Token refresh failed: {e}") from e

    async def _cancellable(self, awaitable: Awaitable[Any], cancel: asyncio.Event | None) -> Any:
        """Await ``awaitable``, aborting it when ``cancel`` is set.

        Raises:
            CancelledError: If ``cancel`` was set before the awaitable finished.
        """
        if cancel is None:
            return await awaitable
        if cancel.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancelledError("Request was cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise
        if task in done:
            waiter.cancel()
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise CancelledError("Request was cancelled")

    # Helpers

    def _prepare(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        for transform in self._request_transforms:
            descriptor = transform(descriptor)
            if not isinstance(descriptor, RequestDescriptor):
                raise TypeError("Request transforms must return a RequestDescriptor")
        return descriptor

    def _build_url(self, descriptor: RequestDescriptor) -> str:
        params = descriptor.query_params()
        url = httpx.URL(f"{self.config.base_url}{descriptor.path}")
        if params:
            url = url.copy_merge_params(params)
        return str(url)

    def _build_headers(self, descriptor: RequestDescriptor) -> httpx.Headers:
        """Merge config headers, request headers and the bearer token."""
        headers = httpx.Headers(self.config.headers)
        headers.update(descriptor.headers)
        if "authorization" not in headers and self.auth is not None:
            token = self.auth.get_token()
            if token is not None:
                headers["Authorization"] = f"Bearer {token.access_token}"
        return headers

    def _to_envelope(self, response: httpx.Response) -> ApiResponse:
        """Wrap a successful response into the ApiResponse envelope.

        Raises:
            UnknownError: If the body is an envelope reporting ``success: false``.
        """
        status = response.status_code
        if not response.content:
            envelope = ApiResponse(data=None, status=status)
        else:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            if isinstance(body, dict) and isinstance(body.get("success"), bool):
                message = body.get("message")
                if not isinstance(message, str):
                    message = None
                if not body["success"]:
                    raise UnknownError(
                        message or "Server reported an unsuccessful response",
                        status=status,
                        data=body.get("data"),
                    )
                envelope = ApiResponse(
                    data=body.get("data"), message=message, status=status
                )
            else:
                envelope = ApiResponse(data=body, status=status)

        for transform in self._response_transforms:
            envelope = transform(envelope)
        return envelope

    def _log(self, level: int, message: str, **context: Any) -> None:
        self._logger.log(level, message, context)
