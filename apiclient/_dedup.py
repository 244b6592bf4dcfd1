"""In-flight request deduplication.

While a GET for a given signature is on the wire, later callers for the
same signature join it instead of issuing their own call. They all observe
the same outcome, value or error, once it settles.

Registration, join and settlement happen between suspension points of the
event loop, so no caller can observe a half-registered request.

This is an internal module and should not be imported directly by users.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any


@dataclass
class PendingRequest:
    """A request currently in flight.

    Attributes:
        signature: The request signature.
        future: Completion handle shared by every waiter.
        waiters: Number of callers that joined after the owner.
    """

    signature: str
    future: asyncio.Future = field(repr=False)
    waiters: int = 0

    @property
    def done(self) -> bool:
        return self.future.done()


class RequestDeduplicator:
    """Tracks in-flight requests by signature."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, signature: object) -> bool:
        return signature in self._pending

    def get(self, signature: str) -> PendingRequest | None:
        """Return the live pending request for ``signature``, if any."""
        return self._pending.get(signature)

    def register(self, signature: str) -> PendingRequest:
        """Register a new in-flight request.

        Raises:
            RuntimeError: If a request for ``signature`` is already in flight.
        """
        if signature in self._pending:
            raise RuntimeError(f"Request already in flight: {signature}")
        loop = asyncio.get_running_loop()
        pending = PendingRequest(signature=signature, future=loop.create_future())
        self._pending[signature] = pending
        return pending

    async def wait(self, pending: PendingRequest) -> Any:
        """Wait for ``pending`` to settle and return (or raise) its outcome.

        Cancelling the waiting task only cancels this waiter; the shared
        call keeps running for everyone else.
        """
        pending.waiters += 1
        try:
            return await asyncio.shield(pending.future)
        finally:
            pending.waiters -= 1

    def resolve(self, signature: str, value: Any) -> None:
        """Release the pending request with a successful ``value``."""
        pending = self._pending.pop(signature, None)
        if pending is not None and not pending.future.done():
            pending.future.set_result(value)

    def reject(self, signature: str, error: BaseException) -> None:
        """Release the pending request with ``error``."""
        pending = self._pending.pop(signature, None)
        if pending is None or pending.future.done():
            return
        pending.future.set_exception(error)
        # Waiters re-raise it; mark it retrieved so a waiter-less failure is not logged
        pending.future.exception()
