"""HTTP transport with a per-request deadline and retry/backoff.

The only module that touches the network.  Application-level HTTP errors
are returned to the caller untouched; only transport-level failures
(refused connections, DNS errors, timeouts) are retried.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from ollama_bridge.errors import RequestAborted, TransportError

_logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_BACKOFF_BASE = 1  # seconds -- exponential: 1, 2, 4

_T = TypeVar("_T")


class DeadlineExceeded(Exception):
    """Raised when the internal per-request timer fires."""


class Transport:
    """Async HTTP transport for the inference endpoint.

    ``max_retries`` is the total number of attempts for one logical
    request.  Retry state lives in local variables of each call, so one
    ``Transport`` can serve concurrent requests.
    """

    def __init__(
        self,
        timeout_ms: int = 30000,
        max_retries: int = _MAX_RETRIES,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.max_retries = max(1, max_retries)
        self._client = client or httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout_ms / 1000, connect=30),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        cancel: asyncio.Event | None = None,
        timeout_ms: int | None = None,
    ) -> httpx.Response:
        """Issue one request and return the (fully read) response."""

        async def _attempt() -> httpx.Response:
            return await self._client.request(
                method, url, json=json, headers=headers,
            )

        return await self._with_retry(_attempt, method, url, cancel, timeout_ms)

    async def open_stream(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        cancel: asyncio.Event | None = None,
        timeout_ms: int | None = None,
    ) -> httpx.Response:
        """Issue a request whose body is read incrementally.

        The deadline and retries cover establishing the response.  The
        caller must ``await response.aclose()`` when done reading.
        """

        async def _attempt() -> httpx.Response:
            request = self._client.build_request(
                method, url, json=json, headers=headers,
            )
            return await self._client.send(request, stream=True)

        return await self._with_retry(_attempt, method, url, cancel, timeout_ms)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _with_retry(
        self,
        attempt_fn: Callable[[], Awaitable[_T]],
        method: str,
        url: str,
        cancel: asyncio.Event | None,
        timeout_ms: int | None,
    ) -> _T:
        deadline_ms = timeout_ms or self.timeout_ms
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                return await self._run_once(attempt_fn, cancel, deadline_ms)
            except (httpx.TransportError, DeadlineExceeded) as e:
                last_error = e
                _logger.warning(
                    "%s %s failed (attempt %d/%d): %s",
                    method, url, attempt + 1, self.max_retries, _describe(e),
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(_BACKOFF_BASE * (2 ** attempt))

        assert last_error is not None
        raise TransportError(_describe(last_error)) from last_error

    async def _run_once(
        self,
        attempt_fn: Callable[[], Awaitable[_T]],
        cancel: asyncio.Event | None,
        deadline_ms: int,
    ) -> _T:
        """Run one attempt under the deadline or the caller's signal.

        A caller-supplied signal replaces the internal timer; the HTTP
        client's own timeouts still apply.
        """
        if cancel is None:
            try:
                return await asyncio.wait_for(attempt_fn(), deadline_ms / 1000)
            except asyncio.TimeoutError as e:
                raise DeadlineExceeded(
                    f"Request timeout after {deadline_ms}ms",
                ) from e

        if cancel.is_set():
            raise RequestAborted("Request aborted before it was sent")
        return await run_cancellable(attempt_fn(), cancel)


async def run_cancellable(
    coro: Awaitable[_T],
    cancel: asyncio.Event,
    message: str = "Request aborted",
) -> _T:
    """Await *coro* unless *cancel* fires first.

    When the signal wins, the pending work is cancelled and awaited
    (so open connections are torn down) before ``RequestAborted`` is
    raised.
    """
    task = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel.wait())
    aborted = False
    try:
        await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        waiter.cancel()
        if not task.done():
            aborted = True
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
    if aborted or task.cancelled():
        raise RequestAborted(message)
    return task.result()


def _describe(error: Exception) -> str:
    if isinstance(error, httpx.TimeoutException):
        return f"Request timeout: {error}" if str(error) else "Request timeout"
    if isinstance(error, httpx.ConnectError):
        return f"Connection refused: {error}" if str(error) else "Connection refused"
    return str(error) or error.__class__.__name__
